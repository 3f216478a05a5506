# runner.py
from __future__ import annotations

import runpy
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .credentials import SecretResolver
from .executor import CommandRunner, ExecutionContext, JobResult, run_job
from .loader import PipelineDefinitionError, load_yaml_pipeline
from .model import ChangeEvent, Job
from .trigger import TriggerDecision, compile_filter, evaluate
from .ui.console import Console, get_console

SKIPPED = "skipped(trigger)"


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[Job]:
    """
    Load a workflow from a python or YAML file.

    A .py file must define either:
      - workflow() -> List[Job]
      - JOBS = [Job, ...]

    A .yml/.yaml file is read by bosonci.loader.
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in (".yml", ".yaml"):
        jobs = load_yaml_pipeline(wf_path)
    elif wf_path.suffix == ".py":
        jobs = _load_python_workflow(wf_path)
    else:
        raise PipelineDefinitionError(f"Workflow must be a .py or .yml file, got: {wf_path.name}")

    validate_jobs(jobs)
    return jobs


def _load_python_workflow(wf_path: Path) -> List[Job]:
    module_name = f"bosonci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        jobs = globals_dict["workflow"]()
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise PipelineDefinitionError(
            "Workflow must return/define a List[Job]. "
            "Define workflow() -> List[Job] or JOBS = [Job, ...]."
        )
    return jobs


def validate_jobs(jobs: List[Job]) -> None:
    """
    Reject definitions that can never run: duplicate names, empty jobs.
    Compiling every path filter surfaces InvalidPatternError at load time.
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise PipelineDefinitionError(f"Duplicate job names found: {dupes}")

    for j in jobs:
        if not j.steps:
            raise PipelineDefinitionError(f"Job '{j.name}' has no steps")
        compile_filter(j.paths)


# ----------------------------------------------------------------------
# Selection
# ----------------------------------------------------------------------

def select_jobs(
    jobs: List[Job],
    event: ChangeEvent,
    *,
    console: Optional[Console] = None,
    print_plan: bool = True,
) -> Tuple[List[Job], List[TriggerDecision]]:
    """Evaluate every job's trigger against the event. Raises TriggerError."""
    console = console or get_console()
    selected: List[Job] = []
    decisions: List[TriggerDecision] = []

    for j in jobs:
        decision = evaluate(j, event)
        decisions.append(decision)
        if decision.run:
            selected.append(j)
            if print_plan:
                console.print_plan_job(j.name, decision.reason)
        elif print_plan:
            console.print_plan_job_skipped(j.name, decision.reason)

    return selected, decisions


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    jobs: List[Job],
    event: ChangeEvent,
    *,
    workspace: str | Path = ".",
    env: Optional[Mapping[str, str]] = None,
    secrets: Optional[SecretResolver] = None,
    max_workers: int = 1,
    dry_run: bool = False,
    print_plan: bool = True,
    console: Optional[Console] = None,
    runner: CommandRunner = subprocess.run,
) -> Dict[str, str]:
    """
    Run every job whose trigger matches the event.

    Jobs share no state: each one runs to completion or to its first
    failing step regardless of what the others do.

    Returns {job_name: "ok" | "failed" | "skipped(trigger)"} in definition order.
    """
    console = console or get_console()
    validate_jobs(jobs)
    selected, _decisions = select_jobs(jobs, event, console=console, print_plan=print_plan)

    ctx = ExecutionContext(
        workspace=Path(workspace),
        env=dict(env or {}),
        secrets=secrets or SecretResolver(),
        dry_run=dry_run,
        console=console,
        runner=runner,
    )

    statuses: Dict[str, str] = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {pool.submit(run_job, j, ctx): j.name for j in selected}
        for fut in as_completed(futures):
            name = futures[fut]
            try:
                result: JobResult = fut.result()
                statuses[name] = result.status
            except Exception as e:
                statuses[name] = "failed"
                console.print_failure(name, str(e), is_job=True)
                if console.debug:
                    console.print_exception(e)

    return {j.name: statuses.get(j.name, SKIPPED) for j in jobs}
