# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from bosonci.config import Settings
from bosonci.events import EventFileError, event_from_git, event_from_paths, load_event_file
from bosonci.git_facts.git import remote_url
from bosonci.loader import PipelineDefinitionError
from bosonci.model import MANUAL_EVENT, ChangeEvent
from bosonci.runner import load_workflow, run_pipeline, select_jobs
from bosonci.trigger import TriggerError
from bosonci.ui.console import Console, get_console, set_console


DEFAULT_WORKFLOWS = ("bosonci_workflow.py", "bosonci.yml", "bosonci.yaml")


def find_workflow_files(directory: Path = Path(".")) -> list[Path]:
    """Workflow files in `directory`: the defaults plus any *_workflow.py."""
    found = [directory / name for name in DEFAULT_WORKFLOWS if (directory / name).exists()]
    for path in directory.glob("*_workflow.py"):
        if path not in found:
            found.append(path)
    return sorted(found)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Workflow file from the --workflow argument, or the single workflow file
    in the current directory. Exits with status 1 when it can't decide.
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix == "":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  bosonci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", *(f"  {n}" for n in DEFAULT_WORKFLOWS), "  *_workflow.py"],
            suggestion="Create bosonci_workflow.py or specify a workflow explicitly:\n  bosonci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[f"  {f}" for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  bosonci run --workflow bosonci_workflow.py",
        )
        sys.exit(1)

    return workflow_files[0]


def build_event(
    changed: Tuple[str, ...],
    event_file: Optional[str],
    event_kind: Optional[str],
    git_diff: bool,
    compare_ref: str,
) -> ChangeEvent:
    """
    Change event from (in order of precedence) an event file, explicit
    --changed paths or git. With no source at all this is a manual run.
    """
    if event_file:
        event = load_event_file(event_file)
        if event_kind:
            event = ChangeEvent(event_kind, event.changed_paths, event.ref, event.sha)
        return event
    if changed:
        return event_from_paths(changed, kind=event_kind or "push")
    if git_diff:
        return event_from_git(kind=event_kind or "push", compare_ref=compare_ref)
    return event_from_paths((), kind=event_kind or MANUAL_EVENT)


def _repo_name() -> str:
    try:
        return remote_url("origin").rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path(".").resolve().name


def event_options(f):
    f = click.option("--compare-ref", default="origin/main", show_default=True, help="Git ref to diff against")(f)
    f = click.option("--git-diff/--no-git-diff", default=False, help="Build the change event from git")(f)
    f = click.option("--event-kind", default=None, help="Event kind (push, manual, ...)")(f)
    f = click.option("--event-file", default=None, type=click.Path(dir_okay=False), help="JSON change event")(f)
    f = click.option("--changed", multiple=True, help="Changed path (repeatable)")(f)
    f = click.option(
        "--workflow",
        default=None,
        help="Workflow file path (defaults to bosonci_workflow.py if present)",
    )(f)
    return f


def _load(workflow):
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return workflow_path, load_workflow(workflow_path)
    except (PipelineDefinitionError, TriggerError, FileNotFoundError) as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if console.debug:
            console.print_exception(e)
        sys.exit(1)


def _event(changed, event_file, event_kind, git_diff, compare_ref) -> ChangeEvent:
    console = get_console()
    try:
        return build_event(changed, event_file, event_kind, git_diff, compare_ref)
    except (EventFileError, FileNotFoundError) as e:
        console.print_error("Invalid change event", str(e))
        if console.debug:
            console.print_exception(e)
        sys.exit(2)
    except subprocess.CalledProcessError as e:
        console.print_error(
            "Could not read git changes",
            str(e),
            suggestion="Run inside a git repository or pass --changed / --event-file explicitly.",
        )
        if console.debug:
            console.print_exception(e)
        sys.exit(2)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """bosonci: path-triggered build and image pipelines."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@event_options
@click.option("--workers", default=None, type=int, help="Jobs to run at once (default BOSONCI_MAX_WORKERS or 1)")
@click.option("--workspace", default=None, help="Workspace root (default BOSONCI_WORKSPACE or .)")
@click.option("--dry-run", is_flag=True, default=False, help="Print commands instead of running them")
@click.pass_context
def run(ctx, workflow, changed, event_file, event_kind, git_diff, compare_ref, workers, workspace, dry_run):
    """Run the jobs a change event triggers."""
    console = get_console()
    settings = Settings.from_env()

    workflow_path, jobs = _load(workflow)
    event = _event(changed, event_file, event_kind, git_diff, compare_ref)

    console.print_run_started(
        repository=_repo_name(),
        workflow=workflow_path.name,
        event=f"{event.kind} ({len(event.changed_paths)} changed paths)",
        job_count=len(jobs),
    )

    try:
        results = run_pipeline(
            jobs,
            event,
            workspace=workspace or settings.workspace,
            max_workers=workers or settings.max_workers,
            dry_run=dry_run,
            console=console,
        )
    except TriggerError as e:
        console.print_error("Trigger evaluation failed", str(e))
        if console.debug:
            console.print_exception(e)
        sys.exit(2)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_results(results)
    if any(v == "failed" for v in results.values()):
        sys.exit(1)


@cli.command()
@event_options
@click.pass_context
def plan(ctx, workflow, changed, event_file, event_kind, git_diff, compare_ref):
    """Show which jobs a change event would trigger, without running anything."""
    console = get_console()
    _workflow_path, jobs = _load(workflow)
    event = _event(changed, event_file, event_kind, git_diff, compare_ref)

    console.print_header(f"PLAN ({event.kind})")
    try:
        selected, _ = select_jobs(jobs, event, console=console)
    except TriggerError as e:
        console.print_error("Trigger evaluation failed", str(e))
        if console.debug:
            console.print_exception(e)
        sys.exit(2)
    console.print_info(f"\n{len(selected)} of {len(jobs)} job(s) would run")


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path")
@click.pass_context
def check(ctx, workflow):
    """Validate a workflow file (job names, steps, path patterns)."""
    console = get_console()
    workflow_path, jobs = _load(workflow)
    for j in jobs:
        paths = ", ".join(j.paths) if j.paths else "always"
        console.print_info(f"  {j.name}: {len(j.steps)} step(s), paths: {paths}")
    console.print_info(f"{workflow_path}: OK")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
