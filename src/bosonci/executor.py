# executor.py
"""
Sequential step executor.

Every step of a job goes pending -> running -> succeeded | failed, strictly
in declaration order. The first failure stops the job: later steps are
never started and stay pending. Nothing is retried.
"""
from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .credentials import SecretResolver
from .model import Job, Step, StepState
from .ui.console import Console, get_console


OUTPUT_TAIL = 4000

TOOL_HINTS = {
    "sh": "A POSIX shell (sh) must be on PATH.",
    "git": "Install Git or fix PATH.",
    "docker": "Install Docker and ensure the daemon is running.",
    "make": "Install make (e.g., apt-get install build-essential).",
}


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class CIError(Exception):
    """
    Structured error for problems that are not a command's exit status:
    missing tools and missing directories.
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    output: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass
class StepResult:
    name: str
    kind: str
    state: StepState = StepState.PENDING
    error: Optional[Exception] = None
    duration: float = 0.0


@dataclass
class JobResult:
    name: str
    steps: List[StepResult]

    @property
    def ok(self) -> bool:
        return all(s.state is StepState.SUCCEEDED for s in self.steps)

    @property
    def status(self) -> str:
        return "ok" if self.ok else "failed"

    @property
    def failed_step(self) -> Optional[StepResult]:
        for s in self.steps:
            if s.state is StepState.FAILED:
                return s
        return None


# ----------------------------------------------------------------------
# Execution context
# ----------------------------------------------------------------------

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]
StepHandler = Callable[[Job, Step, "ExecutionContext"], None]
StateObserver = Callable[[str, str, StepState], None]


@dataclass
class ExecutionContext:
    workspace: Path
    env: Dict[str, str] = field(default_factory=dict)
    secrets: SecretResolver = field(default_factory=SecretResolver)
    dry_run: bool = False
    console: Optional[Console] = None
    runner: CommandRunner = subprocess.run
    handlers: Optional[Dict[str, StepHandler]] = None
    on_state: Optional[StateObserver] = None

    def __post_init__(self) -> None:
        self.workspace = Path(self.workspace).resolve()
        if self.console is None:
            self.console = get_console()

    def step_env(self, job: Job) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        env.update(job.env or {})
        return env

    def resolve_dir(self, job: Job, step: Step, path: str | None) -> Path:
        d = (self.workspace / (path or ".")).resolve()
        if not self.dry_run and not d.is_dir():
            raise CIError(
                kind="cwd_missing",
                job=job.name,
                step=step.name,
                message=f"working directory not found: {d}",
            )
        return d

    def require_tool(self, job: Job, step: Step, tool: str) -> None:
        """Check `tool --version` works, raise CIError with an install hint if not."""
        if self.dry_run:
            return
        try:
            self.runner([tool, "--version"], capture_output=True, check=True)
        except (subprocess.CalledProcessError, FileNotFoundError):
            raise CIError(
                kind="tool_unavailable",
                job=job.name,
                step=step.name,
                message=f"{tool} is not available",
                details={"hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."), "tool": tool},
            )

    def run_command(
        self,
        job: Job,
        step: Step,
        cmd: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        input: Optional[str] = None,
        display: Optional[str] = None,
    ) -> str:
        """
        Run one external command for a step. Returns combined stdout/stderr.

        `display` replaces the argv in console output and errors; use it when
        the argv would be noisy or carries something that must not be shown.
        """
        shown = display if display is not None else " ".join(cmd)
        self.console.print_command(job.name, shown)
        if self.dry_run:
            return ""

        try:
            proc = self.runner(
                list(cmd),
                cwd=str(cwd or self.workspace),
                env=self.step_env(job),
                input=input,
                text=True,
                errors="replace",
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except FileNotFoundError:
            tool = cmd[0]
            raise CIError(
                kind="tool_unavailable",
                job=job.name,
                step=step.name,
                message=f"{tool} is not available",
                details={"hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."), "tool": tool},
            )

        output = proc.stdout or ""
        self.console.print_step_output(job.name, output)
        if proc.returncode != 0:
            raise StepFailure(
                job=job.name,
                step=step.name,
                cmd=shown,
                exit_code=proc.returncode,
                output=output[-OUTPUT_TAIL:],
            )
        return output


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------

def default_handlers() -> Dict[str, StepHandler]:
    # Import here to avoid circular import
    from .step_workflows import docker, git, shell

    return {
        "shell": shell.run_step,
        "clone": git.run_step,
        "docker_build": docker.run_build_step,
        "docker_push": docker.run_push_step,
    }


def _report_failure(console: Console, step: Step, err: Exception) -> None:
    if isinstance(err, StepFailure):
        reason = err.output.strip() or str(err)
        console.print_failure(step.name, f"{err}\n{reason}", exit_code=err.exit_code)
    elif isinstance(err, CIError):
        console.print_failure(step.name, err.message, hint=err.details.get("hint"))
    else:
        console.print_failure(step.name, str(err))


def run_job(job: Job, ctx: ExecutionContext) -> JobResult:
    """Run a job's steps in order, stopping at the first failure."""
    handlers = ctx.handlers or default_handlers()
    console = ctx.console
    result = JobResult(name=job.name, steps=[StepResult(s.name, s.kind) for s in job.steps])

    def transition(sr: StepResult, state: StepState) -> None:
        sr.state = state
        if ctx.on_state is not None:
            ctx.on_state(job.name, sr.name, state)

    console.print_job_start(job.name)
    for step, sr in zip(job.steps, result.steps):
        handler = handlers.get(step.kind)
        if handler is None:
            raise ValueError(f"[{job.name}] no handler for step kind {step.kind!r}")

        console.print_step(job.name, step.name)
        transition(sr, StepState.RUNNING)
        started = time.monotonic()
        try:
            handler(job, step, ctx)
        except Exception as e:
            sr.duration = time.monotonic() - started
            sr.error = e
            transition(sr, StepState.FAILED)
            _report_failure(console, step, e)
            if console.debug:
                console.print_exception(e)
            console.print_failure(job.name, str(e), is_job=True)
            break
        sr.duration = time.monotonic() - started
        transition(sr, StepState.SUCCEEDED)

    if result.ok:
        console.print_success(job.name)
    return result
