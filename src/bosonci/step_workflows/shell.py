# step_workflows/shell.py
from __future__ import annotations

import textwrap

from ..executor import ExecutionContext
from ..model import Job, ShellCommand


def normalize_script(script: str) -> str:
    """Strip the common indentation of inline multi-line scripts."""
    return textwrap.dedent(script).strip("\n")


def run_step(job: Job, step: ShellCommand, ctx: ExecutionContext) -> None:
    """Run a shell step with `sh -ec`, so a multi-line script stops at its first failing line."""
    cwd = ctx.resolve_dir(job, step, step.cwd)
    script = normalize_script(step.script)
    lines = script.splitlines()
    display = script if len(lines) <= 1 else f"{lines[0]} ... (+{len(lines) - 1} lines)"
    ctx.run_command(job, step, ["sh", "-ec", script], cwd=cwd, display=display)
