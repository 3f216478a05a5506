# step_workflows/git.py
from __future__ import annotations

from pathlib import Path
from typing import List

from ..executor import ExecutionContext
from ..model import Job, RepositoryClone


BRANCH_PREFIXES = ("refs/heads/", "refs/tags/")


def _depth_args(depth: int | None) -> List[str]:
    return ["--depth", str(depth)] if depth else []


def branch_name(ref: str) -> str | None:
    """
    Name usable with `git clone --branch`, or None.

    "refs/heads/higgs-boson" -> "higgs-boson", "main" -> "main",
    "HEAD" -> None (remote default), other refs/... and SHAs -> None.
    """
    if ref == "HEAD":
        return None
    for prefix in BRANCH_PREFIXES:
        if ref.startswith(prefix):
            return ref[len(prefix):]
    if ref.startswith("refs/") or _looks_like_sha(ref):
        return None
    return ref


def _looks_like_sha(ref: str) -> bool:
    return 7 <= len(ref) <= 40 and all(c in "0123456789abcdef" for c in ref.lower())


def clone_commands(step: RepositoryClone, dest: Path) -> List[List[str]]:
    """git invocations that leave `dest` checked out at step.ref."""
    depth = _depth_args(step.depth)

    if (dest / ".git").exists():
        # reuse an existing checkout
        return [
            ["git", "-C", str(dest), "fetch", *depth, "origin", step.ref],
            ["git", "-C", str(dest), "checkout", "--force", "FETCH_HEAD"],
        ]

    branch = branch_name(step.ref)
    if branch is not None or step.ref == "HEAD":
        cmd = ["git", "clone", *depth]
        if branch is not None:
            cmd += ["--branch", branch]
        return [cmd + [step.url, str(dest)]]

    # arbitrary refspec or commit: clone, then fetch exactly that ref
    return [
        ["git", "clone", *depth, "--no-checkout", step.url, str(dest)],
        ["git", "-C", str(dest), "fetch", *depth, "origin", step.ref],
        ["git", "-C", str(dest), "checkout", "--force", "FETCH_HEAD"],
    ]


def run_step(job: Job, step: RepositoryClone, ctx: ExecutionContext) -> None:
    """Materialize step.ref of step.url at step.target_dir (relative to the workspace)."""
    ctx.require_tool(job, step, "git")
    dest = (ctx.workspace / step.target_dir).resolve()
    if not ctx.dry_run:
        dest.parent.mkdir(parents=True, exist_ok=True)
    for cmd in clone_commands(step, dest):
        ctx.run_command(job, step, cmd)
