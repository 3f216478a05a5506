# step_workflows/docker.py
from __future__ import annotations

from pathlib import Path
from typing import List

from ..executor import ExecutionContext
from ..model import ContainerBuild, ContainerPush, Job


# ---------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------

def build_command(step: ContainerBuild, workspace: Path) -> List[str]:
    context = (workspace / step.context).resolve()
    dockerfile = (workspace / step.file).resolve()

    cmd = ["docker", "build", "-f", str(dockerfile)]
    for key, value in step.labels:
        cmd.extend(["--label", f"{key}={value}"])
    cmd.extend(["-t", step.image, str(context)])
    return cmd


def registry_host(step: ContainerPush) -> str | None:
    """
    Registry to log in to: explicit step.registry, else the first path
    component of the image when it looks like a host (has a dot or a port).
    """
    if step.registry:
        return step.registry
    first, _, rest = step.image.partition("/")
    if rest and ("." in first or ":" in first or first == "localhost"):
        return first
    return None


def login_command(host: str | None, username: str) -> List[str]:
    cmd = ["docker", "login", "--username", username, "--password-stdin"]
    if host:
        cmd.append(host)
    return cmd


def push_commands(step: ContainerPush) -> List[List[str]]:
    out: List[List[str]] = []
    for ref in step.tagged_refs():
        out.append(["docker", "tag", step.image, ref])
        out.append(["docker", "push", ref])
    return out


# ---------------------------------------------------------------------
# Step execution
# ---------------------------------------------------------------------

def run_build_step(job: Job, step: ContainerBuild, ctx: ExecutionContext) -> None:
    """Build step.image from step.file with step.context as the build context."""
    ctx.require_tool(job, step, "docker")
    ctx.resolve_dir(job, step, step.context)
    ctx.run_command(job, step, build_command(step, ctx.workspace))


def run_push_step(job: Job, step: ContainerPush, ctx: ExecutionContext) -> None:
    """Log in (if credentials are given), then tag and push every tag."""
    ctx.require_tool(job, step, "docker")

    if step.credentials is not None:
        if ctx.dry_run:
            username, password = str(step.credentials.username), ""
        else:
            username, password = ctx.secrets.resolve_credentials(step.credentials)
        host = registry_host(step)
        cmd = login_command(host, username)
        ctx.run_command(
            job,
            step,
            cmd,
            input=password,
            display=f"docker login --username {step.credentials.username} --password-stdin {host or ''}".rstrip(),
        )

    for cmd in push_commands(step):
        ctx.run_command(job, step, cmd)
