# src/bosonci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional

from .model import (
    DEFAULT_EVENTS,
    ContainerBuild,
    ContainerPush,
    Job,
    RegistryCredentials,
    RepositoryClone,
    SecretRef,
    ShellCommand,
    Step,
    Trigger,
)
from .trigger import InvalidPatternError


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, script: str, *, cwd: str | None = None, image: str | None = None) -> ShellCommand:
    """Create a shell step."""
    return ShellCommand(name=name, script=script, cwd=cwd, image=image)


def clone(
    name: str,
    url: str,
    *,
    ref: str = "HEAD",
    dest: str | None = None,
    depth: int | None = None,
) -> RepositoryClone:
    if depth is not None and depth < 1:
        raise ValueError(f"clone({name!r}): depth must be >= 1, got {depth}")
    return RepositoryClone(name=name, url=url, ref=ref, dest=dest, depth=depth)


def docker_build(
    name: str,
    *,
    context: str,
    file: str,
    image: str,
    labels: Optional[Mapping[str, str]] = None,
) -> ContainerBuild:
    return ContainerBuild(
        name=name,
        context=context,
        file=file,
        image=image,
        labels=tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items())),
    )


def docker_push(
    name: str,
    image: str,
    *tags: str,
    registry: str | None = None,
    credentials: RegistryCredentials | None = None,
) -> ContainerPush:
    if not tags:
        raise ValueError(f"docker_push({name!r}) needs at least one tag")
    return ContainerPush(
        name=name,
        image=image,
        tags=tuple(tags),
        registry=registry,
        credentials=credentials,
    )


def registry_login(username_secret: str, password_secret: str) -> RegistryCredentials:
    return RegistryCredentials(username=SecretRef(username_secret), password=SecretRef(password_secret))


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    paths: Optional[List[str]] = None,
    events: Optional[Iterable[str]] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to shell steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [
            replace(s, cwd=cwd) if isinstance(s, ShellCommand) and s.cwd is None else s
            for s in steps_final
        ]

    if isinstance(paths, str):
        raise InvalidPatternError(paths, "paths must be a list of patterns, got a single string")
    if isinstance(events, str):
        events = (events,)

    trigger = None
    if paths is not None or events is not None:
        trigger = Trigger(
            paths=tuple(paths) if paths is not None else None,
            events=tuple(events) if events is not None else DEFAULT_EVENTS,
        )

    return Job(
        name=name,
        steps=tuple(steps_final),
        trigger=trigger,
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._paths: Optional[list[str]] = None
        self._events: Optional[list[str]] = None

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd))
        return self

    def add(self, step: Step):
        self._steps.append(step)
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def with_paths(self, *patterns: str):
        self._paths = list(patterns)
        return self

    def on(self, *event_kinds: str):
        self._events = list(event_kinds)
        return self

    def build(self) -> Job:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")
        return job(
            self.name,
            steps_list=self._steps,
            paths=self._paths,
            events=self._events,
            env=self._env,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('image').define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Job) -> List[Job]:
    """
    Workflow definition helper.

        from bosonci import wf, job, sh

        def workflow():
            return wf(
                job(...),
                job(...),
            )

    Or use JOBS directly:
        JOBS = wf(job(...), job(...))
    """
    return list(jobs)
