# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union


DEFAULT_EVENTS: Tuple[str, ...] = ("push",)
MANUAL_EVENT = "manual"


# ---------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class SecretRef:
    """Name of a secret resolved from the environment when a step runs."""
    name: str

    def __str__(self) -> str:
        return f"secret:{self.name}"


@dataclass(frozen=True)
class RegistryCredentials:
    username: SecretRef
    password: SecretRef


# ---------------------------------------------------------------------
# Steps (tagged variant)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ShellCommand:
    """A literal script body executed with `sh -c`."""
    name: str
    script: str
    cwd: str | None = None
    # container image a hosting platform would run this in; informational locally
    image: str | None = None

    kind = "shell"


@dataclass(frozen=True)
class RepositoryClone:
    name: str
    url: str
    ref: str = "HEAD"
    dest: str | None = None
    depth: int | None = None

    kind = "clone"

    @property
    def target_dir(self) -> str:
        if self.dest:
            return self.dest
        return self.url.rstrip("/").split("/")[-1].replace(".git", "")


@dataclass(frozen=True)
class ContainerBuild:
    name: str
    context: str
    file: str
    image: str
    labels: Tuple[Tuple[str, str], ...] = ()

    kind = "docker_build"


@dataclass(frozen=True)
class ContainerPush:
    name: str
    image: str
    tags: Tuple[str, ...]
    registry: str | None = None
    credentials: RegistryCredentials | None = None

    kind = "docker_push"

    def tagged_refs(self) -> list[str]:
        return [f"{self.image}:{t}" for t in self.tags]


Step = Union[ShellCommand, RepositoryClone, ContainerBuild, ContainerPush]


# ---------------------------------------------------------------------
# Trigger + Job
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Trigger:
    """
    When a job runs.

    `paths` is the PathFilter: None means "no filter, always run" for a
    qualifying event kind.
    """
    paths: Optional[Tuple[str, ...]] = None      # e.g. ("docker/Dockerfile", "src/**")
    events: Tuple[str, ...] = DEFAULT_EVENTS


@dataclass(frozen=True)
class Job:
    """A named, independently triggered sequence of steps."""
    name: str
    steps: Tuple[Step, ...]
    trigger: Optional[Trigger] = None
    env: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @property
    def paths(self) -> Optional[Tuple[str, ...]]:
        return self.trigger.paths if self.trigger else None

    @property
    def events(self) -> Tuple[str, ...]:
        return self.trigger.events if self.trigger else DEFAULT_EVENTS


# ---------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    changed_paths: frozenset[str]
    ref: str | None = None
    sha: str | None = None


# ---------------------------------------------------------------------
# Execution state
# ---------------------------------------------------------------------

class StepState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
