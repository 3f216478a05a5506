# events.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .model import ChangeEvent
from .trigger import normalize_path
from .git_facts.git import collect_changes, current_ref


class EventPayload(BaseModel):
    """Change event as delivered by a webhook / hosting platform (JSON)."""
    kind: str = "push"
    changed_paths: list[str] = Field(default_factory=list)
    ref: Optional[str] = None
    sha: Optional[str] = None

    @field_validator("kind")
    @classmethod
    def _kind_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("event kind must not be empty")
        return v

    def to_event(self) -> ChangeEvent:
        return ChangeEvent(
            kind=self.kind,
            changed_paths=frozenset(normalize_path(p) for p in self.changed_paths if p),
            ref=self.ref,
            sha=self.sha,
        )


class EventFileError(ValueError):
    pass


def event_from_paths(paths: Iterable[str], kind: str = "push", ref: str | None = None) -> ChangeEvent:
    return EventPayload(kind=kind, changed_paths=list(paths), ref=ref).to_event()


def load_event_file(path: str | Path) -> ChangeEvent:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Event file not found: {p}")
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
        return EventPayload.model_validate(raw).to_event()
    except json.JSONDecodeError as e:
        raise EventFileError(f"{p}: not valid JSON: {e}") from e
    except ValidationError as e:
        raise EventFileError(f"{p}: invalid event: {e}") from e


def event_from_git(
    kind: str = "push",
    compare_ref: str = "origin/main",
    cwd: str | Path | None = None,
) -> ChangeEvent:
    head, changed = collect_changes(compare_ref=compare_ref, cwd=cwd)
    return ChangeEvent(
        kind=kind,
        changed_paths=frozenset(normalize_path(p) for p in changed),
        ref=current_ref(cwd),
        sha=head,
    )
