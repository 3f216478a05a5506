# trigger.py
"""
Pipeline trigger evaluation.

A job runs for an event when the event kind qualifies and, if the job has a
path filter, at least one changed path matches at least one pattern.

Pattern syntax (paths are repo-relative, `/` separated):
  - "docker/"            directory prefix, anything below docker/
  - "docker/Dockerfile"  exact path
  - "src/*.py"           `*` and `?` never cross a `/`
  - "src/**/test_*.py"   `**` spans any number of directories
  - "img/[abc]*.png"     character classes, `[!...]` negates
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple, Union

from .model import DEFAULT_EVENTS, MANUAL_EVENT, ChangeEvent, Job


class TriggerError(ValueError):
    pass


class InvalidPatternError(TriggerError):
    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"invalid path pattern {pattern!r}: {reason}")


class EmptyEventError(TriggerError):
    def __init__(self, message: str = "event carries no changed paths"):
        super().__init__(message)


# ---------------------------------------------------------------------
# Pattern compilation
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CompiledPattern:
    source: str
    regex: "re.Pattern[str]"

    def matches(self, path: str) -> bool:
        return self.regex.match(normalize_path(path)) is not None


@dataclass(frozen=True)
class PathFilter:
    patterns: Tuple[CompiledPattern, ...]

    def matches(self, path: str) -> bool:
        return any(p.matches(path) for p in self.patterns)

    def first_match(self, paths: Iterable[str]) -> Optional[Tuple[str, str]]:
        """Return (path, pattern) for the first hit, checking paths in sorted order."""
        for path in sorted(paths):
            for p in self.patterns:
                if p.matches(path):
                    return path, p.source
        return None

    def __bool__(self) -> bool:
        return bool(self.patterns)


def normalize_path(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def _translate_class(seg: str, i: int, pattern: str) -> Tuple[str, int]:
    # seg[i] == "["
    j = i + 1
    if j < len(seg) and seg[j] in "!^":
        j += 1
    if j < len(seg) and seg[j] == "]":
        j += 1
    end = seg.find("]", j)
    if end == -1:
        raise InvalidPatternError(pattern, "unterminated character class")

    body = seg[i + 1:end].replace("\\", "\\\\")
    if body.startswith("!"):
        body = "^" + body[1:]
    elif body.startswith("^"):
        body = "\\" + body
    return f"[{body}]", end + 1


def _translate_segment(seg: str, pattern: str) -> str:
    out = []
    i = 0
    while i < len(seg):
        c = seg[i]
        if c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            cls, i = _translate_class(seg, i, pattern)
            out.append(cls)
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> CompiledPattern:
    if not isinstance(pattern, str):
        raise InvalidPatternError(repr(pattern), "pattern must be a string")
    if not pattern.strip():
        raise InvalidPatternError(pattern, "empty pattern")
    if "\x00" in pattern:
        raise InvalidPatternError(pattern, "NUL byte in pattern")

    norm = normalize_path(pattern)
    if norm.startswith("/"):
        raise InvalidPatternError(pattern, "patterns are relative to the repository root")

    # directory prefix
    if norm.endswith("/"):
        norm = norm + "**"

    segments = norm.split("/")
    parts = []
    for idx, seg in enumerate(segments):
        last = idx == len(segments) - 1
        if seg == "**":
            parts.append(".*" if last else "(?:[^/]+/)*")
            continue
        if "**" in seg:
            raise InvalidPatternError(pattern, "'**' must be a whole path segment")
        if seg == "":
            raise InvalidPatternError(pattern, "empty path segment")
        parts.append(_translate_segment(seg, pattern))
        if not last:
            parts.append("/")

    try:
        regex = re.compile(r"\A" + "".join(parts) + r"\Z")
    except re.error as e:
        raise InvalidPatternError(pattern, str(e)) from e

    return CompiledPattern(source=pattern, regex=regex)


def compile_filter(patterns: Optional[Iterable[str]]) -> PathFilter:
    """Validate and compile a job's path patterns. None/empty -> empty filter."""
    if isinstance(patterns, str):
        raise InvalidPatternError(patterns, "expected a list of patterns, got a single string")
    if not patterns:
        return PathFilter(patterns=())
    return PathFilter(patterns=tuple(compile_pattern(p) for p in patterns))


# ---------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------

FilterLike = Union[PathFilter, Sequence[str], None]


def _as_filter(path_filter: FilterLike) -> PathFilter:
    if isinstance(path_filter, PathFilter):
        return path_filter
    return compile_filter(path_filter)


def event_qualifies(event_kind: str, events: Iterable[str] = DEFAULT_EVENTS) -> bool:
    if isinstance(events, str):
        events = (events,)
    return event_kind == MANUAL_EVENT or event_kind in tuple(events)


def should_run(
    path_filter: FilterLike,
    changed_paths: Iterable[str],
    event_kind: str,
    *,
    events: Iterable[str] = DEFAULT_EVENTS,
) -> bool:
    """
    Decide whether a job runs for an event.

    Raises:
      InvalidPatternError: a pattern in path_filter cannot be compiled
      EmptyEventError: a filter is configured but changed_paths is empty
    """
    pf = _as_filter(path_filter)

    if not event_qualifies(event_kind, events):
        return False
    if event_kind == MANUAL_EVENT:
        return True
    if not pf:
        return True

    changed = [p for p in changed_paths if p]
    if not changed:
        raise EmptyEventError()

    return any(pf.matches(path) for path in changed)


@dataclass(frozen=True)
class TriggerDecision:
    job: str
    run: bool
    reason: str


def evaluate(job: Job, event: ChangeEvent) -> TriggerDecision:
    """should_run() for a job, plus a human readable reason for plan output."""
    pf = compile_filter(job.paths)

    if not event_qualifies(event.kind, job.events):
        return TriggerDecision(job.name, False, f"event '{event.kind}' not in {list(job.events)}")
    if event.kind == MANUAL_EVENT:
        return TriggerDecision(job.name, True, "manual invocation")
    if not pf:
        return TriggerDecision(job.name, True, "no paths specified")

    if not should_run(pf, event.changed_paths, event.kind, events=job.events):
        return TriggerDecision(job.name, False, f"no match for {list(job.paths or ())}")

    hit = pf.first_match(event.changed_paths)
    path, pattern = hit if hit else ("?", "?")
    return TriggerDecision(job.name, True, f"{path} matched {pattern}")
