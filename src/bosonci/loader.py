"""Pipeline loader.

Reads YAML pipeline definitions, expands ${VAR} / ${VAR:-default}
references from the environment, validates them against the pydantic
schema and converts them into immutable Job objects.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from . import dsl
from .model import Job, Step
from .schema import PipelineSpec, StepSpec


_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class PipelineDefinitionError(ValueError):
    pass


def expand_env(value: Any, environ: Mapping[str, str]) -> Any:
    """Expand ${VAR} and ${VAR:-default} inside strings, recursively.

    Unset variables without a default are left as written.
    """
    if isinstance(value, str):
        def sub(m: "re.Match[str]") -> str:
            name, default = m.group(1), m.group(2)
            if name in environ:
                return environ[name]
            return default if default is not None else m.group(0)

        return _VAR_RE.sub(sub, value)
    if isinstance(value, dict):
        return {k: expand_env(v, environ) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(item, environ) for item in value]
    return value


def _default_step_name(spec: StepSpec) -> str:
    if spec.shell is not None:
        first = spec.shell.strip().splitlines()[0] if spec.shell.strip() else "sh"
        return first[:60]
    if spec.clone is not None:
        return f"Clone {spec.clone.url.rstrip('/').split('/')[-1]}"
    if spec.docker_build is not None:
        return f"Build {spec.docker_build.image}"
    return f"Push {spec.docker_push.image}"


def _to_step(spec: StepSpec) -> Step:
    name = spec.name or _default_step_name(spec)
    kind = spec.kind
    if kind == "shell":
        return dsl.sh(name, spec.shell, cwd=spec.cwd, image=spec.image)
    if kind == "clone":
        c = spec.clone
        return dsl.clone(name, c.url, ref=c.ref, dest=c.dest, depth=c.depth)
    if kind == "docker_build":
        b = spec.docker_build
        return dsl.docker_build(name, context=b.context, file=b.file, image=b.image, labels=b.labels)
    p = spec.docker_push
    creds = dsl.registry_login(p.credentials.username, p.credentials.password) if p.credentials else None
    return dsl.docker_push(name, p.image, *p.tags, registry=p.registry, credentials=creds)


def jobs_from_dict(raw: Any, *, source: str = "<dict>") -> List[Job]:
    if not isinstance(raw, dict):
        raise PipelineDefinitionError(f"{source}: top level must be a mapping with a 'jobs' list")
    try:
        spec = PipelineSpec.model_validate(raw)
    except ValidationError as e:
        raise PipelineDefinitionError(f"Invalid pipeline definition in {source}:\n{e}") from e

    jobs: List[Job] = []
    for j in spec.jobs:
        trigger = j.trigger
        jobs.append(
            dsl.job(
                j.name,
                steps_list=[_to_step(s) for s in j.steps],
                paths=trigger.paths if trigger else None,
                events=trigger.events if trigger else None,
                env=j.env,
            )
        )
    return jobs


def load_yaml_pipeline(path: str | Path, environ: Optional[Mapping[str, str]] = None) -> List[Job]:
    """
    Load a pipeline from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        PipelineDefinitionError: If the YAML is malformed or fails validation
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Pipeline file not found: {p}")

    with open(p, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PipelineDefinitionError(f"{p}: malformed YAML: {e}") from e

    raw = expand_env(raw, os.environ if environ is None else environ)
    return jobs_from_dict(raw, source=str(p))
