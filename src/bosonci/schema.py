"""Pydantic schema for YAML pipeline definitions.

A pipeline file looks like:

    jobs:
      - name: builder-image
        trigger:
          paths: ["docker/Dockerfile"]
          events: ["push"]
        steps:
          - name: Build binaries
            shell: make build
            image: ubuntu
          - clone:
              url: https://git.example.com/dockcross.git
              ref: refs/heads/higgs-boson
              depth: 1
          - docker_build:
              context: /mnt/space/share/higgs-boson
              file: dockcross/Dockerfile.higgs-boson.manual
              image: registry.example.com/higgs-boson-builder
              labels: {vendor: bitboson}
          - docker_push:
              image: registry.example.com/higgs-boson-builder
              tags: ["version1.0"]
              credentials: {username: REGISTRY_USER, password: REGISTRY_TOKEN}

Each step carries exactly one of `shell`, `clone`, `docker_build`,
`docker_push`. `name` is optional and defaults to a description of the step.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


STEP_KINDS = ("shell", "clone", "docker_build", "docker_push")


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CloneSpec(_Strict):
    url: str
    ref: str = "HEAD"
    dest: Optional[str] = None
    depth: Optional[int] = Field(None, ge=1)


class DockerBuildSpec(_Strict):
    context: str
    file: str
    image: str
    labels: Dict[str, str] = Field(default_factory=dict)


class CredentialsSpec(_Strict):
    """Names of the secrets holding the registry login, never the values."""
    username: str
    password: str


class DockerPushSpec(_Strict):
    image: str
    tags: List[str] = Field(..., min_length=1)
    registry: Optional[str] = None
    credentials: Optional[CredentialsSpec] = None


class StepSpec(_Strict):
    name: Optional[str] = None
    shell: Optional[str] = None
    cwd: Optional[str] = None
    image: Optional[str] = None
    clone: Optional[CloneSpec] = None
    docker_build: Optional[DockerBuildSpec] = None
    docker_push: Optional[DockerPushSpec] = None

    @model_validator(mode="after")
    def _exactly_one_kind(self):
        present = [k for k in STEP_KINDS if getattr(self, k) is not None]
        if len(present) != 1:
            raise ValueError(
                f"a step needs exactly one of {', '.join(STEP_KINDS)}; got {present or 'none'}"
            )
        if (self.cwd is not None or self.image is not None) and self.shell is None:
            raise ValueError("'cwd' and 'image' only apply to shell steps")
        return self

    @property
    def kind(self) -> str:
        return next(k for k in STEP_KINDS if getattr(self, k) is not None)


class TriggerSpec(_Strict):
    paths: Optional[List[str]] = None
    events: List[str] = Field(default_factory=lambda: ["push"], min_length=1)


class JobSpec(_Strict):
    name: str = Field(..., min_length=1)
    trigger: Optional[TriggerSpec] = None
    env: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepSpec] = Field(..., min_length=1)

    @field_validator("env", mode="before")
    @classmethod
    def _env_values_to_str(cls, v):
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        return v


class PipelineSpec(_Strict):
    jobs: List[JobSpec] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_job_names(self):
        names = [j.name for j in self.jobs]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate job names found: {dupes}")
        return self
