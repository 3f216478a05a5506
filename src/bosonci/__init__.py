from .dsl import job, sh, clone, docker_build, docker_push, registry_login, wf, JobBuilder, build
from .model import Job, Trigger, ChangeEvent, StepState
from .trigger import should_run, InvalidPatternError, EmptyEventError
from .runner import run_pipeline, load_workflow

__all__ = [
    "job", "sh", "clone", "docker_build", "docker_push", "registry_login", "wf",
    "JobBuilder", "build", "Job", "Trigger", "ChangeEvent", "StepState",
    "should_run", "InvalidPatternError", "EmptyEventError", "run_pipeline", "load_workflow",
]
