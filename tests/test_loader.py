import pytest

from bosonci.loader import PipelineDefinitionError, expand_env, jobs_from_dict, load_yaml_pipeline
from bosonci.model import ContainerBuild, ContainerPush, RepositoryClone, ShellCommand

PIPELINE = """
jobs:
  - name: builder-image
    trigger:
      paths: ["docker/", "Makefile"]
    env:
      CC: clang
      JOBS: 4
    steps:
      - name: Build binaries
        shell: |
          make build
          mkdir -p ${SHARE:-/mnt/space/share}/bin
        image: ${BASE_IMAGE:-ubuntu}
      - clone:
          url: https://example.com/dockcross.git
          ref: refs/heads/higgs-boson
          depth: ${CLONE_DEPTH:-1}
      - docker_build:
          context: ${SHARE:-/mnt/space/share}
          file: dockcross/Dockerfile.higgs-boson.manual
          image: registry.example.com/builder
          labels: {vendor: bitboson}
      - docker_push:
          image: registry.example.com/builder
          tags: ["version1.0"]
          credentials: {username: REGISTRY_USER, password: REGISTRY_TOKEN}
  - name: docs
    steps:
      - shell: echo docs
"""


def _write(tmp_path, text, name="pipeline.yml"):
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_load_full_pipeline(tmp_path):
    jobs = load_yaml_pipeline(_write(tmp_path, PIPELINE), environ={"BASE_IMAGE": "registry.example.com/base"})
    image, docs = jobs

    assert image.name == "builder-image"
    assert image.paths == ("docker/", "Makefile")
    assert image.events == ("push",)
    assert image.env == {"CC": "clang", "JOBS": "4"}
    assert [type(s) for s in image.steps] == [ShellCommand, RepositoryClone, ContainerBuild, ContainerPush]

    shell, clone, build, push = image.steps
    assert shell.image == "registry.example.com/base"
    assert "/mnt/space/share/bin" in shell.script
    assert clone.depth == 1
    assert clone.target_dir == "dockcross"
    assert build.labels == (("vendor", "bitboson"),)
    assert push.tags == ("version1.0",)
    assert push.credentials.password.name == "REGISTRY_TOKEN"

    assert docs.trigger is None
    assert docs.steps[0].name == "echo docs"


def test_expand_env():
    env = {"A": "1"}
    assert expand_env("${A}/${B:-two}/${C}", env) == "1/two/${C}"
    assert expand_env({"k": ["${A}", 3]}, env) == {"k": ["1", 3]}


@pytest.mark.parametrize(
    "raw,fragment",
    [
        ({"jobs": [{"name": "j", "steps": [{"shell": "a", "clone": {"url": "u"}}]}]}, "exactly one"),
        ({"jobs": [{"name": "j", "steps": [{"name": "nothing"}]}]}, "exactly one"),
        ({"jobs": [{"name": "j", "steps": [{"shell": "a", "retries": 3}]}]}, "retries"),
        ({"jobs": [{"name": "j", "steps": []}]}, "steps"),
        ({"jobs": [{"name": "j", "steps": [{"shell": "a"}]}, {"name": "j", "steps": [{"shell": "b"}]}]}, "Duplicate"),
        ({"jobs": [{"name": "j", "steps": [{"docker_push": {"image": "i", "tags": []}}]}]}, "tags"),
        ({"jobs": [{"name": "j", "steps": [{"clone": {"url": "u"}, "cwd": "x"}]}]}, "only apply to shell"),
        ({"jobs": [{"name": "j", "steps": [{"clone": {"url": "u", "depth": 0}}]}]}, "depth"),
        (["not", "a", "mapping"], "mapping"),
    ],
)
def test_invalid_definitions(raw, fragment):
    with pytest.raises(PipelineDefinitionError, match=fragment):
        jobs_from_dict(raw)


def test_malformed_yaml(tmp_path):
    with pytest.raises(PipelineDefinitionError, match="malformed YAML"):
        load_yaml_pipeline(_write(tmp_path, "jobs: [unclosed"))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_pipeline(tmp_path / "nope.yml")
