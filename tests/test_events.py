import json
import shutil
import subprocess

import pytest

from bosonci.config import Settings
from bosonci.events import EventFileError, event_from_git, event_from_paths, load_event_file


def test_event_from_paths_normalizes():
    event = event_from_paths(["./docker/Dockerfile", "README.md", ""], kind="push")
    assert event.kind == "push"
    assert event.changed_paths == frozenset({"docker/Dockerfile", "README.md"})


def test_load_event_file(tmp_path):
    p = tmp_path / "event.json"
    p.write_text(json.dumps({"kind": "push", "changed_paths": ["docker/Dockerfile"], "ref": "main"}))
    event = load_event_file(p)
    assert event.changed_paths == frozenset({"docker/Dockerfile"})
    assert event.ref == "main"
    assert event.sha is None


@pytest.mark.parametrize("content", ["{not json", json.dumps({"kind": "  "}), json.dumps({"changed_paths": "x"})])
def test_load_event_file_rejects_bad_input(tmp_path, content):
    p = tmp_path / "event.json"
    p.write_text(content)
    with pytest.raises(EventFileError):
        load_event_file(p)


def test_settings_from_env():
    s = Settings.from_env(
        {
            "BOSONCI_BASE_IMAGE": "registry.example.com/base",
            "BOSONCI_CLONE_DEPTH": "1",
            "BOSONCI_MAX_WORKERS": "4",
        }
    )
    assert s.base_image == "registry.example.com/base"
    assert s.clone_depth == 1
    assert s.max_workers == 4
    assert s.registry is None
    assert s.image_tag == "version1.0"

    defaults = Settings.from_env({})
    assert defaults.base_image == "ubuntu"
    assert defaults.clone_depth is None
    assert defaults.max_workers == 1


@pytest.mark.parametrize("raw", ["abc", "0"])
def test_settings_reject_bad_depth(raw):
    with pytest.raises(ValueError, match="BOSONCI_CLONE_DEPTH"):
        Settings.from_env({"BOSONCI_CLONE_DEPTH": raw})


needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo, *args):
    subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True)


@pytest.fixture
def repo(tmp_path):
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "config", "user.email", "ci@example.com")
    _git(tmp_path, "config", "user.name", "ci")
    (tmp_path / "README.md").write_text("hello\n")
    _git(tmp_path, "add", ".")
    _git(tmp_path, "commit", "-q", "-m", "init")
    return tmp_path


@needs_git
def test_event_from_git_first_commit_lists_tracked_files(repo):
    event = event_from_git(cwd=repo)
    assert event.changed_paths == frozenset({"README.md"})
    assert event.sha is not None


@needs_git
def test_event_from_git_clean_tree_diffs_last_commit(repo):
    (repo / "docker").mkdir()
    (repo / "docker" / "Dockerfile").write_text("FROM ubuntu\n")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "docker")

    event = event_from_git(cwd=repo)
    assert event.changed_paths == frozenset({"docker/Dockerfile"})


@needs_git
def test_event_from_git_dirty_tree(repo):
    (repo / "README.md").write_text("changed\n")
    (repo / "new.txt").write_text("x\n")

    event = event_from_git(cwd=repo)
    assert event.changed_paths == frozenset({"README.md", "new.txt"})
    assert event.sha is None
