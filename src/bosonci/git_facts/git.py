# git.py
# Thin wrapper around the Git CLI used to build change events.
# Nothing else in bosonci shells out to read repository state.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Tuple


def _git(args: list[str], cwd: str | Path | None = None) -> str:
    """
    Run `git <args>` and return stripped stdout.

    Raises subprocess.CalledProcessError on a non-zero exit and
    FileNotFoundError when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def _lines(out: str) -> List[str]:
    return out.splitlines() if out else []


def repo_root(cwd: str | Path | None = None) -> Path:
    """Absolute path of the enclosing repository, as git reports it."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: str | Path | None = None) -> str:
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_ref(cwd: str | Path | None = None) -> str:
    """Branch name, or the commit SHA on a detached HEAD."""
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    return head_sha(cwd) if ref == "HEAD" else ref


def remote_url(name: str = "origin", cwd: str | Path | None = None) -> str:
    return _git(["remote", "get-url", name], cwd=cwd)


def is_dirty(cwd: str | Path | None = None) -> bool:
    """True when there are modified, staged or untracked files."""
    return _git(["status", "--porcelain"], cwd=cwd) != ""


def changed_files(base: str, head: str = "HEAD", cwd: str | Path | None = None) -> List[str]:
    """Paths (relative to the repo root) that differ between two refs."""
    return _lines(_git(["diff", "--name-only", f"{base}..{head}"], cwd=cwd))


def merge_base(with_ref: str = "origin/main", cwd: str | Path | None = None) -> str:
    return _git(["merge-base", "HEAD", with_ref], cwd=cwd)


def working_tree_changes(cwd: str | Path | None = None) -> List[str]:
    """Staged, unstaged and untracked paths."""
    files = set()
    files.update(_lines(_git(["diff", "--name-only"], cwd=cwd)))
    files.update(_lines(_git(["diff", "--name-only", "--cached"], cwd=cwd)))
    files.update(_lines(_git(["ls-files", "--others", "--exclude-standard"], cwd=cwd)))
    return sorted(files)


def tracked_files(cwd: str | Path | None = None) -> List[str]:
    return _lines(_git(["ls-files"], cwd=cwd))


def collect_changes(
    compare_ref: str = "origin/main",
    cwd: str | Path | None = None,
) -> Tuple[Optional[str], List[str]]:
    """
    Returns:
      head:
        - full SHA for HEAD if the tree is clean
        - None if there are uncommitted changes
      changed:
        - dirty tree: working tree changes
        - clean tree: diff against merge-base(compare_ref), falling back to
          HEAD~1, then to every tracked file (first commit)
    """
    root = repo_root(cwd)

    if is_dirty(root):
        return None, working_tree_changes(root)

    head = head_sha(root)
    try:
        base = merge_base(compare_ref, cwd=root)
    except subprocess.CalledProcessError:
        # no remote configured, unrelated histories, ...
        base = "HEAD~1"

    try:
        changed = changed_files(base, "HEAD", cwd=root)
    except subprocess.CalledProcessError:
        changed = tracked_files(root)

    return head, sorted(changed)
