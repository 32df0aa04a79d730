"""Shared fixtures for exercising publishes against real temporary git repositories."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

import pytest


def _git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return stdout, failing the test on a non-zero exit."""

    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    return result.stdout.strip()


@pytest.fixture
def git() -> Callable[..., str]:
    """Expose the git runner to tests as ``git(cwd, *args)``."""

    return _git


@pytest.fixture
def remote(tmp_path: Path) -> Path:
    """Return an empty bare repository whose default branch is ``master``."""

    path = tmp_path / "remote.git"
    path.mkdir()
    _git(path, "init", "--bare", "--quiet")
    _git(path, "symbolic-ref", "HEAD", "refs/heads/master")
    return path


@pytest.fixture
def other_writer(tmp_path: Path, remote: Path) -> Callable[[str, str], str]:
    """Return a callable that pushes ``relative_path=content`` to the remote from another clone.

    Each call simulates a concurrent pipeline run landing its own commit first and
    returns the hash of the commit it pushed.
    """

    clone = tmp_path / "other-writer"
    counter = {"n": 0}

    def push(relative_path: str, content: str) -> str:
        if not clone.exists():
            _git(tmp_path, "clone", "--quiet", str(remote), str(clone))
            _git(clone, "config", "user.name", "Other Writer")
            _git(clone, "config", "user.email", "other@example.com")
            _git(clone, "symbolic-ref", "HEAD", "refs/heads/master")
        else:
            _git(clone, "pull", "--quiet", "--rebase", "origin", "master")

        counter["n"] += 1
        destination = clone / relative_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(content, encoding="utf-8")
        _git(clone, "add", "--", relative_path)
        _git(clone, "commit", "--quiet", "-m", f"other writer #{counter['n']}")
        _git(clone, "push", "--quiet", "origin", "HEAD:refs/heads/master")
        return _git(clone, "rev-parse", "HEAD")

    return push


@pytest.fixture
def source_repo(tmp_path: Path) -> Path:
    """Return a repository with one commit authored by a known contributor."""

    path = tmp_path / "source"
    path.mkdir()
    _git(path, "init", "--quiet")
    _git(path, "config", "user.name", "Ada Lovelace")
    _git(path, "config", "user.email", "ada@example.com")
    (path / "README.md").write_text("relay\n", encoding="utf-8")
    _git(path, "add", "README.md")
    _git(path, "commit", "--quiet", "-m", "Initial commit")
    return path
