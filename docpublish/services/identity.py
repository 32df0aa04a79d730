"""Resolve the triggering revision and its author from the source repository."""
from __future__ import annotations

from pathlib import Path

from docpublish.models.publish import Identity, Revision
from docpublish.services.git_client import GitCommandError, run_git


_FIELD_SEPARATOR = "\x00"


def resolve_revision(
    source_repo: Path,
    sha: str = "HEAD",
    *,
    repository: str = "",
    git_executable: str = "git",
) -> Revision:
    """Return ``sha`` with its author name and email copied verbatim from ``git log``."""

    result = run_git(
        ["log", "-1", "--pretty=format:%an%x00%ae%x00%H", sha, "--"],
        cwd=Path(source_repo),
        git_executable=git_executable,
    )
    fields = result.stdout.split(_FIELD_SEPARATOR)
    if len(fields) != 3:
        raise GitCommandError(["log", "-1", sha], result.returncode, f"unexpected log output: {result.stdout!r}")

    name, email, full_sha = fields
    return Revision(sha=full_sha.strip(), author=Identity(name=name, email=email), repository=repository)


def format_commit_message(template: str, revision: Revision) -> str:
    """Render the deterministic commit message for ``revision``."""

    try:
        return template.format(repository=revision.repository, sha=revision.sha, short_sha=revision.short_sha)
    except (AttributeError, KeyError, IndexError) as exc:
        raise ValueError(f"Unknown placeholder in commit message template '{template}': {exc}") from exc
