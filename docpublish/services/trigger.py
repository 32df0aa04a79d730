"""Decide whether a pipeline invocation is allowed to publish."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


@dataclass(slots=True, frozen=True)
class TriggerContext:
    """CI metadata describing the revision and event that started the run."""

    ref: str
    sha: str
    event_name: str = "push"
    repository: str = ""

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "TriggerContext":
        """Build the context from GitHub Actions style environment variables."""

        env = os.environ if env is None else env
        return cls(
            ref=env.get("GITHUB_REF", "").strip(),
            sha=env.get("GITHUB_SHA", "").strip() or "HEAD",
            event_name=env.get("GITHUB_EVENT_NAME", "push").strip() or "push",
            repository=env.get("GITHUB_REPOSITORY", "").strip(),
        )


def branch_ref(branch: str) -> str:
    return branch if branch.startswith("refs/") else f"refs/heads/{branch}"


def should_publish(context: TriggerContext, default_branch: str) -> bool:
    """Return ``True`` only when the run was triggered for the default branch itself.

    Pull requests and merge queue runs still build artifacts; they just never
    reach the publish step because their ref is not the default branch.
    """

    return context.ref == branch_ref(default_branch)
