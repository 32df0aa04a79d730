"""Value types exchanged between the publish coordinator and the repository client."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommitResult(str, Enum):
    """Outcome of asking the working copy to record the staged artifact."""

    CREATED = "created"
    NO_OP = "no_op"


class PushResult(str, Enum):
    """Outcome of a single push attempt against the shared remote branch."""

    OK = "ok"
    REJECTED = "rejected"  # remote advanced since the last sync
    ERROR = "error"  # authentication, network or server-side refusal


class RebaseResult(str, Enum):
    """Outcome of re-synchronising local history with the remote tip."""

    REBASED = "rebased"
    CONFLICT = "conflict"
    ERROR = "error"


class PublishOutcome(str, Enum):
    """Terminal states of a publish run."""

    PUBLISHED = "published"
    NO_CHANGE = "no_change"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Identity:
    """Author attribution copied from the revision that triggered the run."""

    name: str
    email: str


@dataclass(slots=True, frozen=True)
class Revision:
    """The source revision a publish run was triggered by."""

    sha: str
    author: Identity
    repository: str = ""

    @property
    def short_sha(self) -> str:
        return self.sha[:12]


@dataclass(slots=True)
class PublishReport:
    """Summary returned by :class:`PublishCoordinator` once a run terminates."""

    outcome: PublishOutcome
    attempts: int = 0
    rebases: int = 0
    commit: str | None = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        """Return ``True`` for outcomes that leave the pipeline green."""

        return self.outcome in {PublishOutcome.PUBLISHED, PublishOutcome.NO_CHANGE}

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def to_dict(self) -> dict[str, object]:
        return {
            "outcome": self.outcome.value,
            "attempts": self.attempts,
            "rebases": self.rebases,
            "commit": self.commit,
            "message": self.message,
        }
