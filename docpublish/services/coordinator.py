"""Publish coordinator that lands one artifact update on a shared remote branch."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from docpublish.models.publish import (
    CommitResult,
    Identity,
    PublishOutcome,
    PublishReport,
    PushResult,
    RebaseResult,
)


logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class SupportsWriteInto(Protocol):
    """Artifact interface: write yourself into a checkout and name the paths to stage."""

    def write_into(self, root: Path) -> list[str]:
        """Materialise the artifact below ``root``."""


class SupportsStaging(Protocol):
    """Subset of :class:`GitWorkingCopy` relied upon by the coordinator."""

    path: Path

    def stage(self, *paths: str) -> None:
        """Stage the given repository-relative paths."""

    def commit(self, message: str, identity: Identity) -> CommitResult:
        """Record staged changes, reporting a no-op when nothing differs from HEAD."""

    def push(self) -> PushResult:
        """Attempt a fast-forward push of the current branch."""

    def pull_rebase(self) -> RebaseResult:
        """Replay local commits onto the updated remote tip."""

    def reset_to_remote(self) -> None:
        """Drop local commits and match the remote tip."""

    def head(self) -> str | None:
        """Return the current commit hash."""


@dataclass(slots=True)
class PublishCoordinator:
    """Commit an artifact and push it, rebasing onto concurrent writers between attempts.

    Pushes are never forced: a rejected push is followed by ``pull --rebase`` so
    commits from other runs stay in the history as ancestors of ours. Push errors
    that are not rejections (authentication, network) end the run immediately
    since retrying them would only burn the attempt budget.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def publish(
        self,
        artifact: SupportsWriteInto,
        working_copy: SupportsStaging,
        identity: Identity,
        message: str,
    ) -> PublishReport:
        """Land ``artifact`` on the working copy's branch and report the terminal outcome."""

        logger.info("attempting commit")
        if self._apply(artifact, working_copy, identity, message) is CommitResult.NO_OP:
            logger.info("Stopping, no changes")
            return PublishReport(outcome=PublishOutcome.NO_CHANGE, message="No changes to publish")

        attempts = 0
        rebases = 0
        for attempt in range(1, self.max_attempts + 1):
            attempts = attempt
            logger.info("git push; Attempt %s", attempt)
            result = working_copy.push()

            if result is PushResult.OK:
                return PublishReport(
                    outcome=PublishOutcome.PUBLISHED,
                    attempts=attempts,
                    rebases=rebases,
                    commit=working_copy.head(),
                    message=f"Published after {attempts} attempt(s)",
                )

            if result is PushResult.ERROR:
                logger.error("Failed to push: remote refused the update")
                return PublishReport(
                    outcome=PublishOutcome.FAILED,
                    attempts=attempts,
                    rebases=rebases,
                    message="Push failed with a non-retryable error",
                )

            if attempt == self.max_attempts:
                break

            rebases += 1
            rebase = working_copy.pull_rebase()
            if rebase is RebaseResult.REBASED:
                continue

            if rebase is RebaseResult.ERROR:
                logger.error("Failed to push: could not synchronise with the remote branch")
                return PublishReport(
                    outcome=PublishOutcome.FAILED,
                    attempts=attempts,
                    rebases=rebases,
                    message="Pull with rebase failed",
                )

            # Conflict on our path: take the remote tip and lay the artifact on top again.
            working_copy.reset_to_remote()
            if self._apply(artifact, working_copy, identity, message) is CommitResult.NO_OP:
                logger.info("Stopping, remote already holds this content")
                return PublishReport(
                    outcome=PublishOutcome.NO_CHANGE,
                    attempts=attempts,
                    rebases=rebases,
                    message="Remote already contains the artifact",
                )

        logger.error("Failed to push")
        return PublishReport(
            outcome=PublishOutcome.FAILED,
            attempts=attempts,
            rebases=rebases,
            message=f"Failed to push after {attempts} attempts",
        )

    @staticmethod
    def _apply(
        artifact: SupportsWriteInto,
        working_copy: SupportsStaging,
        identity: Identity,
        message: str,
    ) -> CommitResult:
        paths = artifact.write_into(working_copy.path)
        working_copy.stage(*paths)
        return working_copy.commit(message, identity)
