"""Produce an artifact and publish it into a downstream repository.

Each job in the YAML job file names an external producer command and the
repository/branch/path the result lands in. The publish step only runs when the
triggering ref is the default branch; other runs (pull requests, merge queue)
still execute the producer so a broken build fails the pipeline early.

Environment:
- DOCPUBLISH_CONFIG: job file path (default ``publish.yml``).
- DOCPUBLISH_LOG_LEVEL: logging level (default ``INFO``).
- DOCPUBLISH_MAX_ATTEMPTS / DOCPUBLISH_DEFAULT_BRANCH: override the job file.
- GITHUB_REF, GITHUB_SHA, GITHUB_EVENT_NAME, GITHUB_REPOSITORY: trigger metadata.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, Sequence

from docpublish.models.artifact import Artifact, SiteArtifact
from docpublish.models.publish import PublishReport
from docpublish.services.coordinator import PublishCoordinator, SupportsStaging
from docpublish.services.git_client import Credentials, GitCommandError, GitWorkingCopy
from docpublish.services.identity import format_commit_message, resolve_revision
from docpublish.services.producer import CommandProducer, DocsSiteBuilder, ProducerError
from docpublish.services.settings import JobSettings, PublishSettings, SettingsError, load_settings
from docpublish.services.trigger import TriggerContext, should_publish

LOGGER = logging.getLogger("docpublish.publish")

if not LOGGER.handlers:  # avoid duplicates on re-import
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    LOGGER.addHandler(handler)
    LOGGER.setLevel(logging.INFO)
    LOGGER.propagate = False


class SupportsProduce(Protocol):
    """Producer interface shared by :class:`CommandProducer` and :class:`DocsSiteBuilder`."""

    def produce(self) -> Artifact | SiteArtifact:  # pragma: no cover - interface
        """Run the producer and return the artifact it emitted."""


def _configure_logging() -> None:
    """Configure root logging based on ``DOCPUBLISH_LOG_LEVEL``."""
    level_name = os.getenv("DOCPUBLISH_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Produce an artifact and publish it to a downstream repository")
    parser.add_argument("job", help="Name of the job to run from the job file")
    parser.add_argument(
        "--config",
        type=Path,
        default=os.getenv("DOCPUBLISH_CONFIG"),
        help="Path to the YAML job file (default: DOCPUBLISH_CONFIG or publish.yml)",
    )
    parser.add_argument(
        "--revision",
        default=None,
        help="Source revision to attribute the commit to (default: GITHUB_SHA or HEAD)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the producer but never publish, regardless of the triggering ref",
    )
    return parser.parse_args(argv)


def _build_producer(job: JobSettings, source_repository: Path) -> SupportsProduce:
    if job.kind == "site":
        return DocsSiteBuilder(
            command=job.command,
            doc_root=job.output,
            target_path=PurePosixPath(job.target_path),
            redirect_crate=job.redirect_crate,
            cwd=source_repository,
            env=job.env,
        )
    return CommandProducer(
        command=job.command,
        output=job.output,
        target_path=PurePosixPath(job.target_path),
        cwd=source_repository,
        env=job.env,
    )


def _clone_working_copy(job: JobSettings, destination: Path) -> SupportsStaging:
    token = job.token()
    if job.token_env and token is None:
        LOGGER.warning("PUBLISH_WARNING %s is not set; pushing without credentials", job.token_env)
    credentials = Credentials(username=job.bot_username, token=token) if token else None
    return GitWorkingCopy.clone(job.target_url, destination, branch=job.target_branch, credentials=credentials)


def _emit_summary(job: str, outcome: str, report: PublishReport | None = None, message: str = "") -> None:
    payload: dict[str, Any] = {"job": job, "outcome": outcome, "attempts": 0, "rebases": 0, "commit": None}
    if report is not None:
        payload.update(report.to_dict())
    if message:
        payload["message"] = message
    payload.setdefault("message", "")
    print(json.dumps(payload, ensure_ascii=False))


def _publish(
    job: JobSettings,
    settings: PublishSettings,
    artifact: Artifact | SiteArtifact,
    *,
    sha: str,
    repository: str,
) -> PublishReport:
    revision = resolve_revision(settings.source_repository, sha, repository=repository)
    message = format_commit_message(job.commit_message, revision)
    coordinator = PublishCoordinator(max_attempts=job.max_attempts)

    with tempfile.TemporaryDirectory(prefix="docpublish-") as workdir:
        working_copy = _clone_working_copy(job, Path(workdir) / "target")
        return coordinator.publish(artifact, working_copy, revision.author, message)


def main(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    args = _parse_args(argv)

    try:
        settings = load_settings(args.config)
        job = settings.job(args.job)
    except SettingsError as exc:
        LOGGER.error("PUBLISH_ERROR %s", exc)
        _emit_summary(args.job, "failed", message=str(exc))
        return 1

    context = TriggerContext.from_env()
    sha = args.revision or context.sha
    LOGGER.info("PUBLISH_START job=%s revision=%s event=%s", job.name, sha, context.event_name)

    try:
        artifact = _build_producer(job, settings.source_repository).produce()
    except (ProducerError, OSError, ValueError) as exc:
        LOGGER.error("PUBLISH_ERROR producer failed: %s", exc)
        _emit_summary(job.name, "failed", message=str(exc))
        return 1

    if args.dry_run:
        LOGGER.info("PUBLISH_SKIPPED dry_run=True ref=%s", context.ref or "<unset>")
        _emit_summary(job.name, "skipped", message="Dry run; publishing disabled")
        return 0

    if not should_publish(context, settings.default_branch):
        LOGGER.info("PUBLISH_SKIPPED ref=%s default_branch=%s", context.ref or "<unset>", settings.default_branch)
        _emit_summary(job.name, "skipped", message="Publishing only runs on the default branch")
        return 0

    try:
        report = _publish(job, settings, artifact, sha=sha, repository=context.repository)
    except (GitCommandError, ValueError) as exc:
        LOGGER.error("PUBLISH_ERROR %s", exc)
        _emit_summary(job.name, "failed", message=str(exc))
        return 1

    if not report.succeeded:
        LOGGER.error("Failed to push: %s", report.message)
    else:
        LOGGER.info(
            "PUBLISH_COMPLETE outcome=%s attempts=%s rebases=%s",
            report.outcome.value,
            report.attempts,
            report.rebases,
        )
    _emit_summary(job.name, report.outcome.value, report)
    return report.exit_code


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
