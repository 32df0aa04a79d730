"""Job configuration loaded from YAML and validated with pydantic."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from docpublish.services.coordinator import DEFAULT_MAX_ATTEMPTS


DEFAULT_CONFIG_PATH = Path("publish.yml")


class SettingsError(ValueError):
    """Raised when the job file is missing, unreadable or invalid."""


class JobSettings(BaseModel):
    """One produce-and-publish job, e.g. the metrics JSON or the rendered docs."""

    name: str
    kind: Literal["file", "site"] = "file"
    command: list[str] = Field(min_length=1)
    output: Path
    target_url: str
    target_branch: str = "master"
    target_path: str = "."
    commit_message: str = "{repository}@{sha}"
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    token_env: str | None = None
    bot_username: str = "x-access-token"
    redirect_crate: str | None = None
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "target_url", "target_branch", "commit_message")
    @classmethod
    def _require_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned

    @field_validator("target_path")
    @classmethod
    def _relative_target(cls, value: str) -> str:
        cleaned = value.strip().replace("\\", "/") or "."
        if cleaned.startswith("/") or ".." in cleaned.split("/"):
            raise ValueError("must be relative to the target repository root")
        return cleaned

    @model_validator(mode="after")
    def _file_jobs_need_a_file(self) -> "JobSettings":
        if self.kind == "file" and self.target_path in {".", ""}:
            raise ValueError("file jobs must set target_path to a file inside the target repository")
        return self

    def token(self, env: Mapping[str, str] | None = None) -> str | None:
        """Return the push token from the configured environment variable, if any."""

        if not self.token_env:
            return None
        env = os.environ if env is None else env
        value = env.get(self.token_env, "").strip()
        return value or None


class PublishSettings(BaseModel):
    """Top-level job file."""

    default_branch: str = "master"
    source_repository: Path = Path(".")
    jobs: list[JobSettings] = Field(default_factory=list)

    @field_validator("jobs")
    @classmethod
    def _unique_job_names(cls, jobs: list[JobSettings]) -> list[JobSettings]:
        names = [job.name for job in jobs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate job names: {', '.join(duplicates)}")
        return jobs

    def job(self, name: str) -> JobSettings:
        for job in self.jobs:
            if job.name == name:
                return job
        known = ", ".join(job.name for job in self.jobs) or "none"
        raise SettingsError(f"Unknown job '{name}' (configured: {known})")


def _apply_env_overrides(payload: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Layer ``DOCPUBLISH_*`` overrides on top of the raw YAML payload."""

    branch = env.get("DOCPUBLISH_DEFAULT_BRANCH")
    if branch:
        payload["default_branch"] = branch

    attempts = env.get("DOCPUBLISH_MAX_ATTEMPTS")
    if attempts:
        for job in payload.get("jobs") or []:
            if isinstance(job, dict):
                job["max_attempts"] = attempts
    return payload


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None) -> PublishSettings:
    """Read and validate the job file at ``path`` (``DOCPUBLISH_CONFIG`` or ``publish.yml``)."""

    env = os.environ if env is None else env
    config_path = Path(path or env.get("DOCPUBLISH_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.is_file():
        raise SettingsError(f"Configuration file '{config_path}' does not exist")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise SettingsError(f"Configuration file '{config_path}' is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise SettingsError(f"Configuration file '{config_path}' must contain a mapping")

    try:
        settings = PublishSettings.model_validate(_apply_env_overrides(raw, env))
    except ValidationError as exc:
        raise SettingsError(f"Invalid configuration in '{config_path}': {exc}") from exc

    if not settings.source_repository.is_absolute():
        settings.source_repository = (config_path.parent / settings.source_repository).resolve()
    return settings
