"""Git working copy used to stage, commit and push artifacts into a target repository."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence
from urllib.parse import quote, urlsplit, urlunsplit

from docpublish.models.publish import CommitResult, Identity, PushResult, RebaseResult


logger = logging.getLogger(__name__)

_REJECTED_MARKERS = (
    "[rejected]",
    "non-fast-forward",
    "fetch first",
    "updates were rejected",
)
# Output is parsed for English markers, so translations must stay off.
_GIT_LOCALE = {"LC_ALL": "C", "LANGUAGE": ""}
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)


def redact(text: str) -> str:
    """Strip ``user:token@`` credentials from any URL embedded in ``text``."""

    return _URL_CREDENTIALS.sub(r"\g<scheme>***@", text)


@dataclass(slots=True, frozen=True)
class Credentials:
    """Username and token used to authenticate pushes over https."""

    username: str
    token: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, token='***')"


def authenticated_url(url: str, credentials: Credentials | None) -> str:
    """Embed ``credentials`` into an https remote URL; other URLs are returned untouched."""

    if credentials is None or not credentials.token:
        return url

    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        return url

    userinfo = f"{quote(credentials.username, safe='')}:{quote(credentials.token, safe='')}"
    host = parts.hostname if parts.port is None else f"{parts.hostname}:{parts.port}"
    return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))


class GitCommandError(RuntimeError):
    """Raised when a git invocation fails in a way the caller does not model as a result."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str) -> None:
        self.command = [redact(str(arg)) for arg in args]
        self.returncode = returncode
        self.stderr = redact(stderr.strip())
        super().__init__(f"git {' '.join(self.command)} failed ({returncode}): {self.stderr}")


def run_git(
    args: Sequence[str],
    *,
    cwd: Path,
    git_executable: str = "git",
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a git command inside ``cwd``, raising :class:`GitCommandError` when ``check`` is set."""

    result = subprocess.run(
        [git_executable, *args],
        cwd=cwd,
        env={**os.environ, **_GIT_LOCALE},
        text=True,
        check=False,
        capture_output=True,
    )
    logger.debug("git %s -> %s", redact(" ".join(args)), result.returncode)
    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, result.stderr or result.stdout)
    return result


@dataclass(slots=True)
class GitWorkingCopy:
    """A local clone of the target repository checked out on the branch being published."""

    path: Path
    branch: str
    remote: str = "origin"
    git_executable: str = "git"
    _identity: Identity | None = field(default=None, init=False, repr=False)

    @classmethod
    def clone(
        cls,
        url: str,
        destination: Path,
        *,
        branch: str,
        credentials: Credentials | None = None,
        git_executable: str = "git",
    ) -> "GitWorkingCopy":
        """Clone ``url`` into ``destination`` and check out ``branch``.

        The branch is tracked when the remote already has it. A remote with history
        but without the branch gets a fresh orphan branch with an empty tree, and an
        empty remote gets an unborn branch so the first commit starts the history.
        """

        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        remote_url = authenticated_url(url, credentials)
        logger.info("Cloning %s into %s", redact(remote_url), destination)
        run_git(
            ["clone", "--quiet", "--no-checkout", remote_url, str(destination)],
            cwd=destination.parent,
            git_executable=git_executable,
        )

        working_copy = cls(path=destination, branch=branch, git_executable=git_executable)
        working_copy._checkout_branch()
        return working_copy

    # ------------------------------------------------------------------
    # Repository client operations
    # ------------------------------------------------------------------
    def stage(self, *paths: str) -> None:
        """Stage additions, modifications and removals under ``paths``."""

        if not paths:
            return
        self._run_git("add", "-A", "--", *paths)

    def commit(self, message: str, identity: Identity) -> CommitResult:
        """Commit the staged changes as ``identity``; report a no-op when nothing changed."""

        if not self._has_staged_changes():
            return CommitResult.NO_OP

        self.configure_identity(identity)
        self._run_git("commit", "--quiet", "-m", message)
        return CommitResult.CREATED

    def push(self) -> PushResult:
        """Push the current branch without forcing; classify the failure when the remote refuses."""

        result = self._run_git("push", self.remote, f"HEAD:refs/heads/{self.branch}", check=False)
        if result.returncode == 0:
            return PushResult.OK

        stderr = result.stderr.lower()
        if any(marker in stderr for marker in _REJECTED_MARKERS):
            logger.info("Push rejected; remote branch '%s' has advanced", self.branch)
            return PushResult.REJECTED

        logger.error("Push failed: %s", redact(result.stderr.strip()))
        return PushResult.ERROR

    def pull_rebase(self) -> RebaseResult:
        """Replay local commits on top of the remote branch tip."""

        result = self._run_git("pull", "--rebase", self.remote, self.branch, check=False)
        if result.returncode == 0:
            return RebaseResult.REBASED

        # A rebase left half-applied stopped on a conflicting commit.
        if self._rebase_in_progress():
            self._run_git("rebase", "--abort")
            logger.warning("Rebase onto %s/%s hit a conflict; aborted", self.remote, self.branch)
            return RebaseResult.CONFLICT

        logger.error("git pull --rebase failed: %s", redact(result.stderr.strip()))
        return RebaseResult.ERROR

    def reset_to_remote(self) -> None:
        """Discard local commits and match the remote branch tip exactly."""

        self._run_git("fetch", "--quiet", self.remote, self.branch)
        self._run_git("reset", "--hard", "--quiet", "FETCH_HEAD")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def configure_identity(self, identity: Identity) -> None:
        """Record ``identity`` in the clone's config so later rebases commit as the same author."""

        if self._identity == identity:
            return
        self._run_git("config", "user.name", identity.name)
        self._run_git("config", "user.email", identity.email)
        self._identity = identity

    def head(self) -> str | None:
        """Return the current commit hash, or ``None`` while the branch is unborn."""

        result = self._run_git("rev-parse", "--verify", "--quiet", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def _checkout_branch(self) -> None:
        remote_ref = self._run_git("ls-remote", "--heads", self.remote, f"refs/heads/{self.branch}").stdout.strip()
        if remote_ref:
            self._run_git("checkout", "--quiet", "-B", self.branch, f"{self.remote}/{self.branch}")
            return

        if self.head() is None:
            self._run_git("symbolic-ref", "HEAD", f"refs/heads/{self.branch}")
            return

        logger.info("Remote has no branch '%s'; starting an orphan branch", self.branch)
        self._run_git("checkout", "--quiet", "--orphan", self.branch)
        self._run_git("rm", "-r", "-q", "--cached", "--ignore-unmatch", ".")

    def _has_staged_changes(self) -> bool:
        # Exit status 1 means the index differs from HEAD (or from the empty tree when unborn).
        result = self._run_git("diff", "--cached", "--quiet", check=False)
        if result.returncode not in {0, 1}:
            raise GitCommandError(["diff", "--cached", "--quiet"], result.returncode, result.stderr)
        return result.returncode == 1

    def _rebase_in_progress(self) -> bool:
        git_dir = self.path / ".git"
        return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()

    def _run_git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        return run_git(args, cwd=self.path, git_executable=self.git_executable, check=check)
