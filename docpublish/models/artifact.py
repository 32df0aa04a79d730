"""Artifacts emitted by external producers and staged into the target repository."""
from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath


def _normalise_target(value: str | PurePosixPath) -> PurePosixPath:
    """Return a repository-relative POSIX path, rejecting escapes from the root."""

    path = PurePosixPath(str(value).replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Artifact path '{value}' must be relative to the repository root")
    return path


@dataclass(slots=True, frozen=True)
class Artifact:
    """A single generated file identified by its path inside the target repository."""

    path: PurePosixPath
    content: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _normalise_target(self.path))
        if self.path == PurePosixPath("."):
            raise ValueError("A file artifact needs a file path, not the repository root")

    @classmethod
    def from_file(cls, source: Path, path: str | PurePosixPath) -> "Artifact":
        """Read a producer output file into an artifact targeting ``path``."""

        return cls(path=_normalise_target(path), content=Path(source).read_bytes())

    def write_into(self, root: Path) -> list[str]:
        """Overwrite the artifact inside ``root`` and return the paths to stage."""

        destination = Path(root) / self.path
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.content)
        return [self.path.as_posix()]


@dataclass(slots=True, frozen=True)
class SiteArtifact:
    """A rendered documentation tree mirrored into a directory of the target repository.

    ``path`` of ``"."`` mirrors the tree onto the repository root (everything but
    ``.git``), which is how a pages branch is laid out.
    """

    path: PurePosixPath
    source_dir: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _normalise_target(self.path))
        object.__setattr__(self, "source_dir", Path(self.source_dir))

    def write_into(self, root: Path) -> list[str]:
        """Replace the target directory with the source tree and return the paths to stage."""

        if not self.source_dir.is_dir():
            raise FileNotFoundError(f"Site directory '{self.source_dir}' does not exist")

        root = Path(root)
        target = root / self.path
        if target.is_file() or target.is_symlink():
            target.unlink()
        elif target.exists():
            for child in target.iterdir():
                if target == root and child.name == ".git":
                    continue
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()

        shutil.copytree(self.source_dir, target, dirs_exist_ok=True)
        return [self.path.as_posix()]
