"""Run external artifact producers and collect what they emit."""
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Mapping, Sequence

from docpublish.models.artifact import Artifact, SiteArtifact


logger = logging.getLogger(__name__)

REDIRECT_TEMPLATE = '<meta http-equiv="refresh" content="0; url={crate}/" />Redirecting to <a href="{crate}/">{crate}</a>'


class ProducerError(RuntimeError):
    """Raised when an external producer exits non-zero or leaves no output behind."""


def _run_command(command: Sequence[str], *, cwd: Path, env: Mapping[str, str]) -> None:
    if not command:
        raise ProducerError("Producer command is empty")

    logger.info("Running producer: %s", " ".join(command))
    try:
        result = subprocess.run(
            list(command),
            cwd=cwd,
            env={**os.environ, **env},
            text=True,
            check=False,
            capture_output=True,
        )
    except OSError as exc:
        raise ProducerError(f"Could not start producer '{command[0]}': {exc}") from exc

    if result.returncode != 0:
        raise ProducerError(
            f"Producer '{' '.join(command)}' exited with {result.returncode}: {result.stderr.strip()}"
        )


@dataclass(slots=True)
class CommandProducer:
    """Run a command that writes one file and wrap that file as an :class:`Artifact`.

    ``{output}`` in the command is replaced with the output path, so a metrics
    extractor can be declared as ``["document-metrics", "-o", "{output}", ...]``.
    """

    command: Sequence[str]
    output: Path
    target_path: PurePosixPath
    cwd: Path = field(default_factory=Path.cwd)
    env: Mapping[str, str] = field(default_factory=dict)

    def produce(self) -> Artifact:
        output = self.output if self.output.is_absolute() else self.cwd / self.output
        command = [part.replace("{output}", str(output)) for part in self.command]
        _run_command(command, cwd=self.cwd, env=self.env)

        if not output.is_file():
            raise ProducerError(f"Producer finished without writing '{output}'")
        return Artifact.from_file(output, self.target_path)


def write_redirect_index(doc_root: Path, crate: str) -> Path:
    """Write an ``index.html`` at ``doc_root`` that forwards visitors to ``crate/``."""

    index = Path(doc_root) / "index.html"
    index.parent.mkdir(parents=True, exist_ok=True)
    index.write_text(REDIRECT_TEMPLATE.format(crate=crate) + "\n", encoding="utf-8")
    return index


@dataclass(slots=True)
class DocsSiteBuilder:
    """Build a documentation tree and prepare it for a pages branch."""

    command: Sequence[str]
    doc_root: Path
    target_path: PurePosixPath = PurePosixPath(".")
    redirect_crate: str | None = None
    cwd: Path = field(default_factory=Path.cwd)
    env: Mapping[str, str] = field(default_factory=dict)

    def produce(self) -> SiteArtifact:
        doc_root = self.doc_root if self.doc_root.is_absolute() else self.cwd / self.doc_root
        command = [part.replace("{output}", str(doc_root)) for part in self.command]
        _run_command(command, cwd=self.cwd, env=self.env)

        if not doc_root.is_dir():
            raise ProducerError(f"Documentation build produced no directory at '{doc_root}'")
        if self.redirect_crate:
            write_redirect_index(doc_root, self.redirect_crate)
        return SiteArtifact(path=self.target_path, source_dir=doc_root)
