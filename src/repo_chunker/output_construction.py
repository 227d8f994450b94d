from __future__ import annotations

import json
from typing import TYPE_CHECKING, Protocol

from repo_chunker.config import ARTIFACT_PREFIX, DEFAULT_OUTPUT_TEMPLATE
from repo_chunker.exceptions import ArtifactWriteError
from repo_chunker.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path
    from typing import TextIO

    from repo_chunker.config import FileChunk


class ChunkFormatter(Protocol):
    extension: str

    def render_unit(self, chunk: FileChunk) -> str: ...

    def render_artifact(self, units: Sequence[str]) -> str: ...


class TextFormatter:
    """Render chunks through a ``FILE_PATH``/``FILE_CONTENT`` template.

    Each unit ends with its content, a newline, and one blank separator line.
    """

    extension = ".txt"

    def __init__(self, template: str = DEFAULT_OUTPUT_TEMPLATE) -> None:
        self.template = template

    def render_unit(self, chunk: FileChunk) -> str:
        text = self.template.replace("FILE_PATH", chunk.rel_path).replace("FILE_CONTENT", chunk.content)
        if not text.endswith("\n"):
            text += "\n"
        return text + "\n"

    def render_artifact(self, units: Sequence[str]) -> str:  # noqa: PLR6301
        return "".join(units)


class JsonFormatter:
    """Render each artifact as a JSON array of ``{"filename", "content"}`` objects."""

    extension = ".json"

    def render_unit(self, chunk: FileChunk) -> str:  # noqa: PLR6301
        return json.dumps({"filename": chunk.rel_path, "content": chunk.content}, ensure_ascii=False)

    def render_artifact(self, units: Sequence[str]) -> str:  # noqa: PLR6301
        return "[\n" + ",\n".join(units) + "\n]\n"


def make_formatter(output_format: str, template: str = DEFAULT_OUTPUT_TEMPLATE) -> ChunkFormatter:
    """Return the formatter for ``"text"`` or ``"json"`` output."""
    if output_format == "json":
        return JsonFormatter()
    return TextFormatter(template)


def artifact_name(index: int, extension: str) -> str:
    """Name of the ``index``-th artifact, e.g. ``chunk-0.txt``."""
    return f"{ARTIFACT_PREFIX}{index}{extension}"


class ArtifactSink(Protocol):
    def prepare(self) -> None: ...

    def write(self, index: int, text: str) -> Path | None: ...


class DirectorySink:
    """Write each artifact to ``<output_dir>/chunk-<index><ext>``."""

    def __init__(self, output_dir: Path, extension: str = ".txt") -> None:
        self.output_dir = output_dir
        self.extension = extension

    def prepare(self) -> None:
        """Create the output directory and drop artifacts left over from a previous run.

        Raises:
            ArtifactWriteError: if the directory cannot be created or cleaned
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            for stale in self.output_dir.glob(f"{ARTIFACT_PREFIX}*{self.extension}"):
                suffix = stale.name.removeprefix(ARTIFACT_PREFIX).removesuffix(self.extension)
                if stale.is_file() and suffix.isdigit():
                    stale.unlink()
        except OSError as e:
            raise ArtifactWriteError(path=self.output_dir, message=f"Cannot prepare output directory: {e}") from e

    def write(self, index: int, text: str) -> Path:
        """Write one artifact.

        Args:
            index (int): flush order of the artifact
            text (str): the rendered artifact

        Raises:
            ArtifactWriteError: if the file cannot be written

        Returns:
            Path: the written file
        """
        path = self.output_dir / artifact_name(index, self.extension)
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise ArtifactWriteError(path=path, message=f"Failed to write output artifact: {e}") from e
        logger.debug("Wrote %s (%d chars)", path, len(text))
        return path


class StreamSink:
    """Write artifacts one after another to a text stream such as stdout."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream

    def prepare(self) -> None:
        pass

    def write(self, index: int, text: str) -> None:  # noqa: ARG002
        self.stream.write(text)
        self.stream.flush()
