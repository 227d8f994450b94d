from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RepoChunkerError(Exception):
    """Base exception for errors in the repo_chunker package."""


@dataclass(frozen=True)
class ConfigError(RepoChunkerError):
    """Raised when a configuration file cannot be read or is invalid."""

    path: Path | None
    message: str = "Invalid configuration."

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class InvalidSizeError(RepoChunkerError):
    """Raised when a size limit such as ``10MB`` or ``100K`` cannot be parsed."""

    value: str
    message: str = "Invalid size format."

    def __str__(self) -> str:
        return f"{self.message} ({self.value!r})"


@dataclass(frozen=True)
class ArtifactWriteError(RepoChunkerError):
    """Raised when an output artifact cannot be written. Always fatal."""

    path: Path
    message: str = "Failed to write output artifact."

    def __str__(self) -> str:
        return f"{self.message} ({self.path})"


@dataclass(frozen=True)
class GitCommandError(RepoChunkerError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str
