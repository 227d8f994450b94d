from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

import pathspec

from repo_chunker.config import BINARY_FILE_EXTENSIONS, DEFAULT_IGNORE_PATTERNS, FileDescriptor
from repo_chunker.logging import logger
from repo_chunker.priority import get_file_priority

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping, Sequence

    from repo_chunker.config import PriorityRule

SNIFF_BYTES = 1024


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Raises:
        OSError: if the path cannot be stat'ed.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    return stat.S_ISREG(path.stat().st_mode)


def has_binary_extension(path: Path, extra_extensions: Iterable[str] = ()) -> bool:
    """Check the file extension against the known-binary list and user additions."""
    ext = path.suffix.lower().lstrip(".")
    if not ext:
        return False
    if ext in BINARY_FILE_EXTENSIONS:
        return True
    return ext in {e.lower().lstrip(".") for e in extra_extensions}


def is_text_file(path: Path, extra_extensions: Iterable[str] = ()) -> bool:
    """Heuristically decide whether a file holds text.

    A known-binary extension is enough to reject the file. Otherwise the first
    1 KiB is read and any NUL byte marks the file as binary. Empty files are text.

    Args:
        path (Path): the file to inspect
        extra_extensions (Iterable[str]): additional binary extensions, with or without the dot

    Raises:
        OSError: if the file cannot be opened or read

    Returns:
        bool: True for text files, False for binary files
    """
    if has_binary_extension(path, extra_extensions):
        return False
    with path.open("rb") as f:
        head = f.read(SNIFF_BYTES)
    return b"\x00" not in head


def _compile_pattern(pattern: str) -> pathspec.GitIgnoreSpec | None:
    try:
        return pathspec.GitIgnoreSpec.from_lines([pattern])
    except ValueError:
        return None


class IgnoreMatcher:
    """Gitignore-style path exclusion where allow-listing always wins.

    Every ``!pattern`` line, from any source, re-includes the paths it matches no
    matter where it appears relative to the exclusions. Patterns that do not
    compile are reported once and never match.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        ignore: list[str] = []
        allow: list[str] = []
        for raw in patterns:
            line = raw.rstrip("\r\n")
            if not line.strip() or line.startswith("#"):
                continue
            negated = line.startswith("!")
            body = line[1:] if negated else line
            if not body.strip() or _compile_pattern(body) is None:
                logger.warning("Ignoring invalid ignore pattern %r", line)
                continue
            (allow if negated else ignore).append(body)
        self.ignore_patterns = tuple(ignore)
        self.allow_patterns = tuple(allow)
        self._ignore = pathspec.GitIgnoreSpec.from_lines(ignore)
        self._allow = pathspec.GitIgnoreSpec.from_lines(allow)

    @classmethod
    def for_root(
        cls,
        root: Path,
        ignore_patterns: Sequence[str] = (),
        unignore_patterns: Sequence[str] = (),
    ) -> IgnoreMatcher:
        """Build the matcher for an input root.

        Sources, in order: built-in defaults, configured ignore patterns, configured
        unignore patterns (as negations), then the root ``.gitignore``.

        Args:
            root (Path): the input directory
            ignore_patterns (Sequence[str]): extra gitignore-style exclusions
            unignore_patterns (Sequence[str]): patterns to allow-list

        Returns:
            IgnoreMatcher: the combined matcher
        """
        lines: list[str] = [*DEFAULT_IGNORE_PATTERNS, *ignore_patterns]
        lines.extend(f"!{p}" for p in unignore_patterns)
        lines.extend(load_gitignore_lines(root))
        return cls(lines)

    def is_ignored(self, rel_path: str) -> bool:
        if not self._ignore.match_file(rel_path):
            return False
        return not self._allow.match_file(rel_path)

    def is_dir_ignored(self, rel_dir: str) -> bool:
        """Whether a whole directory can be pruned from the walk.

        Nothing is pruned once an allow-list exists, since any file below could be re-included.
        """
        if self.allow_patterns:
            return False
        return self._ignore.match_file(rel_dir.rstrip("/") + "/")


def load_gitignore_lines(root: Path) -> list[str]:
    """Read the root ``.gitignore``; a missing or unreadable file yields no patterns.

    Args:
        root (Path): the input directory

    Returns:
        list[str]: the raw lines of ``root/.gitignore``
    """
    p = root / ".gitignore"
    try:
        return p.read_text(encoding="utf-8", errors="replace").splitlines()
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning("Cannot read %s: %s", p, e)
        return []


def walk_files(
    root: Path,
    matcher: IgnoreMatcher,
    exclude_dirs: Sequence[Path] = (),
) -> Iterator[tuple[Path, str]]:
    """Walk ``root`` in a stable order, yielding the files the matcher keeps.

    Directory and file names are visited in sorted order so that the walk, and
    therefore the discovery index, is reproducible for fixed directory contents.
    ``.git`` and ``exclude_dirs`` are always pruned.

    Args:
        root (Path): the resolved input directory
        matcher (IgnoreMatcher): the exclusion rules
        exclude_dirs (Sequence[Path]): directories never to descend into (e.g. the output directory)

    Yields:
        Iterator[tuple[Path, str]]: absolute path and relative POSIX path of each kept file
    """
    excluded = {d.resolve() for d in exclude_dirs}

    def on_error(err: OSError) -> None:
        logger.warning("Cannot read directory %s: %s", err.filename, err)

    for current, dirs, files in os.walk(root, onerror=on_error):
        cur = Path(current)
        kept: list[str] = []
        for d in sorted(dirs):
            p = cur / d
            if d == ".git" or p.resolve() in excluded:
                continue
            if matcher.is_dir_ignored(relpath(p, root)):
                continue
            kept.append(d)
        dirs[:] = kept
        for f in sorted(files):
            p = cur / f
            rel = relpath(p, root)
            if matcher.is_ignored(rel):
                continue
            yield p, rel


def collect_files(
    root: Path,
    rules: Sequence[PriorityRule],
    *,
    ignore_matcher: IgnoreMatcher | None = None,
    recency_boost: Mapping[str, int] | None = None,
    binary_extensions: Sequence[str] = (),
    exclude_dirs: Sequence[Path] = (),
) -> list[FileDescriptor]:
    """Discover, filter and rank the text files under ``root``.

    Symlinked files are skipped, so a target reachable under two names is read once.
    Files are numbered in walk order, scored as rule priority plus recency boost,
    and returned sorted ascending by ``(priority, boost, file_index)``: low-priority
    and older files first, the most salient files last.

    Args:
        root (Path): the input directory
        rules (Sequence[PriorityRule]): priority rules
        ignore_matcher (IgnoreMatcher | None): exclusion rules; defaults to ``IgnoreMatcher.for_root(root)``
        recency_boost (Mapping[str, int] | None): relative path -> boost, from ``compute_recency_boost``
        binary_extensions (Sequence[str]): extra extensions treated as binary
        exclude_dirs (Sequence[Path]): directories never scanned

    Returns:
        list[FileDescriptor]: the ranked descriptors
    """
    root = root.resolve()
    matcher = ignore_matcher if ignore_matcher is not None else IgnoreMatcher.for_root(root)
    boosts = recency_boost or {}

    out: list[FileDescriptor] = []
    for path, rel in walk_files(root, matcher, exclude_dirs):
        if path.is_symlink():
            logger.debug("Skipping symlink %s", rel)
            continue
        desc = _describe(path, rel, len(out), rules, boosts, binary_extensions)
        if desc is not None:
            out.append(desc)

    logger.debug("Collected %d files under %s", len(out), root)
    return sorted(out, key=lambda d: (d.priority, d.boost, d.file_index))


def collect_single_file(
    path: Path,
    rules: Sequence[PriorityRule],
    *,
    ignore_matcher: IgnoreMatcher | None = None,
    recency_boost: Mapping[str, int] | None = None,
    binary_extensions: Sequence[str] = (),
) -> list[FileDescriptor]:
    """Collect one explicitly named file, relative to its parent directory.

    The file goes through the same ignore, binary and scoring rules as a walked file.

    Returns:
        list[FileDescriptor]: the descriptor, or an empty list if the file is filtered out
    """
    path = path.resolve()
    root = path.parent
    matcher = ignore_matcher if ignore_matcher is not None else IgnoreMatcher.for_root(root)
    rel = relpath(path, root)
    if matcher.is_ignored(rel):
        logger.info("Skipping ignored input %s", path)
        return []
    desc = _describe(path, rel, 0, rules, recency_boost or {}, binary_extensions)
    return [desc] if desc is not None else []


def _describe(
    path: Path,
    rel: str,
    file_index: int,
    rules: Sequence[PriorityRule],
    boosts: Mapping[str, int],
    binary_extensions: Sequence[str],
) -> FileDescriptor | None:
    try:
        if not is_regular_file(path) or not is_text_file(path, binary_extensions):
            return None
    except OSError as e:
        logger.warning("Skipping %s: %s", rel, e)
        return None
    boost = boosts.get(rel, 0)
    return FileDescriptor(
        path=path,
        rel_path=rel,
        priority=get_file_priority(rel, rules) + boost,
        boost=boost,
        file_index=file_index,
    )
