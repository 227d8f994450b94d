"""Ranking-and-chunking pipeline.

Discovery runs on the calling thread and fixes the final file order. Workers then
read contiguous slices of that order in parallel and push ``FileChunk`` messages
onto one bounded queue; the aggregator drains the queue, restores the total
order and folds the chunks into size-bounded, single-priority artifacts.
"""

from __future__ import annotations

import math
import os
import queue
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from repo_chunker.config import FileChunk
from repo_chunker.exceptions import ConfigError
from repo_chunker.file_manipulation import IgnoreMatcher, collect_files, collect_single_file
from repo_chunker.logging import logger
from repo_chunker.output_construction import DirectorySink, StreamSink, make_formatter
from repo_chunker.priority import compute_recency_boost, get_recent_commit_times
from repo_chunker.settings import Settings
from repo_chunker.tokens import byte_length, make_measure

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from concurrent.futures import Executor, Future

    from repo_chunker.config import FileDescriptor, PriorityRule
    from repo_chunker.output_construction import ArtifactSink, ChunkFormatter
    from repo_chunker.tokens import SizeMeasure

SEQUENTIAL_THRESHOLD = 10
DEFAULT_OUTPUT_DIR = "repo-chunker-output"


@dataclass(frozen=True)
class WorkerDone:
    """Sent by a worker once its slice is exhausted, successful or not."""

    worker: int
    emitted: int


def resolve_worker_count(file_count: int, requested: int = 0) -> int:
    """Number of slice workers for ``file_count`` files.

    An explicit positive request wins (never more workers than files). Otherwise
    one worker per ``SEQUENTIAL_THRESHOLD`` files, bounded by the CPU count, so
    small inputs are handled by a single worker.

    Args:
        file_count (int): number of files to read
        requested (int): user-requested worker count; <= 0 means automatic

    Returns:
        int: the worker count, at least 1
    """
    if requested > 0:
        return max(1, min(requested, file_count))
    wanted = math.ceil(file_count / SEQUENTIAL_THRESHOLD)
    return max(1, min(os.cpu_count() or 1, wanted))


def partition(files: Sequence[FileDescriptor], count: int) -> list[Sequence[FileDescriptor]]:
    """Split ``files`` into ``count`` contiguous slices whose sizes differ by at most one."""
    count = max(1, count)
    base, extra = divmod(len(files), count)
    slices: list[Sequence[FileDescriptor]] = []
    start = 0
    for i in range(count):
        end = start + base + (1 if i < extra else 0)
        slices.append(files[start:end])
        start = end
    return slices


def add_line_numbers(text: str) -> str:
    """Prefix every line with its right-aligned number and ``" | "``."""
    lines = text.splitlines()
    width = max(3, len(str(len(lines))))
    numbered = "\n".join(f"{i:>{width}} | {line}" for i, line in enumerate(lines, start=1))
    if text.endswith("\n"):
        numbered += "\n"
    return numbered


def _is_continuation_byte(byte: int) -> bool:
    return byte & 0xC0 == 0x80


def split_bytes(data: bytes, max_size: int) -> list[bytes]:
    """Cut UTF-8 ``data`` into successive ranges of at most ``max_size`` bytes.

    Cuts are moved back to the start of a character so that every range decodes
    on its own. A character wider than ``max_size`` still gets a range of its own.

    Args:
        data (bytes): UTF-8 encoded text
        max_size (int): largest range, in bytes

    Returns:
        list[bytes]: the ranges, in order; their concatenation is ``data``
    """
    if max_size <= 0 or len(data) <= max_size:
        return [data]
    parts: list[bytes] = []
    start = 0
    while start < len(data):
        cut = min(start + max_size, len(data))
        if cut < len(data):
            while cut > start and _is_continuation_byte(data[cut]):
                cut -= 1
            if cut == start:
                cut = start + max_size
                while cut < len(data) and _is_continuation_byte(data[cut]):
                    cut += 1
        parts.append(data[start:cut])
        start = cut
    return parts


def split_text(text: str, max_size: int, measure: SizeMeasure) -> list[str]:
    """Cut ``text`` into the longest successive pieces whose ``measure`` fits ``max_size``.

    Each piece is found by bisection on its character length and holds at least
    one character, so an unsplittable character still makes progress.
    """
    parts: list[str] = []
    start = 0
    while start < len(text):
        lo, hi = start + 1, len(text)
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if measure(text[start:mid]) <= max_size:
                lo = mid
            else:
                hi = mid - 1
        parts.append(text[start:lo])
        start = lo
    return parts or [text]


def part_label(rel_path: str, part_index: int) -> str:
    """Display path of a part: the plain path for part 0, ``path:partN`` after that."""
    return rel_path if part_index == 0 else f"{rel_path}:part{part_index}"


def split_content(text: str, max_size: int, measure: SizeMeasure = byte_length) -> list[str]:
    """Split file content that ``measure`` finds larger than ``max_size``.

    Byte budgets cut UTF-8 ranges on character boundaries; any other measure
    (tokens, test doubles) is honoured through ``split_text``.
    """
    if measure(text) <= max_size:
        return [text]
    if measure is byte_length:
        return [piece.decode("utf-8") for piece in split_bytes(text.encode("utf-8"), max_size)]
    return split_text(text, max_size, measure)


def read_file_chunks(
    desc: FileDescriptor,
    max_size: int,
    *,
    line_numbers: bool = False,
    measure: SizeMeasure = byte_length,
) -> list[FileChunk]:
    """Read one file and cut it into ordered chunks.

    Args:
        desc (FileDescriptor): the file to read
        max_size (int): largest content size of a single chunk, in the unit of ``measure``
        line_numbers (bool): number the lines before splitting
        measure (SizeMeasure): size of the content (bytes or tokens)

    Raises:
        OSError: if the file cannot be read

    Returns:
        list[FileChunk]: one chunk, or several parts with increasing ``part_index``
    """
    text = desc.path.read_bytes().decode("utf-8", errors="replace")
    if line_numbers:
        text = add_line_numbers(text)
    return [
        FileChunk(
            priority=desc.priority,
            file_index=desc.file_index,
            part_index=i,
            rel_path=part_label(desc.rel_path, i),
            content=piece,
        )
        for i, piece in enumerate(split_content(text, max_size, measure))
    ]


def run_worker(
    worker: int,
    files: Sequence[FileDescriptor],
    max_size: int,
    channel: queue.Queue[FileChunk | WorkerDone],
    *,
    line_numbers: bool = False,
    measure: SizeMeasure = byte_length,
) -> int:
    """Read a slice of files in order and send their chunks to ``channel``.

    A file that cannot be read is logged and skipped. The completion message is
    always sent, even if the worker fails, so the aggregator never waits forever.

    Returns:
        int: number of chunks emitted
    """
    emitted = 0
    try:
        for desc in files:
            try:
                chunks = read_file_chunks(desc, max_size, line_numbers=line_numbers, measure=measure)
            except OSError as e:
                logger.warning("Skipping %s: %s", desc.rel_path, e)
                continue
            for chunk in chunks:
                channel.put(chunk)
                emitted += 1
    finally:
        channel.put(WorkerDone(worker=worker, emitted=emitted))
    return emitted


def produce_chunks(
    files: Sequence[FileDescriptor],
    max_size: int,
    channel: queue.Queue[FileChunk | WorkerDone],
    executor: Executor,
    *,
    worker_count: int,
    line_numbers: bool = False,
    measure: SizeMeasure = byte_length,
) -> list[Future[int]]:
    """Start one worker per contiguous slice of the sorted file list.

    Args:
        files (Sequence[FileDescriptor]): the discovery-sorted files
        max_size (int): budget above which a file is split, in the unit of ``measure``
        channel (queue.Queue): the shared bounded queue read by the aggregator
        executor (Executor): pool running the workers; needs ``worker_count`` threads
        worker_count (int): number of slices
        line_numbers (bool): number lines before splitting
        measure (SizeMeasure): size of file content (bytes or tokens)

    Returns:
        list[Future[int]]: one future per worker, resolving to its emitted chunk count
    """
    return [
        executor.submit(run_worker, i, part, max_size, channel, line_numbers=line_numbers, measure=measure)
        for i, part in enumerate(partition(files, worker_count))
    ]


def drain_channel(channel: queue.Queue[FileChunk | WorkerDone], worker_count: int) -> list[FileChunk]:
    """Receive chunks until every worker has reported completion."""
    chunks: list[FileChunk] = []
    pending = worker_count
    while pending:
        msg = channel.get()
        if isinstance(msg, WorkerDone):
            pending -= 1
            logger.debug("Worker %d finished with %d chunks", msg.worker, msg.emitted)
            continue
        chunks.append(msg)
    return chunks


@dataclass
class OutputBuffer:
    """Formatted units waiting to become one artifact; bound to a single priority."""

    priority: int | None = None
    units: list[str] = field(default_factory=list)
    size: int = 0

    def is_empty(self) -> bool:
        return not self.units

    def append(self, unit: str, size: int, priority: int) -> None:
        if self.is_empty():
            self.priority = priority
        self.units.append(unit)
        self.size += size


def aggregate_chunks(
    chunks: Iterable[FileChunk],
    max_size: int,
    *,
    formatter: ChunkFormatter,
    sink: ArtifactSink,
    measure: SizeMeasure = byte_length,
) -> list[Path]:
    """Order chunks and fold them into artifacts.

    Chunks are sorted by ``(priority, file_index, part_index)``. The current buffer
    is flushed before a chunk whose formatted size would push it past ``max_size``,
    and before a chunk of a different priority, so an artifact never mixes
    priorities. A single oversized chunk still gets an artifact of its own.

    Args:
        chunks (Iterable[FileChunk]): chunks in any order
        max_size (int): artifact budget, in the unit of ``measure``
        formatter (ChunkFormatter): renders units and artifacts
        sink (ArtifactSink): destination of the artifacts
        measure (SizeMeasure): size of a formatted unit (bytes or tokens)

    Raises:
        ArtifactWriteError: if an artifact cannot be written; earlier artifacts stay on disk

    Returns:
        list[Path]: the artifacts written, in flush order (empty for stream sinks)
    """
    written: list[Path] = []
    buf = OutputBuffer()
    flushed = 0

    def flush() -> None:
        nonlocal buf, flushed
        path = sink.write(flushed, formatter.render_artifact(buf.units))
        if path is not None:
            written.append(path)
        flushed += 1
        buf = OutputBuffer()

    for chunk in sorted(chunks, key=lambda c: c.sort_key):
        unit = formatter.render_unit(chunk)
        size = measure(unit)
        if not buf.is_empty() and (buf.priority != chunk.priority or buf.size + size > max_size):
            flush()
        buf.append(unit, size, chunk.priority)

    if not buf.is_empty():
        flush()
    return written


def process(
    root: Path,
    rules: Sequence[PriorityRule],
    recency_map: Mapping[str, int] | None,
    max_boost: int,
    max_size: int,
    output_dir: Path,
    *,
    settings: Settings | None = None,
    measure: SizeMeasure | None = None,
    sink: ArtifactSink | None = None,
) -> list[Path]:
    """Rank the files under ``root`` and write them as size-bounded artifacts.

    ``root`` may also be a single file, collected relative to its parent directory.

    Args:
        root (Path): the input directory or file
        rules (Sequence[PriorityRule]): priority rules
        recency_map (Mapping[str, int] | None): relative path -> last commit time, None without history
        max_boost (int): boost of the most recently committed file
        max_size (int): artifact budget, in the unit of ``measure``
        output_dir (Path): directory receiving ``chunk-N`` artifacts (also excluded from the scan)
        settings (Settings | None): ignore patterns, output format, worker and channel options
        measure (SizeMeasure | None): size of content and formatted units; UTF-8 bytes by default
        sink (ArtifactSink | None): destination override, e.g. a ``StreamSink``

    Raises:
        ConfigError: if ``root`` does not exist
        ArtifactWriteError: if an artifact cannot be written

    Returns:
        list[Path]: the artifacts written, in ascending priority order
    """
    settings = settings if settings is not None else Settings()
    measure = measure if measure is not None else byte_length
    root = Path(root).resolve()
    if not root.exists():
        raise ConfigError(path=root, message="Input path does not exist.")

    formatter = make_formatter(settings.output_format, settings.output_template)
    sink = sink if sink is not None else DirectorySink(output_dir, formatter.extension)
    boosts = compute_recency_boost(recency_map, max_boost) if recency_map else {}

    base = root if root.is_dir() else root.parent
    matcher = IgnoreMatcher.for_root(base, settings.ignore_patterns, settings.unignore_patterns)
    if root.is_dir():
        files = collect_files(
            root,
            rules,
            ignore_matcher=matcher,
            recency_boost=boosts,
            binary_extensions=settings.binary_extensions,
            exclude_dirs=[output_dir],
        )
    else:
        files = collect_single_file(
            root,
            rules,
            ignore_matcher=matcher,
            recency_boost=boosts,
            binary_extensions=settings.binary_extensions,
        )
    sink.prepare()

    channel: queue.Queue[FileChunk | WorkerDone] = queue.Queue(maxsize=settings.channel_capacity)
    worker_count = resolve_worker_count(len(files), settings.workers)
    with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="repo-chunker") as pool:
        futures = produce_chunks(
            files,
            max_size,
            channel,
            pool,
            worker_count=worker_count,
            line_numbers=settings.line_numbers,
            measure=measure,
        )
        chunks = drain_channel(channel, len(futures))
        for fut in futures:
            fut.result()

    written = aggregate_chunks(
        chunks,
        max_size,
        formatter=formatter,
        sink=sink,
        measure=measure,
    )
    logger.info(
        "Processed %s: %d files, %d chunks, %d workers, %d artifacts",
        root,
        len(files),
        len(chunks),
        worker_count,
        len(written),
    )
    return written


def _output_subdir(root: Path, used: set[str]) -> str:
    base = root.name or "root"
    name = base
    n = 2
    while name in used:
        name = f"{base}-{n}"
        n += 1
    used.add(name)
    return name


def run(settings: Settings) -> list[Path]:
    """Process every configured input directory or file.

    Each input merges its own config file under the explicitly set options,
    gets its own recency history, and writes to the output directory (or to a
    sub-directory named after it when several inputs are given). A file input
    takes its config file and history from its parent directory.

    Args:
        settings (Settings): run settings, typically built by the CLI

    Raises:
        ConfigError: for an invalid config file or a missing input path
        InvalidSizeError: for an unparseable size limit
        ArtifactWriteError: if an artifact cannot be written

    Returns:
        list[Path]: all artifacts written
    """
    roots = [Path(d) for d in settings.directories] or [Path.cwd()]
    used: set[str] = set()
    written: list[Path] = []
    for root in roots:
        base = root if root.is_dir() else root.parent
        cfg = settings.for_directory(base)
        max_size = cfg.size_limit()
        base_out = cfg.output_dir if cfg.output_dir is not None else Path.cwd() / DEFAULT_OUTPUT_DIR
        recency = get_recent_commit_times(base.resolve(), cfg.max_git_depth) if cfg.git_boost_max > 0 else None
        out_dir = base_out / _output_subdir(root.resolve(), used) if len(roots) > 1 else base_out
        written.extend(
            process(
                root,
                cfg.priority_rules,
                recency,
                cfg.git_boost_max,
                max_size,
                out_dir,
                settings=cfg,
                measure=make_measure(tokens=cfg.token_mode, encoding=cfg.token_encoding),
                sink=StreamSink(sys.stdout) if cfg.stream else None,
            ),
        )
    return written
