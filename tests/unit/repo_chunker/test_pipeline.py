import queue
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from repo_chunker import pipeline
from repo_chunker.config import FileChunk, FileDescriptor
from repo_chunker.output_construction import TextFormatter
from repo_chunker.pipeline import (
    SEQUENTIAL_THRESHOLD,
    WorkerDone,
    add_line_numbers,
    aggregate_chunks,
    drain_channel,
    partition,
    read_file_chunks,
    resolve_worker_count,
    run_worker,
    split_bytes,
    split_content,
    split_text,
)


class RecordingSink:
    def __init__(self) -> None:
        self.artifacts: list[str] = []

    def prepare(self) -> None:
        pass

    def write(self, index: int, text: str) -> Path:
        assert index == len(self.artifacts)
        self.artifacts.append(text)
        return Path(f"chunk-{index}.txt")


def _chunk(priority: int, file_index: int, part_index: int = 0) -> FileChunk:
    rel = f"f{file_index}.txt" if part_index == 0 else f"f{file_index}.txt:part{part_index}"
    return FileChunk(
        priority=priority,
        file_index=file_index,
        part_index=part_index,
        rel_path=rel,
        content=f"content {file_index}/{part_index}",
    )


def _desc(path: Path, rel: str, priority: int = 0, file_index: int = 0) -> FileDescriptor:
    return FileDescriptor(path=path, rel_path=rel, priority=priority, file_index=file_index)


def _one_per_unit(_text: str) -> int:
    return 1


@pytest.mark.unit
def test_partition_makes_balanced_contiguous_slices() -> None:
    items = list(range(10))

    slices = partition(items, 3)

    assert [len(s) for s in slices] == [4, 3, 3]
    assert [x for s in slices for x in s] == items


@pytest.mark.unit
def test_partition_with_more_slices_than_items() -> None:
    assert [len(s) for s in partition([1, 2], 4)] == [1, 1, 0, 0]


@pytest.mark.unit
def test_resolve_worker_count() -> None:
    assert resolve_worker_count(0) == 1
    assert resolve_worker_count(SEQUENTIAL_THRESHOLD) == 1
    assert resolve_worker_count(100, requested=4) == 4
    assert resolve_worker_count(3, requested=8) == 3
    assert 1 <= resolve_worker_count(10_000) <= 10_000


@pytest.mark.unit
def test_split_bytes() -> None:
    assert [len(p) for p in split_bytes(b"x" * 11, 5)] == [5, 5, 1]
    assert split_bytes(b"abc", 5) == [b"abc"]
    assert split_bytes(b"", 5) == [b""]


@pytest.mark.unit
def test_split_bytes_keeps_multibyte_characters_whole() -> None:
    data = ("\u00e9" * 10).encode("utf-8")

    parts = split_bytes(data, 5)

    assert all(len(p) <= 5 for p in parts)
    assert [p.decode("utf-8") for p in parts] == ["\u00e9\u00e9"] * 5
    assert b"".join(parts) == data


@pytest.mark.unit
def test_split_bytes_gives_wide_character_its_own_range() -> None:
    data = "a\U0001f600b".encode("utf-8")

    parts = split_bytes(data, 2)

    assert [p.decode("utf-8") for p in parts] == ["a", "\U0001f600", "b"]


@pytest.mark.unit
def test_split_text_fits_each_piece_to_the_measure() -> None:
    def words(text: str) -> int:
        return len(text.split())

    text = "one two three four five"

    parts = split_text(text, 2, words)

    assert all(words(p) <= 2 for p in parts)
    assert "".join(parts) == text
    assert len(parts) == 3


@pytest.mark.unit
def test_split_content_only_splits_what_the_measure_rejects() -> None:
    text = "x" * 50

    assert split_content(text, 2, _one_per_unit) == [text]
    assert split_content(text, 20) == ["x" * 20, "x" * 20, "x" * 10]


@pytest.mark.unit
def test_add_line_numbers() -> None:
    assert add_line_numbers("a\nb\n") == "  1 | a\n  2 | b\n"
    assert add_line_numbers("only") == "  1 | only"


@pytest.mark.unit
def test_read_file_chunks_splits_oversized_file(tmp_path: Path) -> None:
    p = tmp_path / "big.txt"
    p.write_text("0123456789A", encoding="utf-8")

    chunks = read_file_chunks(_desc(p, "big.txt", priority=4, file_index=2), 5)

    assert [c.part_index for c in chunks] == [0, 1, 2]
    assert [c.rel_path for c in chunks] == ["big.txt", "big.txt:part1", "big.txt:part2"]
    assert "".join(c.content for c in chunks) == "0123456789A"
    assert {(c.priority, c.file_index) for c in chunks} == {(4, 2)}


@pytest.mark.unit
def test_read_file_chunks_never_cuts_a_character(tmp_path: Path) -> None:
    p = tmp_path / "accents.txt"
    text = "caf\u00e9 cr\u00e8me br\u00fbl\u00e9e"
    p.write_text(text, encoding="utf-8")

    chunks = read_file_chunks(_desc(p, "accents.txt"), 5)

    assert len(chunks) > 1
    assert all("\ufffd" not in c.content for c in chunks)
    assert all(len(c.content.encode("utf-8")) <= 5 for c in chunks)
    assert "".join(c.content for c in chunks) == text


@pytest.mark.unit
def test_run_worker_skips_unreadable_file_and_reports_done(tmp_path: Path) -> None:
    ok = tmp_path / "ok.txt"
    ok.write_text("hello", encoding="utf-8")
    files = [_desc(tmp_path / "gone.txt", "gone.txt"), _desc(ok, "ok.txt", file_index=1)]
    channel: queue.Queue = queue.Queue()

    emitted = run_worker(0, files, 100, channel)

    first = channel.get_nowait()
    done = channel.get_nowait()
    assert emitted == 1
    assert isinstance(first, FileChunk)
    assert first.rel_path == "ok.txt"
    assert done == WorkerDone(worker=0, emitted=1)


@pytest.mark.unit
def test_run_worker_reports_done_when_it_crashes(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(pipeline, "read_file_chunks", side_effect=RuntimeError("boom"))
    channel: queue.Queue = queue.Queue()

    with pytest.raises(RuntimeError):
        run_worker(3, [_desc(tmp_path / "a.txt", "a.txt")], 100, channel)

    assert channel.get_nowait() == WorkerDone(worker=3, emitted=0)


@pytest.mark.unit
def test_drain_channel_waits_for_every_worker() -> None:
    channel: queue.Queue = queue.Queue()
    channel.put(_chunk(0, 0))
    channel.put(WorkerDone(worker=1, emitted=0))
    channel.put(_chunk(1, 1))
    channel.put(WorkerDone(worker=0, emitted=2))

    chunks = drain_channel(channel, 2)

    assert [c.file_index for c in chunks] == [0, 1]
    assert channel.empty()


@pytest.mark.unit
def test_aggregate_flushes_on_size_and_priority() -> None:
    sink = RecordingSink()
    chunks = [_chunk(5, 3), _chunk(0, 2), _chunk(0, 0), _chunk(0, 1)]

    written = aggregate_chunks(chunks, 2, formatter=TextFormatter(), sink=sink, measure=_one_per_unit)

    assert written == [Path("chunk-0.txt"), Path("chunk-1.txt"), Path("chunk-2.txt")]
    assert ">>>> f0.txt" in sink.artifacts[0]
    assert ">>>> f1.txt" in sink.artifacts[0]
    assert sink.artifacts[1].startswith(">>>> f2.txt")
    assert sink.artifacts[2].startswith(">>>> f3.txt")


@pytest.mark.unit
def test_aggregate_never_mixes_priorities() -> None:
    sink = RecordingSink()
    chunks = [_chunk(1, 0), _chunk(2, 1), _chunk(1, 2)]

    aggregate_chunks(chunks, 10**9, formatter=TextFormatter(), sink=sink)

    assert len(sink.artifacts) == 2
    assert "f0.txt" in sink.artifacts[0]
    assert "f2.txt" in sink.artifacts[0]
    assert "f1.txt" in sink.artifacts[1]


@pytest.mark.unit
def test_aggregate_restores_part_order() -> None:
    sink = RecordingSink()
    chunks = [_chunk(0, 0, part_index=1), _chunk(0, 0, part_index=0)]

    aggregate_chunks(chunks, 10**9, formatter=TextFormatter(), sink=sink)

    text = sink.artifacts[0]
    assert text.index(">>>> f0.txt\n") < text.index(">>>> f0.txt:part1\n")


@pytest.mark.unit
def test_aggregate_gives_oversized_chunk_its_own_artifact() -> None:
    sink = RecordingSink()

    aggregate_chunks(
        [_chunk(0, 0), _chunk(0, 1), _chunk(0, 2)],
        10,
        formatter=TextFormatter(),
        sink=sink,
        measure=lambda text: 100 if "f1.txt" in text else 1,
    )

    assert len(sink.artifacts) == 3
    assert "f1.txt" in sink.artifacts[1]


@pytest.mark.unit
def test_aggregate_without_chunks_writes_nothing() -> None:
    sink = RecordingSink()

    assert aggregate_chunks([], 10, formatter=TextFormatter(), sink=sink) == []
    assert sink.artifacts == []
