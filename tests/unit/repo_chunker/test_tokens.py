import pytest

from repo_chunker.exceptions import InvalidSizeError
from repo_chunker.tokens import TokenCounter, byte_length, make_measure, parse_size_input


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("1024", 1024),
        ("128KB", 128 * 1024),
        ("10MB", 10 * 1024**2),
        ("10mb", 10 * 1024**2),
        ("1GB", 1024**3),
        ("  42 ", 42),
        ("5 KB", 5 * 1024),
    ],
)
def test_parse_size_input_bytes(text: str, expected: int) -> None:
    assert parse_size_input(text) == expected


@pytest.mark.unit
@pytest.mark.parametrize(("text", "expected"), [("100K", 100_000), ("100k", 100_000), ("750", 750)])
def test_parse_size_input_tokens(text: str, expected: int) -> None:
    assert parse_size_input(text, tokens=True) == expected


@pytest.mark.unit
@pytest.mark.parametrize("text", ["", "MB", "1.5MB", "-1", "10TB", "ten"])
def test_parse_size_input_rejects_invalid_bytes(text: str) -> None:
    with pytest.raises(InvalidSizeError):
        parse_size_input(text)


@pytest.mark.unit
def test_parse_size_input_token_mode_rejects_byte_suffix() -> None:
    with pytest.raises(InvalidSizeError) as exc:
        parse_size_input("10MB", tokens=True)

    assert "10MB" in str(exc.value)


@pytest.mark.unit
def test_byte_length_counts_utf8_bytes() -> None:
    assert byte_length("abc") == 3
    assert byte_length("é") == 2


@pytest.mark.unit
def test_make_measure_picks_counter() -> None:
    assert make_measure(tokens=False) is byte_length
    counter = make_measure(tokens=True, encoding="o200k_base")
    assert isinstance(counter, TokenCounter)
    assert counter.encoding == "o200k_base"


@pytest.mark.unit
def test_token_counter_empty_text_does_not_load_encoding() -> None:
    counter = TokenCounter()

    assert counter("") == 0
    assert counter._encoder is None  # noqa: SLF001
