from __future__ import annotations

import re
import threading
from typing import TYPE_CHECKING, Any

import tiktoken

from repo_chunker.exceptions import InvalidSizeError

if TYPE_CHECKING:
    from collections.abc import Callable

    SizeMeasure = Callable[[str], int]

DEFAULT_TOKEN_ENCODING = "cl100k_base"

_BYTE_UNITS: dict[str, int] = {
    "": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
}
_TOKEN_UNITS: dict[str, int] = {
    "": 1,
    "k": 1000,
}
_SIZE_PATTERN = re.compile(r"^(?P<number>\d+)\s*(?P<unit>[A-Za-z]*)$")


def parse_size_input(text: str, *, tokens: bool = False) -> int:
    """Convert a human size limit into an absolute integer.

    Byte mode accepts a plain integer or a ``KB``/``MB``/``GB`` suffix (powers of 1024).
    Token mode accepts a plain integer or a ``K`` suffix (thousands).
    Suffixes are case-insensitive and surrounding whitespace is ignored.

    Args:
        text (str): the limit as typed by the user, e.g. ``"10MB"`` or ``"100K"``
        tokens (bool): parse as a token count instead of a byte size

    Raises:
        InvalidSizeError: if the text is empty, negative, fractional or has an unknown suffix

    Returns:
        int: the limit in bytes or tokens
    """
    m = _SIZE_PATTERN.match(text.strip())
    if m is None:
        raise InvalidSizeError(value=text)
    units = _TOKEN_UNITS if tokens else _BYTE_UNITS
    unit = m.group("unit").lower()
    if unit not in units:
        kind = "token" if tokens else "byte"
        raise InvalidSizeError(value=text, message=f"Unknown {kind} size suffix {m.group('unit')!r}.")
    return int(m.group("number")) * units[unit]


def byte_length(text: str) -> int:
    """Size of a formatted unit in UTF-8 bytes; the default measure."""
    return len(text.encode("utf-8"))


class TokenCounter:
    """Count tokens with a tiktoken encoding, loading the encoding on first use.

    Instances are meant to be created once per run and handed to the aggregator,
    so that tests can swap in any ``Callable[[str], int]`` instead.
    """

    def __init__(self, encoding: str = DEFAULT_TOKEN_ENCODING) -> None:
        self.encoding = encoding
        self._encoder: Any | None = None
        self._lock = threading.Lock()

    def _get_encoder(self) -> Any:  # noqa: ANN401
        with self._lock:
            if self._encoder is None:
                self._encoder = tiktoken.get_encoding(self.encoding)
            return self._encoder

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._get_encoder().encode(text, disallowed_special=()))

    def __call__(self, text: str) -> int:
        return self.count(text)


def make_measure(*, tokens: bool, encoding: str = DEFAULT_TOKEN_ENCODING) -> SizeMeasure:
    """Pick the size measure matching the active limit kind."""
    if tokens:
        return TokenCounter(encoding)
    return byte_length
