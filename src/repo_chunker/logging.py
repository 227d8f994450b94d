from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_CONFIGURED_WITH: tuple[str, int] | None = None


def setup_logging(filename: str | Path | None = None, *, debug: bool = False) -> structlog.BoundLogger:
    """Set up structured logging for the repo_chunker package.

    Calling it again with the same arguments is a no-op; calling it with a new
    log file or level reconfigures the handlers.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        debug: Lower the threshold to DEBUG (git fallbacks, per-worker progress).

    Returns:
        A structlog logger instance configured for the repo_chunker package.
    """
    global _CONFIGURED_WITH  # noqa: PLW0603
    level = logging.DEBUG if debug else logging.INFO
    wanted = (str(filename or ""), level)
    if wanted != _CONFIGURED_WITH:
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=level,
            handlers=handlers,
            format="%(message)s",
            force=True,
        )
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            # module-level loggers re-read the configuration on every call
            cache_logger_on_first_use=False,
        )
        _CONFIGURED_WITH = wanted

    return structlog.get_logger("repo_chunker")


logger = setup_logging()
