"""
repo-chunker: rank the files of a project and pack them into size-bounded chunks.

Overview
--------
Every text file under the input directories is scored by regex priority rules
plus a boost for recently committed files, then written into ``chunk-N``
artifacts that never exceed the size budget and never mix priorities. Artifacts
come out in ascending priority order, so the most relevant files land last.

Settings are read from ``repo-chunker.{yaml,yml,toml,json}`` in each input
directory (or ``--config``); command-line options override the file.

Usage
-----
Run ``repo-chunker --help`` for full options. Common examples:
    - Current directory, 10MB artifacts in ./repo-chunker-output:
        repo-chunker

    - Two projects, 100K-token artifacts, JSON output:
        repo-chunker ../api ../web --tokens 100K --json --output-dir chunks

    - Stream to stdout with line numbers:
        repo-chunker --stream --line-numbers > context.txt

    - Only the files tracked by git, as one stream:
        git ls-files | repo-chunker --stream
"""

from __future__ import annotations

import argparse
import sys
from typing import TYPE_CHECKING

from pydantic import ValidationError

from repo_chunker import __version__
from repo_chunker.exceptions import ConfigError, RepoChunkerError
from repo_chunker.logging import logger, setup_logging
from repo_chunker.pipeline import run
from repo_chunker.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import TextIO


def build_parser() -> argparse.ArgumentParser:
    # every default is None so that only options given on the command line
    # override a directory's config file
    p = argparse.ArgumentParser(
        prog="repo-chunker",
        description="Rank project files and pack them into size-bounded chunk files.",
    )
    p.add_argument(
        "directories",
        nargs="*",
        help="Input directories or files (default: paths piped on stdin, else the current directory).",
    )
    p.add_argument("--max-size", dest="max_size", default=None, help="Artifact size in bytes, e.g. 10MB, 512KB.")
    p.add_argument("--tokens", default=None, help="Artifact size in tokens, e.g. 100K; enables token mode.")
    p.add_argument("--output-dir", dest="output_dir", default=None, help="Directory receiving chunk files.")
    p.add_argument("--config", default=None, help="Config file overriding discovery in each directory.")
    p.add_argument(
        "--ignore-patterns",
        dest="ignore_patterns",
        nargs="+",
        default=None,
        help="Extra gitignore-style patterns to exclude.",
    )
    p.add_argument(
        "--unignore-patterns",
        dest="unignore_patterns",
        nargs="+",
        default=None,
        help="Patterns to include even if otherwise ignored.",
    )
    p.add_argument(
        "--git-boost-max",
        dest="git_boost_max",
        type=int,
        default=None,
        help="Boost given to the most recently committed file (0 disables git).",
    )
    p.add_argument("--workers", type=int, default=None, help="Worker threads (default: automatic).")
    p.add_argument(
        "--json",
        dest="output_format",
        action="store_const",
        const="json",
        default=None,
        help="Write JSON arrays instead of text.",
    )
    p.add_argument("--line-numbers", dest="line_numbers", action="store_true", default=None, help="Number lines.")
    p.add_argument("--stream", action="store_true", default=None, help="Write chunks to stdout.")
    p.add_argument("--debug", action="store_true", default=None, help="Verbose logging.")
    p.add_argument("--log-file", dest="log_file", default=None, help="Log file path.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def read_input_paths(stream: TextIO) -> list[str]:
    """Read one input path per line, skipping blank lines."""
    return [line.strip() for line in stream if line.strip()]


def parse_args(argv: Sequence[str] | None = None, stdin: TextIO | None = None) -> Settings:
    """Parse the command line into ``Settings``.

    Without positional inputs, paths piped on ``stdin`` (one per line, e.g. from
    ``git ls-files``) become the inputs.

    Raises:
        ConfigError: if an option value is rejected by validation

    Returns:
        Settings: settings holding only the options that were given
    """
    args = build_parser().parse_args(argv)
    if not args.directories and stdin is not None:
        args.directories = read_input_paths(stdin)
    given = {k: v for k, v in vars(args).items() if v is not None and v != []}
    try:
        return Settings.model_validate(given)
    except ValidationError as e:
        raise ConfigError(path=None, message=str(e)) from e


def main(argv: Sequence[str] | None = None, stdin: TextIO | None = None) -> int:
    # piped input is only read when running as a program
    if stdin is None and argv is None and not sys.stdin.isatty():
        stdin = sys.stdin
    try:
        settings = parse_args(argv, stdin)
        setup_logging(settings.log_file or None, debug=settings.debug)
        written = run(settings)
    except RepoChunkerError as e:
        logger.error("repo-chunker failed: %s", e)  # noqa: TRY400
        return 1

    if not settings.stream:
        print(f"Wrote {len(written)} chunk files")  # noqa: T201
        for path in written:
            print(f"  {path}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
