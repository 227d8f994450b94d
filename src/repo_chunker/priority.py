"""Priority scoring: regex rules plus a git-recency boost."""

from __future__ import annotations

import math
import re
import subprocess  # noqa: S404
from functools import lru_cache
from typing import TYPE_CHECKING

from repo_chunker.exceptions import GitCommandError
from repo_chunker.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from repo_chunker.config import PriorityRule

_COMMIT_MARKER = "@@commit@@"


@lru_cache(maxsize=1024)
def compile_rule_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compile a priority rule pattern, or return None when it is not a valid regex.

    Args:
        pattern (str): the regular expression as written by the rule author

    Returns:
        re.Pattern[str] | None: the compiled pattern, or None if compilation failed
    """
    try:
        return re.compile(pattern)
    except re.error:
        return None


def get_file_priority(path: str, rules: Sequence[PriorityRule]) -> int:
    """Return the highest score among the rules whose pattern matches ``path``.

    Patterns are searched anywhere in the path, case-sensitively, with no implicit
    anchoring. A rule whose pattern does not compile never matches.

    Args:
        path (str): relative POSIX path of the file
        rules (Sequence[PriorityRule]): the rules to evaluate, in any order

    Returns:
        int: the maximum matching score, or 0 when nothing matches
    """
    best: int | None = None
    for rule in rules:
        rx = compile_rule_pattern(rule.pattern)
        if rx is None or rx.search(path) is None:
            continue
        if best is None or rule.score > best:
            best = rule.score
    return best if best is not None else 0


def compute_recency_boost(commit_times: Mapping[str, int], max_boost: int) -> dict[str, int]:
    """Rank files by last commit time and scale the rank to ``0..max_boost``.

    The oldest file gets 0 and the newest gets exactly ``max_boost``. Files sharing a
    timestamp are ranked by path so the result does not depend on mapping order.
    With a single entry there is nothing to normalize against and the boost is 0.

    Args:
        commit_times (Mapping[str, int]): relative path -> last commit unix time
        max_boost (int): boost granted to the most recently committed file

    Returns:
        dict[str, int]: relative path -> boost
    """
    if not commit_times:
        return {}
    ranked = sorted(commit_times.items(), key=lambda kv: (kv[1], kv[0]))
    last = len(ranked) - 1
    if last < 1:
        return dict.fromkeys(commit_times, 0)
    # halves round up, away from zero
    return {path: math.floor(i / last * max_boost + 0.5) for i, (path, _ts) in enumerate(ranked)}


def git_log_commit_times(root: Path, max_commits: int) -> dict[str, int]:
    """Run ``git log`` in ``root`` and map each touched path to its newest commit time.

    Args:
        root (Path): a directory inside a git work tree
        max_commits (int): how many commits to walk back from HEAD; <= 0 walks the whole history

    Raises:
        GitCommandError: if git exits with a non-zero status

    Returns:
        dict[str, int]: path relative to ``root`` -> unix time of the newest commit touching it
    """
    cmd = [
        "git",
        "-c",
        "core.quotepath=off",
        "log",
        "--name-only",
        "--relative",
        "--no-renames",
        f"--pretty=format:{_COMMIT_MARKER}%ct",
    ]
    if max_commits > 0:
        cmd.append(f"--max-count={max_commits}")
    out = subprocess.run(  # noqa: S603
        cmd,
        cwd=str(root),
        text=True,
        capture_output=True,
        check=False,
    )
    if out.returncode != 0:
        raise GitCommandError(
            command=" ".join(cmd),
            returncode=out.returncode,
            stdout=out.stdout,
            stderr=out.stderr,
        )

    times: dict[str, int] = {}
    current: int | None = None
    for raw in out.stdout.splitlines():
        line = raw.rstrip("\r\n")
        if not line:
            continue
        if line.startswith(_COMMIT_MARKER):
            current = int(line.removeprefix(_COMMIT_MARKER))
            continue
        if current is not None:
            # history is newest first, the first sighting wins
            times.setdefault(line, current)
    return times


def get_recent_commit_times(root: Path, max_commits: int = 100) -> dict[str, int] | None:
    """Get last commit times for files under ``root``, or None without usable git history.

    Args:
        root (Path): the input directory
        max_commits (int): commit depth passed to ``git log``

    Returns:
        dict[str, int] | None: relative path -> unix time, or None when git is missing,
            ``root`` is not inside a work tree, or the history cannot be read
    """
    try:
        times = git_log_commit_times(root, max_commits)
    except (OSError, GitCommandError, ValueError) as e:
        logger.debug("No git history for %s: %s", root, e)
        return None
    logger.debug("Loaded commit times for %d paths under %s", len(times), root)
    return times
