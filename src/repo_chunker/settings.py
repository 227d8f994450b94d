from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

import tomlkit
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from tomlkit.exceptions import TOMLKitError

from repo_chunker.config import CONFIG_FILENAMES, DEFAULT_OUTPUT_TEMPLATE, PriorityRule
from repo_chunker.exceptions import ConfigError, InvalidSizeError
from repo_chunker.logging import logger
from repo_chunker.priority import compile_rule_pattern
from repo_chunker.tokens import DEFAULT_TOKEN_ENCODING, parse_size_input

MAX_PRIORITY_SCORE = 1000


class Settings(BaseModel):
    """Configuration settings for the repo_chunker package."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    directories: list[Path] = Field(default_factory=list, description="Input directories.")
    output_dir: Path | None = Field(default=None, description="Directory receiving chunk files.")
    config: Path | None = Field(default=None, description="Explicit config file.")

    max_size: str = Field(default="10MB", description="Artifact size budget in bytes (10MB, 128KB).")
    tokens: str = Field(default="", description="Artifact budget in tokens (100K); enables token mode.")
    token_encoding: str = Field(default=DEFAULT_TOKEN_ENCODING, description="tiktoken encoding.")

    ignore_patterns: list[str] = Field(default_factory=list, description="Extra gitignore-style exclusions.")
    unignore_patterns: list[str] = Field(default_factory=list, description="Allow-listed patterns.")
    priority_rules: list[PriorityRule] = Field(default_factory=list, description="Regex priority rules.")
    binary_extensions: list[str] = Field(default_factory=list, description="Extra binary extensions.")

    git_boost_max: int = Field(default=100, ge=0, description="Boost of the most recently committed file.")
    max_git_depth: int = Field(default=100, description="Commits read from git history; <= 0 reads all.")

    output_template: str = Field(default=DEFAULT_OUTPUT_TEMPLATE, description="Per-file text template.")
    output_format: Literal["text", "json"] = Field(default="text", description="Artifact format.")
    line_numbers: bool = Field(default=False, description="Number file lines.")

    workers: int = Field(default=0, description="Worker threads; <= 0 means automatic.")
    channel_capacity: int = Field(default=1024, gt=0, description="Bound of the worker queue.")

    stream: bool = Field(default=False, description="Write artifacts to stdout.")
    debug: bool = Field(default=False, description="Debug logging.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("priority_rules", mode="before")
    @classmethod
    def _expand_priority_rules(cls, value: Any) -> Any:  # noqa: ANN401
        """Accept ``{pattern, score}`` entries and grouped ``{patterns: [...], score}`` entries."""
        if not isinstance(value, list):
            return value
        rules: list[Any] = []
        for entry in value:
            if isinstance(entry, dict) and "patterns" in entry:
                patterns = entry["patterns"]
                if isinstance(patterns, str):
                    patterns = [patterns]
                rules.extend({"pattern": p, "score": entry.get("score")} for p in patterns)
            else:
                rules.append(entry)
        return rules

    @field_validator("priority_rules")
    @classmethod
    def _check_priority_rules(cls, rules: list[PriorityRule]) -> list[PriorityRule]:
        for rule in rules:
            if not 0 <= rule.score <= MAX_PRIORITY_SCORE:
                msg = f"Priority score {rule.score} must be between 0 and {MAX_PRIORITY_SCORE}"
                raise ValueError(msg)
            if compile_rule_pattern(rule.pattern) is None:
                logger.warning("Priority rule pattern %r is not a valid regex and will never match", rule.pattern)
        return rules

    @field_validator("output_template")
    @classmethod
    def _check_template(cls, template: str) -> str:
        missing = [p for p in ("FILE_PATH", "FILE_CONTENT") if p not in template]
        if missing:
            msg = f"output_template must contain {' and '.join(missing)}"
            raise ValueError(msg)
        # config files and shells often carry a literal backslash-n
        return template.replace("\\n", "\n")

    @property
    def token_mode(self) -> bool:
        return bool(self.tokens.strip())

    def size_limit(self) -> int:
        """Parse the active budget (tokens in token mode, bytes otherwise).

        Raises:
            InvalidSizeError: if the budget cannot be parsed or is zero

        Returns:
            int: the budget
        """
        text = self.tokens if self.token_mode else self.max_size
        limit = parse_size_input(text, tokens=self.token_mode)
        if limit <= 0:
            raise InvalidSizeError(value=text, message="Size limit must be greater than zero.")
        return limit

    def for_directory(self, root: Path) -> Settings:
        """Merge the config file of ``root`` under the explicitly set options.

        An explicit ``config`` path wins over discovery. Options set by the caller
        (e.g. on the command line) override the file.

        Args:
            root (Path): the input directory

        Raises:
            ConfigError: if the config file is unreadable or invalid

        Returns:
            Settings: the effective settings for ``root``
        """
        path = self.config if self.config is not None else find_config_file(root)
        if path is None:
            return self
        data = load_config_file(path)
        explicit = self.model_dump(include=self.model_fields_set)
        try:
            return Settings.model_validate({**data, **explicit})
        except ValidationError as e:
            raise ConfigError(path=path, message=str(e)) from e


def find_config_file(root: Path) -> Path | None:
    """Return the first ``repo-chunker.{yaml,yml,toml,json}`` found in ``root``."""
    for name in CONFIG_FILENAMES:
        p = root / name
        if p.is_file():
            return p
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML, TOML or JSON config file into a plain mapping.

    Args:
        path (Path): the config file; the format follows its suffix

    Raises:
        ConfigError: if the file cannot be read or parsed, or is not a mapping

    Returns:
        dict[str, Any]: the raw settings
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(path=path, message=f"Cannot read config file: {e}") from e

    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif suffix == ".toml":
            data = tomlkit.parse(text).unwrap()
        elif suffix == ".json":
            data = json.loads(text)
        else:
            raise ConfigError(path=path, message=f"Unsupported config format {suffix!r}.")
    except (yaml.YAMLError, TOMLKitError, json.JSONDecodeError) as e:
        raise ConfigError(path=path, message=f"Cannot parse config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(path=path, message="Config file must contain a mapping.")
    logger.debug("Loaded config file %s", path)
    return data
