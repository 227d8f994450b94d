import io
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from repo_chunker import cli
from repo_chunker.exceptions import ConfigError, InvalidSizeError


@pytest.mark.unit
def test_parse_args_defaults_set_nothing() -> None:
    settings = cli.parse_args([])

    assert settings.model_fields_set == set()
    assert settings.directories == []


@pytest.mark.unit
def test_parse_args_maps_options() -> None:
    settings = cli.parse_args(
        [
            "proj-a",
            "proj-b",
            "--max-size",
            "512KB",
            "--output-dir",
            "out",
            "--json",
            "--git-boost-max",
            "0",
            "--ignore-patterns",
            "*.csv",
            "gen/",
            "--unignore-patterns",
            "gen/keep.py",
            "--line-numbers",
        ],
    )

    assert settings.directories == [Path("proj-a"), Path("proj-b")]
    assert settings.max_size == "512KB"
    assert settings.output_dir == Path("out")
    assert settings.output_format == "json"
    assert settings.git_boost_max == 0
    assert settings.ignore_patterns == ["*.csv", "gen/"]
    assert settings.unignore_patterns == ["gen/keep.py"]
    assert settings.line_numbers is True
    assert "stream" not in settings.model_fields_set


@pytest.mark.unit
def test_parse_args_rejects_invalid_values() -> None:
    with pytest.raises(ConfigError):
        cli.parse_args(["--git-boost-max", "-5"])
    with pytest.raises(SystemExit):
        cli.parse_args(["--workers", "many"])


@pytest.mark.unit
def test_parse_args_reads_inputs_from_stdin() -> None:
    settings = cli.parse_args([], stdin=io.StringIO("a.txt\n\n   \nsrc\n"))

    assert settings.directories == [Path("a.txt"), Path("src")]


@pytest.mark.unit
def test_parse_args_positional_inputs_win_over_stdin() -> None:
    stdin = io.StringIO("ignored.txt\n")

    settings = cli.parse_args(["proj"], stdin=stdin)

    assert settings.directories == [Path("proj")]
    assert stdin.read() == "ignored.txt\n"


@pytest.mark.unit
def test_parse_args_empty_stdin_keeps_default_inputs() -> None:
    settings = cli.parse_args([], stdin=io.StringIO("\n"))

    assert settings.directories == []
    assert "directories" not in settings.model_fields_set


@pytest.mark.unit
def test_version_flag_exits(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.parse_args(["--version"])

    assert exc.value.code == 0
    assert "repo-chunker" in capsys.readouterr().out


@pytest.mark.unit
def test_main_returns_one_on_error(mocker: MockerFixture) -> None:
    mocker.patch.object(cli, "run", side_effect=InvalidSizeError(value="10XB"))

    assert cli.main([]) == 1


@pytest.mark.unit
def test_main_prints_written_artifacts(mocker: MockerFixture, capsys: pytest.CaptureFixture[str]) -> None:
    mocker.patch.object(cli, "run", return_value=[Path("out/chunk-0.txt")])

    assert cli.main(["--output-dir", "out"]) == 0
    out = capsys.readouterr().out
    assert "Wrote 1 chunk files" in out
    assert "chunk-0.txt" in out
