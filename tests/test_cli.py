"""Tests for the operator console."""

import pytest
from typer.testing import CliRunner

from ytaudio import __main__ as entry_point
from ytaudio import __version__
from ytaudio.cli import app as cli_app
from ytaudio.exceptions import ExtractionExhaustedError, RequestValidationError

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "ytaudio" / "config.ini"
    monkeypatch.setattr(cli_app, "CONFIG_DIR", path.parent)
    monkeypatch.setattr(cli_app, "CONFIG_FILE", path)
    return path


def test_version():
    result = runner.invoke(cli_app.app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_writes_a_config_file(config_file):
    result = runner.invoke(cli_app.app, ["init"])
    assert result.exit_code == 0
    assert config_file.is_file()
    assert "cache_ttl_seconds" in config_file.read_text(encoding="utf-8")


def test_init_refuses_to_overwrite_without_confirmation(config_file):
    runner.invoke(cli_app.app, ["init"])
    result = runner.invoke(cli_app.app, ["init"], input="n\n")
    assert result.exit_code != 0


def test_show_config(config_file):
    runner.invoke(cli_app.app, ["init"])
    result = runner.invoke(cli_app.app, ["--show-config"])
    assert result.exit_code == 0
    assert "fallback_browsers" in result.output


def test_history_and_cache_on_an_empty_store(config_file):
    result = runner.invoke(cli_app.app, ["history"])
    assert result.exit_code == 0
    assert "History is empty" in result.output

    result = runner.invoke(cli_app.app, ["cache"])
    assert result.exit_code == 0
    assert "Cache is empty" in result.output


def test_unknown_job_status_exits_non_zero(config_file):
    result = runner.invoke(cli_app.app, ["status", "nope"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_delete_with_invalid_name_propagates_the_error(config_file):
    result = runner.invoke(cli_app.app, ["delete", "../secret"])
    assert isinstance(result.exception, RequestValidationError)


def test_delete_of_unknown_artifact_is_a_no_op(config_file):
    result = runner.invoke(cli_app.app, ["delete", "abc12345678.mp3"])
    assert result.exit_code == 0
    assert "Nothing to delete" in result.output


def test_sweep_reports(config_file):
    result = runner.invoke(cli_app.app, ["sweep"])
    assert result.exit_code == 0
    assert "Entries examined" in result.output


def raising(error):
    def run():
        raise error

    return run


def test_main_reports_exhausted_ladder_with_attempts(monkeypatch, capsys):
    error = ExtractionExhaustedError("All strategies failed.", attempts=["primary: exit 1"])
    monkeypatch.setattr(entry_point, "app", raising(error))
    with pytest.raises(SystemExit) as exit_info:
        entry_point.main()
    assert exit_info.value.code == 1
    err = capsys.readouterr().err
    assert "ExtractionExhaustedError" in err
    assert "primary: exit 1" in err


def test_main_marks_unexpected_errors(monkeypatch, capsys):
    monkeypatch.setattr(entry_point, "app", raising(RuntimeError("boom")))
    with pytest.raises(SystemExit) as exit_info:
        entry_point.main()
    assert exit_info.value.code == 1
    assert "Unexpected" in capsys.readouterr().err


def test_main_exits_cleanly_on_interrupt(monkeypatch):
    monkeypatch.setattr(entry_point, "app", raising(KeyboardInterrupt()))
    with pytest.raises(SystemExit) as exit_info:
        entry_point.main()
    assert exit_info.value.code == 0
