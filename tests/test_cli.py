"""Tests for the offline CLI commands (validate-config, rules)."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from todo_agent import cli as cli_module
from todo_agent.cli import cli
from todo_agent.config import CONFIG_PATH_ENV


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    # Wide enough that rule tables never wrap
    monkeypatch.setattr(cli_module.console, "width", 200)
    return CliRunner()


@pytest.fixture
def config_path(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    path = temp_config_dir / "config.yaml"
    path.write_text(sample_config_yaml)
    return path


def test_validate_config_ok(runner, config_path):
    result = runner.invoke(cli, ["validate-config", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "Configuration valid" in result.output


def test_validate_config_invalid(runner, temp_config_dir):
    path = temp_config_dir / "config.yaml"
    path.write_text("batch:\n  interval_minutes: 0\n")

    result = runner.invoke(cli, ["validate-config", "--config", str(path)])

    assert result.exit_code == 1
    assert "batch.interval_minutes" in result.output


def test_rules_hides_inactive_by_default(runner, tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli, ["rules"])

    assert result.exit_code == 0
    assert "meeting-invites" in result.output
    assert "boss-urgent" not in result.output


def test_rules_all_includes_inactive(runner, tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli, ["rules", "--all"])

    assert result.exit_code == 0
    assert "boss-urgent" in result.output


def test_rules_include_custom_rules(runner, config_path, monkeypatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(config_path))

    result = runner.invoke(cli, ["rules"])

    assert result.exit_code == 0
    assert "Invoices" in result.output
    assert "boss-urgent" in result.output


def test_main_loads_dotenv_before_running(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_module, "load_dotenv", lambda: calls.append("dotenv"))
    monkeypatch.setattr(cli_module, "cli", lambda: calls.append("cli"))

    cli_module.main()

    assert calls == ["dotenv", "cli"]
