"""Tests for configuration loading, validation and hot-reload."""

import os
from pathlib import Path

import pytest

from todo_agent.config import (
    CONFIG_PATH_ENV,
    get_config,
    load_config,
    reload_config_if_changed,
    validate_config_file,
)
from todo_agent.config_schema import AppConfig
from todo_agent.core.errors import ConfigLoadError, ConfigValidationError

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config_path(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Write the sample config.yaml and return its path."""
    path = temp_config_dir / "config.yaml"
    path.write_text(sample_config_yaml)
    return path


def _bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))


# ---------------------------------------------------------------------------
# Tests: Loading
# ---------------------------------------------------------------------------


def test_defaults_when_no_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config == AppConfig()
    assert config.batch.interval_minutes == 15
    assert config.webhook.path == "/webhook"


def test_load_from_env_path(config_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(config_path))

    config = load_config()

    assert config.batch.interval_minutes == 10
    assert config.batch.max_emails_per_batch == 25
    assert config.rules.vip_senders == ["boss@acme.io"]
    assert config.rules.custom[0].name == "Invoices"
    assert config.rules.custom[0].criteria.subject == ["invoice"]


def test_missing_explicit_file(tmp_path: Path):
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "absent.yaml")


def test_missing_env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "absent.yaml"))
    with pytest.raises(ConfigLoadError):
        load_config()


def test_empty_file_gives_defaults(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("")
    assert load_config(path) == AppConfig()


def test_non_mapping_rejected(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigLoadError, match="mapping"):
        load_config(path)


def test_invalid_yaml(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("batch: [unclosed\n")
    with pytest.raises(ConfigLoadError, match="parse YAML"):
        load_config(path)


# ---------------------------------------------------------------------------
# Tests: Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("yaml_text", "field"),
    [
        ("batch:\n  interval_minutes: 0\n", "batch.interval_minutes"),
        ("batch:\n  startup_lookback: soon\n", "batch.startup_lookback"),
        ("pipeline:\n  basic_fallback_policy: maybe\n", "pipeline.basic_fallback_policy"),
        ("webhook:\n  path: hooks\n", "webhook.path"),
        (
            "rules:\n  custom:\n    - name: x\n      actions:\n        label: Inbox\n",
            "rules.custom.0.actions.label",
        ),
    ],
)
def test_validation_errors_name_the_field(temp_config_dir: Path, yaml_text: str, field: str):
    path = temp_config_dir / "config.yaml"
    path.write_text(yaml_text)

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(path)

    assert field in str(exc_info.value)


def test_newer_schema_version_rejected(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("schema_version: 99\n")
    with pytest.raises(ConfigValidationError, match="newer than supported"):
        load_config(path)


def test_validate_config_file(config_path: Path):
    ok, message = validate_config_file(config_path)
    assert ok
    assert "1 custom rules" in message
    assert "1 VIP senders" in message


def test_validate_config_file_reports_errors(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("batch:\n  max_emails_per_batch: 9999\n")

    ok, message = validate_config_file(path)

    assert not ok
    assert message.startswith("Validation error")


# ---------------------------------------------------------------------------
# Tests: Singleton and hot-reload
# ---------------------------------------------------------------------------


def test_get_config_is_cached(config_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(config_path))
    assert get_config() is get_config()


def test_reload_picks_up_changes(config_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(config_path))
    assert get_config().batch.interval_minutes == 10

    assert not reload_config_if_changed()

    config_path.write_text("batch:\n  interval_minutes: 30\n")
    _bump_mtime(config_path)

    assert reload_config_if_changed()
    assert get_config().batch.interval_minutes == 30


def test_invalid_reload_keeps_previous(config_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(config_path))
    previous = get_config()

    config_path.write_text("batch:\n  interval_minutes: -1\n")
    _bump_mtime(config_path)

    assert not reload_config_if_changed()
    assert get_config() is previous
    # Not retried until the file changes again
    assert not reload_config_if_changed()


def test_reload_without_file_is_noop(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)
    get_config()
    assert not reload_config_if_changed()
