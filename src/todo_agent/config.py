"""Configuration loader with hot-reload support.

This module provides configuration loading from YAML with automatic validation
against the Pydantic schema and hot-reload capability on file changes.

Usage:
    from todo_agent.config import get_config, reload_config_if_changed

    # Get current config (singleton)
    config = get_config()

    # Check for changes and reload (call each batch cycle)
    if reload_config_if_changed():
        config = get_config()
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from todo_agent.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from todo_agent.core.errors import ConfigLoadError, ConfigValidationError
from todo_agent.core.logging import get_logger

logger = get_logger(__name__)

# Default config path - can be overridden via environment variable
DEFAULT_CONFIG_PATH = Path("config/config.yaml")
CONFIG_PATH_ENV = "TODO_AGENT_CONFIG_PATH"

# Global state for config singleton and hot-reload
_config_lock = threading.Lock()
_current_config: AppConfig | None = None
_config_path: Path | None = None
_config_mtime: float = 0.0


def _get_config_path() -> tuple[Path, bool]:
    """Get the config file path and whether it was set explicitly."""
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path), True
    return DEFAULT_CONFIG_PATH, False


def _format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into actionable messages.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message with specific field errors
    """
    messages = []
    for err in error.errors():
        # Build field path (e.g., "rules.custom.0.actions.label")
        field_path = ".".join(str(loc) for loc in err["loc"])
        msg = err["msg"]
        err_type = err["type"]

        if err_type == "missing":
            messages.append(f"  - Missing required field '{field_path}'")
        elif err_type == "string_type":
            messages.append(f"  - Field '{field_path}' must be a string")
        elif err_type == "int_type":
            messages.append(f"  - Field '{field_path}' must be an integer")
        else:
            messages.append(f"  - Field '{field_path}': {msg}")

    return "\n".join(messages)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Parsed YAML as dictionary

    Raises:
        ConfigLoadError: If file not found or YAML parse error
    """
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it by copying config/config.yaml.example to {path}"
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigLoadError(
                    f"Configuration file must be a YAML mapping, got {type(data).__name__}"
                )
            return data
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e


def _validate_config(data: dict[str, Any], path: Path) -> AppConfig:
    """Validate config data against Pydantic schema.

    Args:
        data: Parsed YAML data
        path: Path to config file (for error messages)

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        error_details = _format_validation_errors(e)
        raise ConfigValidationError(
            f"Configuration validation failed for {path}:\n{error_details}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} is newer than "
            f"supported version {CURRENT_SCHEMA_VERSION}. "
            "Please upgrade todo-agent or downgrade the config."
        )

    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    This function always loads fresh from disk. For cached access with
    hot-reload support, use get_config() instead.

    When no path is given and neither TODO_AGENT_CONFIG_PATH nor the default
    file exists, the built-in defaults are returned.

    Args:
        path: Optional path to config file

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigLoadError: If an explicitly requested file cannot be loaded
        ConfigValidationError: If validation fails
    """
    if path is not None:
        config_path, explicit = path, True
    else:
        config_path, explicit = _get_config_path()

    if not explicit and not config_path.exists():
        logger.info("config_file_absent_using_defaults", path=str(config_path))
        return AppConfig()

    logger.debug("config_loading", path=str(config_path))

    data = _load_yaml(config_path)
    config = _validate_config(data, config_path)

    logger.info(
        "config_loaded",
        path=str(config_path),
        schema_version=config.schema_version,
        custom_rules_count=len(config.rules.custom),
        vip_senders_count=len(config.rules.vip_senders),
    )

    return config


def get_config() -> AppConfig:
    """Get the current configuration singleton.

    On first call, loads configuration from disk. Subsequent calls return
    the cached config. Use reload_config_if_changed() to check for updates.

    Thread-safe: protected by _config_lock.

    Returns:
        Current AppConfig instance

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    global _current_config, _config_path, _config_mtime

    with _config_lock:
        if _current_config is None:
            path, _ = _get_config_path()
            _current_config = load_config()
            if path.exists():
                _config_path = path
                _config_mtime = path.stat().st_mtime

        return _current_config


def reload_config_if_changed() -> bool:
    """Check if config file has changed and reload if so.

    Returns:
        True if config was reloaded, False if unchanged

    Behavior:
        - If config file unchanged: returns False
        - If config file changed and valid: updates singleton, returns True
        - If config file changed but invalid: keeps old config, logs WARNING, returns False
    """
    global _current_config, _config_path, _config_mtime

    with _config_lock:
        if _config_path is None:
            # Config hasn't been loaded from a file, nothing to reload
            return False

        try:
            current_mtime = _config_path.stat().st_mtime
        except OSError as e:
            logger.warning("config_mtime_check_failed", path=str(_config_path), error=str(e))
            return False

        if current_mtime <= _config_mtime:
            return False

        logger.info("config_changed_reloading", path=str(_config_path))

        try:
            new_config = load_config(_config_path)
            _current_config = new_config
            _config_mtime = current_mtime
            return True

        except (ConfigLoadError, ConfigValidationError) as e:
            logger.warning(
                "config_reload_failed_keeping_previous",
                path=str(_config_path),
                error=str(e),
            )
            # Update mtime so we don't keep trying to reload on every check
            _config_mtime = current_mtime
            return False


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Validate a config file without loading it into the singleton.

    Args:
        path: Path to config file. If not provided, uses default.

    Returns:
        Tuple of (is_valid, message)
    """
    config_path = path or _get_config_path()[0]

    try:
        config = load_config(config_path)
        return (
            True,
            f"Configuration valid (schema version {config.schema_version})\n"
            f"  - batch every {config.batch.interval_minutes} min, "
            f"max {config.batch.max_emails_per_batch} emails\n"
            f"  - {len(config.rules.custom)} custom rules\n"
            f"  - {len(config.rules.vip_senders)} VIP senders\n"
            f"  - basic fallback policy: {config.pipeline.basic_fallback_policy}",
        )
    except ConfigLoadError as e:
        return (False, f"Load error: {e}")
    except ConfigValidationError as e:
        return (False, f"Validation error: {e}")


def reset_config() -> None:
    """Reset the config singleton. Primarily for testing."""
    global _current_config, _config_path, _config_mtime
    with _config_lock:
        _current_config = None
        _config_path = None
        _config_mtime = 0.0
