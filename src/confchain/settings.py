"""
Configuration of the engine itself (not the settings document it migrates).

Settings come from an optional YAML file and are overlaid with ``CONFCHAIN_*``
environment variables; the environment wins. The merged mapping is validated by
``EngineSettings``.

Example YAML:

    storage_key: config
    store_path: ~/.local/share/myapp/settings.json
    log_level: DEBUG
    file_logging: true
    log_dir: ~/.local/state/myapp/logs
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from confchain.exceptions import ConfigError
from confchain.store import DEFAULT_STORAGE_KEY

ENV_PREFIX = "CONFCHAIN_"

# Environment variable -> settings field
ENV_FIELDS: Dict[str, str] = {
    f"{ENV_PREFIX}STORAGE_KEY": "storage_key",
    f"{ENV_PREFIX}STORE_PATH": "store_path",
    f"{ENV_PREFIX}LOG_LEVEL": "log_level",
    f"{ENV_PREFIX}LOG_DIR": "log_dir",
    f"{ENV_PREFIX}FILE_LOGGING": "file_logging",
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


class EngineSettings(BaseModel):
    """
    Validated engine settings.

    Attributes:
        storage_key: Key the settings document is stored under
        store_path: File backing ``FileConfigStore`` (None when the embedding
            application supplies its own store)
        log_level: Console log level
        log_dir: Directory for the rotating log file
        file_logging: Whether to write the log file at all
    """

    model_config = ConfigDict(extra="forbid")

    storage_key: str = Field(default=DEFAULT_STORAGE_KEY, min_length=1)
    store_path: Optional[Path] = None
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    file_logging: bool = False

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        from confchain import VALID_LOG_LEVELS

        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}")
        return level

    @field_validator("store_path", "log_dir")
    @classmethod
    def expand_user(cls, v: Optional[Path]) -> Optional[Path]:
        return v.expanduser() if v is not None else None


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(
        f"Environment variable {name} must be a boolean, got {value!r}",
        error_code="CONFIG_003",
        context={"variable": name},
    )


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect the ``CONFCHAIN_*`` overrides present in ``environ``."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for variable, field_name in ENV_FIELDS.items():
        value = environ.get(variable)
        if value is None:
            continue
        if field_name == "file_logging":
            overrides[field_name] = _parse_bool(variable, value)
        else:
            overrides[field_name] = value
        logger.debug(f"Engine setting '{field_name}' overridden by {variable}")
    return overrides


def _read_settings_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(
            f"Engine settings file not found: {path}",
            error_code="CONFIG_001",
            context={"settings_path": path},
        )
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Error parsing engine settings YAML: {e}",
            error_code="CONFIG_002",
            context={"settings_path": path},
        ) from e

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Engine settings must be a mapping, got {type(raw).__name__}",
            error_code="CONFIG_003",
            context={"settings_path": path},
        )
    return raw


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineSettings:
    """
    Load engine settings from ``path`` (optional) and the environment.

    Args:
        path: YAML file; omitted means defaults plus environment only
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        EngineSettings

    Raises:
        ConfigError: CONFIG_001 missing file, CONFIG_002 unparseable YAML,
            CONFIG_003 invalid values
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        raw = _read_settings_file(path)
        logger.debug(f"Loaded engine settings from {path}")

    raw.update(settings_from_env(environ))

    try:
        return EngineSettings.model_validate(raw)
    except ValidationError as e:
        error_details = []
        for error in e.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            error_details.append(f"Field '{field_path}': {error['msg']}")

        detailed_error = "Engine settings validation failed:\n" + "\n".join(error_details)
        logger.error(detailed_error)
        raise ConfigError(
            detailed_error,
            error_code="CONFIG_003",
            context={"validation_errors": error_details, "settings_path": path},
        ) from e


__all__ = ["ENV_FIELDS", "ENV_PREFIX", "EngineSettings", "load_settings", "settings_from_env"]
