"""
confchain - Versioned settings migration engine.

Upgrades a previously saved settings document, tagged with the schema version it
was written under, through every intermediate schema version to the current one.

This module also owns Loguru sink configuration so that applications and tests
can set up (and tear down) logging explicitly.
"""

__version__ = "0.1.0"

import os
import sys
import warnings
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Union

from loguru import logger


# --- Logger Configuration ---

class LoggingConfigError(Exception):
    """Raised when logging configuration fails validation or setup."""


class LoggerState:
    """Tracks which Loguru sinks confchain added so they can be removed again."""

    def __init__(self):
        self._initialized = False
        self._test_mode = False
        self._sink_ids: List[int] = []

    def is_initialized(self) -> bool:
        return self._initialized

    def is_test_mode(self) -> bool:
        return self._test_mode

    def mark_initialized(self, test_mode: bool = False):
        self._initialized = True
        self._test_mode = test_mode

    def add_sink_id(self, sink_id: int):
        self._sink_ids.append(sink_id)

    @property
    def sink_ids(self) -> List[int]:
        return list(self._sink_ids)

    def reset(self):
        self._initialized = False
        self._test_mode = False
        self._sink_ids.clear()


_logger_state = LoggerState()

VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def validate_log_level(level: str) -> str:
    """
    Validate and normalize a log level name.

    Args:
        level: Log level string to validate

    Returns:
        Upper-cased log level

    Raises:
        LoggingConfigError: If log level is invalid
    """
    level_upper = str(level).upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise LoggingConfigError(
            f"Invalid log level '{level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )
    return level_upper


def configure_console_logging(
    level: str = "INFO",
    format_template: Optional[str] = None,
    colorize: bool = True,
    destination: TextIO = sys.stderr
) -> int:
    """
    Add a console sink.

    Args:
        level: Log level for console output
        format_template: Custom format template (uses default if None)
        colorize: Enable colored console output
        destination: Console destination (default: sys.stderr)

    Returns:
        Sink ID for tracking and cleanup

    Raises:
        LoggingConfigError: If configuration fails
    """
    try:
        validated_level = validate_log_level(level)

        if format_template is None:
            format_template = (
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
            )

        sink_id = logger.add(
            destination,
            level=validated_level,
            format=format_template,
            colorize=colorize
        )
        _logger_state.add_sink_id(sink_id)
        return sink_id

    except LoggingConfigError:
        raise
    except Exception as e:
        raise LoggingConfigError(f"Failed to configure console logging: {e}") from e


def configure_file_logging(
    log_file_path: Union[str, Path],
    level: str = "DEBUG",
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip",
    format_template: Optional[str] = None,
    encoding: str = "utf-8"
) -> int:
    """
    Add a rotating file sink.

    Args:
        log_file_path: Path to log file (may contain Loguru time placeholders)
        level: Log level for file output
        rotation: Log rotation setting
        retention: Log retention setting
        compression: Compression method for rotated logs
        format_template: Custom format template (uses default if None)
        encoding: File encoding

    Returns:
        Sink ID for tracking and cleanup

    Raises:
        LoggingConfigError: If configuration fails
    """
    try:
        validated_level = validate_log_level(level)
        path = Path(log_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if format_template is None:
            format_template = (
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name}:{function}:{line} - {message}"
            )

        sink_id = logger.add(
            str(path),
            rotation=rotation,
            retention=retention,
            compression=compression,
            level=validated_level,
            format=format_template,
            encoding=encoding
        )
        _logger_state.add_sink_id(sink_id)
        return sink_id

    except LoggingConfigError:
        raise
    except Exception as e:
        raise LoggingConfigError(f"Failed to configure file logging: {e}") from e


def configure_test_logging(
    console_level: str = "DEBUG",
    console_destination: Optional[TextIO] = None,
) -> Dict[str, int]:
    """
    Reset Loguru and add a single uncolored console sink for tests.

    Args:
        console_level: Console log level for tests
        console_destination: Console destination (None uses sys.stderr)

    Returns:
        Dictionary mapping sink types to sink IDs
    """
    reset_logging()
    sink_ids = {
        'console': configure_console_logging(
            level=console_level,
            destination=console_destination if console_destination is not None else sys.stderr,
            colorize=False,
        )
    }
    _logger_state.mark_initialized(test_mode=True)
    return sink_ids


def reset_logging():
    """
    Remove every Loguru sink and clear the tracked state.

    Raises:
        LoggingConfigError: If reset fails
    """
    try:
        logger.remove()
        _logger_state.reset()
    except Exception as e:
        raise LoggingConfigError(f"Failed to reset logging configuration: {e}") from e


def initialize_production_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_dir: Optional[Union[str, Path]] = None,
) -> Dict[str, int]:
    """
    Replace Loguru's default sink with confchain's console sink and, when a log
    directory is given, a daily rotating file sink.

    Args:
        console_level: Console logging level
        file_level: File logging level
        log_dir: Directory for log files; file logging is skipped when None

    Returns:
        Dictionary mapping sink types to sink IDs

    Raises:
        LoggingConfigError: If initialization fails
    """
    logger.remove()
    _logger_state.reset()

    sink_ids = {'console': configure_console_logging(level=console_level)}

    if log_dir is not None:
        log_file_path = Path(log_dir) / "confchain_{time:YYYYMMDD}.log"
        sink_ids['file'] = configure_file_logging(log_file_path, level=file_level)

    _logger_state.mark_initialized(test_mode=False)
    logger.info("--- confchain logger initialized ---")
    return sink_ids


def get_logger_state() -> LoggerState:
    """Return the tracked logger state (used by tests)."""
    return _logger_state


def is_logging_initialized() -> bool:
    return _logger_state.is_initialized()


def _is_pytest_running() -> bool:
    return "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ


def _auto_initialize_logging():
    """Set up default sinks on first import outside of tests."""
    if _logger_state.is_initialized() or _is_pytest_running():
        return
    if os.environ.get("CONFCHAIN_DISABLE_AUTO_LOGGING"):
        return
    try:
        initialize_production_logging(
            console_level=os.environ.get("CONFCHAIN_LOG_LEVEL", "INFO"),
            log_dir=os.environ.get("CONFCHAIN_LOG_DIR"),
        )
    except LoggingConfigError as e:
        warnings.warn(f"Failed to initialize confchain logging: {e}. Using basic stderr logging.")
        logger.add(sys.stderr, level="INFO")
        _logger_state.mark_initialized(test_mode=False)


_auto_initialize_logging()

# --- End Logger Configuration ---


from confchain.exceptions import (  # noqa: E402
    ConfChainError,
    ConfigError,
    FutureVersionDetected,
    MigrationError,
    MigrationStepFailed,
    MissingMigrationStep,
    PostMigrationValidationFailed,
    RegistryError,
    StoreError,
)
from confchain.defaults import default_config  # noqa: E402
from confchain.migration import (  # noqa: E402
    CURRENT_VERSION,
    LOWEST_VERSION,
    MigrationOutcome,
    MigrationRunner,
    MigrationStep,
    VersionRegistry,
    build_default_registry,
)
from confchain.schema import SchemaValidator, ValidationResult, Violation  # noqa: E402
from confchain.service import ConfigService  # noqa: E402
from confchain.store import ConfigStore, FileConfigStore, InMemoryConfigStore  # noqa: E402

__all__ = [
    "__version__",
    "logger",
    "LoggingConfigError",
    "configure_console_logging",
    "configure_file_logging",
    "configure_test_logging",
    "reset_logging",
    "initialize_production_logging",
    "get_logger_state",
    "is_logging_initialized",
    "ConfChainError",
    "ConfigError",
    "RegistryError",
    "StoreError",
    "MigrationError",
    "MissingMigrationStep",
    "FutureVersionDetected",
    "MigrationStepFailed",
    "PostMigrationValidationFailed",
    "CURRENT_VERSION",
    "LOWEST_VERSION",
    "MigrationStep",
    "VersionRegistry",
    "MigrationRunner",
    "MigrationOutcome",
    "build_default_registry",
    "SchemaValidator",
    "ValidationResult",
    "Violation",
    "ConfigStore",
    "InMemoryConfigStore",
    "FileConfigStore",
    "ConfigService",
    "default_config",
]
