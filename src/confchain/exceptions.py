"""
confchain Exception Hierarchy

This module provides the domain-specific exception hierarchy for confchain. Every
error raised by the engine carries an error code for programmatic handling and a
context dictionary that survives logging and re-raising.

The hierarchy:
- ConfChainError: Base exception for all confchain-specific errors
- ConfigError: Engine settings loading and validation failures
- RegistryError: Migration registry build failures (duplicates, gaps, sealing)
- StoreError: Persistence backend failures
- MigrationError: Base for the four terminal failures of a migration run
    - MissingMigrationStep
    - FutureVersionDetected
    - MigrationStepFailed
    - PostMigrationValidationFailed

Usage Examples:
    Checking the failure kind of a run:
    >>> outcome = runner.run(document, stored_version)
    >>> if isinstance(outcome.error, FutureVersionDetected):
    ...     logger.error(f"Settings written by a newer build: {outcome.error}")

    Context preservation:
    >>> raise StoreError("Write failed", error_code="STORE_002").with_context({
    ...     "store_path": str(path),
    ... })
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


class ConfChainError(Exception):
    """
    Base exception class for all confchain-specific errors.

    Attributes:
        error_code (str): Unique identifier for programmatic error handling
        context (Dict[str, Any]): Additional context information for debugging

    Error Codes:
        CONFCHAIN_001: Generic confchain error
        CONFCHAIN_002: Unexpected internal error
        CONFCHAIN_003: Settings updated before the migration pass succeeded
        CONFCHAIN_004: Settings service already installed
        CONFCHAIN_005: No settings service installed
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFCHAIN_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Initialize the error with message, error code, and context.

        Args:
            message: Human-readable error description
            error_code: Unique identifier for programmatic error handling
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = dict(context) if context else {}

        # Record where the error was raised unless the caller already did
        if hasattr(sys, '_getframe'):
            frame = sys._getframe(1)
            # Skip the __init__ chain of subclasses
            while (
                frame is not None
                and frame.f_code.co_name == '__init__'
                and frame.f_locals.get('self') is self
            ):
                frame = frame.f_back
            if frame:
                self.context.setdefault('source_function', frame.f_code.co_name)

    def with_context(self, context: Dict[str, Any]) -> 'ConfChainError':
        """
        Add additional context to the exception and return self for chaining.

        Args:
            context: Dictionary of context information to add

        Returns:
            Self for method chaining
        """
        self.context.update(context)
        return self

    def __str__(self) -> str:
        message = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{message} [Error Code: {self.error_code}, Context: {context_str}]"
        return f"{message} [Error Code: {self.error_code}]"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"context={self.context!r})"
        )


class ConfigError(ConfChainError):
    """
    Engine settings loading and validation errors.

    Error Codes:
        CONFIG_001: Settings file not found
        CONFIG_002: YAML parsing error
        CONFIG_003: Pydantic validation failure
        CONFIG_004: Settings document update rejected by the schema
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)

        if context and isinstance(context.get('settings_path'), (str, Path)):
            self.context['settings_path'] = str(context['settings_path'])


class RegistryError(ConfChainError):
    """
    Migration registry build errors.

    These are programming errors in the shipped step chain. They are raised while
    the registry is being assembled at startup and abort initialization.

    Error Codes:
        REGISTRY_001: Duplicate step for a from_version
        REGISTRY_002: Registered object is not a MigrationStep
        REGISTRY_003: Registry is sealed
        REGISTRY_004: Gap in the step chain
        REGISTRY_005: Step outside the declared version range
    """

    def __init__(
        self,
        message: str,
        error_code: str = "REGISTRY_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)


class StoreError(ConfChainError):
    """
    Persistence backend errors.

    Error Codes:
        STORE_001: Stored document could not be read
        STORE_002: Document could not be written
        STORE_003: Stored payload has an unexpected shape
    """

    def __init__(
        self,
        message: str,
        error_code: str = "STORE_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)

        if context and isinstance(context.get('store_path'), (str, Path)):
            self.context['store_path'] = str(context['store_path'])


class MigrationError(ConfChainError):
    """
    Base class for the terminal failures of a migration run.

    A migration run ends in exactly one of these or in success. None of them is
    retried: the chain is deterministic, so the same input fails the same way.

    Attributes:
        kind: Short machine-readable failure name
    """

    kind = "migration_failed"

    def __init__(
        self,
        message: str,
        error_code: str = "MIGRATION_000",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)
        self.context.setdefault('kind', self.kind)


class MissingMigrationStep(MigrationError):
    """No step is registered to upgrade a document from ``at_version``."""

    kind = "missing_step"

    def __init__(self, at_version: int, context: Optional[Dict[str, Any]] = None) -> None:
        self.at_version = at_version
        super().__init__(
            f"No migration step registered from version {at_version}",
            error_code="MIGRATION_001",
            context={**(context or {}), 'at_version': at_version},
        )


class FutureVersionDetected(MigrationError):
    """The stored document was written by a newer build than this one."""

    kind = "future_version"

    def __init__(
        self,
        stored_version: int,
        latest_version: int,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.stored_version = stored_version
        self.latest_version = latest_version
        super().__init__(
            f"Stored settings version {stored_version} is newer than the latest "
            f"supported version {latest_version}",
            error_code="MIGRATION_002",
            context={
                **(context or {}),
                'stored_version': stored_version,
                'latest_version': latest_version,
            },
        )


class MigrationStepFailed(MigrationError):
    """A step raised (or returned garbage) while upgrading from ``at_version``."""

    kind = "step_failed"

    def __init__(
        self,
        at_version: Any,
        cause: BaseException,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.at_version = at_version
        self.cause = cause
        super().__init__(
            f"Migration step from version {at_version} failed: {cause}",
            error_code="MIGRATION_003",
            context={
                **(context or {}),
                'at_version': at_version,
                'cause_type': type(cause).__name__,
            },
        )


class PostMigrationValidationFailed(MigrationError):
    """
    The fully migrated document does not satisfy the latest schema.

    Attributes:
        violations: Structured list of ``Violation`` records
    """

    kind = "validation_failed"

    def __init__(
        self,
        violations: Sequence[Any],
        version: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.violations: List[Any] = list(violations)
        self.version = version
        super().__init__(
            f"Migrated settings failed validation with {len(self.violations)} violation(s)",
            error_code="MIGRATION_004",
            context={
                **(context or {}),
                'version': version,
                'violation_paths': [getattr(v, 'path', str(v)) for v in self.violations],
            },
        )


def log_and_raise(
    exception: ConfChainError,
    logger: Optional[Any] = None,
    level: str = "error"
) -> None:
    """
    Log an exception with its context and then raise it.

    Args:
        exception: The exception to log and raise
        logger: Logger instance to use (optional)
        level: Log level ("error", "warning", "critical")

    Raises:
        The provided exception after logging
    """
    if logger is not None:
        log_method = getattr(logger, level, logger.error)
        log_method(f"{exception.__class__.__name__}: {exception}")

    raise exception


__all__ = [
    'ConfChainError',
    'ConfigError',
    'RegistryError',
    'StoreError',
    'MigrationError',
    'MissingMigrationStep',
    'FutureVersionDetected',
    'MigrationStepFailed',
    'PostMigrationValidationFailed',
    'log_and_raise',
]
