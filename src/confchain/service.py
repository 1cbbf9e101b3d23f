"""
Settings service: the one-shot, memoized migration pass and the state it owns.

The first caller of ``get_migrated_config()`` starts the pass (read the store,
run the migration, write the result); every other caller awaits the same task
and receives the same outcome. The pass runs at most once per service, and the
store is written at most once, only after the migrated document validated.

After the pass, the service owns the authoritative settings document. Reads go
through ``current_config``; edits go through ``update_config``.
"""

import asyncio
import inspect
from copy import deepcopy
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from loguru import logger

from confchain.defaults import default_config
from confchain.exceptions import ConfChainError, ConfigError, MigrationError
from confchain.migration.runner import MigrationOutcome, MigrationReport, MigrationRunner, RunnerState
from confchain.store import ConfigStore

FailureHandler = Callable[[MigrationError], Union[None, Awaitable[None]]]


class ConfigService:
    """
    Façade over the store and the migration runner.

    Args:
        store: Persistence backend implementing ``ConfigStore``
        runner: Migration runner (defaults to the built-in chain)

    Example:
        >>> service = ConfigService(FileConfigStore("settings.json"))
        >>> service.on_migration_failure(show_fatal_settings_error)
        >>> config = await service.get_migrated_config()
    """

    def __init__(self, store: ConfigStore, runner: Optional[MigrationRunner] = None) -> None:
        self._store = store
        self._runner = runner or MigrationRunner()
        self._task: Optional[asyncio.Task] = None
        self._failure_handlers: List[FailureHandler] = []
        self._failure: Optional[MigrationError] = None
        self._outcome: Optional[MigrationOutcome] = None
        self._current: Optional[Dict[str, Any]] = None

    @property
    def runner(self) -> MigrationRunner:
        return self._runner

    @property
    def outcome(self) -> Optional[MigrationOutcome]:
        """Outcome of the migration pass, None until it finishes."""
        return self._outcome

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def current_config(self) -> Optional[Dict[str, Any]]:
        """Copy of the authoritative settings, None before a successful pass."""
        return deepcopy(self._current)

    async def get_migrated_config(self) -> Dict[str, Any]:
        """
        Return the migrated, validated settings document.

        Idempotent: the migration pass runs once; later and concurrent callers
        share its result.

        Raises:
            MigrationError: The pass aborted (same exception for every caller)
            StoreError: The store could not be read or written
        """
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._migrate_once())
        elif self._task.done():
            return deepcopy(self._task.result())

        # Shield so that one caller being cancelled does not cancel the shared pass
        config = await asyncio.shield(self._task)
        return deepcopy(config)

    def on_migration_failure(self, handler: FailureHandler) -> None:
        """
        Register a callback for an aborted migration pass.

        The handler receives the ``MigrationError``. It may be a plain function or
        a coroutine function. A handler registered after the pass already failed
        is invoked right away.
        """
        if not callable(handler):
            raise TypeError("Migration failure handler must be callable")
        self._failure_handlers.append(handler)

        if self._failure is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                asyncio.run(self._invoke_handler(handler, self._failure))
            else:
                loop.create_task(self._invoke_handler(handler, self._failure))

    async def update_config(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace the authoritative settings after validating them at the latest version.

        Raises:
            ConfChainError: CONFCHAIN_003 if the migration pass has not succeeded
            ConfigError: CONFIG_004 if the document violates the latest schema
        """
        if self._current is None:
            raise ConfChainError(
                "Settings cannot be updated before the migration pass has succeeded",
                error_code="CONFCHAIN_003",
            )

        latest = self._runner.latest_version
        result = self._runner.validator.validate(document, latest)
        if not result.ok:
            raise ConfigError(
                f"Settings update rejected with {len(result.violations)} violation(s)",
                error_code="CONFIG_004",
                context={"violations": [v.to_dict() for v in result.violations]},
            )

        await self._store.set(document)
        self._current = deepcopy(document)
        logger.info("Settings updated")
        return deepcopy(document)

    async def _migrate_once(self) -> Dict[str, Any]:
        raw_document, stored_version = await self._store.get()
        latest = self._runner.latest_version

        if raw_document is None:
            logger.info(f"No stored settings found, writing defaults at version {latest}")
            config = default_config()
            report = MigrationReport(None, latest)
            report.record_state(RunnerState.LOADED, None)
            report.record_state(RunnerState.VALIDATED, latest)
            outcome = MigrationOutcome(
                success=True, config=config, from_version=None, to_version=latest, report=report
            )
            needs_write = True
        else:
            outcome = self._runner.run(raw_document, stored_version)
            if outcome.failed:
                self._outcome = outcome
                self._failure = outcome.error
                await self._notify_failure(outcome.error)
                raise outcome.error
            config = outcome.config
            needs_write = stored_version != latest or config != raw_document

        if needs_write:
            await self._store.set(config)
            outcome.report.record_state(RunnerState.PERSISTED, latest)
        else:
            logger.debug("Stored settings already current, nothing written")

        self._outcome = outcome
        self._current = deepcopy(config)
        return config

    async def _notify_failure(self, error: MigrationError) -> None:
        for handler in list(self._failure_handlers):
            await self._invoke_handler(handler, error)

    @staticmethod
    async def _invoke_handler(handler: FailureHandler, error: MigrationError) -> None:
        try:
            result = handler(error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Migration failure handler {handler!r} raised")


# --- Process-wide service ---

_service: Optional[ConfigService] = None


def install_service(store: ConfigStore, runner: Optional[MigrationRunner] = None) -> ConfigService:
    """
    Create the process-wide service. Call once at startup.

    Raises:
        ConfChainError: CONFCHAIN_004 if a service is already installed
    """
    global _service
    if _service is not None:
        raise ConfChainError("A settings service is already installed", error_code="CONFCHAIN_004")
    _service = ConfigService(store, runner)
    return _service


def get_service() -> ConfigService:
    if _service is None:
        raise ConfChainError("No settings service installed", error_code="CONFCHAIN_005")
    return _service


def reset_service() -> None:
    """Drop the process-wide service (tests only)."""
    global _service
    _service = None


async def get_migrated_config() -> Dict[str, Any]:
    """Migrated settings from the process-wide service."""
    return await get_service().get_migrated_config()


def on_migration_failure(handler: FailureHandler) -> None:
    """Register a failure handler on the process-wide service."""
    get_service().on_migration_failure(handler)


__all__ = [
    "ConfigService",
    "FailureHandler",
    "install_service",
    "get_service",
    "reset_service",
    "get_migrated_config",
    "on_migration_failure",
]
