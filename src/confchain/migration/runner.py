"""
Migration runner: upgrades one stored settings document to the latest schema.

The runner is the orchestration layer over the registry, the step chain and the
schema validator. It works on a private deep copy of the stored document, so a
run that fails at any point leaves nothing half-migrated behind, and it reports
every failure as data in a ``MigrationOutcome`` instead of raising.

Progression of a run:

    LOADED -> MIGRATING(v+1) ... -> VALIDATED            (success)
    LOADED -> ... -> ABORTED_<reason>                    (failure)

``PERSISTED`` is recorded by ``ConfigService`` once the result has been written.
The one-run-per-process guarantee is also the service's job; ``run`` itself is
a pure function of its inputs and the registry.

Usage Examples:
    >>> runner = MigrationRunner()
    >>> outcome = runner.run(stored_document, stored_version=38)
    >>> outcome.success, outcome.applied_steps[:1]
    (True, ('migrate_v38_to_v39',))
"""

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from confchain.exceptions import (
    FutureVersionDetected,
    MigrationError,
    MigrationStepFailed,
    MissingMigrationStep,
    PostMigrationValidationFailed,
)
from confchain.schema.validator import SchemaValidator
from .registry import VersionRegistry
from .versions import VERSION_FIELD, is_schema_version, normalize_stored_version, read_document_version


class RunnerState(str, Enum):
    """States a run passes through; only the final one is visible to callers."""

    LOADED = "loaded"
    MIGRATING = "migrating"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    ABORTED_MISSING_STEP = "aborted_missing_step"
    ABORTED_FUTURE_VERSION = "aborted_future_version"
    ABORTED_STEP_FAILED = "aborted_step_failed"
    ABORTED_VALIDATION_FAILED = "aborted_validation_failed"

    @classmethod
    def aborted_for(cls, error: MigrationError) -> "RunnerState":
        if isinstance(error, MissingMigrationStep):
            return cls.ABORTED_MISSING_STEP
        if isinstance(error, FutureVersionDetected):
            return cls.ABORTED_FUTURE_VERSION
        if isinstance(error, PostMigrationValidationFailed):
            return cls.ABORTED_VALIDATION_FAILED
        return cls.ABORTED_STEP_FAILED


class MigrationReport:
    """
    Audit trail of one migration run.

    Attributes:
        from_version: Version the run started from (as stored, before normalization
            until the run normalizes it)
        to_version: Target schema version
        timestamp: When the run started
        applied_migrations: Names of the steps that ran, in order
        warnings: Non-fatal observations
        errors: Failure descriptions
        metadata: Extra context (final state, per-step timing)
        execution_time_ms: Total run time
        config_changes: Top-level keys each step added, removed or modified
        state_trail: Every state the run entered, in order
    """

    def __init__(
        self,
        from_version: Any,
        to_version: int,
        timestamp: Optional[datetime] = None
    ) -> None:
        self.from_version = from_version
        self.to_version = to_version
        self.timestamp = timestamp or datetime.now()
        self.applied_migrations: List[str] = []
        self.warnings: List[str] = []
        self.errors: List[str] = []
        self.metadata: Dict[str, Any] = {}
        self.execution_time_ms: Optional[float] = None
        self.config_changes: Dict[str, str] = {}
        self.state_trail: List[Tuple[RunnerState, Any]] = []

    @property
    def final_state(self) -> Optional[RunnerState]:
        return self.state_trail[-1][0] if self.state_trail else None

    def record_state(self, state: RunnerState, version: Any = None) -> None:
        self.state_trail.append((state, version))
        logger.trace(f"Migration state -> {state.value} ({version})")

    def add_warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        entry = message
        if context:
            entry = f"{message} [Context: {', '.join(f'{k}={v}' for k, v in context.items())}]"
        self.warnings.append(entry)
        logger.warning(f"Migration warning: {entry}")

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def set_execution_time(self, start_time: datetime, end_time: Optional[datetime] = None) -> None:
        end_time = end_time or datetime.now()
        self.execution_time_ms = (end_time - start_time).total_seconds() * 1000

    def track_changes(self, step_name: str, before: Dict[str, Any], after: Dict[str, Any]) -> None:
        """Record which top-level sections a step added, removed or modified."""
        for key in after.keys() - before.keys():
            self.config_changes[f"{step_name}.{key}"] = "added"
        for key in before.keys() - after.keys():
            self.config_changes[f"{step_name}.{key}"] = "removed"
        for key in before.keys() & after.keys():
            if key != VERSION_FIELD and before[key] != after[key]:
                self.config_changes[f"{step_name}.{key}"] = "modified"

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for logs and the CLI."""
        final_state = self.final_state
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "timestamp": self.timestamp.isoformat(),
            "applied_migrations": list(self.applied_migrations),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "metadata": dict(self.metadata),
            "execution_time_ms": self.execution_time_ms,
            "config_changes": dict(sorted(self.config_changes.items())),
            "state_trail": [(state.value, version) for state, version in self.state_trail],
            "final_state": final_state.value if final_state else None,
            "success": not self.errors,
            "migration_path": " -> ".join(
                [str(self.from_version)] + [name.rsplit("_v", 1)[-1] for name in self.applied_migrations]
            ),
        }


@dataclass(frozen=True)
class MigrationOutcome:
    """
    Result of a run: the migrated document or a typed failure.

    Attributes:
        success: True when ``config`` holds a validated latest-version document
        config: Migrated document (None on failure)
        from_version: Version the run started from
        to_version: Latest schema version
        applied_steps: Names of the steps applied, in order (empty on failure)
        error: The MigrationError on failure
        report: Full audit trail
    """

    success: bool
    config: Optional[Dict[str, Any]]
    from_version: Any
    to_version: int
    applied_steps: Tuple[str, ...] = ()
    error: Optional[MigrationError] = None
    report: Optional[MigrationReport] = field(default=None, compare=False, repr=False)

    @property
    def failed(self) -> bool:
        return not self.success

    def unwrap(self) -> Dict[str, Any]:
        """Return the migrated document or raise the run's MigrationError."""
        if self.error is not None:
            raise self.error
        return self.config


class MigrationRunner:
    """
    Applies the registry's step chain to a stored document and validates the result.

    Args:
        registry: Step chain (defaults to the built-in sealed registry)
        validator: Schema validator (defaults to the per-version pydantic models)
    """

    def __init__(
        self,
        registry: Optional[VersionRegistry] = None,
        validator: Optional[SchemaValidator] = None,
    ) -> None:
        if registry is None:
            from .migrators import build_default_registry
            registry = build_default_registry()
        elif not registry.sealed:
            logger.warning(f"MigrationRunner created over an unsealed registry: {registry!r}")

        self._registry = registry
        self._validator = validator or SchemaValidator()

    @property
    def registry(self) -> VersionRegistry:
        return self._registry

    @property
    def validator(self) -> SchemaValidator:
        return self._validator

    @property
    def latest_version(self) -> int:
        return self._registry.latest_version

    def run(self, raw_document: Any, stored_version: Any = None) -> MigrationOutcome:
        """
        Upgrade ``raw_document`` from ``stored_version`` to the latest version.

        Args:
            raw_document: The document as returned by the store
            stored_version: Version tag read alongside it. None means untagged: the
                document's own ``version`` is used when valid, else the lowest
                known version. A document tagging itself above the latest version
                is a future version whatever the store says.

        Returns:
            MigrationOutcome; failures are reported, never raised
        """
        start_time = datetime.now()
        latest = self.latest_version
        report = MigrationReport(stored_version, latest, start_time)
        report.record_state(RunnerState.LOADED, stored_version)

        logger.info(f"Starting settings migration: {stored_version} -> {latest}")

        document_version = read_document_version(raw_document)
        if not is_schema_version(document_version):
            document_version = None

        # An untagged store falls back to the document's own version
        version_tag = stored_version if stored_version is not None else document_version
        try:
            from_version = normalize_stored_version(version_tag, self._registry.lowest_version)
        except TypeError as e:
            return self._abort(report, MigrationStepFailed(stored_version, e), start_time)
        report.from_version = from_version

        # Never trim a newer document down; the newer build needs those fields.
        # Either tag being newer is enough.
        newest = max(from_version, document_version or 0)
        if newest > latest:
            return self._abort(report, FutureVersionDetected(newest, latest), start_time)

        try:
            steps = self._registry.steps_from(from_version)
        except MigrationError as e:
            return self._abort(report, e, start_time)

        if not isinstance(raw_document, Mapping):
            error = MigrationStepFailed(
                from_version,
                TypeError(f"Stored settings must be a mapping, got {type(raw_document).__name__}"),
            )
            return self._abort(report, error, start_time)

        try:
            document = deepcopy(dict(raw_document))
        except Exception as e:
            return self._abort(report, MigrationStepFailed(from_version, e), start_time)

        tagged = document.get(VERSION_FIELD)
        if tagged != from_version:
            if tagged is not None:
                report.add_warning(
                    "Document version field disagrees with the stored version tag",
                    {"document_version": tagged, "stored_version": from_version},
                )
            document[VERSION_FIELD] = from_version

        for step in steps:
            logger.debug(f"Applying {step.name} ({step.from_version} -> {step.to_version})")
            step_start = datetime.now()
            try:
                migrated = step.apply(document)
            except Exception as e:
                error = MigrationStepFailed(step.from_version, e, context={"step": step.name})
                return self._abort(report, error, start_time)

            report.applied_migrations.append(step.name)
            report.metadata[f"{step.name}_execution_time_ms"] = (
                (datetime.now() - step_start).total_seconds() * 1000
            )
            report.track_changes(step.name, document, migrated)
            report.record_state(RunnerState.MIGRATING, step.to_version)
            document = migrated

        result = self._validator.validate(document, latest)
        if not result.ok:
            for violation in result.violations:
                logger.error(f"Post-migration violation: {violation}")
            return self._abort(report, PostMigrationValidationFailed(result.violations, latest), start_time)

        report.record_state(RunnerState.VALIDATED, latest)
        report.set_execution_time(start_time)
        report.metadata["final_version"] = latest

        logger.info(
            f"Settings migration completed: {from_version} -> {latest} "
            f"({len(report.applied_migrations)} step(s))"
        )
        return MigrationOutcome(
            success=True,
            config=document,
            from_version=from_version,
            to_version=latest,
            applied_steps=tuple(report.applied_migrations),
            report=report,
        )

    def migrate_one(self, document: Dict[str, Any], from_version: int) -> Dict[str, Any]:
        """
        Apply only the step registered at ``from_version``, without validation.

        Raises:
            MissingMigrationStep: If no step starts at ``from_version``
        """
        step = self._registry.get(from_version)
        if step is None:
            raise MissingMigrationStep(from_version)
        return step.apply(document)

    def _abort(self, report: MigrationReport, error: MigrationError, start_time: datetime) -> MigrationOutcome:
        report.add_error(str(error))
        report.record_state(RunnerState.aborted_for(error), report.from_version)
        report.set_execution_time(start_time)
        report.metadata["failure_kind"] = error.kind

        logger.error(f"Settings migration aborted ({error.kind}): {error}")
        return MigrationOutcome(
            success=False,
            config=None,
            from_version=report.from_version,
            to_version=report.to_version,
            error=error,
            report=report,
        )


__all__ = ["MigrationOutcome", "MigrationReport", "MigrationRunner", "RunnerState"]
