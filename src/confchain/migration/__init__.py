"""
Settings schema migration infrastructure.

Exposes the migration step type, the version registry, the built-in step chain
and the runner that applies it.

Usage Examples:
    >>> from confchain.migration import MigrationRunner, CURRENT_VERSION
    >>> outcome = MigrationRunner().run(stored_document, stored_version=35)
    >>> outcome.to_version == CURRENT_VERSION
    True
"""

from .versions import (
    CURRENT_VERSION,
    LOWEST_VERSION,
    SCHEMA_HISTORY,
    VERSION_FIELD,
    normalize_stored_version,
    read_document_version,
)
from .steps import MigrationStep, migration_step
from .registry import VersionRegistry
from .migrators import (
    BUILTIN_STEPS,
    PROVIDER_KEY_RENAMES,
    build_default_registry,
    create_registry,
    describe_chain,
)
from .runner import MigrationOutcome, MigrationReport, MigrationRunner, RunnerState

__all__ = [
    "CURRENT_VERSION",
    "LOWEST_VERSION",
    "SCHEMA_HISTORY",
    "VERSION_FIELD",
    "normalize_stored_version",
    "read_document_version",
    "MigrationStep",
    "migration_step",
    "VersionRegistry",
    "BUILTIN_STEPS",
    "PROVIDER_KEY_RENAMES",
    "build_default_registry",
    "create_registry",
    "describe_chain",
    "MigrationOutcome",
    "MigrationReport",
    "MigrationRunner",
    "RunnerState",
]
