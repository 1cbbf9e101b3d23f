"""
Registry of migration steps indexed by the version they upgrade from.

The registry is assembled once at startup. ``seal()`` verifies that the steps
form one unbroken chain and freezes the registry; after that it is read-only.
Lookups are O(1) dictionary hits keyed by ``from_version``.
"""

import threading
from typing import Dict, Iterable, Iterator, Optional, Tuple

from loguru import logger

from confchain.exceptions import FutureVersionDetected, MissingMigrationStep, RegistryError
from .steps import MigrationStep


class VersionRegistry:
    """
    Ordered, gapless collection of migration steps.

    Example:
        >>> registry = VersionRegistry([migrate_v30_to_v31, migrate_v31_to_v32])
        >>> registry.seal()
        >>> registry.latest_version
        32
        >>> [s.name for s in registry.steps_from(31)]
        ['migrate_v31_to_v32']
    """

    def __init__(
        self,
        steps: Optional[Iterable[MigrationStep]] = None,
        lowest: Optional[int] = None,
        latest: Optional[int] = None,
    ) -> None:
        """
        Args:
            steps: Steps to register immediately
            lowest: Oldest version the chain must start from (inferred when None)
            latest: Version the chain must reach (inferred when None)
        """
        self._steps: Dict[int, MigrationStep] = {}
        self._declared_lowest = lowest
        self._declared_latest = latest
        self._sealed = False
        self._lock = threading.RLock()

        for step in steps or ():
            self.register(step)

    def register(self, step: MigrationStep) -> None:
        """
        Add a step.

        Raises:
            RegistryError: REGISTRY_002 for non-steps, REGISTRY_003 once sealed,
                REGISTRY_005 for a step outside the declared version range,
                REGISTRY_001 when a step from the same version already exists
        """
        if not isinstance(step, MigrationStep):
            raise RegistryError(
                f"Only MigrationStep instances can be registered, got {type(step).__name__}",
                error_code="REGISTRY_002",
            )

        with self._lock:
            if self._sealed:
                raise RegistryError(
                    f"Cannot register {step.name}: registry is sealed",
                    error_code="REGISTRY_003",
                    context={"from_version": step.from_version},
                )

            lowest, latest = self._declared_lowest, self._declared_latest
            if (lowest is not None and step.from_version < lowest) or (
                latest is not None and step.from_version >= latest
            ):
                raise RegistryError(
                    f"Migration step {step.name} lies outside {lowest} -> {latest}",
                    error_code="REGISTRY_005",
                    context={
                        "from_version": step.from_version,
                        "lowest_version": lowest,
                        "latest_version": latest,
                    },
                )

            existing = self._steps.get(step.from_version)
            if existing is not None:
                raise RegistryError(
                    f"Duplicate migration step from version {step.from_version}: "
                    f"{existing.name} and {step.name}",
                    error_code="REGISTRY_001",
                    context={
                        "from_version": step.from_version,
                        "registered_step": existing.name,
                        "rejected_step": step.name,
                    },
                )

            self._steps[step.from_version] = step
            logger.debug(f"Registered migration step {step.name} ({step.from_version} -> {step.to_version})")

    def seal(self) -> "VersionRegistry":
        """
        Check the chain is contiguous and freeze the registry.

        Returns:
            self, for chaining

        Raises:
            RegistryError: REGISTRY_004 naming the first missing version
        """
        with self._lock:
            missing = self.missing_versions()
            if missing:
                raise RegistryError(
                    f"Migration chain has a gap: no step from version {missing[0]}",
                    error_code="REGISTRY_004",
                    context={
                        "missing_versions": missing,
                        "lowest_version": self.lowest_version,
                        "latest_version": self.latest_version,
                    },
                )
            self._sealed = True

        logger.info(
            f"Migration registry sealed with {len(self._steps)} steps "
            f"({self.lowest_version} -> {self.latest_version})"
        )
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def latest_version(self) -> int:
        """
        Version documents are upgraded to: the declared target when one was
        given, otherwise the highest ``to_version`` registered (0 when empty).
        """
        if self._declared_latest is not None:
            return self._declared_latest
        if not self._steps:
            return 0
        return max(self._steps) + 1

    @property
    def lowest_version(self) -> int:
        """Declared lowest version, else lowest ``from_version``, else ``latest_version``."""
        if self._declared_lowest is not None:
            return self._declared_lowest
        if not self._steps:
            return self.latest_version
        return min(self._steps)

    def missing_versions(self) -> Tuple[int, ...]:
        """Versions between lowest and latest that have no outgoing step."""
        return tuple(
            version
            for version in range(self.lowest_version, self.latest_version)
            if version not in self._steps
        )

    def get(self, from_version: int) -> Optional[MigrationStep]:
        return self._steps.get(from_version)

    def steps_from(self, version: int) -> Tuple[MigrationStep, ...]:
        """
        Steps needed to bring a document at ``version`` to the latest version.

        Args:
            version: Schema version of the document

        Returns:
            Steps in ascending order; empty when ``version`` is already latest

        Raises:
            FutureVersionDetected: If ``version`` is above the latest version
            MissingMigrationStep: If any version on the way has no step. No
                partial sequence is ever returned.
        """
        latest = self.latest_version
        if version > latest:
            raise FutureVersionDetected(version, latest)

        chain = []
        for current in range(version, latest):
            step = self._steps.get(current)
            if step is None:
                raise MissingMigrationStep(current, context={"requested_from": version})
            chain.append(step)
        return tuple(chain)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, from_version: object) -> bool:
        return from_version in self._steps

    def __iter__(self) -> Iterator[MigrationStep]:
        return iter(self._steps[v] for v in sorted(self._steps))

    def __repr__(self) -> str:
        return (
            f"VersionRegistry(steps={len(self._steps)}, lowest={self.lowest_version}, "
            f"latest={self.latest_version}, sealed={self._sealed})"
        )


__all__ = ["VersionRegistry"]
