"""
The migration step type.

A step upgrades a settings document from one schema version to the next. Steps
are immutable and their transforms are pure: no network, storage, clock or
environment access, and the input document is never mutated.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from .versions import VERSION_FIELD, is_schema_version

Transform = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class MigrationStep:
    """
    One version bump, ``from_version`` -> ``from_version + 1``.

    Attributes:
        from_version: Schema version the input document satisfies
        to_version: Schema version of the output, always ``from_version + 1``
        transform: Pure function producing the upgraded document
        name: Identifier used in reports (defaults to the transform's name)
        description: One-line summary of the shape delta

    Calling a step applies it and checks the transform's result.
    """

    from_version: int
    to_version: int
    transform: Transform = field(repr=False, compare=False)
    name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not is_schema_version(self.from_version):
            raise ValueError(f"from_version must be a non-negative integer, got {self.from_version!r}")
        if self.to_version != self.from_version + 1:
            raise ValueError(
                f"A migration step must advance exactly one version: "
                f"{self.from_version} -> {self.to_version}"
            )
        if not callable(self.transform):
            raise TypeError("Migration transform must be callable")

        if not self.name:
            object.__setattr__(
                self, "name",
                getattr(self.transform, "__name__", f"migrate_v{self.from_version}_to_v{self.to_version}"),
            )
        if not self.description:
            doc = (getattr(self.transform, "__doc__", None) or "").strip()
            object.__setattr__(self, "description", doc.splitlines()[0] if doc else "")

    def apply(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the transform and check that it produced a document tagged with
        ``to_version``.

        Raises:
            TypeError: If the transform returned something other than a mapping
            ValueError: If the returned document carries the wrong version
            Exception: Anything the transform itself raises
        """
        result = self.transform(document)
        if not isinstance(result, Mapping):
            raise TypeError(
                f"{self.name} returned {type(result).__name__}, expected a mapping"
            )
        if result.get(VERSION_FIELD) != self.to_version:
            raise ValueError(
                f"{self.name} produced version {result.get(VERSION_FIELD)!r}, "
                f"expected {self.to_version}"
            )
        return dict(result)

    __call__ = apply


def migration_step(from_version: int, description: str = "") -> Callable[[Transform], MigrationStep]:
    """
    Decorator turning a transform function into a ``MigrationStep``.

    Example:
        >>> @migration_step(30)
        ... def migrate_v30_to_v31(config):
        ...     '''Add the context menu section.'''
        ...     return {**config, "version": 31, "contextMenu": {"enabled": True}}
        >>> migrate_v30_to_v31.to_version
        31
    """
    def decorator(func: Transform) -> MigrationStep:
        return MigrationStep(
            from_version=from_version,
            to_version=from_version + 1,
            transform=func,
            name=func.__name__,
            description=description,
        )
    return decorator


__all__ = ["MigrationStep", "Transform", "migration_step"]
