"""
Structural validation of settings documents against a schema version.

Validation is total: it always returns a ``ValidationResult`` and never raises.
Structural mismatches (missing fields, wrong primitive types, unknown enum
values, out-of-range numbers) come back as ``Violation`` records.

The validated document itself is returned untouched; pydantic is only used to
check it, never to rewrite it.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from loguru import logger
from pydantic import ValidationError

from confchain.migration.versions import CURRENT_VERSION, VERSION_FIELD, is_schema_version
from .models import SCHEMA_MODELS, SettingsModel

# Keep violation reports readable when a field holds something huge
_MAX_ACTUAL_LENGTH = 120


@dataclass(frozen=True)
class Violation:
    """
    One structural mismatch.

    Attributes:
        path: Dotted path to the offending field ("" for the document itself)
        expected: What the schema requires there
        actual: What was found
    """

    path: str
    expected: str
    actual: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "expected": self.expected, "actual": self.actual}

    def __str__(self) -> str:
        return f"{self.path or '<document>'}: expected {self.expected}, got {self.actual}"


@dataclass(frozen=True)
class ValidationResult:
    """
    ``Ok(document)`` when ``violations`` is empty, ``Err(violations)`` otherwise.

    Truthiness follows ``ok``.
    """

    document: Any
    version: Optional[int]
    violations: Tuple[Violation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.violations

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, document: Any, version: int) -> "ValidationResult":
        return cls(document=document, version=version)

    @classmethod
    def failure(cls, document: Any, version: Optional[int], violations: Iterable[Violation]) -> "ValidationResult":
        return cls(document=document, version=version, violations=tuple(violations))


def _describe_actual(value: Any) -> str:
    text = f"{type(value).__name__} {value!r}"
    if len(text) > _MAX_ACTUAL_LENGTH:
        text = text[:_MAX_ACTUAL_LENGTH - 3] + "..."
    return text


def _violation_from_error(error: Dict[str, Any]) -> Violation:
    path = ".".join(str(part) for part in error.get("loc", ()))
    if error.get("type") == "missing":
        return Violation(path=path, expected="field to be present", actual="missing")
    message = error.get("msg", "valid value")
    expected = message[len("Input should be "):] if message.startswith("Input should be ") else message
    return Violation(path=path, expected=expected, actual=_describe_actual(error.get("input")))


class SchemaValidator:
    """
    Checks documents against the per-version pydantic models.

    Example:
        >>> validator = SchemaValidator()
        >>> result = validator.validate({"version": 42}, 42)
        >>> result.ok
        False
        >>> result.violations[0].path
        'language'
    """

    def __init__(self, models: Optional[Dict[int, Type[SettingsModel]]] = None) -> None:
        self._models = dict(models if models is not None else SCHEMA_MODELS)

    def known_versions(self) -> Sequence[int]:
        return tuple(sorted(self._models))

    def validate(self, document: Any, version: int) -> ValidationResult:
        """
        Validate ``document`` against the schema of ``version``.

        Args:
            document: Any value; non-mappings are reported, not rejected with an error
            version: Schema version to check against

        Returns:
            ValidationResult carrying the original document and any violations
        """
        try:
            return self._validate(document, version)
        except Exception as e:  # validation must never raise
            logger.error(f"Schema validation aborted unexpectedly at version {version}: {e}")
            return ValidationResult.failure(document, version, [
                Violation(path="", expected="document that can be validated", actual=f"internal error: {e}")
            ])

    def _validate(self, document: Any, version: int) -> ValidationResult:
        model = self._models.get(version) if is_schema_version(version) else None
        if model is None:
            return ValidationResult.failure(document, version, [
                Violation(
                    path=VERSION_FIELD,
                    expected=f"one of the known schema versions {list(self.known_versions())}",
                    actual=_describe_actual(version),
                )
            ])

        if not isinstance(document, Mapping):
            return ValidationResult.failure(document, version, [
                Violation(path="", expected="a mapping", actual=type(document).__name__)
            ])

        violations: List[Violation] = []

        stored_version = document.get(VERSION_FIELD)
        if VERSION_FIELD in document and stored_version != version:
            violations.append(Violation(
                path=VERSION_FIELD,
                expected=str(version),
                actual=_describe_actual(stored_version),
            ))

        try:
            model.model_validate(dict(document))
        except ValidationError as e:
            for error in e.errors(include_url=False):
                violation = _violation_from_error(error)
                if violation.path == VERSION_FIELD and violations:
                    continue
                violations.append(violation)

        if violations:
            logger.debug(f"Document failed version {version} validation with {len(violations)} violation(s)")
            return ValidationResult.failure(document, version, violations)
        return ValidationResult.success(document, version)

    def validate_default(self, document: Optional[Any] = None, version: int = CURRENT_VERSION) -> ValidationResult:
        """Sanity-check the default document (or ``document``) at ``version``."""
        if document is None:
            from confchain.defaults import default_config
            document = default_config()
        return self.validate(document, version)


__all__ = ["SchemaValidator", "ValidationResult", "Violation"]
