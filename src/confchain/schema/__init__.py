"""Per-version settings schemas and the structural validator built on them."""

from .models import SCHEMA_MODELS, SettingsModel, get_schema_model
from .validator import SchemaValidator, ValidationResult, Violation

__all__ = [
    "SCHEMA_MODELS",
    "SettingsModel",
    "get_schema_model",
    "SchemaValidator",
    "ValidationResult",
    "Violation",
]
