"""
Schema version constants and history for the persisted settings document.

Schema versions are plain non-negative integers. Every version from
``LOWEST_VERSION`` up to ``CURRENT_VERSION`` has shipped, and each consecutive
pair is bridged by exactly one migration step.
"""

from typing import Any, Dict, Optional

from loguru import logger

# Oldest schema any installation can still hold
LOWEST_VERSION: int = 30

# Schema written by this build
CURRENT_VERSION: int = 42

VERSION_FIELD: str = "version"

# What each version introduced, for reports and the CLI
SCHEMA_HISTORY: Dict[int, Dict[str, Any]] = {
    30: {
        "description": "Baseline: language, providers, read, translate, tts and UI sections",
        "sections": [
            "language", "providersConfig", "read", "translate", "tts",
            "floatingButton", "sideContent", "selectionToolbar", "betaExperience",
        ],
    },
    31: {"description": "Context menu toggle", "adds": ["contextMenu.enabled"]},
    32: {"description": "Floating button click action", "adds": ["floatingButton.clickAction"]},
    33: {"description": "LLM language detection for page translation", "adds": ["translate.page.enableLLMDetection"]},
    34: {"description": "Viewport preload for page translation", "adds": ["translate.page.preload"]},
    35: {"description": "Translation node style presets", "adds": ["translate.translationNodeStyle"]},
    36: {"description": "System prompt on custom prompt patterns", "adds": ["translate.customPromptsConfig.patterns[].systemPrompt"]},
    37: {"description": "Batch request queue", "adds": ["translate.batchQueueConfig"]},
    38: {"description": "AI content awareness toggle", "adds": ["translate.enableAIContentAware"]},
    39: {"description": "Input field translation", "adds": ["inputTranslation"]},
    40: {"description": "Input translation toast", "adds": ["inputTranslation.showToast"]},
    41: {"description": "Provider keys renamed", "renames": ["providersConfig[].provider"]},
    42: {
        "description": "Context menu read action",
        "adds": ["contextMenu.readEnabled"],
        "renames": ["contextMenu.enabled -> contextMenu.translateEnabled"],
    },
}


def is_schema_version(value: Any) -> bool:
    """Return True for non-negative ints (bools excluded)."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def normalize_stored_version(value: Any, lowest: int = LOWEST_VERSION) -> int:
    """
    Turn the version tag read from storage into a schema version.

    A missing tag (``None``) means the document predates version tagging and is
    treated as the lowest known version.

    Args:
        value: Version tag as read from the store
        lowest: Version assumed for untagged documents

    Returns:
        int: The schema version to migrate from

    Raises:
        TypeError: If the tag is present but not a non-negative integer
    """
    if value is None:
        logger.debug(f"No stored version recorded, assuming version {lowest}")
        return lowest
    if not is_schema_version(value):
        raise TypeError(f"Stored version must be a non-negative integer, got {value!r}")
    return value


def read_document_version(document: Any) -> Optional[Any]:
    """Return the raw ``version`` tag of a document, or None when absent."""
    if isinstance(document, dict):
        return document.get(VERSION_FIELD)
    return None


__all__ = [
    "LOWEST_VERSION",
    "CURRENT_VERSION",
    "VERSION_FIELD",
    "SCHEMA_HISTORY",
    "is_schema_version",
    "normalize_stored_version",
    "read_document_version",
]
