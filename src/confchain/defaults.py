"""
Default settings document written on first install.

The defaults are expressed at the current schema version and reuse the values
the migration steps introduce, so a fresh install and a fully migrated old
install start from the same defaults for every migrated field.
"""

from copy import deepcopy
from typing import Any, Dict

from confchain.migration.migrators import (
    BATCH_QUEUE_DEFAULTS,
    CONTEXT_MENU_DEFAULTS_V42,
    FLOATING_BUTTON_CLICK_ACTION_DEFAULT,
    INPUT_TRANSLATION_DEFAULTS_V39,
    INPUT_TRANSLATION_SHOW_TOAST_DEFAULT,
    PAGE_PRELOAD_DEFAULTS,
    TRANSLATION_NODE_STYLE_DEFAULTS,
)
from confchain.migration.versions import CURRENT_VERSION

DEFAULT_PROVIDER_ID = "microsoft-translate-default"

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": CURRENT_VERSION,
    "language": {
        "sourceCode": "auto",
        "targetCode": "eng",
        "level": "intermediate",
    },
    "providersConfig": [
        {
            "id": "google-translate-default",
            "enabled": True,
            "name": "Google Translate",
            "provider": "google-translate",
        },
        {
            "id": DEFAULT_PROVIDER_ID,
            "enabled": True,
            "name": "Microsoft Translator",
            "provider": "microsoft-translate",
        },
        {
            "id": "openai-default",
            "enabled": True,
            "name": "OpenAI",
            "provider": "openai",
            "apiKey": None,
            "baseURL": "https://api.openai.com/v1",
            "models": {
                "read": {"model": "gpt-4o-mini", "isCustomModel": False, "customModel": None},
                "translate": {"model": "gpt-4o-mini", "isCustomModel": False, "customModel": None},
            },
        },
    ],
    "read": {
        "providerId": "openai-default",
    },
    "translate": {
        "providerId": DEFAULT_PROVIDER_ID,
        "mode": "bilingual",
        "enableAIContentAware": False,
        "node": {
            "enabled": True,
            "hotkey": "Control",
        },
        "page": {
            "range": "main",
            "autoTranslatePatterns": [],
            "autoTranslateLanguages": [],
            "shortcut": ["alt", "q"],
            "enableLLMDetection": False,
            "preload": dict(PAGE_PRELOAD_DEFAULTS),
        },
        "customPromptsConfig": {
            "promptId": None,
            "patterns": [],
        },
        "requestQueueConfig": {
            "capacity": 200,
            "rate": 2,
        },
        "batchQueueConfig": dict(BATCH_QUEUE_DEFAULTS),
        "translationNodeStyle": dict(TRANSLATION_NODE_STYLE_DEFAULTS),
    },
    "tts": {
        "providerId": None,
        "model": "tts-1",
        "voice": "alloy",
        "speed": 1,
    },
    "floatingButton": {
        "enabled": True,
        "position": 0.66,
        "disabledFloatingButtonPatterns": [],
        "clickAction": FLOATING_BUTTON_CLICK_ACTION_DEFAULT,
    },
    "sideContent": {
        "width": 420,
    },
    "selectionToolbar": {
        "enabled": True,
        "disabledSelectionToolbarPatterns": [],
    },
    "betaExperience": {
        "enabled": False,
    },
    "contextMenu": dict(CONTEXT_MENU_DEFAULTS_V42),
    "inputTranslation": {
        **INPUT_TRANSLATION_DEFAULTS_V39,
        "showToast": INPUT_TRANSLATION_SHOW_TOAST_DEFAULT,
    },
}


def default_config() -> Dict[str, Any]:
    """A fresh, independent copy of ``DEFAULT_CONFIG``."""
    return deepcopy(DEFAULT_CONFIG)


__all__ = ["DEFAULT_CONFIG", "DEFAULT_PROVIDER_ID", "default_config"]
