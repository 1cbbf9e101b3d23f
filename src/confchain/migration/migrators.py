"""
Built-in migration steps for the settings document, one per schema version bump.

Every function here is a pure transform decorated with ``@migration_step`` and
documents the exact shape delta it introduces. Each one deep-copies its input,
touches only the fields named in its docstring and stamps the new version.

A document that already satisfies a step's source schema never makes a step
raise. Malformed documents can (a missing ``translate`` section, say); the runner
reports that as ``MigrationStepFailed`` and nothing is persisted.

Chain (lowest shipped schema is 30):

    30 -> 31  contextMenu section
    31 -> 32  floatingButton.clickAction
    32 -> 33  translate.page.enableLLMDetection
    33 -> 34  translate.page.preload
    34 -> 35  translate.translationNodeStyle
    35 -> 36  systemPrompt on custom prompt patterns
    36 -> 37  translate.batchQueueConfig
    37 -> 38  translate.enableAIContentAware
    38 -> 39  inputTranslation section
    39 -> 40  inputTranslation.showToast
    40 -> 41  provider keys renamed
    41 -> 42  contextMenu.enabled -> translateEnabled, contextMenu.readEnabled
"""

from copy import deepcopy
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from loguru import logger

from .registry import VersionRegistry
from .steps import MigrationStep, migration_step
from .versions import CURRENT_VERSION, LOWEST_VERSION, VERSION_FIELD


# Defaults introduced by individual steps. Shared with the default document so
# a fresh install and a migrated install agree.
CONTEXT_MENU_DEFAULTS_V31: Dict[str, Any] = {"enabled": True}
FLOATING_BUTTON_CLICK_ACTION_DEFAULT = "panel"
PAGE_PRELOAD_DEFAULTS: Dict[str, Any] = {"margin": 1000, "threshold": 0}
TRANSLATION_NODE_STYLE_DEFAULTS: Dict[str, Any] = {
    "preset": "default",
    "isCustom": False,
    "customCSS": None,
}
BATCH_QUEUE_DEFAULTS: Dict[str, Any] = {"maxCharactersPerBatch": 1000, "maxItemsPerBatch": 4}
INPUT_TRANSLATION_DEFAULTS_V39: Dict[str, Any] = {
    "enabled": True,
    "direction": "normal",
    "timeThreshold": 300,
}
INPUT_TRANSLATION_SHOW_TOAST_DEFAULT = True
CONTEXT_MENU_READ_ENABLED_DEFAULT = False
# contextMenu.enabled is spelled translateEnabled from v42 on, next to readEnabled
CONTEXT_MENU_DEFAULTS_V42: Dict[str, Any] = {
    "translateEnabled": True,
    "readEnabled": CONTEXT_MENU_READ_ENABLED_DEFAULT,
}

# Applied with a single lookup per entry, so "google" becomes "google-translate"
# and is not then picked up again by "gemini" -> "google".
PROVIDER_KEY_RENAMES: Dict[str, str] = {
    "google": "google-translate",
    "microsoft": "microsoft-translate",
    "gemini": "google",
    "grok": "xai",
    "amazonBedrock": "bedrock",
    "openaiCompatible": "openai-compatible",
}


def _bump(config: Dict[str, Any], version: int) -> Dict[str, Any]:
    migrated = deepcopy(config)
    migrated[VERSION_FIELD] = version
    return migrated


def _with_defaults(current: Any, defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Fill the keys ``current`` lacks from ``defaults``; a non-mapping is replaced."""
    section = deepcopy(defaults)
    if isinstance(current, dict):
        section.update(current)
    return section


@migration_step(30, "Add the contextMenu section")
def migrate_v30_to_v31(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add the right-click context menu section.

    Changes Applied:
    - ``contextMenu = {"enabled": true}``; an existing contextMenu section keeps
      its keys and gains the missing ones
    """
    migrated = _bump(config, 31)
    migrated["contextMenu"] = _with_defaults(migrated.get("contextMenu"), CONTEXT_MENU_DEFAULTS_V31)
    return migrated


@migration_step(31, "Add floatingButton.clickAction")
def migrate_v31_to_v32(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Changes Applied:
    - ``floatingButton.clickAction = "panel"`` when absent
    """
    migrated = _bump(config, 32)
    migrated["floatingButton"].setdefault("clickAction", FLOATING_BUTTON_CLICK_ACTION_DEFAULT)
    return migrated


@migration_step(32, "Add translate.page.enableLLMDetection")
def migrate_v32_to_v33(config: Dict[str, Any]) -> Dict[str, Any]:
    migrated = _bump(config, 33)
    migrated["translate"]["page"].setdefault("enableLLMDetection", False)
    return migrated


@migration_step(33, "Add translate.page.preload")
def migrate_v33_to_v34(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add viewport preloading parameters for page translation.

    Changes Applied:
    - ``translate.page.preload = {"margin": 1000, "threshold": 0}``, filling the
      keys a partial preload section lacks
    """
    migrated = _bump(config, 34)
    page = migrated["translate"]["page"]
    page["preload"] = _with_defaults(page.get("preload"), PAGE_PRELOAD_DEFAULTS)
    return migrated


@migration_step(34, "Add translate.translationNodeStyle")
def migrate_v34_to_v35(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Changes Applied:
    - ``translate.translationNodeStyle = {"preset": "default", "isCustom": false,
      "customCSS": null}``, filling the keys a partial section lacks
    """
    migrated = _bump(config, 35)
    translate = migrated["translate"]
    translate["translationNodeStyle"] = _with_defaults(
        translate.get("translationNodeStyle"), TRANSLATION_NODE_STYLE_DEFAULTS
    )
    return migrated


@migration_step(35, "Add systemPrompt to custom prompt patterns")
def migrate_v35_to_v36(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Custom prompts gained a separate system prompt.

    Changes Applied:
    - every ``translate.customPromptsConfig.patterns[*]`` gets ``systemPrompt = ""``
      when absent; the ``prompt`` text and all other pattern fields are kept
    """
    migrated = _bump(config, 36)
    for pattern in migrated["translate"]["customPromptsConfig"]["patterns"]:
        pattern.setdefault("systemPrompt", "")
    return migrated


@migration_step(36, "Add translate.batchQueueConfig")
def migrate_v36_to_v37(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Changes Applied:
    - ``translate.batchQueueConfig = {"maxCharactersPerBatch": 1000,
      "maxItemsPerBatch": 4}``, filling the keys a partial section lacks
    """
    migrated = _bump(config, 37)
    translate = migrated["translate"]
    translate["batchQueueConfig"] = _with_defaults(translate.get("batchQueueConfig"), BATCH_QUEUE_DEFAULTS)
    return migrated


@migration_step(37, "Add translate.enableAIContentAware")
def migrate_v37_to_v38(config: Dict[str, Any]) -> Dict[str, Any]:
    migrated = _bump(config, 38)
    migrated["translate"].setdefault("enableAIContentAware", False)
    return migrated


@migration_step(38, "Add the inputTranslation section")
def migrate_v38_to_v39(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add input field translation (triple-space trigger).

    Changes Applied:
    - ``inputTranslation = {"enabled": true, "direction": "normal",
      "timeThreshold": 300}``; an existing section keeps its values and gains
      the missing keys

    The last cycle direction is session state and is not persisted.
    """
    migrated = _bump(config, 39)
    migrated["inputTranslation"] = _with_defaults(
        migrated.get("inputTranslation"), INPUT_TRANSLATION_DEFAULTS_V39
    )
    return migrated


@migration_step(39, "Add inputTranslation.showToast")
def migrate_v39_to_v40(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add the toast toggle to input translation.

    Changes Applied:
    - ``inputTranslation.showToast = true`` when absent
    - missing v39 fields are filled from their defaults; values the user already
      set are kept
    """
    migrated = _bump(config, 40)
    section = _with_defaults(migrated.get("inputTranslation"), INPUT_TRANSLATION_DEFAULTS_V39)
    section.setdefault("showToast", INPUT_TRANSLATION_SHOW_TOAST_DEFAULT)
    migrated["inputTranslation"] = section
    return migrated


@migration_step(40, "Rename provider keys")
def migrate_v40_to_v41(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rename provider type keys in ``providersConfig``.

    Changes Applied:
    - ``provider`` of each providersConfig entry is renamed through
      ``PROVIDER_KEY_RENAMES``: google -> google-translate,
      microsoft -> microsoft-translate, gemini -> google, grok -> xai,
      amazonBedrock -> bedrock, openaiCompatible -> openai-compatible

    Entry ids, names, API keys, base URLs and model selections are untouched, and
    ``read.providerId`` / ``translate.providerId`` still resolve because they
    reference ids, not provider keys.
    """
    migrated = _bump(config, 41)
    for entry in migrated["providersConfig"]:
        old_key = entry.get("provider")
        if old_key in PROVIDER_KEY_RENAMES:
            entry["provider"] = PROVIDER_KEY_RENAMES[old_key]
    return migrated


@migration_step(41, "Split the context menu toggle into translate and read")
def migrate_v41_to_v42(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    The context menu gained a "read" action next to translate.

    Changes Applied:
    - ``contextMenu.enabled`` is renamed to ``contextMenu.translateEnabled``,
      keeping its value (true when absent)
    - ``contextMenu.readEnabled = false`` when absent
    """
    migrated = _bump(config, 42)
    menu = migrated.get("contextMenu")
    menu = dict(menu) if isinstance(menu, dict) else {}
    if "enabled" in menu:
        menu.setdefault("translateEnabled", menu.pop("enabled"))
    migrated["contextMenu"] = _with_defaults(menu, CONTEXT_MENU_DEFAULTS_V42)
    return migrated


BUILTIN_STEPS: Tuple[MigrationStep, ...] = (
    migrate_v30_to_v31,
    migrate_v31_to_v32,
    migrate_v32_to_v33,
    migrate_v33_to_v34,
    migrate_v34_to_v35,
    migrate_v35_to_v36,
    migrate_v36_to_v37,
    migrate_v37_to_v38,
    migrate_v38_to_v39,
    migrate_v39_to_v40,
    migrate_v40_to_v41,
    migrate_v41_to_v42,
)


def create_registry(steps=BUILTIN_STEPS, seal: bool = True) -> VersionRegistry:
    """
    Build a registry over ``steps`` spanning LOWEST_VERSION -> CURRENT_VERSION.

    Args:
        steps: Steps to register
        seal: Verify contiguity and freeze (raises RegistryError on a gap)
    """
    registry = VersionRegistry(steps, lowest=LOWEST_VERSION, latest=CURRENT_VERSION)
    if seal:
        registry.seal()
    return registry


@lru_cache(maxsize=1)
def build_default_registry() -> VersionRegistry:
    """The sealed registry of built-in steps, built once per process."""
    return create_registry(BUILTIN_STEPS)


def describe_chain(registry: VersionRegistry) -> List[Dict[str, Any]]:
    """Summaries of every step, ascending, for reports and the CLI."""
    summary = [
        {
            "name": step.name,
            "from_version": step.from_version,
            "to_version": step.to_version,
            "description": step.description,
        }
        for step in registry
    ]
    logger.debug(f"Described {len(summary)} migration steps")
    return summary


__all__ = [
    "BUILTIN_STEPS",
    "PROVIDER_KEY_RENAMES",
    "build_default_registry",
    "create_registry",
    "describe_chain",
] + [step.name for step in BUILTIN_STEPS]
