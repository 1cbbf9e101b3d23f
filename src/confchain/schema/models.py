"""
Pydantic models describing the settings document at every schema version.

Each schema version is a distinct named record (``ConfigV30`` ... ``ConfigV42``)
that subclasses its predecessor and adds or narrows exactly the fields its
version bump introduced, mirroring the migration step for that bump.

Field names are snake_case in Python and bound to the persisted camelCase keys
through aliases. Models are strict (no "1" -> 1 coercion, bools are not ints) and
allow extra keys so unrelated user data is never rejected.
"""

from typing import Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SettingsModel(BaseModel):
    """Base for every section model."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",  # Unknown fields belong to the user, keep them
        strict=True,
        frozen=True,
    )


# --- Enumerations ---

LanguageLevel = Literal["beginner", "intermediate", "advanced"]
TranslateMode = Literal["bilingual", "translationOnly"]
PageRange = Literal["main", "all"]
NodeHotkey = Literal["Alt", "Control", "Shift", "`"]
ClickAction = Literal["panel", "translate"]
StylePreset = Literal["default", "blur", "underline", "dashed", "highlight", "weakened", "border"]
InputDirection = Literal["normal", "reverse", "cycle"]

ProviderKeyV30 = Literal[
    "google", "microsoft", "deeplx", "openai", "deepseek", "gemini", "grok",
    "amazonBedrock", "openaiCompatible", "anthropic", "openrouter",
]
ProviderKeyV41 = Literal[
    "google-translate", "microsoft-translate", "deeplx", "openai", "deepseek", "google",
    "xai", "bedrock", "openai-compatible", "anthropic", "openrouter",
]


# --- Sections present since the baseline schema ---

class LanguageConfig(SettingsModel):
    source_code: str
    target_code: str
    level: LanguageLevel


class ModelSelection(SettingsModel):
    model: str
    is_custom_model: bool
    custom_model: Optional[str] = None


class ProviderModels(SettingsModel):
    read: Optional[ModelSelection] = None
    translate: Optional[ModelSelection] = None


class ProviderConfig(SettingsModel):
    id: str = Field(min_length=1)
    enabled: bool
    name: str
    provider: ProviderKeyV30
    api_key: Optional[str] = None
    base_url: Optional[str] = Field(default=None, alias="baseURL")
    models: Optional[ProviderModels] = None


class ReadConfig(SettingsModel):
    provider_id: str


class NodeTranslationConfig(SettingsModel):
    enabled: bool
    hotkey: NodeHotkey


class PageTranslationConfig(SettingsModel):
    range: PageRange
    auto_translate_patterns: List[str]
    auto_translate_languages: List[str]
    shortcut: List[str]


class PromptPattern(SettingsModel):
    id: str
    name: str
    prompt: str


class CustomPromptsConfig(SettingsModel):
    prompt_id: Optional[str] = None
    patterns: List[PromptPattern]


class RequestQueueConfig(SettingsModel):
    capacity: int = Field(gt=0)
    rate: float = Field(gt=0)


class TranslateConfig(SettingsModel):
    provider_id: str
    mode: TranslateMode
    node: NodeTranslationConfig
    page: PageTranslationConfig
    custom_prompts_config: CustomPromptsConfig
    request_queue_config: RequestQueueConfig


class TTSConfig(SettingsModel):
    provider_id: Optional[str] = None
    model: str
    voice: str
    speed: float = Field(ge=0.25, le=4.0)


class FloatingButtonConfig(SettingsModel):
    enabled: bool
    position: float = Field(ge=0.0, le=1.0)
    disabled_floating_button_patterns: List[str]


class SideContentConfig(SettingsModel):
    width: int = Field(gt=0)


class SelectionToolbarConfig(SettingsModel):
    enabled: bool
    disabled_selection_toolbar_patterns: List[str]


class BetaExperienceConfig(SettingsModel):
    enabled: bool


class ConfigV30(SettingsModel):
    """Baseline schema, the oldest any installation can hold."""

    version: int = Field(ge=0)
    language: LanguageConfig
    providers_config: List[ProviderConfig]
    read: ReadConfig
    translate: TranslateConfig
    tts: TTSConfig
    floating_button: FloatingButtonConfig
    side_content: SideContentConfig
    selection_toolbar: SelectionToolbarConfig
    beta_experience: BetaExperienceConfig


# --- v31: context menu ---

class ContextMenuConfigV31(SettingsModel):
    enabled: bool


class ConfigV31(ConfigV30):
    context_menu: ContextMenuConfigV31


# --- v32: floating button click action ---

class FloatingButtonConfigV32(FloatingButtonConfig):
    click_action: ClickAction


class ConfigV32(ConfigV31):
    floating_button: FloatingButtonConfigV32


# --- v33: LLM detection on page translation ---

class PageTranslationConfigV33(PageTranslationConfig):
    enable_llm_detection: bool = Field(alias="enableLLMDetection")


class TranslateConfigV33(TranslateConfig):
    page: PageTranslationConfigV33


class ConfigV33(ConfigV32):
    translate: TranslateConfigV33


# --- v34: preload ---

class PreloadConfig(SettingsModel):
    margin: int = Field(ge=0)
    threshold: float = Field(ge=0.0, le=1.0)


class PageTranslationConfigV34(PageTranslationConfigV33):
    preload: PreloadConfig


class TranslateConfigV34(TranslateConfigV33):
    page: PageTranslationConfigV34


class ConfigV34(ConfigV33):
    translate: TranslateConfigV34


# --- v35: translation node style ---

class TranslationNodeStyleConfig(SettingsModel):
    preset: StylePreset
    is_custom: bool
    custom_css: Optional[str] = Field(alias="customCSS")


class TranslateConfigV35(TranslateConfigV34):
    translation_node_style: TranslationNodeStyleConfig


class ConfigV35(ConfigV34):
    translate: TranslateConfigV35


# --- v36: system prompt on custom prompts ---

class PromptPatternV36(PromptPattern):
    system_prompt: str


class CustomPromptsConfigV36(CustomPromptsConfig):
    patterns: List[PromptPatternV36]


class TranslateConfigV36(TranslateConfigV35):
    custom_prompts_config: CustomPromptsConfigV36


class ConfigV36(ConfigV35):
    translate: TranslateConfigV36


# --- v37: batch queue ---

class BatchQueueConfig(SettingsModel):
    max_characters_per_batch: int = Field(gt=0)
    max_items_per_batch: int = Field(gt=0)


class TranslateConfigV37(TranslateConfigV36):
    batch_queue_config: BatchQueueConfig


class ConfigV37(ConfigV36):
    translate: TranslateConfigV37


# --- v38: AI content awareness ---

class TranslateConfigV38(TranslateConfigV37):
    enable_ai_content_aware: bool = Field(alias="enableAIContentAware")


class ConfigV38(ConfigV37):
    translate: TranslateConfigV38


# --- v39 / v40: input translation ---

class InputTranslationConfigV39(SettingsModel):
    enabled: bool
    direction: InputDirection
    time_threshold: int = Field(gt=0)


class ConfigV39(ConfigV38):
    input_translation: InputTranslationConfigV39


class InputTranslationConfigV40(InputTranslationConfigV39):
    show_toast: bool


class ConfigV40(ConfigV39):
    input_translation: InputTranslationConfigV40


# --- v41: provider keys renamed ---

class ProviderConfigV41(ProviderConfig):
    provider: ProviderKeyV41


class ConfigV41(ConfigV40):
    providers_config: List[ProviderConfigV41]


# --- v42: context menu read action ---

class ContextMenuConfigV42(SettingsModel):
    translate_enabled: bool
    read_enabled: bool


class ConfigV42(ConfigV41):
    context_menu: ContextMenuConfigV42


SCHEMA_MODELS: Dict[int, Type[SettingsModel]] = {
    30: ConfigV30,
    31: ConfigV31,
    32: ConfigV32,
    33: ConfigV33,
    34: ConfigV34,
    35: ConfigV35,
    36: ConfigV36,
    37: ConfigV37,
    38: ConfigV38,
    39: ConfigV39,
    40: ConfigV40,
    41: ConfigV41,
    42: ConfigV42,
}


def get_schema_model(version: int) -> Optional[Type[SettingsModel]]:
    """Return the model for ``version`` or None when the version is unknown."""
    return SCHEMA_MODELS.get(version)


__all__ = [
    "SettingsModel",
    "SCHEMA_MODELS",
    "get_schema_model",
] + [model.__name__ for model in SCHEMA_MODELS.values()]
