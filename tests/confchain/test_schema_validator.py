"""
Tests for the per-version schema models and the total SchemaValidator.
"""

from copy import deepcopy

import pytest
from hypothesis import given, strategies as st

from confchain.migration import CURRENT_VERSION, LOWEST_VERSION
from confchain.schema import SCHEMA_MODELS, SchemaValidator, ValidationResult, Violation, get_schema_model
from confchain.schema.models import ConfigV30, ConfigV42

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.floats(allow_nan=False) | st.text(max_size=10),
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=20,
)


class TestModels:
    def test_one_model_per_version(self):
        assert sorted(SCHEMA_MODELS) == list(range(LOWEST_VERSION, CURRENT_VERSION + 1))
        assert get_schema_model(9999) is None

    def test_models_form_an_inheritance_chain(self):
        for version in range(LOWEST_VERSION + 1, CURRENT_VERSION + 1):
            assert issubclass(SCHEMA_MODELS[version], SCHEMA_MODELS[version - 1])

    def test_default_document_parses_into_latest_model(self, latest_document):
        model = ConfigV42.model_validate(latest_document)
        assert model.context_menu.read_enabled is False
        assert model.input_translation.time_threshold == 300
        assert model.translate.page.enable_llm_detection is False
        assert model.translate.translation_node_style.custom_css is None

    def test_models_are_frozen(self, latest_document):
        model = ConfigV42.model_validate(latest_document)
        with pytest.raises(Exception):
            model.version = 1


class TestValidation:
    def test_default_document_is_valid(self, validator):
        result = validator.validate_default()
        assert result.ok
        assert bool(result) is True
        assert result.version == CURRENT_VERSION

    def test_document_returned_unchanged(self, validator, latest_document):
        latest_document["userNote"] = {"kept": True}
        result = validator.validate(latest_document, CURRENT_VERSION)

        assert result.ok
        assert result.document is latest_document
        assert result.document["userNote"] == {"kept": True}

    def test_v030_document_is_valid_at_30_only(self, validator, v030_document):
        assert validator.validate(v030_document, 30).ok

        result = validator.validate(v030_document, 31)
        assert not result.ok
        assert "version" in {v.path for v in result.violations}
        assert "contextMenu" in {v.path for v in result.violations}

    def test_missing_field(self, validator, latest_document):
        del latest_document["inputTranslation"]["showToast"]
        result = validator.validate(latest_document, CURRENT_VERSION)

        assert result.violations == (
            Violation(path="inputTranslation.showToast", expected="field to be present", actual="missing"),
        )

    def test_strict_types_no_coercion(self, validator, latest_document):
        latest_document["sideContent"]["width"] = "420"
        latest_document["betaExperience"]["enabled"] = 1
        result = validator.validate(latest_document, CURRENT_VERSION)

        paths = {v.path for v in result.violations}
        assert paths == {"sideContent.width", "betaExperience.enabled"}
        width = next(v for v in result.violations if v.path == "sideContent.width")
        assert width.actual == "str '420'"

    def test_unknown_enum_value(self, validator, latest_document):
        latest_document["inputTranslation"]["direction"] = "sideways"
        result = validator.validate(latest_document, CURRENT_VERSION)

        violation, = result.violations
        assert violation.path == "inputTranslation.direction"
        assert "'normal'" in violation.expected
        assert "sideways" in violation.actual

    def test_out_of_range_numbers(self, validator, latest_document):
        latest_document["tts"]["speed"] = 0.1
        latest_document["floatingButton"]["position"] = 1.5
        latest_document["translate"]["requestQueueConfig"]["capacity"] = 0
        result = validator.validate(latest_document, CURRENT_VERSION)

        assert {v.path for v in result.violations} == {
            "tts.speed",
            "floatingButton.position",
            "translate.requestQueueConfig.capacity",
        }

    def test_old_provider_key_rejected_at_latest(self, validator, latest_document):
        latest_document["providersConfig"][0]["provider"] = "google"
        latest_document["providersConfig"][1]["provider"] = "microsoft"
        result = validator.validate(latest_document, CURRENT_VERSION)
        assert [v.path for v in result.violations] == ["providersConfig.1.provider"]

    def test_new_provider_key_rejected_before_rename(self, validator, v030_document):
        v030_document["providersConfig"][0]["provider"] = "google-translate"
        result = validator.validate(v030_document, 30)
        assert [v.path for v in result.violations] == ["providersConfig.0.provider"]

    def test_version_field_mismatch(self, validator, latest_document):
        latest_document["version"] = 41
        result = validator.validate(latest_document, CURRENT_VERSION)
        assert [v.path for v in result.violations] == ["version"]

    def test_unknown_version(self, validator, latest_document):
        result = validator.validate(latest_document, 7)
        violation, = result.violations
        assert violation.path == "version"
        assert "known schema versions" in violation.expected

    def test_long_actual_values_are_truncated(self, validator, latest_document):
        latest_document["language"]["level"] = "x" * 500
        violation, = validator.validate(latest_document, CURRENT_VERSION).violations
        assert len(violation.actual) <= 120
        assert violation.actual.endswith("...")

    def test_violation_rendering(self):
        violation = Violation(path="tts.speed", expected="a number", actual="str 'fast'")
        assert str(violation) == "tts.speed: expected a number, got str 'fast'"
        assert violation.to_dict() == {"path": "tts.speed", "expected": "a number", "actual": "str 'fast'"}
        assert str(Violation("", "a mapping", "list")) == "<document>: expected a mapping, got list"

    def test_result_constructors(self):
        assert ValidationResult.success({}, 42).ok
        failure = ValidationResult.failure({}, 42, [Violation("a", "b", "c")])
        assert not failure
        assert isinstance(failure.violations, tuple)

    def test_custom_model_table(self):
        validator = SchemaValidator({30: ConfigV30})
        assert validator.known_versions() == (30,)
        assert not validator.validate({"version": 42}, 42).ok


class TestTotality:
    @given(document=json_values, version=st.integers(min_value=-5, max_value=60))
    def test_never_raises_on_arbitrary_input(self, document, version):
        result = SchemaValidator().validate(document, version)
        assert isinstance(result, ValidationResult)
        assert result.document is document
        if not isinstance(document, dict):
            assert not result.ok

    @given(version=st.one_of(st.none(), st.text(max_size=5), st.booleans(), st.floats()))
    def test_non_integer_version_is_a_violation(self, version):
        result = SchemaValidator().validate({"version": 42}, version)
        assert [v.path for v in result.violations] == ["version"]

    @given(
        path=st.sampled_from([
            ("language", "sourceCode"),
            ("sideContent", "width"),
            ("tts", "speed"),
            ("contextMenu", "readEnabled"),
            ("translate", "batchQueueConfig", "maxItemsPerBatch"),
        ]),
        value=st.one_of(st.none(), st.lists(st.integers(), max_size=2), st.dictionaries(st.text(max_size=3), st.integers(), max_size=2)),
    )
    def test_corrupted_field_reported_at_its_path(self, path, value):
        from confchain.defaults import default_config

        document = default_config()
        target = document
        for key in path[:-1]:
            target = target[key]
        target[path[-1]] = deepcopy(value)

        result = SchemaValidator().validate(document, CURRENT_VERSION)
        assert ".".join(path) in {v.path for v in result.violations}
