"""
Tests for the migration runner: full-chain runs, failure reporting and the
properties every run must satisfy (chain equivalence, idempotence, determinism,
gap detection and future-version safety).
"""

from copy import deepcopy

import pytest
from hypothesis import given, strategies as st

from confchain.exceptions import (
    FutureVersionDetected,
    MigrationStepFailed,
    MissingMigrationStep,
    PostMigrationValidationFailed,
)
from confchain.migration import (
    BUILTIN_STEPS,
    CURRENT_VERSION,
    LOWEST_VERSION,
    MigrationRunner,
    MigrationStep,
    RunnerState,
    build_default_registry,
    create_registry,
)
from confchain.schema import SchemaValidator


def _walk_to(document, target):
    """Bring a version 30 document to ``target`` one step at a time."""
    for step in BUILTIN_STEPS:
        if step.from_version < target:
            document = step.apply(document)
    return document


class TestFullChain:
    def test_v30_document_reaches_latest(self, runner, v030_document):
        outcome = runner.run(v030_document, 30)

        assert outcome.success, outcome.error
        assert outcome.from_version == 30
        assert outcome.to_version == CURRENT_VERSION
        assert outcome.applied_steps == tuple(s.name for s in BUILTIN_STEPS)
        assert outcome.config["version"] == CURRENT_VERSION
        assert outcome.unwrap() is outcome.config

    def test_migrated_document_carries_every_new_section(self, runner, v030_document):
        config = runner.run(v030_document, 30).config

        assert config["contextMenu"] == {"translateEnabled": True, "readEnabled": False}
        assert config["floatingButton"]["clickAction"] == "panel"
        assert config["translate"]["page"]["preload"] == {"margin": 1000, "threshold": 0}
        assert config["translate"]["translationNodeStyle"]["preset"] == "default"
        assert config["translate"]["customPromptsConfig"]["patterns"][0]["systemPrompt"] == ""
        assert config["translate"]["batchQueueConfig"]["maxItemsPerBatch"] == 4
        assert config["translate"]["enableAIContentAware"] is False
        assert config["inputTranslation"] == {
            "enabled": True,
            "direction": "normal",
            "timeThreshold": 300,
            "showToast": True,
        }

    def test_input_document_is_not_mutated(self, runner, v030_document):
        snapshot = deepcopy(v030_document)
        runner.run(v030_document, 30)
        assert v030_document == snapshot

    @pytest.mark.parametrize("name", ["complex-config", "no-default-openai-model", "every-provider-key"])
    def test_v038_series_migrates(self, runner, v038_series, name):
        outcome = runner.run(deepcopy(v038_series[name]), 38)
        assert outcome.success, outcome.error
        assert outcome.applied_steps[0] == "migrate_v38_to_v39"

    def test_untagged_document_treated_as_lowest(self, runner, v030_series):
        document = deepcopy(v030_series["untagged"])
        outcome = runner.run(document, None)

        assert outcome.success, outcome.error
        assert outcome.from_version == LOWEST_VERSION
        assert len(outcome.applied_steps) == CURRENT_VERSION - LOWEST_VERSION
        assert outcome.config["tts"]["voice"] == "nova"

    def test_report_records_state_progression(self, runner, v038_document):
        report = runner.run(v038_document, 38).report

        states = [state for state, _ in report.state_trail]
        assert states[0] == RunnerState.LOADED
        assert states[1:-1] == [RunnerState.MIGRATING] * (CURRENT_VERSION - 38)
        assert report.final_state == RunnerState.VALIDATED

        summary = report.to_dict()
        assert summary["success"] is True
        assert summary["migration_path"] == "38 -> 39 -> 40 -> 41 -> 42"
        assert summary["config_changes"]["migrate_v38_to_v39.inputTranslation"] == "added"
        assert summary["config_changes"]["migrate_v40_to_v41.providersConfig"] == "modified"

    def test_version_field_mismatch_is_warned_and_corrected(self, runner, v038_document, caplog):
        v038_document["version"] = 37
        outcome = runner.run(v038_document, 38)

        assert outcome.success
        assert outcome.report.warnings
        assert "disagrees with the stored version tag" in caplog.text


class TestScenarios:
    def test_context_menu_section_added_with_default(self, runner):
        migrated = runner.migrate_one({"version": 30}, 30)
        assert migrated["contextMenu"] == {"enabled": True}

    def test_second_context_menu_field_keeps_first_value(self, runner, v030_document):
        document = _walk_to(v030_document, 41)
        document["contextMenu"]["enabled"] = False

        migrated = runner.migrate_one(document, 41)

        assert migrated["contextMenu"] == {"translateEnabled": False, "readEnabled": False}

    def test_input_translation_fully_populated(self, runner, v038_document):
        migrated = runner.migrate_one(runner.migrate_one(v038_document, 38), 39)
        assert migrated["inputTranslation"] == {
            "enabled": True,
            "direction": "normal",
            "timeThreshold": 300,
            "showToast": True,
        }

    def test_provider_rename_preserves_everything_else(self, runner, v038_series):
        original = deepcopy(v038_series["every-provider-key"])
        outcome = runner.run(deepcopy(original), 38)
        assert outcome.success, outcome.error
        config = outcome.config

        for before, after in zip(original["providersConfig"], config["providersConfig"]):
            assert after["id"] == before["id"]
            assert after.get("apiKey") == before.get("apiKey")
            assert after.get("baseURL") == before.get("baseURL")
            assert after.get("models") == before.get("models")
            assert {k: v for k, v in after.items() if k != "provider"} == \
                {k: v for k, v in before.items() if k != "provider"}

        assert config["translate"]["customPromptsConfig"] == original["translate"]["customPromptsConfig"]
        assert config["read"] == original["read"]
        assert config["translate"]["providerId"] == original["translate"]["providerId"]

    def test_future_version_fails_immediately(self, runner, v038_document):
        outcome = runner.run(v038_document, 9999)

        assert outcome.failed
        assert isinstance(outcome.error, FutureVersionDetected)
        assert outcome.error.stored_version == 9999
        assert outcome.config is None
        assert outcome.applied_steps == ()
        assert outcome.report.final_state == RunnerState.ABORTED_FUTURE_VERSION
        with pytest.raises(FutureVersionDetected):
            outcome.unwrap()

    @pytest.mark.parametrize("stored_version", [None, 38])
    def test_document_tagged_above_latest_is_a_future_version(self, runner, latest_document, stored_version):
        latest_document["version"] = 9999
        snapshot = deepcopy(latest_document)

        outcome = runner.run(latest_document, stored_version)

        assert outcome.failed
        assert isinstance(outcome.error, FutureVersionDetected)
        assert outcome.error.stored_version == 9999
        assert outcome.applied_steps == ()
        assert outcome.config is None
        assert latest_document == snapshot

    def test_untagged_store_uses_document_version(self, runner, v038_document):
        outcome = runner.run(v038_document, None)

        assert outcome.success, outcome.error
        assert outcome.from_version == 38
        assert outcome.applied_steps[0] == "migrate_v38_to_v39"
        assert not outcome.report.warnings

    def test_partial_context_menu_valid_at_30_reaches_latest(self, runner, validator, v030_document):
        v030_document["contextMenu"] = {"custom": 1}
        assert validator.validate(v030_document, 30).ok

        outcome = runner.run(v030_document, 30)

        assert outcome.success, outcome.error
        assert outcome.config["contextMenu"] == {"translateEnabled": True, "readEnabled": False, "custom": 1}


class TestFailures:
    @pytest.mark.parametrize("removed", range(len(BUILTIN_STEPS)))
    def test_gap_in_chain_aborts_without_partial_result(self, v030_document, removed):
        steps = BUILTIN_STEPS[:removed] + BUILTIN_STEPS[removed + 1:]
        missing = BUILTIN_STEPS[removed].from_version
        runner = MigrationRunner(create_registry(steps, seal=False))

        outcome = runner.run(v030_document, 30)

        assert outcome.failed
        assert isinstance(outcome.error, MissingMigrationStep)
        assert outcome.error.at_version == missing
        assert outcome.config is None
        assert outcome.applied_steps == ()
        assert outcome.report.applied_migrations == []

    def test_unsealed_registry_is_warned_about(self, caplog):
        MigrationRunner(create_registry(BUILTIN_STEPS, seal=False))
        assert "unsealed registry" in caplog.text

    def test_malformed_document_reports_failing_step(self, runner, v030_document):
        del v030_document["translate"]
        outcome = runner.run(v030_document, 30)

        assert isinstance(outcome.error, MigrationStepFailed)
        assert outcome.error.at_version == 32
        assert outcome.error.context["step"] == "migrate_v32_to_v33"
        assert isinstance(outcome.error.cause, KeyError)
        assert outcome.report.final_state == RunnerState.ABORTED_STEP_FAILED

    @pytest.mark.parametrize("bad_version", ["38", 38.0, True, -1, [38]])
    def test_unusable_stored_version(self, runner, v038_document, bad_version):
        outcome = runner.run(v038_document, bad_version)
        assert isinstance(outcome.error, MigrationStepFailed)
        assert outcome.error.kind == "step_failed"

    @pytest.mark.parametrize("document", [None, "settings", 42, ["version", 30]])
    def test_non_mapping_document(self, runner, document):
        outcome = runner.run(document, 30)
        assert isinstance(outcome.error, MigrationStepFailed)
        assert outcome.config is None

    def test_invalid_result_fails_validation(self, runner, v030_document):
        v030_document["translate"]["mode"] = "sideBySide"
        v030_document["tts"]["speed"] = 9

        outcome = runner.run(v030_document, 30)

        assert isinstance(outcome.error, PostMigrationValidationFailed)
        paths = {v.path for v in outcome.error.violations}
        assert paths == {"translate.mode", "tts.speed"}
        assert outcome.error.context["violation_paths"]
        assert outcome.report.final_state == RunnerState.ABORTED_VALIDATION_FAILED

    def test_step_returning_garbage_is_step_failure(self, v030_document):
        def broken(config):
            return None

        steps = (MigrationStep(30, 31, broken, name="broken"),) + BUILTIN_STEPS[1:]
        outcome = MigrationRunner(create_registry(steps)).run(v030_document, 30)

        assert isinstance(outcome.error, MigrationStepFailed)
        assert isinstance(outcome.error.cause, TypeError)


class TestProperties:
    @pytest.mark.parametrize("start", range(LOWEST_VERSION, CURRENT_VERSION + 1))
    def test_chain_equivalence(self, runner, v030_document, start):
        document = _walk_to(v030_document, start)

        stepped = deepcopy(document)
        for version in range(start, CURRENT_VERSION):
            stepped = runner.migrate_one(stepped, version)

        outcome = runner.run(document, start)
        assert outcome.success, outcome.error
        assert outcome.config == stepped

    @pytest.mark.parametrize("start", range(LOWEST_VERSION, CURRENT_VERSION + 1))
    def test_every_intermediate_document_is_valid_for_its_version(self, validator, v030_document, start):
        document = _walk_to(v030_document, start)
        result = validator.validate(document, start)
        assert result.ok, [str(v) for v in result.violations]

    def test_idempotence(self, runner, v030_document):
        first = runner.run(v030_document, 30)
        second = runner.run(first.config, CURRENT_VERSION)

        assert second.success
        assert second.applied_steps == ()
        assert second.config == first.config

    def test_determinism(self, runner, v030_document):
        first = runner.run(deepcopy(v030_document), 30)
        second = runner.run(deepcopy(v030_document), 30)
        assert first.config == second.config
        assert first.applied_steps == second.applied_steps

    @given(start=st.integers(min_value=LOWEST_VERSION, max_value=CURRENT_VERSION))
    def test_result_independent_of_starting_point(self, start):
        from confchain.defaults import default_config

        runner = MigrationRunner(build_default_registry(), SchemaValidator())
        base = {
            key: value for key, value in default_config().items()
            if key not in ("contextMenu", "inputTranslation")
        }
        base["version"] = 30
        base["floatingButton"] = {k: v for k, v in base["floatingButton"].items() if k != "clickAction"}
        base["translate"] = {
            k: v for k, v in base["translate"].items()
            if k not in ("translationNodeStyle", "batchQueueConfig", "enableAIContentAware")
        }
        base["translate"]["page"] = {
            k: v for k, v in base["translate"]["page"].items()
            if k not in ("enableLLMDetection", "preload")
        }
        base["providersConfig"] = [
            {**entry, "provider": {"google-translate": "google", "microsoft-translate": "microsoft"}.get(
                entry["provider"], entry["provider"])}
            for entry in base["providersConfig"]
        ]

        direct = runner.run(deepcopy(base), 30)
        resumed = runner.run(_walk_to(deepcopy(base), start), start)

        assert direct.success, direct.error
        assert resumed.config == direct.config
        assert resumed.config == default_config()

    @given(version=st.integers(min_value=CURRENT_VERSION + 1, max_value=10**9))
    def test_any_future_version_is_rejected(self, version):
        runner = MigrationRunner(build_default_registry(), SchemaValidator())
        outcome = runner.run({"version": version}, version)
        assert isinstance(outcome.error, FutureVersionDetected)
        assert outcome.config is None
