"""
Pytest configuration for the confchain test suite.

Provides:
- Loguru to caplog bridge so tests can assert on engine log output
- Historical settings documents loaded from tests/confchain/fixtures/
- Shared registry, runner and validator fixtures
- A Hypothesis profile for the property-based tests
"""

import contextlib
import logging
import sys
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

# Add the src directory to the Python path
src_path = str(Path(__file__).parent.parent / "src")
sys.path.insert(0, src_path)

import pytest
import yaml
from hypothesis import HealthCheck, settings
from loguru import logger

from confchain.defaults import default_config
from confchain.migration import MigrationRunner, build_default_registry
from confchain.schema import SchemaValidator

FIXTURES_DIR = Path(__file__).parent / "confchain" / "fixtures"

settings.register_profile(
    "confchain",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.load_profile("confchain")


# ============================================================================
# LOGURU INTEGRATION
# ============================================================================

@pytest.fixture(autouse=True, scope="function")
def capture_loguru_logs_globally(caplog):
    """Forward Loguru records into pytest's caplog for the duration of each test."""

    class PropagateHandler(logging.Handler):
        def emit(self, record):
            std_logger = logging.getLogger(record.name or "confchain")
            level_mapping = {
                'TRACE': logging.DEBUG - 5,
                'DEBUG': logging.DEBUG,
                'INFO': logging.INFO,
                'SUCCESS': logging.INFO + 5,
                'WARNING': logging.WARNING,
                'ERROR': logging.ERROR,
                'CRITICAL': logging.CRITICAL
            }
            record.levelno = level_mapping.get(record.levelname, logging.INFO)
            std_logger.handle(record)

    caplog.set_level(logging.DEBUG)

    handler_id = logger.add(
        PropagateHandler(),
        format="{message}",
        level="TRACE",
        catch=True,
        enqueue=False  # Synchronous logging for test predictability
    )

    yield

    with contextlib.suppress(ValueError):
        logger.remove(handler_id)


# ============================================================================
# HISTORICAL SETTINGS DOCUMENTS
# ============================================================================

def load_fixture_series(version: int) -> Dict[str, Dict[str, Any]]:
    """Named settings documents stored under schema ``version``."""
    path = FIXTURES_DIR / f"v{version:03d}.yaml"
    with open(path, "r", encoding="utf-8") as f:
        series = yaml.safe_load(f)
    return {name: entry["config"] for name, entry in series.items()}


@pytest.fixture(scope="session")
def v030_series():
    return load_fixture_series(30)


@pytest.fixture(scope="session")
def v038_series():
    return load_fixture_series(38)


@pytest.fixture
def v030_document(v030_series):
    """Fully populated version 30 document (a fresh copy per test)."""
    return deepcopy(v030_series["complex-config"])


@pytest.fixture
def v038_document(v038_series):
    return deepcopy(v038_series["complex-config"])


@pytest.fixture
def latest_document():
    """The default document, valid at the current version."""
    return default_config()


# ============================================================================
# ENGINE COMPONENTS
# ============================================================================

@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def validator():
    return SchemaValidator()


@pytest.fixture
def runner(registry, validator):
    return MigrationRunner(registry, validator)
