"""Shared test fixtures and configuration."""

import os

import pytest

from searchplan.backends.whoosh import IndexConfig, WhooshEngine
from searchplan.config import Settings


# Keep host SEARCHPLAN_* variables from leaking into tests
TEST_ENV = {
    "SEARCHPLAN_DEFAULT_ANALYZER": "standard",
    "SEARCHPLAN_SEARCH_SIZE": "10",
    "SEARCHPLAN_LOG_LEVEL": "info",
    "SEARCHPLAN_LOG_JSON": "true",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset SEARCHPLAN_* variables to test defaults before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def memory_engine(settings):
    """Engine with a single in-memory index named ``docs``."""
    engine = WhooshEngine([IndexConfig(name="docs")], settings=settings)
    yield engine
    engine.close()


@pytest.fixture
def docs_index(memory_engine):
    return memory_engine.index("docs")
