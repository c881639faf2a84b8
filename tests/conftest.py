"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from querylens.config import reset_config

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def fresh_config():
    """Drop the cached global config around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def query_a_sql() -> str:
    return (FIXTURES / "query_a.sql").read_text(encoding="utf-8")
