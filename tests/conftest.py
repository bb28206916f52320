"""Pytest configuration for ingestomatic tests."""

import pytest

from ingestomatic.config.schema import IngestConfig
from ingestomatic.scene import InMemoryScene

from .utils import FakeReader


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep credentials and log files of the host out of every test."""
    monkeypatch.delenv("INGESTOMATIC_TOKEN", raising=False)
    monkeypatch.delenv("INGESTOMATIC_TIMEOUT", raising=False)
    monkeypatch.delenv("INGESTOMATIC_ROOT", raising=False)
    monkeypatch.setenv("INGESTOMATIC_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def cfg() -> IngestConfig:
    return IngestConfig()


@pytest.fixture
def reader() -> FakeReader:
    return FakeReader()


@pytest.fixture
def scene() -> InMemoryScene:
    return InMemoryScene()
