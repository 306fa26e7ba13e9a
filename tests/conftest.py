"""Pytest configuration and fixtures for all tests."""

import pytest

from officellm.memory import InMemoryStore
from tests.support import ScriptedProvider


@pytest.fixture(autouse=True)
def _quiet_environment(monkeypatch, tmp_path):
    """Keep traces out of the working tree and pin env-driven defaults."""
    monkeypatch.setenv("OFFICELLM_TRACE_ENABLED", "false")
    monkeypatch.setenv("OFFICELLM_TRACE_PATH", str(tmp_path / "traces.jsonl"))
    for name in (
        "OFFICELLM_MANAGER_MAX_ITERATIONS",
        "OFFICELLM_WORKER_MAX_ITERATIONS",
        "OFFICELLM_CONTEXT_WINDOW",
        "OFFICELLM_INSTANCE_ID",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def manager_provider():
    return ScriptedProvider(model="manager-model")


@pytest.fixture
def worker_provider():
    return ScriptedProvider(model="worker-model")


@pytest.fixture
def store():
    return InMemoryStore()
