"""Root pytest configuration for all tests."""

from __future__ import annotations

import os
from pathlib import Path

# litellm fetches its model cost map over the network in a background thread at
# import time, which can deadlock imports when offline; use the bundled copy.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from agenttree.config import Config, reset_config
from agenttree.config.loader import ENV_OVERRIDES
from agenttree.config.secrets import clear_secret_cache
from agenttree.core.tokens import count_tokens_heuristic
from agenttree.memory import InMemoryStore
from agenttree.session import InMemorySessionStore
from tests.utils import ScriptedProvider, build_agent

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep user config, env overrides and .env.secrets out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for env_var in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    clear_secret_cache()
    yield
    reset_config()
    clear_secret_cache()


@pytest.fixture
def config() -> Config:
    """Default config with a no-backoff retry policy."""
    cfg = Config()
    cfg.reliability.provider_backoff_ms = 0
    return cfg


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider("openrouter")


@pytest.fixture
def agent(config: Config, provider: ScriptedProvider, tmp_path: Path):
    """Agent wired to a scripted provider, in-memory stores and tmp_path."""
    return build_agent(
        config,
        provider,
        workspace=str(tmp_path),
        memory=InMemoryStore(),
        session_store=InMemorySessionStore(),
        token_counter=count_tokens_heuristic,
    )
