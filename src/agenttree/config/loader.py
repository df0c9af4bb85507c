"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reload support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import yaml

from agenttree.config.merge import merge_configs
from agenttree.config.paths import get_config_paths
from agenttree.config.schema import (
    AgentConfig,
    Config,
    LLMConfig,
    LoggingConfig,
    MemoryConfig,
    ModelRouteConfig,
    ProviderSettings,
    ReliabilityConfig,
    SessionConfig,
    ToolsConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("agenttree.config")

_cached_config: Config | None = None

_reload_callbacks: list[Callable[[Config], None]] = []

_T = TypeVar("_T")

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "AGENTTREE_LOG": ("logging", "file"),
    "AGENTTREE_AUTONOMY": ("agent", "autonomy_level"),
    "AGENTTREE_PROVIDER": ("llm", "default_provider"),
    "AGENTTREE_MODEL": ("llm", "default_model"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config dict from environment variables.

    API keys are NOT loaded here; providers use fetch_secret() for those.
    """
    overrides: dict[str, Any] = {}
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def _build_section(cls: type[_T], data: Any, section: str) -> _T:
    """Instantiate a flat config dataclass, ignoring unknown keys."""
    if not isinstance(data, dict):
        if data is not None:
            _log.warning("Config section '%s' must be a mapping, ignoring", section)
        return cls()

    known = {f.name for f in dataclasses.fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(data) - known)
    if unknown:
        _log.warning("Unknown keys in config section '%s': %s", section, ", ".join(unknown))
    return cls(**{k: v for k, v in data.items() if k in known})


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    agent = _build_section(AgentConfig, data.get("agent"), "agent")

    llm_data = dict(data.get("llm") or {})
    providers_data = llm_data.pop("providers", None) or {}
    routes_data = llm_data.pop("model_routes", None) or []

    # providers may be a mapping keyed by vendor name or a list of entries
    if isinstance(providers_data, dict):
        providers_data = [
            {"name": name, **(entry or {})} for name, entry in providers_data.items()
        ]
    providers = [
        ProviderSettings(
            name=p["name"],
            api_key=p.get("api_key"),
            base_url=p.get("base_url"),
            default_model=p.get("default_model"),
        )
        for p in providers_data
        if isinstance(p, dict) and p.get("name")
    ]
    model_routes = [
        ModelRouteConfig(
            hint=r["hint"],
            provider=r["provider"],
            model=r.get("model"),
            api_key=r.get("api_key"),
        )
        for r in routes_data
        if isinstance(r, dict) and r.get("hint") and r.get("provider")
    ]
    llm = _build_section(LLMConfig, llm_data, "llm")
    llm.providers = providers
    llm.model_routes = model_routes

    known_keys = {"agent", "llm", "reliability", "tools", "session", "memory", "logging"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        agent=agent,
        llm=llm,
        reliability=_build_section(ReliabilityConfig, data.get("reliability"), "reliability"),
        tools=_build_section(ToolsConfig, data.get("tools"), "tools"),
        session=_build_section(SessionConfig, data.get("session"), "session"),
        memory=_build_section(MemoryConfig, data.get("memory"), "memory"),
        logging=_build_section(LoggingConfig, data.get("logging"), "logging"),
        extra=extra,
    )


def load_config(workspace: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($workspace/.agenttree/config.yaml)
    3. User config (~/.config/agenttree/ or %APPDATA%)
    4. System config (/etc/agenttree/ or %PROGRAMDATA%)

    Only the global config (no workspace) is cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and workspace is None:
        return _cached_config

    configs: list[dict[str, Any]] = []
    for path in get_config_paths(workspace):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    if workspace is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (tests, forced reload)."""
    global _cached_config
    _cached_config = None


def reload_config(workspace: str | None = None) -> Config:
    """Reload config from files and notify callbacks."""
    config = load_config(workspace=workspace, reload=True)

    for callback in _reload_callbacks:
        try:
            callback(config)
        except Exception as e:
            _log.warning("Config reload callback error: %s", e)

    return config


def on_config_reload(callback: Callable[[Config], None]) -> Callable[[], None]:
    """Register a reload callback. Returns a function that unregisters it."""
    _reload_callbacks.append(callback)

    def unregister() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unregister
