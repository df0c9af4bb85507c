"""Configuration management for agenttree.

Hierarchical YAML configuration:
- System-level config (/etc/agenttree/ or %PROGRAMDATA%)
- User-level config (~/.config/agenttree/ or %APPDATA%)
- Project-level config ($workspace/.agenttree/)
- Environment variable overrides (highest priority)

Example usage:
    from agenttree.config import load_config

    config = load_config(workspace="/path/to/project")
    print(config.agent.max_iterations)
"""

from agenttree.config.loader import (
    dict_to_config,
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from agenttree.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_project_dir,
    get_system_config_path,
    get_user_config_path,
)
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
from agenttree.config.secrets import clear_secret_cache, fetch_secret

__all__ = [
    # Main API
    "Config",
    "dict_to_config",
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    "on_config_reload",
    # Schema types
    "AgentConfig",
    "LLMConfig",
    "LoggingConfig",
    "MemoryConfig",
    "ModelRouteConfig",
    "ProviderSettings",
    "ReliabilityConfig",
    "SessionConfig",
    "ToolsConfig",
    # Secret management
    "fetch_secret",
    "clear_secret_cache",
    # Path utilities
    "get_config_paths",
    "get_project_config_path",
    "get_project_dir",
    "get_system_config_path",
    "get_user_config_path",
]
