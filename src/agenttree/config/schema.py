"""Configuration schema dataclasses for agenttree.

Defines the structure of configuration at all levels (system, user, project).
Every field has a default so partial configs merge together cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_SHELL_COMMANDS = ["ls", "pwd", "echo", "cat", "grep"]


@dataclass
class AgentConfig:
    """Agent loop and context shaping.

    Example config.yaml:
        agent:
          max_iterations: 10
          autonomy_level: supervised
          context_window_tokens: 8000
    """

    max_iterations: int = 10
    max_tokens_per_request: int = 4096
    autonomy_level: str = "supervised"  # readonly, supervised, full
    auto_confirm: bool = False
    max_context_messages: int = 50
    context_window_tokens: int = 8000
    enable_summarization: bool = True
    stream_responses: bool = False
    turn_timeout: float = 300.0  # Seconds of wall clock per turn
    identity: str = "You are a helpful assistant with access to tools."
    system_prompt: str | None = None  # Stored as the root of new sessions
    system_prompt_tokens: int = 1024
    use_system_prompt: bool = True  # Generate a prompt when the path has none


@dataclass
class ProviderSettings:
    """Per-vendor overrides for a provider from the catalogue."""

    name: str
    api_key: str | None = None  # Falls back to the vendor's env var
    base_url: str | None = None
    default_model: str | None = None


@dataclass
class ModelRouteConfig:
    """Routes models whose name starts with ``hint`` to a fixed provider."""

    hint: str
    provider: str
    model: str | None = None
    api_key: str | None = None


@dataclass
class LLMConfig:
    """LLM provider configuration."""

    default_provider: str = "openrouter"
    default_model: str | None = None  # None uses the provider's default
    temperature: float = 0.7
    request_timeout: float = 60.0
    providers: list[ProviderSettings] = field(default_factory=list)
    model_routes: list[ModelRouteConfig] = field(default_factory=list)

    def provider_settings(self, name: str) -> ProviderSettings | None:
        for settings in self.providers:
            if settings.name == name:
                return settings
        return None


@dataclass
class ReliabilityConfig:
    """Retry and failover policy for provider calls."""

    provider_retries: int = 2  # Retries after the first attempt
    provider_backoff_ms: int = 500  # Doubles on every retry
    fallback_providers: list[str] = field(default_factory=list)


@dataclass
class ToolsConfig:
    """Built-in tool configuration."""

    workspace_root: str | None = None  # None uses the session working directory
    allowed_shell_commands: list[str] = field(
        default_factory=lambda: list(DEFAULT_SHELL_COMMANDS)
    )
    enable_shell_tool: bool = True
    enable_file_tools: bool = True
    enable_memory_tools: bool = True
    timeout: float = 30.0
    max_file_bytes: int = 1024 * 1024
    allow_overwrite: bool = True


@dataclass
class SessionConfig:
    """Session persistence and navigation."""

    history_size: int = 128
    sessions_dir: str | None = None  # None uses $cwd/.agenttree/sessions


@dataclass
class MemoryConfig:
    """Memory store backend selection."""

    backend: str = "memory"  # memory, yaml
    path: str | None = None  # File for the yaml backend


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    reliability: ReliabilityConfig = field(default_factory=ReliabilityConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections are kept for extensions
    extra: dict[str, Any] = field(default_factory=dict)
