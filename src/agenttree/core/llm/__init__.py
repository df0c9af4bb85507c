"""LLM provider abstraction."""

from agenttree.core.llm.litellm_provider import LiteLLMProvider, classify_exception
from agenttree.core.llm.provider import (
    ChatMessage,
    ChatResponse,
    HealthStatus,
    LLMProvider,
    Role,
    ToolCall,
    ToolSchema,
)
from agenttree.core.llm.providers import VENDOR_CONFIGS, VendorConfig, get_vendor
from agenttree.core.llm.registry import ProviderRegistry
from agenttree.core.llm.retry import RetryPolicy, call_with_retry
from agenttree.core.llm.router import ProviderRouter, RouteTarget

__all__ = [
    # Protocol and types
    "LLMProvider",
    "ChatMessage",
    "ChatResponse",
    "HealthStatus",
    "Role",
    "ToolCall",
    "ToolSchema",
    # Adapter
    "LiteLLMProvider",
    "classify_exception",
    # Catalogue and registry
    "VENDOR_CONFIGS",
    "VendorConfig",
    "get_vendor",
    "ProviderRegistry",
    # Retry and routing
    "RetryPolicy",
    "call_with_retry",
    "ProviderRouter",
    "RouteTarget",
]
