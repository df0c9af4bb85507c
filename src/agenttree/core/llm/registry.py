"""Provider registry: vendor name -> adapter factory."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from agenttree.config.schema import LLMConfig
from agenttree.config.secrets import fetch_secret
from agenttree.core.llm.litellm_provider import LiteLLMProvider
from agenttree.core.llm.provider import LLMProvider
from agenttree.core.llm.providers import VENDOR_CONFIGS, VendorConfig
from agenttree.errors import AlreadyExistsError, NotFoundError
from agenttree.logging import get_logger

log = get_logger("providers")

ProviderFactory = Callable[..., LLMProvider]


def _vendor_factory(vendor: VendorConfig) -> ProviderFactory:
    def factory(**kwargs: Any) -> LLMProvider:
        return LiteLLMProvider.from_vendor(vendor, **kwargs)

    return factory


class ProviderRegistry:
    """Creates and caches provider adapters by vendor name.

    Every vendor in the catalogue is registered on construction. Adapters are
    built lazily on first use with credentials resolved as: explicit key,
    then ``llm.providers[].api_key``, then the vendor's env var through
    ``fetch_secret``.
    """

    def __init__(
        self,
        llm_config: LLMConfig | None = None,
        *,
        secrets_path: Path | None = None,
        register_catalogue: bool = True,
    ) -> None:
        self._config = llm_config or LLMConfig()
        self._secrets_path = secrets_path
        self._factories: dict[str, ProviderFactory] = {}
        self._instances: dict[str, LLMProvider] = {}
        self._lock = threading.Lock()
        if register_catalogue:
            for vendor in VENDOR_CONFIGS.values():
                self.register(vendor.name, _vendor_factory(vendor))

    def register(self, name: str, factory: ProviderFactory) -> None:
        with self._lock:
            if name in self._factories:
                raise AlreadyExistsError(f"Provider already registered: {name}")
            self._factories[name] = factory

    def register_instance(self, provider: LLMProvider) -> None:
        """Register a ready-made adapter under its own name."""
        with self._lock:
            self._factories[provider.name] = lambda **_: provider
            self._instances[provider.name] = provider

    def names(self) -> list[str]:
        with self._lock:
            return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def _resolve_key(self, name: str, api_key: str | None) -> str | None:
        if api_key:
            return api_key
        settings = self._config.provider_settings(name)
        if settings and settings.api_key:
            return settings.api_key
        vendor = VENDOR_CONFIGS.get(name)
        if vendor:
            return fetch_secret(vendor.env_var, secrets_path=self._secrets_path)
        return None

    def create(self, name: str, *, api_key: str | None = None) -> LLMProvider:
        """Build a new adapter for ``name``.

        Raises:
            NotFoundError: If no factory is registered under ``name``.
        """
        with self._lock:
            factory = self._factories.get(name)
        if factory is None:
            raise NotFoundError(f"Unknown provider: {name}")

        settings = self._config.provider_settings(name)
        kwargs: dict[str, Any] = {
            "api_key": self._resolve_key(name, api_key),
            "temperature": self._config.temperature,
            "timeout": self._config.request_timeout,
        }
        if settings:
            if settings.base_url:
                kwargs["base_url"] = settings.base_url
            if settings.default_model:
                kwargs["default_model"] = settings.default_model
        if not kwargs["api_key"]:
            log.debug("No API key found for provider %s", name)
        return factory(**kwargs)

    def get(self, name: str) -> LLMProvider:
        """Return the cached adapter for ``name``, creating it on first use."""
        with self._lock:
            existing = self._instances.get(name)
        if existing is not None:
            return existing
        provider = self.create(name)
        with self._lock:
            return self._instances.setdefault(name, provider)

    def instances(self) -> dict[str, LLMProvider]:
        """Adapters created so far."""
        with self._lock:
            return dict(self._instances)

    def clear(self) -> None:
        with self._lock:
            self._factories.clear()
            self._instances.clear()
