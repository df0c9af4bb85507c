"""LLM vendor catalogue.

Loads vendor definitions (endpoint, key variable, litellm prefix, default
model) from providers.yaml.
"""

from __future__ import annotations

import importlib.resources
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import yaml

from agenttree.errors import NotFoundError


@dataclass
class VendorConfig:
    """Static description of one LLM vendor."""

    name: str
    env_var: str
    base_url: str
    litellm_prefix: str
    default_model: str
    model_prefixes: list[str] = field(default_factory=list)

    def serves(self, model: str) -> bool:
        """True if this vendor natively serves ``model``."""
        if not self.model_prefixes:
            return True
        return any(model.startswith(prefix) for prefix in self.model_prefixes)


@lru_cache(maxsize=1)
def _load_providers_yaml() -> dict[str, Any]:
    """Load providers.yaml from package resources."""
    files = importlib.resources.files("agenttree.core.llm")
    with files.joinpath("providers.yaml").open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _build_vendor_configs() -> dict[str, VendorConfig]:
    data = _load_providers_yaml()
    configs: dict[str, VendorConfig] = {}

    for name, entry in data.get("providers", {}).items():
        configs[name] = VendorConfig(
            name=name,
            env_var=entry["env_var"],
            base_url=entry["base_url"],
            litellm_prefix=entry.get("litellm_prefix", name),
            default_model=entry["default_model"],
            model_prefixes=list(entry.get("model_prefixes") or []),
        )

    return configs


VENDOR_CONFIGS: dict[str, VendorConfig] = _build_vendor_configs()


def get_vendor(name: str) -> VendorConfig:
    """Look up a vendor by name.

    Raises:
        NotFoundError: If the vendor is not in the catalogue.
    """
    try:
        return VENDOR_CONFIGS[name]
    except KeyError:
        raise NotFoundError(f"Unknown provider: {name}") from None


def vendor_for_model(model: str) -> VendorConfig | None:
    """Find the vendor whose model prefixes match ``model``.

    Catch-all vendors (no prefixes) are never returned here.
    """
    for vendor in VENDOR_CONFIGS.values():
        if vendor.model_prefixes and vendor.serves(model):
            return vendor
    return None
