"""Provider registry: lookup of the process-wide adapter instances."""

import logging
from types import MappingProxyType
from typing import Mapping

from cli_agent_loop.providers.adapter import ProviderAdapter
from cli_agent_loop.providers.claude_code import claude_code_provider
from cli_agent_loop.providers.codex import codex_provider
from cli_agent_loop.providers.copilot import copilot_provider

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Exception raised for provider-specific errors."""

    pass


class UnsupportedProviderError(ProviderError):
    """Raised when a provider name does not match any adapter."""

    pass


PROVIDERS: Mapping[str, ProviderAdapter] = MappingProxyType(
    {
        codex_provider.name: codex_provider,
        claude_code_provider.name: claude_code_provider,
        copilot_provider.name: copilot_provider,
    }
)


def list_provider_names() -> list[str]:
    return sorted(PROVIDERS)


def get_provider_adapter(name: str) -> ProviderAdapter:
    """Resolve a provider name (case-insensitive) to its adapter."""
    normalized = name.strip().lower()
    provider = PROVIDERS.get(normalized)
    if provider is None:
        supported = ", ".join(list_provider_names())
        raise UnsupportedProviderError(
            f'Unsupported provider "{name}". Supported providers: {supported}'
        )
    logger.debug(f"Resolved provider {normalized} -> {provider.display_name}")
    return provider
