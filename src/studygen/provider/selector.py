from typing import Sequence

import structlog

from studygen.config import Config
from studygen.errors import NoProviderConfigured
from studygen.provider.anthropic import AnthropicClient
from studygen.provider.base import ProviderClient
from studygen.provider.gemini import GeminiClient

logger = structlog.get_logger()


class ProviderSelector:
    """
    ProviderSelector returns the provider a generation call should use.

    The configured default wins when it has credentials, otherwise the
    first configured client in priority order is used. The choice only
    depends on credentials, so it is fixed for the process lifetime; a
    provider that starts failing is not demoted.
    """

    def __init__(
        self,
        clients: "Sequence[ProviderClient]",
        default: "str" = "anthropic",
        priority: "Sequence[str]" = ("anthropic", "gemini"),
    ) -> "None":
        self._clients: "dict[str, ProviderClient]" = {c.name: c for c in clients}
        self._default = default.lower()
        # registered clients missing from the priority list go last
        order = [name.lower() for name in priority if name.lower() in self._clients]
        order += [name for name in self._clients if name not in order]
        self._order: "tuple[str, ...]" = tuple(order)

        if self._default not in self._clients:
            logger.warning(
                "unknown_default_provider",
                provider=self._default,
                available=list(self._order),
            )

    @property
    def clients(self) -> "list[ProviderClient]":
        return [self._clients[name] for name in self._order]

    def get(self) -> "ProviderClient":
        default = self._clients.get(self._default)
        if default is not None and default.is_configured():
            logger.debug("provider_selected", provider=default.name)
            return default

        for client in self.configured():
            # an unknown default was already reported once at startup
            log = logger.warning if default is not None else logger.debug
            log("provider_fallback", provider=self._default, fallback=client.name)
            return client

        raise NoProviderConfigured(
            "No AI provider is configured. Set ANTHROPIC_API_KEY or GEMINI_API_KEY."
        )

    def get_by_name(self, name: "str") -> "ProviderClient":
        client = self._clients.get(name.lower())
        if client is None:
            raise NoProviderConfigured(f"AI provider '{name}' is not registered.")
        if not client.is_configured():
            raise NoProviderConfigured(f"AI provider '{name}' is not configured.")
        return client

    def configured(self) -> "list[ProviderClient]":
        """
        lists configured clients in priority order.
        """
        return [c for c in self.clients if c.is_configured()]

    async def close(self) -> "None":
        """
        closes all provider sessions.
        """
        for client in self._clients.values():
            await client.close()


def create_selector(config: "Config") -> "ProviderSelector":
    clients: "list[ProviderClient]" = [
        AnthropicClient(
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            max_tokens=config.anthropic_max_tokens,
        ),
        GeminiClient(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            max_tokens=config.gemini_max_tokens,
        ),
    ]
    for client in clients:
        if client.is_configured():
            logger.info("provider_enabled", provider=client.name)

    return ProviderSelector(
        clients,
        default=config.default_provider,
        priority=config.provider_priority,
    )
