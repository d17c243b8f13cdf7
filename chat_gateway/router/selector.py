"""Provider lookup for the HTTP layer."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from chat_gateway.core.config import GatewaySettings, ProviderSettings, load_config
from chat_gateway.core.exceptions import ConfigurationError
from chat_gateway.providers.openai_compatible import (
    OpenAICompatibleClient,
    create_openai_compatible_client,
)

logger = logging.getLogger("gateway.router")


@dataclass
class ProviderState:
    settings: ProviderSettings
    client: OpenAICompatibleClient

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def has_api_key(self) -> bool:
        return bool(self.client.config.auth_header_value())

    @property
    def models(self) -> list[str]:
        return list(self.settings.model_mapping)


class ProviderRegistry:
    """Builds one adapter per configured provider and resolves them by name.

    Adapters are created lazily on first use and then reused; their
    configuration never changes for the lifetime of the registry.
    """

    def __init__(self, config: GatewaySettings | None = None) -> None:
        self._config = config
        self._clients: dict[str, OpenAICompatibleClient] = {}

    @property
    def config(self) -> GatewaySettings:
        if self._config is None:
            self._config = load_config()
        return self._config

    def providers(self) -> Iterable[ProviderSettings]:
        return list(self.config.providers)

    def default_provider(self) -> ProviderSettings:
        providers = list(self.providers())
        if not providers:
            raise ConfigurationError("unknown", message="No providers configured")
        wanted = self.config.default_provider
        if wanted:
            for provider in providers:
                if provider.name.lower() == wanted.lower():
                    return provider
        return providers[0]

    def lookup(self, provider_name: str | None = None) -> ProviderSettings:
        if not provider_name:
            return self.default_provider()
        for provider in self.providers():
            if provider.name.lower() == provider_name.lower():
                return provider
        raise ConfigurationError(provider_name, message=f"Provider '{provider_name}' not configured")

    def get_client(self, provider_name: str | None = None) -> OpenAICompatibleClient:
        settings = self.lookup(provider_name)
        key = settings.name.lower()
        if key not in self._clients:
            logger.info(
                "Creating provider adapter",
                extra={"event": "adapter_created", "provider": settings.name},
            )
            self._clients[key] = create_openai_compatible_client(settings.to_provider_config())
        return self._clients[key]

    def get_states(self) -> list[ProviderState]:
        return [
            ProviderState(settings=provider, client=self.get_client(provider.name))
            for provider in self.providers()
        ]


registry = ProviderRegistry()


__all__ = ["ProviderRegistry", "ProviderState", "registry"]
