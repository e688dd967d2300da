"""Set of enabled providers, keyed by the prefix used in model selectors."""
from __future__ import annotations
import logging
from typing import Mapping

from prompt_hub.common.config import Settings
from prompt_hub.common.errors import UnknownProviderError
from prompt_hub.providers.base import DEMO_PROVIDER, ProviderClient, parse_model_spec
from prompt_hub.providers.openai_compat import LMStudioClient, OpenAIClient

LOGGER = logging.getLogger("prompthub.providers")


class ProviderCatalog:
    def __init__(
        self,
        clients: Mapping[str, ProviderClient],
        static_models: Mapping[str, list[str]] | None = None,
    ) -> None:
        self._clients = dict(clients)
        self._static_models = {k: list(v) for k, v in (static_models or {}).items()}

    @property
    def names(self) -> list[str]:
        return sorted(set(self._clients) | set(self._static_models))

    @property
    def enabled(self) -> list[str]:
        return sorted(self._clients)

    def get(self, provider: str) -> ProviderClient:
        try:
            return self._clients[provider]
        except KeyError:
            raise UnknownProviderError(provider, self.enabled + [DEMO_PROVIDER]) from None

    def resolve(self, spec: str) -> tuple[ProviderClient | None, str]:
        """
        Map a model selector to (client, model name).

        Returns ``(None, model)`` for the demo provider.

        Raises:
            UnknownProviderError: prefix is not an enabled provider.
        """
        provider, model = parse_model_spec(spec)
        if provider == DEMO_PROVIDER:
            return None, model
        return self.get(provider), model

    def list_models(self, provider: str) -> list[str]:
        """Discovered models where the backend supports it, else the configured list."""
        client = self._clients.get(provider)
        if client is not None and client.supports_discovery:
            return client.list_models()
        if provider in self._static_models:
            return list(self._static_models[provider])
        if client is not None:
            return []
        raise UnknownProviderError(provider, self.names)

    async def aclose(self) -> None:
        for name, client in self._clients.items():
            LOGGER.debug("Closing provider client %s", name)
            await client.aclose()


def build_catalog(settings: Settings) -> ProviderCatalog:
    """LM Studio is always enabled; OpenAI only when an API key is configured."""
    clients: dict[str, ProviderClient] = {
        "lmstudio": LMStudioClient(
            settings.lmstudio_base,
            settings.lmstudio_api_key,
            connect_timeout=settings.connect_timeout,
            max_connections=settings.max_upstream_connections,
        ),
    }
    if settings.openai_api_key:
        clients["openai"] = OpenAIClient(
            settings.openai_api_key,
            settings.openai_base,
            connect_timeout=settings.connect_timeout,
            max_connections=settings.max_upstream_connections,
        )
    else:
        LOGGER.info("OPENAI_API_KEY not set; openai provider disabled")
    return ProviderCatalog(clients, {"openai": settings.openai_models})
