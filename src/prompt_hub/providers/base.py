"""Provider interface and model-selector parsing."""
from __future__ import annotations
from typing import AsyncIterator, Protocol, runtime_checkable

DEMO_PROVIDER = "demo"


def parse_model_spec(spec: str) -> tuple[str, str]:
    """
    Split ``provider:model`` on the first colon.

    Without a colon the whole string is the model name and the provider is demo.
    """
    provider, sep, model = spec.partition(":")
    if not sep:
        return DEMO_PROVIDER, spec
    return provider.strip().lower(), model.strip()


@runtime_checkable
class ProviderClient(Protocol):
    """A backend that can stream tokens for a prompt."""

    name: str
    supports_discovery: bool

    def stream(
        self,
        model: str,
        prompt: str,
        input: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield tokens as they arrive; closing the iterator closes the upstream call."""
        ...

    def list_models(self) -> list[str]:
        ...

    async def aclose(self) -> None:
        ...
