"""Error taxonomy shared by the registry, provider clients and relay."""
from __future__ import annotations


class RelayError(Exception):
    """Base class for all errors raised by prompt-hub."""


class ConfigError(RelayError):
    """Invalid or unreadable configuration."""


class RunNotFoundError(RelayError):
    """Run id is unknown, expired, or was already claimed."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"run {run_id!r} not found")
        self.run_id = run_id


class UnknownProviderError(RelayError):
    """Model selector names a provider that is not recognised or not enabled."""

    def __init__(self, provider: str, known: list[str] | None = None) -> None:
        known_txt = "|".join(known or [])
        super().__init__(
            f"Unknown/disabled provider: {provider} (supported: {known_txt or 'demo'})"
        )
        self.provider = provider


class ProviderError(RelayError):
    """Anything that went wrong talking to an upstream backend."""


class UpstreamUnavailableError(ProviderError):
    """Connection to the backend could not be established or was dropped."""


class UpstreamHttpError(ProviderError):
    """Backend answered with a non-2xx status."""

    def __init__(self, status: int, body: str, url: str | None = None) -> None:
        where = f" {url}" if url else ""
        snippet = body if len(body) <= 500 else body[:500] + "..."
        super().__init__(f"HTTP {status}{where}: {snippet}")
        self.status = status
        self.body = body
        self.url = url


class UpstreamPayloadError(ProviderError):
    """Backend answered 2xx but the body could not be interpreted."""


class MalformedChunkError(ProviderError):
    """A single streamed line could not be parsed; always skipped by the decoder."""
