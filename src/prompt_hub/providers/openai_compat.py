"""Clients for backends speaking the OpenAI chat-completions protocol.

Endpoints used:
- POST /v1/chat/completions  (stream=true, SSE response)
- GET  /v1/models            (discovery)
"""
from __future__ import annotations
import logging
from typing import Any, AsyncIterable, AsyncIterator

import httpx

from prompt_hub.common.errors import (
    UpstreamHttpError,
    UpstreamPayloadError,
    UpstreamUnavailableError,
)
from prompt_hub.common.templates import DEFAULT_SYSTEM_PROMPT, build_messages
from prompt_hub.providers.decoder import iter_tokens


class ChatCompletionsClient:
    """Streams chat completions from one OpenAI-compatible base URL.

    The underlying ``httpx.AsyncClient`` is created on first use and shared by
    all streams of this client; per-stream state lives in the generator.
    """

    name = "openai-compatible"
    system_prompt: str | None = None
    supports_discovery = True

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        connect_timeout: float = 5.0,
        max_connections: int | None = None,
        transport: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        # long generations are expected: only connecting and waiting for a
        # free pooled connection are bounded
        self.timeout = httpx.Timeout(None, connect=connect_timeout, pool=connect_timeout)
        self.limits = httpx.Limits(max_connections=max_connections)
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self.log = logging.getLogger(f"prompthub.providers.{self.name}")

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                limits=self.limits,
                transport=self._transport,
            )
        return self._http

    def build_body(
        self,
        model: str,
        prompt: str,
        input: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "messages": build_messages(prompt, input, self.system_prompt),
            "stream": True,
        }
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        return body

    def _decode(self, byte_chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
        return iter_tokens(byte_chunks)

    async def stream(
        self,
        model: str,
        prompt: str,
        input: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream tokens for one prompt.

        Raises:
            UpstreamUnavailableError: connection failed or dropped mid-stream.
            UpstreamHttpError: non-2xx status; raised before any token.
        """
        url = f"{self.base_url}/v1/chat/completions"
        body = self.build_body(model, prompt, input, temperature, max_tokens)
        headers = {
            **self._headers(),
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        try:
            async with self._client().stream("POST", url, json=body, headers=headers) as resp:
                if not resp.is_success:
                    text = (await resp.aread()).decode("utf-8", errors="replace")
                    self.log.warning("%s -> HTTP %s", url, resp.status_code)
                    raise UpstreamHttpError(resp.status_code, text, url)
                async for token in self._decode(resp.aiter_bytes()):
                    yield token
        except httpx.TransportError as e:
            self.log.warning("%s stream failed: %s", self.name, e)
            raise UpstreamUnavailableError(f"{self.name} unreachable at {self.base_url}: {e}") from e

    def list_models(self) -> list[str]:
        """Return model ids from /v1/models in the order the backend lists them."""
        url = f"{self.base_url}/v1/models"
        headers = {**self._headers(), "Accept": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.get(url, headers=headers)
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(f"{self.name} unreachable at {self.base_url}: {e}") from e
        if not r.is_success:
            raise UpstreamHttpError(r.status_code, r.text, url)
        try:
            data = r.json().get("data") or []
            return [
                item["id"] for item in data
                if isinstance(item, dict) and isinstance(item.get("id"), str)
            ]
        except (ValueError, AttributeError, TypeError) as e:
            raise UpstreamPayloadError(f"Failed to parse {url}: {r.text[:500]}") from e

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class OpenAIClient(ChatCompletionsClient):
    """Official OpenAI API; models come from configuration, not discovery."""

    name = "openai"
    supports_discovery = False

    def __init__(self, api_key: str, base_url: str = "https://api.openai.com", **kwargs: Any) -> None:
        super().__init__(base_url, api_key, **kwargs)


class LMStudioClient(ChatCompletionsClient):
    """LM Studio local server (OpenAI-compatible mode)."""

    name = "lmstudio"
    system_prompt = DEFAULT_SYSTEM_PROMPT

    def __init__(self, base_url: str = "http://localhost:8000", api_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(base_url, api_key, **kwargs)
