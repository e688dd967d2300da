"""Decoder for OpenAI-style streaming chat completions.

The upstream sends SSE lines. Lines that matter look like ``data: {...}`` and the
stream ends with ``data: [DONE]``. Each JSON payload carries the next piece of
text at ``choices[0].delta.content``.
"""
from __future__ import annotations
import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator

from prompt_hub.common.errors import MalformedChunkError

LOGGER = logging.getLogger("prompthub.providers.decoder")

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def parse_chunk(payload: str) -> str | None:
    """
    Extract the delta text from one ``data:`` payload.

    Args:
        payload: JSON text after the ``data:`` prefix.

    Returns:
        The delta content, or None when the chunk carries no text
        (role-only or finish chunks).

    Raises:
        MalformedChunkError: invalid JSON or an unexpected shape.
    """
    try:
        obj = json.loads(payload)
    except ValueError as e:
        raise MalformedChunkError(f"invalid JSON: {payload[:80]!r}") from e
    try:
        delta = obj["choices"][0]["delta"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedChunkError(f"no choices[0].delta: {payload[:80]!r}") from e
    if not isinstance(delta, dict):
        raise MalformedChunkError(f"delta is not an object: {payload[:80]!r}")
    content = delta.get("content")
    if content is None:
        return None
    if not isinstance(content, str):
        raise MalformedChunkError(f"delta.content is not text: {payload[:80]!r}")
    return content


class ChatStreamDecoder:
    """Incremental line decoder; one instance per upstream response."""

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finished = False
        self.skipped = 0

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume the next chunk and return the tokens completed by it."""
        if self.finished:
            return []
        text = self._utf8.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
        self._buffer += text

        lines = self._buffer.split("\n")
        # last element is "" when the buffer ended on a newline, else a partial line
        self._buffer = lines.pop()

        tokens = []
        for line in lines:
            line = line.strip()
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                self.finished = True
                self._buffer = ""
                break
            try:
                content = parse_chunk(payload)
            except MalformedChunkError as e:
                self.skipped += 1
                LOGGER.debug("Skipping chunk: %s", e)
                continue
            if content:
                tokens.append(content)
        return tokens

    def close(self) -> list[str]:
        """End of body: a pending line without a trailing newline still counts."""
        if self.finished:
            return []
        tokens = self.feed(self._utf8.decode(b"", final=True) + "\n")
        self.finished = True
        return tokens


async def iter_tokens(byte_chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Lazily turn a response body into tokens.

    Stops at ``[DONE]`` or when the body ends; a final line without a
    newline is still decoded.
    """
    decoder = ChatStreamDecoder()
    async for chunk in byte_chunks:
        for token in decoder.feed(chunk):
            yield token
        if decoder.finished:
            return
    for token in decoder.close():
        yield token
