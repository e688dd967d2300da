"""Pump one run's tokens from its provider to an SSE connection.

Per connection: claim the run, send a heartbeat, then run a producer task that
pulls tokens into a bounded queue while this coroutine writes them out. When a
write fails, or the coroutine is cancelled, the producer is cancelled too,
which closes the upstream response.
"""
from __future__ import annotations
import asyncio
import enum
import logging
from contextlib import suppress
from typing import AsyncIterator, Awaitable, Callable

from prompt_hub.common.errors import ProviderError, RunNotFoundError, UnknownProviderError
from prompt_hub.common.schema import GenerationRequest
from prompt_hub.providers.catalog import ProviderCatalog
from prompt_hub.relay.frames import FrameKind, TokenFrame
from prompt_hub.relay.registry import RunRegistry

LOGGER = logging.getLogger("prompthub.relay")

# Returns False when the client is gone.
FrameWriter = Callable[[str], Awaitable[bool]]

DEMO_TOKENS = ("Hello", " from", " prompt-hub!")


class RelayState(enum.Enum):
    CONNECTING = "connecting"
    CLAIMING = "claiming"
    STREAMING = "streaming"
    DRAINING = "draining"
    CLOSED = "closed"
    ERROR = "error"


class RelayOutcome(enum.Enum):
    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CANCELLED = "cancelled"


def demo_tokens(run_id: str) -> list[str]:
    return [*DEMO_TOKENS, f" (runId={run_id})"]


class Relay:
    def __init__(
        self,
        registry: RunRegistry,
        catalog: ProviderCatalog,
        *,
        demo_delay: float = 0.15,
        channel_size: int = 64,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.demo_delay = demo_delay
        self.channel_size = channel_size
        self._active: set[asyncio.Task] = set()

    def _enter(self, run_id: str, state: RelayState) -> None:
        LOGGER.debug("run %s -> %s", run_id, state.value)

    async def run(self, run_id: str, write: FrameWriter) -> RelayOutcome:
        """Stream run ``run_id`` through ``write`` and report how it ended."""
        task = asyncio.current_task()
        if task is not None:
            self._active.add(task)
        try:
            return await self._run(run_id, write)
        finally:
            self._active.discard(task)

    async def _run(self, run_id: str, write: FrameWriter) -> RelayOutcome:
        self._enter(run_id, RelayState.CONNECTING)
        self._enter(run_id, RelayState.CLAIMING)
        try:
            request = self.registry.claim(run_id)
        except RunNotFoundError:
            LOGGER.info("run %s not found or already claimed", run_id)
            self._enter(run_id, RelayState.DRAINING)
            await write(TokenFrame.done().encode())
            self._enter(run_id, RelayState.CLOSED)
            return RelayOutcome.NOT_FOUND

        LOGGER.info("run %s claimed (model=%s)", run_id, request.model)
        self._enter(run_id, RelayState.STREAMING)
        try:
            if not await write(TokenFrame.heartbeat().encode()):
                outcome = RelayOutcome.DISCONNECTED
            else:
                outcome = await self._stream(run_id, request, write)
        finally:
            self._enter(run_id, RelayState.CLOSED)
        LOGGER.info("run %s finished: %s", run_id, outcome.value)
        return outcome

    @property
    def active(self) -> int:
        return len(self._active)

    async def shutdown(self) -> None:
        """Cancel every relay still streaming and wait until their upstreams are closed."""
        tasks = [t for t in self._active if not t.done()]
        if not tasks:
            return
        LOGGER.info("Cancelling %d active relay(s)", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _open_tokens(self, run_id: str, request: GenerationRequest) -> AsyncIterator[str]:
        client, model = self.catalog.resolve(request.model)
        if client is None:
            return self._demo(run_id)
        return client.stream(
            model,
            request.prompt,
            request.input,
            request.temperature,
            request.max_tokens,
        )

    async def _demo(self, run_id: str) -> AsyncIterator[str]:
        for i, token in enumerate(demo_tokens(run_id)):
            if i and self.demo_delay:
                await asyncio.sleep(self.demo_delay)
            yield token

    async def _stream(self, run_id: str, request: GenerationRequest, write: FrameWriter) -> RelayOutcome:
        try:
            tokens = self._open_tokens(run_id, request)
        except UnknownProviderError as e:
            LOGGER.error("run %s: %s", run_id, e)
            self._enter(run_id, RelayState.ERROR)
            return await self._drain(run_id, write, TokenFrame.error(str(e)))

        queue: asyncio.Queue[TokenFrame] = asyncio.Queue(maxsize=self.channel_size)
        producer = asyncio.create_task(self._produce(run_id, tokens, queue))
        try:
            while True:
                frame = await queue.get()
                if frame.terminal:
                    if frame.kind is FrameKind.ERROR:
                        self._enter(run_id, RelayState.ERROR)
                    return await self._drain(run_id, write, frame)
                if not await write(frame.encode()):
                    LOGGER.info("run %s: client disconnected, cancelling upstream", run_id)
                    return RelayOutcome.DISCONNECTED
        finally:
            producer.cancel()
            with suppress(asyncio.CancelledError):
                await producer

    async def _produce(
        self,
        run_id: str,
        tokens: AsyncIterator[str],
        queue: asyncio.Queue[TokenFrame],
    ) -> None:
        try:
            async for token in tokens:
                await queue.put(TokenFrame.data(token))
            terminal = TokenFrame.done()
        except ProviderError as e:
            LOGGER.warning("run %s: provider error: %s", run_id, e)
            terminal = TokenFrame.error(str(e))
        except Exception as e:
            # contained per connection; the server and other streams keep running
            LOGGER.exception("run %s: unexpected error while streaming", run_id)
            terminal = TokenFrame.error(str(e) or type(e).__name__)
        finally:
            aclose = getattr(tokens, "aclose", None)
            if aclose is not None:
                await aclose()
        await queue.put(terminal)

    async def _drain(self, run_id: str, write: FrameWriter, frame: TokenFrame) -> RelayOutcome:
        self._enter(run_id, RelayState.DRAINING)
        if frame.kind is FrameKind.ERROR:
            await write(frame.encode())
            await write(TokenFrame.done().encode())
            return RelayOutcome.FAILED
        await write(TokenFrame.done().encode())
        return RelayOutcome.COMPLETED
