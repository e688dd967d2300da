"""ASGI response that drives a Relay over a text/event-stream connection."""
from __future__ import annotations
import asyncio
import logging
from contextlib import suppress
from typing import Any

from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from prompt_hub.relay.relay import Relay, RelayOutcome

LOGGER = logging.getLogger("prompthub.server.sse")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayStreamResponse(Response):
    """
    Stream one run as Server-Sent Events.

    Like Starlette's StreamingResponse, a second task listens for
    ``http.disconnect``; whichever finishes first cancels the other. Body
    writes report failure as ``False`` instead of raising, so the relay can
    tell a vanished client apart from a failing provider.
    """

    media_type = "text/event-stream"

    def __init__(self, relay: Relay, run_id: str, headers: dict[str, str] | None = None) -> None:
        # no body attribute, so init_headers leaves out content-length
        self.relay = relay
        self.run_id = run_id
        self.status_code = 200
        self.background = None
        self.outcome: RelayOutcome | None = None
        self.init_headers({**SSE_HEADERS, **(headers or {})})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )

        connected = True

        async def write(frame: str) -> bool:
            nonlocal connected
            if not connected:
                return False
            try:
                await send({"type": "http.response.body", "body": frame.encode("utf-8"), "more_body": True})
            except OSError:
                connected = False
            return connected

        relay_task = asyncio.create_task(self.relay.run(self.run_id, write))
        watcher = asyncio.create_task(self._wait_disconnect(receive))
        try:
            done, _ = await asyncio.wait({relay_task, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if relay_task in done:
                # cancelled by Relay.shutdown(); end the response cleanly
                if relay_task.cancelled():
                    self.outcome = RelayOutcome.CANCELLED
                else:
                    self.outcome = relay_task.result()
            else:
                connected = False
                LOGGER.info("run %s: client disconnected", self.run_id)
                self.outcome = RelayOutcome.DISCONNECTED
        finally:
            for task in (relay_task, watcher):
                if not task.done():
                    task.cancel()
                    with suppress(asyncio.CancelledError):
                        await task

        if connected:
            with suppress(OSError):
                await send({"type": "http.response.body", "body": b"", "more_body": False})

    @staticmethod
    async def _wait_disconnect(receive: Receive) -> dict[str, Any]:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return message
