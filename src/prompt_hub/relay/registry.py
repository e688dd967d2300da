"""In-memory store of submitted runs; each run can be claimed once."""
from __future__ import annotations
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from prompt_hub.common.errors import RunNotFoundError
from prompt_hub.common.schema import GenerationRequest

LOGGER = logging.getLogger("prompthub.registry")


@dataclass(frozen=True)
class _Entry:
    request: GenerationRequest
    created_at: float


class RunRegistry:
    """
    Map of run id -> GenerationRequest with atomic take-and-remove.

    Safe to share between the event loop and threadpool endpoints. Entries
    older than ``ttl_seconds`` are treated as gone; pass None to keep them
    until claimed.
    """

    def __init__(
        self,
        ttl_seconds: float | None = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _expired(self, entry: _Entry, now: float) -> bool:
        return self.ttl_seconds is not None and now - entry.created_at >= self.ttl_seconds

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        if self.ttl_seconds is None:
            return
        stale = [rid for rid, e in self._entries.items() if self._expired(e, now)]
        for rid in stale:
            del self._entries[rid]
        if stale:
            LOGGER.info("Evicted %d unclaimed run(s)", len(stale))

    def put(self, request: GenerationRequest) -> str:
        run_id = uuid.uuid4().hex
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[run_id] = _Entry(request, now)
        return run_id

    def claim(self, run_id: str) -> GenerationRequest:
        """
        Remove and return the request stored under ``run_id``.

        Raises:
            RunNotFoundError: unknown, expired, or already claimed.
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.pop(run_id, None)
            self._sweep(now)
        if entry is None or self._expired(entry, now):
            raise RunNotFoundError(run_id)
        return entry.request

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            return run_id in self._entries
