from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from prompt_hub.common.config import Settings
from prompt_hub.providers.catalog import ProviderCatalog
from prompt_hub.providers.openai_compat import LMStudioClient, OpenAIClient

LMSTUDIO_BASE = "http://lmstudio.test"
OPENAI_BASE = "http://openai.test"


def sse_body(*payloads: object, done: bool = True) -> bytes:
    """Build an upstream chat-completions SSE body from delta contents or raw dicts."""
    lines = []
    for p in payloads:
        if isinstance(p, str):
            p = {"choices": [{"index": 0, "delta": {"content": p}}]}
        lines.append(f"data: {json.dumps(p, ensure_ascii=False)}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def parse_frames(text: str) -> list[str]:
    return [f for f in text.split("\n\n") if f]


@pytest.fixture
def settings() -> Settings:
    return Settings(demo_delay=0.0, openai_models=["gpt-4o-mini", "gpt-4o"])


@pytest.fixture
def make_catalog() -> Callable[[Callable[[httpx.Request], httpx.Response]], ProviderCatalog]:
    """Catalog whose lmstudio and openai clients answer through ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> ProviderCatalog:
        transport = httpx.MockTransport(handler)
        clients = {
            "lmstudio": LMStudioClient(LMSTUDIO_BASE, transport=transport),
            "openai": OpenAIClient("sk-test", OPENAI_BASE, transport=transport),
        }
        return ProviderCatalog(clients, {"openai": ["gpt-4o-mini"]})

    return _make
