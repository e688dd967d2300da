"""Pydantic models for request/response types."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerationRequest(BaseModel):
    """A submitted run: what to generate and with which model.

    ``model`` is a selector such as ``"lmstudio:phi-3"``, ``"openai:gpt-4o-mini"``
    or ``"demo"``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prompt: str
    input: str | None = None
    model: str = Field(min_length=1)
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, alias="maxTokens")


class RunCreated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(alias="runId")


class ModelsResponse(BaseModel):
    provider: str
    models: list[str]


class HealthResponse(BaseModel):
    ok: bool
    providers: list[str]
