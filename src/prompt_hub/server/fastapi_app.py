"""FastAPI app relaying LLM token streams to the browser.

Endpoints:
- GET  /api/health
- GET  /api/models?provider=lmstudio|openai
- POST /api/test/run           { "prompt": "...", "model": "lmstudio:phi-3", ... }
- GET  /api/test/stream/{runId}  (text/event-stream)
"""
from __future__ import annotations
import logging

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from prompt_hub.common.config import Settings, describe, load_settings
from prompt_hub.common.errors import ProviderError, UnknownProviderError
from prompt_hub.common.logging_setup import setup_logging
from prompt_hub.common.schema import GenerationRequest, HealthResponse, ModelsResponse, RunCreated
from prompt_hub.providers.catalog import ProviderCatalog, build_catalog
from prompt_hub.relay.registry import RunRegistry
from prompt_hub.relay.relay import Relay
from prompt_hub.server.sse import RelayStreamResponse

LOGGER = logging.getLogger("prompthub.server.app")


def create_app(
    settings: Settings | None = None,
    registry: RunRegistry | None = None,
    catalog: ProviderCatalog | None = None,
) -> FastAPI:
    """
    Build the application around an explicit registry and provider catalog.

    Args:
        settings: Runtime settings; loaded from env/YAML when omitted.
        registry: Run store shared by submit and stream endpoints.
        catalog: Enabled provider clients.
    """
    settings = settings or load_settings()
    registry = registry or RunRegistry(ttl_seconds=settings.run_ttl_seconds)
    catalog = catalog or build_catalog(settings)
    relay = Relay(
        registry,
        catalog,
        demo_delay=settings.demo_delay,
        channel_size=settings.channel_size,
    )

    app = FastAPI(title="prompt-hub relay")
    app.state.settings = settings
    app.state.registry = registry
    app.state.catalog = catalog
    app.state.relay = relay

    # DEV setup: any origin unless configured otherwise
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _on_startup() -> None:
        setup_logging(settings.log_level)
        LOGGER.info("Starting with settings %s", describe(settings))
        LOGGER.info("Providers: %s", ", ".join(catalog.enabled) or "(demo only)")

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        await relay.shutdown()
        await catalog.aclose()

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(ok=True, providers=catalog.enabled)

    @app.get("/api/models", response_model=ModelsResponse)
    def list_models(provider: str = Query("", description="openai|lmstudio")) -> ModelsResponse:
        name = provider.strip().lower()
        if not name:
            raise HTTPException(status_code=400, detail="provider query param required (openai|lmstudio)")
        try:
            models = catalog.list_models(name)
        except UnknownProviderError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ProviderError as e:
            LOGGER.error("%s listModels failed: %s", name, e)
            raise HTTPException(status_code=502, detail=f"{name} /v1/models failed: {e}")
        LOGGER.info("%s /v1/models -> %d models: %s", name, len(models), models)
        return ModelsResponse(provider=name, models=models)

    @app.post("/api/test/run", response_model=RunCreated)
    def start_run(body: GenerationRequest) -> RunCreated:
        run_id = registry.put(body)
        LOGGER.info("Stored run %s (model=%s)", run_id, body.model)
        return RunCreated(run_id=run_id)

    @app.get("/api/test/stream/{run_id}")
    async def stream_run(run_id: str) -> RelayStreamResponse:
        return RelayStreamResponse(relay, run_id)

    return app


def __getattr__(name: str) -> FastAPI:
    # `uvicorn prompt_hub.server.fastapi_app:app` builds the app on first access,
    # so importing this module never reads settings or opens provider clients
    if name == "app":
        app = create_app()
        globals()["app"] = app
        return app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
