"""Launch the relay with uvicorn."""
from __future__ import annotations
import argparse
import logging

import uvicorn

from prompt_hub.common.config import load_settings
from prompt_hub.common.logging_setup import setup_logging
from prompt_hub.server.fastapi_app import create_app

LOGGER = logging.getLogger("prompthub.server")

def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Run the prompt-hub streaming relay")
    ap.add_argument("--config", default=None, help="YAML settings file (overrides $PROMPT_HUB_CONFIG)")
    ap.add_argument("--host", default=None, help="Bind address (default from settings)")
    ap.add_argument("--port", type=int, default=None, help="Listen port (default from settings)")
    args = ap.parse_args(argv)

    # CLI flags win; $HOST/$PORT are not even parsed when given
    overrides = {k: v for k, v in (("host", args.host), ("port", args.port)) if v is not None}
    settings = load_settings(args.config, overrides=overrides)
    setup_logging(settings.log_level)

    LOGGER.info("Listening on %s:%s", settings.host, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        # open SSE streams never finish on their own; after the grace period
        # uvicorn cancels them, which closes their upstream calls
        timeout_graceful_shutdown=settings.shutdown_grace,
    )

if __name__ == "__main__":
    main()
