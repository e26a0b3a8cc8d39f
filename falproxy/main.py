"""Main FastAPI application for the fal OpenAI proxy."""

import socket
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .api.routes import chat_completions, list_models, root, usage_router
from .config_loader import load_config
from .core import FalClient
from .core.registry import set_client, set_settings
from .logging import setup_logging, wait_for_pending_logs
from .settings import ProxySettings, build_settings

# Initialize logging
logger = setup_logging()


def _log_startup(settings: ProxySettings) -> None:
    print("""
+-------------------------------------------+
|   fal  ->  OpenAI chat completions proxy  |
+-------------------------------------------+
    """)
    logger.info("fal proxy server starting up...")
    logger.info("Configured bind address %s:%s", settings.host, settings.port)
    if settings.host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
    logger.info(
        "Prompt budgeting: strategy=%s prompt_limit=%d system_prompt_limit=%d",
        settings.strategy,
        settings.limits.prompt_limit,
        settings.limits.system_prompt_limit,
    )
    logger.info(f"fal backend: {settings.backend.build_url()}")
    if not settings.backend.api_key:
        logger.warning("No default fal key configured; clients must send their own credential")
    logger.info(f"Supported models: {len(settings.models)}")
    logger.info("fal proxy server ready to handle requests")


def create_app(settings: Optional[ProxySettings] = None) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        settings: Pre-built settings. When omitted the YAML config is loaded
            from FALPROXY_CONFIG or configs/config_default.yaml.

    Returns:
        The configured FastAPI application instance.
    """
    if settings is None:
        settings = build_settings(load_config())

    # Set the settings and client in the registry for routes to access
    set_settings(settings)
    set_client(FalClient(settings.backend))

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        _log_startup(settings)
        yield
        pending = await wait_for_pending_logs()
        if pending:
            logger.info("Flushed %d pending log tasks", pending)

    app = FastAPI(title="fal OpenAI proxy", lifespan=lifespan)
    app.state.settings = settings

    # Register routes
    app.post("/v1/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    app.get("/", response_class=PlainTextResponse)(root)
    app.include_router(usage_router)
    logger.info("FastAPI application created")
    return app


def run() -> None:
    """Run the proxy with uvicorn using the configured bind address."""
    import uvicorn

    settings = build_settings(load_config())
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


__all__ = ["create_app", "run"]
