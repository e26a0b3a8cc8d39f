"""Plain-text liveness endpoint."""

from fastapi.responses import PlainTextResponse

from ...core.registry import get_settings


async def root() -> PlainTextResponse:
    """GET / - report that the proxy is up and which budgeting strategy it runs."""
    settings = get_settings()
    return PlainTextResponse(f"fal OpenAI proxy ({settings.strategy} prompt budgeting) is running.")
