"""OpenAI-compatible chat completions endpoint backed by fal any-llm."""

import asyncio
import json
import logging
from contextlib import aclosing
from typing import Any, Callable, Mapping, Optional

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask, BackgroundTasks

from ...auth import extract_credential
from ...core.exceptions import BackendError, InvalidRequestError
from ...core.registry import get_client, get_settings
from ...fal import (
    FalToChatStreamAdapter,
    build_backend_error_body,
    build_fal_input,
    fal_result_to_chat_completion,
    has_error_payload,
)
from ...logging import RequestLogRecorder
from ...prompting import build_budgeting_strategy
from ...usage_metrics import USAGE_COUNTERS, RequestTracker

logger = logging.getLogger("falproxy")

MISSING_PARAMETERS_MESSAGE = (
    "Missing or invalid parameters: model and messages array are required."
)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


def _attach_finish_task(response: Response, finish: Callable[[], None]) -> None:
    existing = getattr(response, "background", None)
    if existing is None:
        response.background = BackgroundTask(finish)
        return

    tasks = BackgroundTasks()
    if isinstance(existing, BackgroundTasks):
        for task in existing.tasks:
            tasks.add_task(task.func, *task.args, **task.kwargs)
    else:
        tasks.add_task(existing.func, *existing.args, **existing.kwargs)
    tasks.add_task(finish)
    response.background = tasks


def parse_chat_payload(body: bytes) -> Mapping[str, Any]:
    """Decode and validate a chat completion request body.

    Raises:
        InvalidRequestError: If the body is not a JSON object with a non-empty
            ``model`` string and a non-empty ``messages`` list.
    """
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc

    if not isinstance(payload, Mapping):
        raise InvalidRequestError(
            "Request body must be a JSON object", code="invalid_json_shape"
        )

    model_name = payload.get("model")
    messages = payload.get("messages")
    if not isinstance(model_name, str) or not model_name.strip():
        raise InvalidRequestError(MISSING_PARAMETERS_MESSAGE, code="missing_parameter")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError(MISSING_PARAMETERS_MESSAGE, code="missing_parameter")
    return payload


def _reject(
    request: Request,
    body: bytes,
    tracker: RequestTracker,
    log_to_disk: bool,
    error: InvalidRequestError,
) -> HTTPException:
    """Record a validation failure and build the 400 to raise."""
    logger.error(f"Rejecting chat completion request: {error.message}")
    cause = error.__cause__ or error.message
    request_log = RequestLogRecorder("unknown", False, request.url.path, log_to_disk=log_to_disk)
    request_log.record_request(request.method, request.url.query, request.headers, body)
    request_log.record_error(f"{error.code}: {cause}", error_type="invalid_request")
    request_log.finalize("error")
    tracker.finish(failed=True)
    return HTTPException(
        status_code=400,
        detail={
            "error": {
                "message": error.message,
                "type": "invalid_request_error",
                "code": error.code,
            }
        },
    )


def _internal_error(
    exc: Exception, request_log: RequestLogRecorder, tracker: RequestTracker
) -> JSONResponse:
    details = exc.message if isinstance(exc, BackendError) else str(exc)
    request_log.record_error(f"proxy error: {details}")
    request_log.finalize("error")
    tracker.finish(failed=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error in Proxy", "details": details},
    )


async def handle_chat_completion(request: Request) -> Response:
    """Handle an OpenAI-compatible chat completion request.

    The message list is budgeted into fal's ``system_prompt`` / ``prompt``
    fields and forwarded to the fal any-llm app. Streaming responses are
    converted from fal's cumulative snapshots into incremental chunks.

    Args:
        request: The FastAPI request object.

    Returns:
        A JSONResponse or StreamingResponse with the completion results.
    """
    logger.info(f"Handling {request.method} request to {request.url.path}")
    tracker = USAGE_COUNTERS.start_request()
    settings = get_settings()

    body = await request.body()
    try:
        payload = parse_chat_payload(body)
    except InvalidRequestError as exc:
        raise _reject(request, body, tracker, settings.log_to_disk, exc) from exc

    model_name = payload["model"]
    messages = payload["messages"]

    if not settings.is_supported_model(model_name):
        logger.warning(
            f"Requested model '{model_name}' is not in the supported list; forwarding anyway"
        )

    is_stream = bool(payload.get("stream"))
    request_log = RequestLogRecorder(
        model_name, is_stream, request.url.path, log_to_disk=settings.log_to_disk
    )
    request_log.record_request(request.method, request.url.query, request.headers, body)
    logger.info(f"Processing request for model {model_name}, stream={is_stream}")

    strategy = build_budgeting_strategy(settings.strategy, settings.limits)
    budget = strategy.budget(messages)
    request_log.record_budget(budget)
    logger.info(
        "Prompt budget (%s): system_prompt=%d chars, prompt=%d chars, history dropped=%d/%d",
        budget.strategy,
        len(budget.system_prompt),
        len(budget.prompt),
        budget.history_blocks_dropped,
        budget.history_blocks_total,
    )
    logger.debug("System prompt: %s", budget.system_prompt)
    logger.debug("Prompt: %s", budget.prompt)

    credential = extract_credential(request.headers)
    token = credential.token if credential else None
    if credential:
        logger.debug(f"Using client credential ({credential.scheme}) {credential.masked()}")

    fal_input = build_fal_input(payload, budget, settings.backend)
    request_log.record_fal_input(settings.backend.build_url(stream=is_stream), fal_input)
    client = get_client()

    if is_stream:
        return await _stream_completion(
            request, client, fal_input, token, model_name, request_log, tracker
        )

    try:
        result = await client.run(fal_input, token)
    except Exception as exc:
        logger.error(f"Error processing request for model {model_name}: {exc}")
        return _internal_error(exc, request_log, tracker)

    request_log.record_backend_response(200, result.get("request_id"), result)
    if has_error_payload(result.get("error")):
        logger.error(f"Fal-ai returned an error: {result['error']}")
        request_log.record_error(f"fal error: {result['error']}", error_type="backend_error")
        request_log.finalize("error")
        tracker.finish(failed=True)
        return JSONResponse(status_code=500, content=build_backend_error_body(result["error"]))

    logger.info(f"Request for model {model_name} completed successfully")
    request_log.finalize("success")
    tracker.finish()
    return JSONResponse(content=fal_result_to_chat_completion(result, model_name))


async def _stream_completion(
    request: Request,
    client: Any,
    fal_input: Mapping[str, Any],
    token: Optional[str],
    model_name: str,
    request_log: RequestLogRecorder,
    tracker: RequestTracker,
) -> Response:
    try:
        fal_stream = await client.open_stream(fal_input, token)
    except Exception as exc:
        logger.error(f"Failed to open fal stream for model {model_name}: {exc}")
        return _internal_error(exc, request_log, tracker)

    request_log.record_stream_open(200, fal_stream.request_id)
    adapter = FalToChatStreamAdapter(model_name, request_log=request_log)

    async def _stream_body():
        outcome = "error"
        try:
            async with aclosing(
                adapter.adapt_stream(fal_stream, disconnect_checker=request.is_disconnected)
            ) as frames:
                async for frame in frames:
                    yield frame
            if adapter.finish_reason == "stop":
                outcome = "success"
            else:
                outcome = adapter.finish_reason or "incomplete"
        except (asyncio.CancelledError, GeneratorExit):
            outcome = "cancelled"
            raise
        finally:
            logger.info(
                f"Fal stream for model {model_name} finished: {outcome} "
                f"({adapter.events_consumed} events, {adapter.chunks_emitted} chunks)"
            )
            request_log.finalize(outcome)
            tracker.finish(failed=outcome != "success")
            # Must stay after the bookkeeping; cancellation can interrupt this await
            await fal_stream.aclose()

    response = StreamingResponse(
        _stream_body(),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )
    _attach_finish_task(response, tracker.finish)
    return response


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    return await handle_chat_completion(request)
