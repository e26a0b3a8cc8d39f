"""Request logging and error tracking for the proxy."""

import asyncio
import base64
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger("falproxy")

LOG_ROOT = Path(__file__).resolve().parent.parent.parent.joinpath("logs")
REQUEST_LOG_DIR = LOG_ROOT.joinpath("requests")
ERROR_LOG_DIR = LOG_ROOT.joinpath("errors")
_PENDING_LOG_TASKS: set[asyncio.Task] = set()

_SENSITIVE_HEADERS = {"authorization", "x-app-token", "proxy-authorization"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _register_background_task(task: asyncio.Task) -> None:
    """Register a background task and set up cleanup."""
    _PENDING_LOG_TASKS.add(task)

    def _cleanup(_task: asyncio.Task) -> None:
        _PENDING_LOG_TASKS.discard(_task)

    task.add_done_callback(_cleanup)


async def wait_for_pending_logs() -> int:
    """Await all in-flight log flushes; returns how many were pending."""
    if not _PENDING_LOG_TASKS:
        return 0
    pending = list(_PENDING_LOG_TASKS)
    await asyncio.gather(*pending, return_exceptions=True)
    return len(pending)


def _safe_fragment(text: str) -> str:
    if not text:
        return "unknown"
    filtered = [ch if ch.isalnum() or ch in {"-", "_"} else "-" for ch in text.strip()]
    collapsed = "".join(filtered).strip("-") or "model"
    return collapsed[:48]


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(content, encoding="utf-8")
    os.replace(tmp_path, path)


def _schedule_write(path: Path, content: str) -> None:
    """Write on a worker thread when a loop is running, synchronously otherwise."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _write_text(path, content)
        return

    async def _write_async() -> None:
        await asyncio.to_thread(_write_text, path, content)

    _register_background_task(loop.create_task(_write_async()))


def log_error_event(
    model_name: str,
    error_type: str,
    error_message: str,
    http_status: Optional[int] = None,
    request_path: Optional[str] = None,
    request_log_path: Optional[Path] = None,
    extra_context: Optional[dict[str, Any]] = None,
    error_dir: Optional[Path] = None,
) -> Path:
    """
    Log an error event to the errors subdirectory for easy error tracking.

    This creates a separate, smaller log file per error for quick scanning.
    """
    timestamp = _utcnow()
    timestamp_str = timestamp.strftime("%Y%m%d_%H%M%S")
    filename = f"{timestamp_str}-{uuid.uuid4().hex[:4]}_{_safe_fragment(model_name)}.err"
    error_path = (error_dir or ERROR_LOG_DIR) / filename

    lines = [
        f"timestamp={timestamp.isoformat()}",
        f"model={model_name or 'unknown'}",
        f"error_type={error_type}",
        f"error_message={error_message}",
    ]
    if http_status is not None:
        lines.append(f"http_status={http_status}")
    if request_path:
        lines.append(f"request_path={request_path}")
    if request_log_path:
        lines.append(f"full_log={request_log_path.name}")
    if extra_context:
        for key, value in extra_context.items():
            lines.append(f"{key}={value}")

    _schedule_write(error_path, "\n".join(lines) + "\n")
    return error_path


class RequestLogRecorder:
    """Capture request/response lifecycle data and flush asynchronously.

    Everything is buffered in memory; nothing touches the disk unless
    ``log_to_disk`` is set.
    """

    def __init__(
        self,
        model_name: str,
        is_stream: bool,
        path: str,
        log_to_disk: bool = False,
        log_dir: Optional[Path] = None,
    ) -> None:
        self.model_name = model_name or "unknown"
        self.is_stream = is_stream
        self.request_path = path
        self.log_to_disk = log_to_disk
        self._log_dir = Path(log_dir) if log_dir else LOG_ROOT
        timestamp = _utcnow().strftime("%Y%m%d_%H%M%S")
        filename = f"{timestamp}-{uuid.uuid4().hex[:4]}_{_safe_fragment(self.model_name)}.log"
        self.log_path = self._log_dir / "requests" / filename
        self._buffer = bytearray()
        self._finalized = False
        self._stream_events = 0
        self._started = _utcnow().isoformat()
        self._last_http_status: Optional[int] = None
        self._error_logged = False
        self.outcome: Optional[str] = None
        self._append_text(f"log_start={self._started}\n")

    def _append_text(self, text: str) -> None:
        self._buffer.extend(text.encode("utf-8"))

    @property
    def text(self) -> str:
        """The log contents captured so far."""
        return self._buffer.decode("utf-8", errors="replace")

    @property
    def finalized(self) -> bool:
        return self._finalized

    def record_request(
        self, method: str, query: str, headers: Mapping[str, str], body: bytes
    ) -> None:
        if self._finalized:
            return
        self._append_text(
            f"=== REQUEST ===\nmethod={method}\npath={self.request_path}\n"
            f"query={query or ''}\nstream={self.is_stream}\n"
            f"headers={self._safe_json_dict(headers)}\nbody_len={len(body)}\n"
            "-- REQUEST BODY START --\n"
        )
        self._append_text(self._format_payload(body))
        self._append_text("-- REQUEST BODY END --\n")

    def record_budget(self, budget: Any) -> None:
        """Record the outcome of prompt budgeting (lengths, not text)."""
        if self._finalized:
            return
        self._append_text(
            f"=== PROMPT BUDGET ===\nstrategy={budget.strategy}\n"
            f"system_prompt_len={len(budget.system_prompt)}\n"
            f"prompt_len={len(budget.prompt)}\n"
            f"history_blocks_total={budget.history_blocks_total}\n"
            f"history_blocks_dropped={budget.history_blocks_dropped}\n"
        )

    def record_fal_input(self, url: str, fal_input: Mapping[str, Any]) -> None:
        if self._finalized:
            return
        self._append_text(f"=== FAL REQUEST ===\nurl={url}\n")
        self._append_text(self._format_json(fal_input))

    def record_backend_response(self, status: int, request_id: Optional[str], payload: Any) -> None:
        if self._finalized:
            return
        self._last_http_status = status
        self._append_text(
            f"=== FAL RESPONSE ===\nstatus={status}\nrequest_id={request_id or ''}\n"
        )
        self._append_text(self._format_json(payload))

    def record_stream_open(self, status: int, request_id: Optional[str]) -> None:
        if self._finalized:
            return
        self._last_http_status = status
        self._append_text(
            f"=== FAL STREAM ===\nstatus={status}\nrequest_id={request_id or ''}\n"
        )

    def record_stream_event(self, event: Any) -> None:
        if self._finalized:
            return
        self._stream_events += 1
        self._append_text(f"-- STREAM EVENT {self._stream_events} --\n")
        self._append_text(self._format_json(event))

    def record_error(self, message: str, error_type: Optional[str] = None) -> None:
        if self._finalized:
            return
        self._append_text(f"ERROR: {message}\n")

        # Also log to the errors directory (only once per request)
        if self._error_logged or not self.log_to_disk:
            return
        self._error_logged = True
        if error_type is None:
            lowered = message.lower()
            if "stream" in lowered:
                error_type = "stream_error"
            elif "status" in lowered:
                error_type = "http_error"
            elif "timeout" in lowered:
                error_type = "timeout"
            elif "cancelled" in lowered or "disconnect" in lowered:
                error_type = "client_disconnect"
            else:
                error_type = "unknown"

        log_error_event(
            model_name=self.model_name,
            error_type=error_type,
            error_message=message,
            http_status=self._last_http_status,
            request_path=self.request_path,
            request_log_path=self.log_path,
            error_dir=self._log_dir / "errors",
        )

    def finalize(self, outcome: str) -> None:
        if self._finalized:
            return
        self._finalized = True
        self.outcome = outcome
        finished = _utcnow().isoformat()
        self._append_text(f"=== FINAL STATUS: {outcome} at {finished} ===\n")
        if self.log_to_disk:
            _schedule_write(self.log_path, self.text)

    @staticmethod
    def _safe_json_dict(data: Mapping[str, str]) -> str:
        return json.dumps(RequestLogRecorder._safe_headers(data), sort_keys=True)

    @staticmethod
    def _safe_headers(data: Mapping[str, str]) -> dict[str, str]:
        masked_data: dict[str, str] = {}
        for key, value in ((str(k), str(v)) for k, v in data.items()):
            key_lower = key.lower()
            if key_lower in _SENSITIVE_HEADERS:
                # Keep the scheme, mask the credential: first 3 chars + ****
                scheme, _, secret = value.partition(" ")
                if secret:
                    masked_data[key] = f"{scheme} {secret[:3]}****"
                else:
                    masked_data[key] = value[:3] + "****" if len(value) > 3 else "****"
            elif key_lower == "host":
                masked_data[key] = "proxy_host"
            else:
                masked_data[key] = value
        return masked_data

    @staticmethod
    def _format_json(payload: Any) -> str:
        try:
            return json.dumps(payload, ensure_ascii=False, indent=2, default=str) + "\n"
        except (TypeError, ValueError):
            return f"{payload!r}\n"

    def _format_payload(self, data: bytes) -> str:
        if not data:
            return ""
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return f"<binary body base64={base64.b64encode(data[:64]).decode('ascii')}...>\n"

        stripped = text.strip()
        if stripped and stripped[0] in "{[":
            try:
                text = json.dumps(json.loads(stripped), ensure_ascii=False, indent=2)
            except json.JSONDecodeError:
                pass

        if text.endswith("\n"):
            return text
        return text + "\n"
