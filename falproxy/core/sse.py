"""SSE (Server-Sent Events) encoding and decoding utilities."""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger("falproxy")

SSE_DONE = b"data: [DONE]\n\n"


@dataclass
class SSEEvent:
    data: Optional[str]
    other_lines: list[str] = field(default_factory=list)

    def encode(self) -> bytes:
        lines: list[str] = []
        lines.extend(self.other_lines)
        if self.data is not None:
            for item in self.data.split("\n"):
                if item:
                    lines.append(f"data: {item}")
                else:
                    lines.append("data:")
        text = "\n".join(lines) + "\n\n"
        return text.encode("utf-8")


class SSEDecoder:
    """Incrementally split a byte stream into SSE events."""

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        text = self._utf8.decode(chunk)
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        self._buffer += text
        events: list[SSEEvent] = []

        while True:
            sep_index = self._buffer.find("\n\n")
            if sep_index == -1:
                break
            raw_event = self._buffer[:sep_index]
            self._buffer = self._buffer[sep_index + 2:]
            if not raw_event.strip():
                continue
            events.append(self._parse_event(raw_event))

        return events

    def flush(self) -> list[SSEEvent]:
        """Parse whatever is left in the buffer (a final event without a blank line)."""
        self._buffer += self._utf8.decode(b"", final=True)
        if not self._buffer.strip():
            self._buffer = ""
            return []
        leftover = self._buffer
        self._buffer = ""
        return [self._parse_event(leftover.strip("\n"))]

    @staticmethod
    def _parse_event(raw: str) -> SSEEvent:
        data_lines: list[str] = []
        other_lines: list[str] = []
        for line in raw.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
            else:
                other_lines.append(line)
        data = "\n".join(data_lines) if data_lines else None
        return SSEEvent(data=data, other_lines=other_lines)


def parse_sse_json(event: SSEEvent) -> Optional[dict[str, Any]]:
    """Decode the JSON object carried by an SSE event, if any."""
    if not event.data or event.data == "[DONE]":
        return None
    try:
        parsed = json.loads(event.data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping non-JSON SSE data: {event.data[:100]}")
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def format_sse_data(payload: Any) -> bytes:
    """Format a JSON payload as a single SSE data frame."""
    json_str = json.dumps(payload, ensure_ascii=False)
    return f"data: {json_str}\n\n".encode("utf-8")
