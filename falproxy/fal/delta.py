"""Reconstruct incremental deltas from fal's cumulative stream snapshots.

fal streams the whole output produced so far on every event. OpenAI clients
expect each chunk to carry only the new text. ``DeltaReconstructor`` keeps
the last snapshot of one stream and turns each event into zero or more
``StreamSignal`` values:

    ""     -> (nothing)
    "a"    -> delta "a"
    "ab"   -> delta "b"
    "abc"  -> delta "c", finish_reason "stop" (partial=False)
           -> done

A snapshot that does not extend the previous one is sent whole rather than
diffed. One instance serves exactly one stream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

logger = logging.getLogger("falproxy")

SIGNAL_DELTA = "delta"
SIGNAL_ERROR = "error"
SIGNAL_DONE = "done"


def has_error_payload(error: Any) -> bool:
    """Whether a backend ``error`` field reports a failure.

    Any object or list counts, empty ones included. Only a missing value,
    ``null``, ``false``, zero and the empty string mean "no error".
    """
    if error is None or isinstance(error, bool):
        return bool(error)
    if isinstance(error, (int, float)):
        return error != 0
    if isinstance(error, str):
        return error != ""
    return True


class ReconstructorState(str, Enum):
    STREAMING = "streaming"
    ERRORED = "errored"
    DONE = "done"


@dataclass(frozen=True)
class StreamSignal:
    """One output of the reconstructor.

    Attributes:
        kind: "delta" (text chunk), "error" (terminal error chunk) or
            "done" (stream terminator).
        text: Delta text for "delta" signals.
        finish_reason: "stop" on the terminal delta, "error" on error signals.
        error: The backend error payload for "error" signals.
    """

    kind: str
    text: str = ""
    finish_reason: Optional[str] = None
    error: Any = None


class DeltaReconstructor:
    """Stateful cumulative-to-incremental converter for one fal stream."""

    def __init__(self) -> None:
        self.previous_output = ""
        self.state = ReconstructorState.STREAMING
        self._terminated = False

    @property
    def finished(self) -> bool:
        return self.state is not ReconstructorState.STREAMING

    def feed(self, event: Optional[Mapping[str, Any]]) -> list[StreamSignal]:
        """Consume one backend event and return the signals it produces."""
        if self.finished:
            logger.debug("Ignoring fal event received after the stream finished")
            return []

        event = event if isinstance(event, Mapping) else {}
        output = event.get("output")
        current = output if isinstance(output, str) else ""
        partial = event.get("partial")
        is_partial = partial if isinstance(partial, bool) else True
        error = event.get("error")

        if has_error_payload(error):
            logger.error(f"Error received in fal stream event: {error}")
            self.state = ReconstructorState.ERRORED
            return [
                StreamSignal(kind=SIGNAL_ERROR, finish_reason="error", error=error),
                self._terminate(),
            ]

        delta = ""
        if current.startswith(self.previous_output):
            delta = current[len(self.previous_output):]
        elif current:
            logger.warning(
                "Fal stream output mismatch detected. Sending full current output as delta "
                "(previous_length=%d, current_length=%d)",
                len(self.previous_output),
                len(current),
            )
            delta = current
        self.previous_output = current

        signals: list[StreamSignal] = []
        if delta or not is_partial:
            signals.append(
                StreamSignal(
                    kind=SIGNAL_DELTA,
                    text=delta,
                    finish_reason=None if is_partial else "stop",
                )
            )
        if not is_partial:
            self.state = ReconstructorState.DONE
            signals.append(self._terminate())
        return signals

    def close(self) -> list[StreamSignal]:
        """Signal that the event source ended; emits the terminator if still owed."""
        if self._terminated:
            return []
        if self.state is ReconstructorState.STREAMING:
            logger.warning("Fal stream ended without a final event")
            self.state = ReconstructorState.DONE
        return [self._terminate()]

    def abort(self) -> list[StreamSignal]:
        """Mark the stream as failed outside the event payloads (e.g. a broken connection)."""
        if self.state is ReconstructorState.STREAMING:
            self.state = ReconstructorState.ERRORED
        if self._terminated:
            return []
        return [self._terminate()]

    def _terminate(self) -> StreamSignal:
        self._terminated = True
        return StreamSignal(kind=SIGNAL_DONE)
