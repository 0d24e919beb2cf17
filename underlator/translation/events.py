"""
Status events and the per-request progress bus.

Every backend reports through the same small set of events:

- ProgressEvent: model/resource loading progress (0-100)
- ChunkEvent: translated text for one fragment index (block or regular)
- CompleteEvent: terminal success with the index -> text map
- ErrorEvent: terminal failure with a readable message and error code

Each request owns one ProgressBus; it is closed on the terminal event so no
callback outlives its request.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from underlator.logger import get_logger

logger = get_logger(__name__)


class EventKind(str, Enum):
    PROGRESS = "progress"
    CHUNK = "chunk"
    BLOCK_CHUNK = "block-chunk"
    COMPLETE = "complete"
    BLOCK_COMPLETE = "block-complete"
    ERROR = "error"
    BLOCK_ERROR = "block-error"


TERMINAL_KINDS = frozenset({
    EventKind.COMPLETE,
    EventKind.BLOCK_COMPLETE,
    EventKind.ERROR,
    EventKind.BLOCK_ERROR,
})


@dataclass(frozen=True)
class ProgressEvent:
    """Loading progress of a named resource (model file, worker)."""
    resource: str
    progress: float

    @property
    def kind(self) -> EventKind:
        return EventKind.PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.kind.value, "data": {"file": self.resource, "progress": self.progress}}


@dataclass(frozen=True)
class ChunkEvent:
    """Text produced for one fragment index."""
    index: int
    text: str
    block: bool = False

    @property
    def kind(self) -> EventKind:
        return EventKind.BLOCK_CHUNK if self.block else EventKind.CHUNK

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.kind.value, "data": {"idx": self.index, "text": self.text}}


@dataclass(frozen=True)
class CompleteEvent:
    """Terminal success."""
    results: Dict[int, str] = field(default_factory=dict)
    block: bool = False

    @property
    def kind(self) -> EventKind:
        return EventKind.BLOCK_COMPLETE if self.block else EventKind.COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.kind.value,
            "output": {str(index): text for index, text in sorted(self.results.items())},
        }


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure."""
    message: str
    code: str = "translation_error"
    block: bool = False
    failed_indices: Tuple[int, ...] = ()

    @property
    def kind(self) -> EventKind:
        return EventKind.BLOCK_ERROR if self.block else EventKind.ERROR

    def to_dict(self) -> Dict[str, Any]:
        payload = {"status": self.kind.value, "error": self.message, "code": self.code}
        if self.failed_indices:
            payload["failed"] = list(self.failed_indices)
        return payload


StatusEvent = Union[ProgressEvent, ChunkEvent, CompleteEvent, ErrorEvent]


def is_terminal(event: StatusEvent) -> bool:
    return event.kind in TERMINAL_KINDS


def _parse_output(output: Any) -> Dict[int, str]:
    if isinstance(output, dict):
        return {int(index): str(text) for index, text in output.items()}
    if isinstance(output, list):
        return {index: str(text) for index, text in enumerate(output)}
    if isinstance(output, str):
        return {0: output}
    return {}


def event_from_message(message: Dict[str, Any]) -> Optional[StatusEvent]:
    """
    Convert a worker wire message to a StatusEvent.

    Returns None for bookkeeping statuses (ready, cancelled, unknown).
    'update' is the worker's output so far for the fragment in progress and
    maps to a chunk holding that whole text.
    """
    status = message.get("status")
    data = message.get("data") or {}

    if status == EventKind.PROGRESS.value:
        return ProgressEvent(
            resource=str(data.get("file") or data.get("name") or ""),
            progress=float(data.get("progress") or 0),
        )
    if status in (EventKind.CHUNK.value, EventKind.BLOCK_CHUNK.value):
        return ChunkEvent(
            index=int(data.get("idx", 0)),
            text=str(data.get("text", "")),
            block=status == EventKind.BLOCK_CHUNK.value,
        )
    if status == "update":
        return ChunkEvent(index=int(data.get("idx", 0)), text=str(message.get("output", "")))
    if status in (EventKind.COMPLETE.value, EventKind.BLOCK_COMPLETE.value):
        return CompleteEvent(
            results=_parse_output(message.get("output")),
            block=status == EventKind.BLOCK_COMPLETE.value,
        )
    if status in (EventKind.ERROR.value, EventKind.BLOCK_ERROR.value):
        return ErrorEvent(
            message=str(message.get("error") or "Unknown worker error"),
            code=str(message.get("code") or "worker_error"),
            block=status == EventKind.BLOCK_ERROR.value,
            failed_indices=tuple(int(index) for index in message.get("failed") or ()),
        )
    return None


class ProgressBus:
    """Callback registry for one request's status events."""

    def __init__(self):
        self._subscribers: List[Callable[[StatusEvent], None]] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Callable[[StatusEvent], None]) -> Callable[[], None]:
        """Register a callback; returns a function that removes it."""
        with self._lock:
            if not self._closed:
                self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: StatusEvent) -> None:
        with self._lock:
            if self._closed:
                return
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Status subscriber failed on {event.kind.value} event: {e}")

    def close(self) -> None:
        """Drop all subscribers; later publishes are ignored."""
        with self._lock:
            self._closed = True
            self._subscribers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
