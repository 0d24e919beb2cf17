"""
Translation request, result and cancellation types.
"""

import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from underlator.exceptions import Cancelled, InvalidRequest
from underlator.logger import get_logger

logger = get_logger(__name__)


class TranslationMode(str, Enum):
    SIMPLE = "simple"
    BLOCK = "block"
    CONTEXTUAL = "contextual"

    @classmethod
    def parse(cls, value: Any) -> "TranslationMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidRequest(
                f"Invalid translation mode: {value!r}",
                details={"mode": value, "allowed": [mode.value for mode in cls]},
            )


class CancellationToken:
    """
    Cooperative cancellation signal shared between a caller and one request.

    Callbacks registered with ``on_cancel`` run once, on the thread that calls
    ``cancel``; providers use them to close in-flight responses.
    """

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.debug(f"Cancellation callback failed: {e}")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; runs immediately if already cancelled. Returns a remover."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                registered = True
            else:
                registered = False

        if not registered:
            callback()

        def remove():
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


@dataclass
class TranslationRequest:
    """One translation call: ordered fragments plus how to translate them."""
    texts: List[str]
    source_language: str = ""
    target_language: str = ""
    mode: TranslationMode = TranslationMode.SIMPLE
    instruction: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        if isinstance(self.texts, str):
            self.texts = [self.texts]
        elif self.texts is None:
            self.texts = []
        elif isinstance(self.texts, (dict, bytes)) or not isinstance(self.texts, Iterable):
            raise InvalidRequest(
                "Texts must be a string or a list of strings",
                details={"texts_type": type(self.texts).__name__},
            )
        self.texts = list(self.texts)
        self.mode = TranslationMode.parse(self.mode)

    @property
    def count(self) -> int:
        return len(self.texts)

    @property
    def direction(self) -> str:
        return f"{self.source_language}-{self.target_language}"

    def validate(self) -> None:
        """Check the request is translatable before anything is dispatched."""
        if not self.texts:
            raise InvalidRequest("No text to translate")
        if not all(isinstance(text, str) for text in self.texts):
            raise InvalidRequest("Every fragment must be a string")
        if not self.instruction and not (self.source_language and self.target_language):
            raise InvalidRequest(
                "Source and target languages are required unless an instruction is given",
                details={"source_language": self.source_language, "target_language": self.target_language},
            )

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        default_mode: Any = TranslationMode.SIMPLE,
    ) -> "TranslationRequest":
        """
        Build a request from a JSON payload ({texts|text, source_language, ...}).

        ``default_mode`` applies when the payload names no mode.
        """
        if not isinstance(data, dict):
            raise InvalidRequest("Request body must be a JSON object")

        texts = data.get("texts")
        if texts is None:
            texts = data.get("text")
        if texts is None:
            texts = []

        source = data.get("source_language") or ""
        target = data.get("target_language") or ""
        direction = data.get("translate")
        if direction and not (source and target):
            from underlator.language_codes import parse_direction
            try:
                source, target = parse_direction(direction)
            except ValueError as e:
                raise InvalidRequest(str(e), details={"translate": direction})

        return cls(
            texts=texts,
            source_language=source,
            target_language=target,
            mode=data.get("mode") or default_mode,
            instruction=data.get("instruction") or None,
            model=data.get("model") or None,
            provider=data.get("provider") or None,
        )


@dataclass
class TranslationResult:
    """Settlement of one request."""
    request_id: str
    mode: TranslationMode
    count: int
    results: Dict[int, str] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    failed_indices: List[int] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def texts(self) -> List[str]:
        """Results in request order; missing indices are empty strings."""
        return [self.results.get(index, "") for index in range(self.count)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "mode": self.mode.value,
            "success": self.success,
            "results": {str(index): text for index, text in sorted(self.results.items())},
            "texts": self.texts,
            "error": self.error,
            "error_code": self.error_code,
            "failed_indices": list(self.failed_indices),
            "cancelled": self.cancelled,
        }
