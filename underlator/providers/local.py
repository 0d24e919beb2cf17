"""
Local provider: translation through the worker process.

The exchange for one request holds the worker session, so a model swap
requested by another caller waits until this request settles.

Chunk events carry only the text that is new for their index, the same as
remote tokens: the worker's "update" messages hold everything generated so
far and its final chunk the whole translation, so both are cut down to the
unseen suffix.
"""

import time
from typing import Any, Dict, Optional

from underlator.config import load_config
from underlator.exceptions import Cancelled, FragmentError, TranslationError, WorkerCrash
from underlator.logger import get_logger
from underlator.providers.base import Emit, GenerateOptions, Provider
from underlator.translation.events import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    event_from_message,
    is_terminal,
)
from underlator.worker.manager import WorkerPipelineManager, get_worker_manager
from underlator.worker.process import WorkerHandle
from underlator.worker.resolver import ModelResolver

logger = get_logger(__name__)


class LocalProvider(Provider):
    """Runs requests on the cached local worker."""

    name = "local"
    supports_block_mode = True

    def __init__(
        self,
        manager: Optional[WorkerPipelineManager] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        local_config = config if config is not None else load_config().get("local", {})
        self.manager = manager or get_worker_manager()
        self.owns_manager = False
        self.poll_interval = float(local_config.get("poll_interval", 0.1))
        self.cancel_grace = float(local_config.get("cancel_grace", 10.0))
        self.stream_partials = bool(local_config.get("stream_partials", True))

    @classmethod
    def from_config(cls, local_config: Dict[str, Any]) -> "LocalProvider":
        """Provider with its own worker manager built from ``local_config``."""
        provider = cls(manager=WorkerPipelineManager(config=local_config), config=local_config)
        provider.owns_manager = True
        return provider

    def close(self) -> None:
        if self.owns_manager:
            self.manager.shutdown()

    def _payload(self, options: GenerateOptions) -> Dict[str, Any]:
        payload = {
            "type": "translate",
            "id": options.request_id,
            "source_language": options.source_language,
            "target_language": options.target_language,
            "delimiter": options.delimiter,
            "stream": self.stream_partials,
        }
        if options.block_mode:
            payload["text"] = options.delimiter.join(options.texts)
            payload["block_mode"] = True
        elif len(options.texts) == 1:
            payload["text"] = options.texts[0]
        else:
            payload["texts"] = list(options.texts)
        return payload

    def generate(self, options: GenerateOptions, emit: Emit) -> Dict[int, str]:
        options.cancel_token.raise_if_cancelled()
        model = options.model or ModelResolver.default_model_for(
            options.source_language, options.target_language
        )

        with self.manager.session(model, on_progress=emit) as handle:
            logger.debug(f"Request {options.request_id}: {len(options.texts)} fragment(s) to {model}")
            handle.send(self._payload(options))
            return self._relay(handle, options, emit)

    def _relay(self, handle: WorkerHandle, options: GenerateOptions, emit: Emit) -> Dict[int, str]:
        token = options.cancel_token
        request_id = options.request_id
        partial: Dict[int, str] = {}
        sent: Dict[int, str] = {}
        cancel_deadline = None

        while True:
            if token.cancelled and cancel_deadline is None:
                handle.send({"type": "cancel", "id": request_id})
                cancel_deadline = time.monotonic() + self.cancel_grace

            message = handle.recv(self.poll_interval)
            if message is None:
                if not handle.is_alive():
                    raise WorkerCrash(
                        f"Worker for {handle.model_name} exited while translating",
                        details={"model": handle.model_name},
                    )
                if cancel_deadline is not None and time.monotonic() > cancel_deadline:
                    logger.warning(f"Worker for {handle.model_name} ignored cancel, restarting it")
                    self.manager.reset()
                    raise Cancelled()
                continue

            if message.get("id") != request_id:
                logger.debug(f"Ignoring worker message for request {message.get('id')}")
                continue

            if message.get("status") == "cancelled":
                raise Cancelled()

            event = event_from_message(message)
            if event is None:
                continue

            if cancel_deadline is not None:
                # Drain until the worker settles this request
                if is_terminal(event):
                    raise Cancelled()
                continue

            if isinstance(event, CompleteEvent):
                return dict(event.results)

            if isinstance(event, ErrorEvent):
                if event.block or event.failed_indices:
                    raise FragmentError(
                        event.message,
                        failed={index: event.message for index in event.failed_indices},
                        partial=partial,
                        code=event.code,
                    )
                raise TranslationError(event.message, code=event.code)

            if isinstance(event, ChunkEvent):
                if message.get("status") != "update":
                    partial[event.index] = event.text
                seen = event.index in sent
                delta = self._delta(sent, event.index, event.text)
                if delta or not seen:
                    emit(ChunkEvent(index=event.index, text=delta, block=options.block_mode))
                continue
            emit(event)

    @staticmethod
    def _delta(sent: Dict[int, str], index: int, text: str) -> str:
        previous = sent.get(index, "")
        sent[index] = text
        if text.startswith(previous):
            return text[len(previous):]
        return text
