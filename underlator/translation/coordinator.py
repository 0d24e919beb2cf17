"""
Translation Coordinator

Entry point for every translation request. Picks the provider, validates
and packages the fragments for the requested mode, relays status events and
guarantees exactly one terminal event per request.

Modes:
- simple: each fragment translated independently
- block: local worker only, failures isolated per fragment
- contextual: fragments joined with the chunk delimiter, translated in one
  pass and split back into the original count; partial results stream as
  soon as the response splits into that many fragments
"""

import queue
import threading
from typing import Callable, Dict, Iterator, Optional

from underlator.config import load_config, DEFAULT_CHUNK_DELIMITER, DEFAULT_MAX_CONTEXTUAL_CHUNKS
from underlator.exceptions import (
    Cancelled,
    EmptyInput,
    FragmentError,
    InvalidRequest,
    ReconciliationError,
    TranslationError,
    UnsupportedMode,
)
from underlator.logger import get_logger
from underlator.providers import GenerateOptions, Provider, get_provider
from underlator.translation import codec
from underlator.translation.events import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    ProgressBus,
    ProgressEvent,
    StatusEvent,
)
from underlator.translation.request import TranslationMode, TranslationRequest, TranslationResult
from underlator.translation.think import strip_think

logger = get_logger(__name__)

_STREAM_END = object()


class _RequestSession:
    """Event delivery for one request: ordered, suppressed after cancel, settled once."""

    def __init__(self, request: TranslationRequest, on_event: Optional[Callable[[StatusEvent], None]] = None):
        self.request = request
        self.bus = ProgressBus()
        if on_event is not None:
            self.bus.subscribe(on_event)
        self.result = TranslationResult(
            request_id=request.request_id,
            mode=request.mode,
            count=request.count,
        )
        self._lock = threading.RLock()
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def emit(self, event: StatusEvent) -> None:
        """Deliver a non-terminal event unless the request is settled or cancelled."""
        with self._lock:
            if self._settled or self.request.cancel_token.cancelled:
                return
            self.bus.publish(event)

    def _settle(self, event: StatusEvent) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            self.bus.publish(event)
            self.bus.close()
            return True

    def complete(self, results: Dict[int, str], block: bool = False) -> None:
        if self._settle(CompleteEvent(results=dict(results), block=block)):
            self.result.results = dict(results)

    def fail(self, error: TranslationError, block: bool = False) -> None:
        failed = tuple(error.failed_indices) if isinstance(error, FragmentError) else ()
        event = ErrorEvent(message=str(error), code=error.code, block=block, failed_indices=failed)
        if self._settle(event):
            self.result.error = str(error)
            self.result.error_code = error.code
            self.result.failed_indices = list(failed)
            self.result.cancelled = isinstance(error, Cancelled)
            if isinstance(error, FragmentError):
                self.result.results = dict(error.partial)


class TranslationCoordinator:
    """Runs translation requests against the configured providers."""

    def __init__(
        self,
        providers: Optional[Dict[str, Provider]] = None,
        config: Optional[Dict] = None,
    ):
        self.config = config if config is not None else load_config()
        translation_config = self.config.get("translation", {})
        self.delimiter = translation_config.get("chunk_delimiter") or DEFAULT_CHUNK_DELIMITER
        self.max_contextual_chunks = int(
            translation_config.get("max_contextual_chunks", DEFAULT_MAX_CONTEXTUAL_CHUNKS)
        )
        self.default_provider = self.config.get("provider", "remote")
        self._providers: Dict[str, Provider] = dict(providers or {})
        self._providers_lock = threading.Lock()

    def provider_for(self, request: TranslationRequest) -> Provider:
        """Provider named by the request, or the configured default."""
        return self.get_provider(request.provider or self.default_provider)

    def get_provider(self, name: str) -> Provider:
        """Cached provider instance by name, built on first use."""
        with self._providers_lock:
            provider = self._providers.get(name)
            if provider is None:
                provider = get_provider(name, self.config)
                self._providers[name] = provider
        return provider

    def translate(
        self,
        request: TranslationRequest,
        on_event: Optional[Callable[[StatusEvent], None]] = None,
    ) -> TranslationResult:
        """
        Run a request to completion.

        Status events are delivered to ``on_event`` as they happen; the last
        one is always the single terminal event. Errors are reported through
        the result, never raised.
        """
        session = _RequestSession(request, on_event)
        block = request.mode is TranslationMode.BLOCK

        logger.info(
            f"Request {request.request_id}: {request.count} fragment(s), "
            f"mode={request.mode.value}, direction={request.direction}"
        )

        try:
            request.validate()
            provider = self.provider_for(request)
            if request.mode is TranslationMode.BLOCK:
                self._run_block(request, provider, session)
            elif request.mode is TranslationMode.CONTEXTUAL:
                self._run_contextual(request, provider, session)
            else:
                self._run_simple(request, provider, session)
        except Cancelled as e:
            logger.info(f"Request {request.request_id} cancelled")
            session.fail(e)
        except TranslationError as e:
            if request.cancel_token.cancelled:
                session.fail(Cancelled())
            else:
                logger.error(f"Request {request.request_id} failed: {e}")
                session.fail(e, block=block)
        except Exception as e:
            logger.exception(f"Request {request.request_id} failed unexpectedly: {e}")
            session.fail(TranslationError(f"Unexpected error: {e}", code="internal_error"), block=block)

        return session.result

    def stream(self, request: TranslationRequest) -> Iterator[StatusEvent]:
        """
        Iterate over the request's status events, ending with the terminal one.

        The request runs on a background thread; closing the iterator early
        cancels it.
        """
        events: "queue.Queue" = queue.Queue()

        def run():
            try:
                self.translate(request, on_event=events.put)
            finally:
                events.put(_STREAM_END)

        thread = threading.Thread(target=run, name=f"translate-{request.request_id[:8]}", daemon=True)
        thread.start()

        finished = False
        try:
            while True:
                event = events.get()
                if event is _STREAM_END:
                    finished = True
                    break
                yield event
        finally:
            if not finished:
                request.cancel_token.cancel()

    def _options(self, request: TranslationRequest, **overrides) -> GenerateOptions:
        values = dict(
            texts=list(request.texts),
            source_language=request.source_language,
            target_language=request.target_language,
            instruction=request.instruction,
            model=request.model,
            delimiter=self.delimiter,
            request_id=request.request_id,
            cancel_token=request.cancel_token,
        )
        values.update(overrides)
        return GenerateOptions(**values)

    def _finish(self, request: TranslationRequest, session: _RequestSession, results: Dict[int, str], block: bool):
        request.cancel_token.raise_if_cancelled()
        session.complete(results, block=block)

    def _run_simple(self, request: TranslationRequest, provider: Provider, session: _RequestSession) -> None:
        results = provider.generate(self._options(request), session.emit)
        self._finish(request, session, results, block=False)

    def _run_block(self, request: TranslationRequest, provider: Provider, session: _RequestSession) -> None:
        if not provider.supports_block_mode:
            raise UnsupportedMode(
                f"Block mode is not supported by the {provider.name} provider",
                details={"provider": provider.name, "mode": request.mode.value},
            )
        codec.ensure_no_delimiter(request.texts, self.delimiter)

        results = provider.generate(self._options(request, block_mode=True), session.emit)
        self._finish(request, session, results, block=True)

    def _run_contextual(self, request: TranslationRequest, provider: Provider, session: _RequestSession) -> None:
        if not (request.source_language and request.target_language):
            raise InvalidRequest("Contextual translation requires source and target languages")

        limit = min(self.max_contextual_chunks, provider.max_contextual_chunks)
        if request.count > limit:
            raise InvalidRequest(
                f"Too many chunks for contextual translation: {request.count} (max {limit})",
                details={"count": request.count, "max": limit},
            )

        blank = [index for index, text in enumerate(request.texts) if not text.strip()]
        if blank:
            raise EmptyInput(
                f"Contextual translation does not accept empty chunks: {blank}",
                details={"indices": blank},
            )

        codec.ensure_no_delimiter(request.texts, self.delimiter)
        combined = codec.combine(request.texts, self.delimiter)

        streamed: Dict[int, str] = {}
        pieces = []
        relay_lock = threading.Lock()

        def publish(results: Dict[int, str]):
            for index in range(request.count):
                if streamed.get(index) != results[index]:
                    streamed[index] = results[index]
                    session.emit(ChunkEvent(index=index, text=results[index]))

        # Tokens of the combined response are re-split after every piece; a
        # partial response that does not split into request.count fragments yet
        # produces nothing
        def relay(event: StatusEvent):
            if isinstance(event, ProgressEvent):
                session.emit(event)
                return
            if not isinstance(event, ChunkEvent):
                return
            with relay_lock:
                pieces.append(event.text)
                partial = strip_think("".join(pieces))
                if not partial.strip():
                    return
                try:
                    results = codec.process_contextual_response(partial, request.count, self.delimiter)
                except ReconciliationError:
                    return
                publish(results)

        options = self._options(request, texts=[combined], contextual=True, chunk_count=request.count)
        raw = provider.generate(options, relay)
        request.cancel_token.raise_if_cancelled()

        response = strip_think(raw.get(0, ""))
        results = codec.process_contextual_response(response, request.count, self.delimiter)

        with relay_lock:
            publish(results)
        self._finish(request, session, results, block=False)

    def close(self) -> None:
        with self._providers_lock:
            providers, self._providers = list(self._providers.values()), {}
        for provider in providers:
            provider.close()
