"""
Worker pipeline manager.

Keeps at most one local worker alive, bound to one model. Asking for a
different model tears the current worker down and starts a new one; asking for
the same model reuses it without any load progress.
"""

import atexit
import threading
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from underlator.config import load_config, MODELS_DIR
from underlator.exceptions import TranslationError, WorkerCrash, WorkerStartFailure
from underlator.logger import get_logger
from underlator.translation.events import StatusEvent
from underlator.worker.process import WorkerHandle, spawn_worker
from underlator.worker.resolver import ModelResolver

logger = get_logger(__name__)

ProcessFactory = Callable[[str, Path], WorkerHandle]


class WorkerPipelineManager:
    """Owns the cached worker and serializes access to it."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        resolver: Optional[ModelResolver] = None,
        process_factory: Optional[ProcessFactory] = None,
    ):
        local_config = config if config is not None else load_config().get("local", {})
        self.resolver = resolver or ModelResolver(local_config.get("models_dir") or MODELS_DIR)
        self.ready_timeout = float(local_config.get("ready_timeout", 300))
        self.poll_interval = float(local_config.get("poll_interval", 0.1))
        self.engine_spec = local_config.get("engine", "underlator.worker.engines:transformers_engine")
        self.process_factory = process_factory or partial(spawn_worker, engine_spec=self.engine_spec)

        self._lock = threading.RLock()
        self._handle: Optional[WorkerHandle] = None
        self.loads = 0

    @property
    def current_model(self) -> Optional[str]:
        handle = self._handle
        return handle.model_name if handle else None

    def get_instance(
        self,
        model: str,
        on_progress: Optional[Callable[[StatusEvent], None]] = None,
    ) -> WorkerHandle:
        """
        Return a ready worker for ``model``, starting one if needed.

        Raises:
            ModelUnavailable: If the model cannot be resolved locally
            WorkerStartFailure: If the worker fails to start or load the model
        """
        with self._lock:
            handle = self._handle
            if handle is not None and handle.model_name == model:
                if handle.is_alive():
                    return handle
                logger.warning(f"Cached worker for {model} is no longer running, restarting")

            if handle is not None:
                if handle.model_name != model:
                    logger.info(f"Switching worker model: {handle.model_name} -> {model}")
                self._teardown()

            model_path = self.resolver.resolve(model)

            try:
                handle = self.process_factory(model, model_path)
            except TranslationError:
                raise
            except Exception as e:
                raise WorkerStartFailure(f"Could not start worker for {model}: {e}", details={"model": model})

            try:
                handle.wait_ready(on_progress, timeout=self.ready_timeout, poll_interval=self.poll_interval)
            except TranslationError:
                handle.close()
                raise

            self._handle = handle
            self.loads += 1
            return handle

    @contextmanager
    def session(
        self,
        model: str,
        on_progress: Optional[Callable[[StatusEvent], None]] = None,
    ) -> Iterator[WorkerHandle]:
        """Hold the worker for one complete request exchange."""
        with self._lock:
            handle = self.get_instance(model, on_progress)
            try:
                yield handle
            except WorkerCrash:
                self.reset()
                raise

    def _teardown(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            logger.info(f"Stopping worker for {handle.model_name}")
            handle.close()

    def reset(self) -> None:
        """Drop the cached worker; the next request starts a fresh one."""
        with self._lock:
            self._teardown()

    def shutdown(self) -> None:
        self.reset()


_default_manager: Optional[WorkerPipelineManager] = None
_default_lock = threading.Lock()


def get_worker_manager() -> WorkerPipelineManager:
    """Application-wide manager, created on first use."""
    global _default_manager
    with _default_lock:
        if _default_manager is None:
            _default_manager = WorkerPipelineManager()
            atexit.register(_default_manager.shutdown)
        return _default_manager
