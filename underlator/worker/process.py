"""
Local translation worker.

The worker runs in a child process with one model loaded and talks to the
parent over a multiprocessing Pipe. Messages are plain dicts.

Parent -> worker:
    {"type": "translate", "id", "text" | "texts", "source_language",
     "target_language", "delimiter", "block_mode", "stream"}
    {"type": "cancel", "id"}
    {"type": "shutdown"}

Worker -> parent (every request-scoped message carries the request "id"):
    progress, ready, update, chunk, block-chunk, complete, block-complete,
    error, block-error, cancelled

"update" carries the text generated so far for the fragment in progress and
is only sent for requests with "stream" set.
"""

import multiprocessing
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from underlator.exceptions import WorkerCrash, WorkerStartFailure
from underlator.logger import get_logger
from underlator.translation.events import ProgressEvent, StatusEvent
from underlator.worker.engines import Engine, EngineFactory, load_engine_factory

logger = get_logger(__name__)


class _WorkerLoop:
    """Request loop executed inside the worker process."""

    def __init__(self, conn, model_name: str, engine: Engine):
        self.conn = conn
        self.model_name = model_name
        self.engine = engine
        self.stopping = False

    def serve(self) -> None:
        while not self.stopping:
            try:
                message = self.conn.recv()
            except (EOFError, OSError):
                break

            kind = message.get("type", "translate")
            if kind == "shutdown":
                break
            if kind == "cancel":
                # Nothing in flight
                continue
            if kind == "translate":
                self.handle(message)
            else:
                self.conn.send({
                    "status": "error",
                    "id": message.get("id"),
                    "error": f"Unknown message type: {kind}",
                    "code": "invalid_request",
                })

    def _cancel_requested(self, request_id: Any) -> bool:
        """Drain pending control messages between fragments."""
        cancelled = False
        while self.conn.poll():
            pending = self.conn.recv()
            kind = pending.get("type")
            if kind == "cancel" and pending.get("id") in (None, request_id):
                cancelled = True
            elif kind == "shutdown":
                self.stopping = True
                cancelled = True
        return cancelled

    def handle(self, message: Dict[str, Any]) -> None:
        request_id = message.get("id")
        source = message.get("source_language") or ""
        target = message.get("target_language") or ""
        block_mode = bool(message.get("block_mode"))
        stream = bool(message.get("stream"))

        def send(payload: Dict[str, Any]):
            payload["id"] = request_id
            self.conn.send(payload)

        if block_mode:
            delimiter = message.get("delimiter") or ""
            text = message.get("text") or ""
            texts = text.split(delimiter) if delimiter else [text]
        elif message.get("texts") is not None:
            texts = list(message["texts"])
        else:
            texts = [message.get("text") or ""]

        output: Dict[int, str] = {}
        failed: Dict[int, str] = {}

        def partial_sender(index: int) -> Callable[[str], None]:
            def on_partial(partial: str):
                send({"status": "update", "output": partial, "data": {"idx": index}})
            return on_partial

        for index, text in enumerate(texts):
            if self._cancel_requested(request_id):
                send({"status": "cancelled"})
                return

            try:
                if stream:
                    translated = self.engine(text, source, target, on_partial=partial_sender(index))
                else:
                    translated = self.engine(text, source, target)
            except Exception as e:
                if not block_mode:
                    send({
                        "status": "error",
                        "error": f"Translation failed for fragment {index}: {e}",
                        "code": "worker_error",
                    })
                    return
                failed[index] = str(e)
                continue

            output[index] = translated
            send({
                "status": "block-chunk" if block_mode else "chunk",
                "data": {"idx": index, "text": translated},
            })

        if failed:
            send({
                "status": "block-error",
                "error": f"{len(failed)} of {len(texts)} block(s) failed to translate",
                "code": "fragment_failed",
                "failed": sorted(failed),
            })
            return

        send({
            "status": "block-complete" if block_mode else "complete",
            "output": {str(index): text for index, text in output.items()},
        })


def run_worker(conn, model_name: str, model_path: str, engine_factory: EngineFactory) -> None:
    """Load the model, report readiness, then serve requests until shutdown."""
    conn.send({"status": "progress", "data": {"file": model_name, "progress": 0}})
    try:
        engine = engine_factory(Path(model_path))
    except Exception as e:
        conn.send({
            "status": "error",
            "error": f"Failed to load model {model_name}: {e}",
            "code": "worker_start_failure",
        })
        conn.close()
        return

    conn.send({"status": "progress", "data": {"file": model_name, "progress": 100}})
    conn.send({"status": "ready", "model": model_name})

    try:
        _WorkerLoop(conn, model_name, engine).serve()
    finally:
        conn.close()


def _worker_entry(conn, model_name: str, model_path: str, engine_spec: str) -> None:
    """multiprocessing target; the engine factory is imported inside the child."""
    try:
        factory = load_engine_factory(engine_spec)
    except Exception as e:
        conn.send({
            "status": "error",
            "error": f"Failed to load engine {engine_spec}: {e}",
            "code": "worker_start_failure",
        })
        conn.close()
        return
    run_worker(conn, model_name, model_path, factory)


class WorkerHandle:
    """Parent-side view of one running worker."""

    def __init__(self, model_name: str, model_path: Path, process, conn):
        self.model_name = model_name
        self.model_path = model_path
        self.process = process
        self.conn = conn

    def send(self, message: Dict[str, Any]) -> None:
        try:
            self.conn.send(message)
        except (OSError, EOFError, ValueError) as e:
            raise WorkerCrash(f"Worker for {self.model_name} is unreachable: {e}")

    def recv(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next message, or None when nothing arrived within ``timeout``."""
        try:
            if not self.conn.poll(timeout):
                return None
            return self.conn.recv()
        except (OSError, EOFError) as e:
            raise WorkerCrash(f"Worker for {self.model_name} closed its channel: {e}")

    def is_alive(self) -> bool:
        return self.process.is_alive()

    def wait_ready(
        self,
        on_progress: Optional[Callable[[StatusEvent], None]] = None,
        timeout: float = 300.0,
        poll_interval: float = 0.1,
    ) -> None:
        """
        Block until the worker reports 'ready', relaying load progress.

        Raises:
            WorkerStartFailure: On a load error, early exit or timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                message = self.recv(poll_interval)
            except WorkerCrash as e:
                raise WorkerStartFailure(str(e), details={"model": self.model_name})

            if message is None:
                if not self.is_alive():
                    raise WorkerStartFailure(
                        f"Worker for {self.model_name} exited during startup",
                        details={"model": self.model_name},
                    )
                if time.monotonic() > deadline:
                    raise WorkerStartFailure(
                        f"Worker for {self.model_name} not ready after {timeout}s",
                        details={"model": self.model_name},
                    )
                continue

            status = message.get("status")
            if status == "ready":
                logger.info(f"Worker ready: {self.model_name}")
                return
            if status == "error":
                raise WorkerStartFailure(
                    message.get("error") or f"Worker for {self.model_name} failed to start",
                    details={"model": self.model_name},
                )
            if status == "progress" and on_progress:
                data = message.get("data") or {}
                on_progress(ProgressEvent(
                    resource=str(data.get("file") or self.model_name),
                    progress=float(data.get("progress") or 0),
                ))

    def close(self, timeout: float = 5.0) -> None:
        """Ask the worker to stop; terminate it if it does not."""
        try:
            self.conn.send({"type": "shutdown"})
        except (OSError, EOFError, ValueError):
            pass

        self.process.join(timeout)
        terminate = getattr(self.process, "terminate", None)
        if terminate is not None and self.process.is_alive():
            logger.warning(f"Worker for {self.model_name} did not exit, terminating")
            terminate()
            self.process.join(timeout)

        try:
            self.conn.close()
        except OSError:
            pass


def spawn_worker(model_name: str, model_path: Path, engine_spec: str) -> WorkerHandle:
    """Start a worker child process for one model."""
    context = multiprocessing.get_context("spawn")
    parent_conn, child_conn = context.Pipe()
    process = context.Process(
        target=_worker_entry,
        args=(child_conn, model_name, str(model_path), engine_spec),
        name=f"underlator-worker-{model_name}",
        daemon=True,
    )
    process.start()
    child_conn.close()
    logger.info(f"Started worker process {process.pid} for {model_name}")
    return WorkerHandle(model_name, model_path, process, parent_conn)
