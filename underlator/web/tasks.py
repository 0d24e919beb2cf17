"""
Asynchronous task helpers for long-running background translation jobs.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from underlator.logger import get_logger
from underlator.translation.coordinator import TranslationCoordinator
from underlator.translation.events import ProgressEvent, StatusEvent
from underlator.translation.request import TranslationRequest

logger = get_logger(__name__)


@dataclass
class JobState:
    """In-memory representation of an asynchronous translation job."""

    job_id: str
    request_id: str
    mode: str = "simple"
    source_language: str = ""
    target_language: str = ""
    provider: Optional[str] = None
    model: Optional[str] = None
    count: int = 0
    cancel_requested: bool = False
    state: str = "pending"  # pending|running|completed|failed|cancelled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    last_update: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_jobs: Dict[str, JobState] = {}
_requests: Dict[str, TranslationRequest] = {}
_jobs_lock = threading.Lock()
_JOB_RETENTION_SECONDS = 600  # Retain job info for 10 minutes after completion


def create_translation_job(coordinator: TranslationCoordinator, request: TranslationRequest) -> JobState:
    """
    Register a translation request and run it in a background thread.

    Returns:
        JobState for the new job (already registered and running).
    """
    job_id = uuid.uuid4().hex
    job = JobState(
        job_id=job_id,
        request_id=request.request_id,
        mode=request.mode.value,
        source_language=request.source_language,
        target_language=request.target_language,
        provider=request.provider,
        model=request.model,
        count=request.count,
    )

    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job
        _requests[job_id] = request

    thread = threading.Thread(
        target=_run_translation_job,
        args=(job, coordinator, request),
        name=f"translation-job-{job_id}",
        daemon=True,
    )
    thread.start()
    logger.info(
        "Translation job %s started (%s fragment(s), mode=%s, direction=%s)",
        job_id,
        request.count,
        job.mode,
        request.direction,
    )
    return job


def get_job(job_id: str) -> Optional[JobState]:
    """Fetch a job by ID (if still retained)."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _JOB_RETENTION_SECONDS:
            _jobs.pop(job_id, None)
            _requests.pop(job_id, None)
            return None
        return job


def cancel_job(job_id: str) -> bool:
    """
    Request cancellation of a running job.

    Returns:
        True if the job was found and cancellation requested, False otherwise.
    """
    with _jobs_lock:
        job = _jobs.get(job_id)
        request = _requests.get(job_id)
        if not job or not request:
            return False
        if job.state in ("completed", "failed", "cancelled"):
            return False
        job.cancel_requested = True
        job.last_update = time.time()

    request.cancel_token.cancel()
    logger.info("Cancellation requested for job %s", job_id)
    return True


def serialize_job(job: JobState) -> Dict[str, Any]:
    """Convert JobState into JSON-safe dict."""
    with _jobs_lock:
        return job.to_dict()


def _run_translation_job(job: JobState, coordinator: TranslationCoordinator, request: TranslationRequest):
    """Worker function executed in a background thread."""
    with _jobs_lock:
        job.state = "running"
        job.started_at = time.time()
        job.last_update = job.started_at

    def on_event(event: StatusEvent):
        with _jobs_lock:
            payload = event.to_dict()
            job.events.append(payload)
            if isinstance(event, ProgressEvent):
                job.progress = payload["data"]
            job.last_update = time.time()

    try:
        result = coordinator.translate(request, on_event=on_event)
    except Exception as exc:
        error_type = type(exc).__name__
        with _jobs_lock:
            job.state = "failed"
            job.error = f"{error_type}: {exc}"
            job.finished_at = time.time()
            job.last_update = job.finished_at
        logger.exception("Translation job %s failed: %s: %s", job.job_id, error_type, exc)
        return

    with _jobs_lock:
        job.result = result.to_dict()
        job.error = result.error
        job.error_code = result.error_code
        if result.cancelled:
            job.state = "cancelled"
        else:
            job.state = "completed" if result.success else "failed"
        job.finished_at = time.time()
        job.last_update = job.finished_at

    logger.info(
        "Translation job %s finished (state=%s, fragments=%s)",
        job.job_id,
        job.state,
        len(result.results),
    )


def _cleanup_jobs_locked():
    """Remove finished jobs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _JOB_RETENTION_SECONDS
    ]
    for job_id in expired:
        _jobs.pop(job_id, None)
        _requests.pop(job_id, None)
