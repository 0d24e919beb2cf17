"""Translation API routes."""

from __future__ import annotations

import json
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from underlator.config import DEFAULT_MODE
from underlator.exceptions import TranslationError
from underlator.logger import get_logger
from underlator.translation.request import TranslationRequest
from underlator.web.tasks import cancel_job, create_translation_job, get_job, serialize_job

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)


def _coordinator():
    return current_app.config["COORDINATOR"]


def _parse_request() -> TranslationRequest:
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    default_mode = current_app.config["UNDERLATOR"].get("translation", {}).get("default_mode") or DEFAULT_MODE
    translation_request = TranslationRequest.from_dict(data, default_mode=default_mode)
    translation_request.validate()
    return translation_request


def _error_response(e: TranslationError, status: int = 400):
    error_response = {"error": str(e), "code": e.code}
    if e.details:
        error_response["details"] = e.details
    return jsonify(error_response), status


@translation_bp.post("/translate")
def start_translation_job():
    """Start an asynchronous translation job."""
    try:
        translation_request = _parse_request()
    except TranslationError as e:
        logger.warning("Rejected translation request: %s", e)
        return _error_response(e)

    job = create_translation_job(_coordinator(), translation_request)
    return jsonify({"job_id": job.job_id, "job": serialize_job(job)}), 202


@translation_bp.get("/translate/<job_id>")
def get_translation_job(job_id: str):
    """Return state, events so far and results of a job."""
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired", "code": "job_not_found"}), 404
    return jsonify(serialize_job(job))


@translation_bp.post("/translate/<job_id>/cancel")
def cancel_translation_job(job_id: str):
    """Cancel a running translation job."""
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired", "code": "job_not_found"}), 404

    if cancel_job(job_id):
        return jsonify({"status": "cancellation_requested", "job_id": job_id})
    return jsonify({"error": "Job has already finished", "code": "job_finished"}), 400


@translation_bp.post("/translate/stream")
def stream_translation():
    """Run a request and stream its status events as NDJSON lines."""
    try:
        translation_request = _parse_request()
    except TranslationError as e:
        logger.warning("Rejected translation request: %s", e)
        return _error_response(e)

    coordinator = _coordinator()

    def generate():
        events = coordinator.stream(translation_request)
        try:
            for event in events:
                yield json.dumps(event.to_dict(), ensure_ascii=False) + "\n"
        finally:
            events.close()

    return Response(stream_with_context(generate()), mimetype="application/x-ndjson")
