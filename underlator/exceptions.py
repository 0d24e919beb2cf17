"""
Translation Pipeline Exceptions

This module contains the exception classes shared by the codec, providers,
worker manager and coordinator.
Separated to avoid circular imports between providers and the worker package.
"""


class TranslationError(Exception):
    """Translation pipeline error with optional code and details."""

    code_default = "translation_error"

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code or self.code_default
        self.details = details or {}


class InvalidRequest(TranslationError):
    """The request is malformed (missing languages, bad mode, ...)."""

    code_default = "invalid_request"


class EmptyInput(TranslationError):
    """No valid fragments to combine or translate."""

    code_default = "empty_input"


class DelimiterCollision(EmptyInput):
    """A fragment contains the reserved chunk delimiter."""

    code_default = "delimiter_collision"


class UnsupportedMode(TranslationError):
    """The selected provider cannot run the requested translation mode."""

    code_default = "unsupported_mode"


class ModelUnavailable(TranslationError):
    """The requested model cannot be resolved locally."""

    code_default = "model_unavailable"


class WorkerStartFailure(TranslationError):
    """The worker process failed to start or to load its model."""

    code_default = "worker_start_failure"


class WorkerCrash(TranslationError):
    """The worker process died while serving a request."""

    code_default = "worker_crash"


class DecodeError(TranslationError):
    """One malformed line in a streamed response. Always recovered."""

    code_default = "decode_error"

    def __init__(self, message: str, line: str = "", code: str = None, details: dict = None):
        super().__init__(message, code=code, details=details)
        self.line = line


class ReconciliationError(TranslationError):
    """Contextual response could not be split back into the expected fragments."""

    code_default = "reconciliation_failed"


class TransportError(TranslationError):
    """Network or process-channel failure."""

    code_default = "transport_error"


class FragmentError(TranslationError):
    """One or more independently translated fragments failed; the others settled."""

    code_default = "fragment_failed"

    def __init__(self, message: str, failed: dict = None, partial: dict = None, code: str = None):
        self.failed = dict(failed or {})
        self.partial = dict(partial or {})
        super().__init__(message, code=code, details={"failed": sorted(self.failed)})

    @property
    def failed_indices(self):
        return sorted(self.failed)


class Cancelled(TranslationError):
    """The request was cancelled by the caller."""

    code_default = "cancelled"

    def __init__(self, message: str = "Translation cancelled", code: str = None, details: dict = None):
        super().__init__(message, code=code, details=details)
