"""Typed error hierarchy shared by the ingestion pipeline and the routers.

Request-level errors are raised out of route handlers and rendered by the
``ServiceError`` handler registered in ``main.py``. Per-file errors are
caught by the ingestion coordinator and reported inside the batch result.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class carrying an error code and the HTTP status to report."""

    code: str = "SERVICE_ERROR"
    status_code: int = 500

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class UploadValidationError(ServiceError):
    """Bad file type or size, missing files, or malformed metadata JSON."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ExtractionError(ServiceError):
    """An external audio engine failed to process a file."""

    code = "EXTRACTION_FAILED"
    status_code = 422


class FingerprintError(ExtractionError):
    """Acoustic fingerprint computation failed. Fatal for that file only."""

    code = "FINGERPRINT_FAILED"


class PersistenceError(ServiceError):
    """A storage write or transaction failed and was rolled back."""

    code = "PERSISTENCE_FAILED"
    status_code = 503


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404
