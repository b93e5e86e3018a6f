# backend/errors.py
from __future__ import annotations


class TrackerError(Exception):
    """Base class for failures surfaced to API callers."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(TrackerError):
    status_code = 404


class ValidationFailed(TrackerError):
    status_code = 400


class PersistenceError(TrackerError):
    status_code = 500
