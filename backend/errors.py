# errors.py — Domain error taxonomy for Trackify
# Raised by the core (identity store, task store, access control, dependency graph)
# and translated to HTTP responses by the handlers registered in main.py.

from typing import Any, Optional


class TrackifyError(Exception):
    """Base class for domain outcomes that are surfaced directly to the caller"""

    status_code = 400

    def __init__(self, detail: str, details: Optional[Any] = None):
        super().__init__(detail)
        self.detail = detail
        self.details = details


class NotFoundError(TrackifyError):
    """Referenced task or user does not exist"""
    status_code = 404


class ForbiddenError(TrackifyError):
    """Caller is authenticated but lacks the required access level or ownership"""
    status_code = 403


class ConflictError(TrackifyError):
    """Username or email already registered"""
    status_code = 409


class ValidationRejectedError(TrackifyError):
    """Malformed input: the whole operation is rejected, nothing is written"""
    status_code = 400
