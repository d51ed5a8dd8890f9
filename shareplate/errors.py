"""
Error types raised by the repositories, the identity verifier and the
service layer. Each carries the HTTP status code it is rendered with.
"""

from __future__ import annotations


class ShareplateError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthenticated(ShareplateError):
    status_code = 401
    message = "Unauthorized: No token provided"


class InvalidCredential(ShareplateError):
    status_code = 401
    message = "Unauthorized: Invalid token"


class Forbidden(ShareplateError):
    status_code = 403
    message = "Forbidden: Access denied"


class NotFound(ShareplateError):
    status_code = 404
    message = "Not found"


class FoodUnavailable(NotFound):
    message = "Food not available"


class Conflict(ShareplateError):
    status_code = 409
    message = "Conflict"


class DuplicateRequest(Conflict):
    message = "Already requested this food"


class InvalidTransition(Conflict):
    message = "Request has already been decided"


class BadRequest(ShareplateError):
    status_code = 400
    message = "Bad request"


class InvalidId(BadRequest):
    message = "Invalid ID format"


class StorageError(ShareplateError):
    status_code = 500
    message = "Storage failure"
