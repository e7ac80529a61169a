"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; the exception handler installed by ``create_app``
renders them as ``{"error": <category>, "message": <text>}`` with the
class's HTTP status. Anything else is a bug and surfaces as a 500.
"""

from __future__ import annotations


class DatasprintError(Exception):
    """Base class for expected, user-facing failures."""

    category: str = "error"
    default_message: str = "Request failed"
    http_status: int = 400

    def __init__(self, message: str | None = None):
        self.message = message if message is not None else self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"

    def as_dict(self) -> dict:
        return {"error": self.category, "message": self.message}


class ValidationError(DatasprintError):
    category = "validation_error"
    default_message = "Invalid request"
    http_status = 400


class AuthError(DatasprintError):
    category = "auth_error"
    default_message = "Authentication required"
    http_status = 401


class PermissionDeniedError(DatasprintError):
    category = "permission_denied"
    default_message = "Not allowed"
    http_status = 403


class NotFoundError(DatasprintError):
    category = "not_found"
    default_message = "Not found"
    http_status = 404


class RoundContentNotFound(NotFoundError):
    default_message = "Round content not found"


class UpstreamUnavailable(DatasprintError):
    """The store or the storage provider could not serve a critical read/write."""

    category = "upstream_unavailable"
    default_message = "Upstream service unavailable"
    http_status = 503
