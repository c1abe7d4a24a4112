"""
Gateway error taxonomy.

Every error raised by a request handler ends up as the JSON envelope
``{"success": false, "message": ..., "error": ...}`` with ``status_code``.
"""
from __future__ import annotations


class GatewayError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        self.message = message or self.default_message
        self.error = error
        super().__init__(error or self.message)


class ValidationError(GatewayError):
    status_code = 400
    default_message = "Login, password, and server are required"


class NotFoundError(GatewayError):
    status_code = 404
    default_message = "Account not connected"


class UpstreamError(GatewayError):
    """The external connection service failed."""
    status_code = 500
    default_message = "Upstream service error"


class UpstreamTimeoutError(UpstreamError):
    """An external call did not finish within its time bound."""
