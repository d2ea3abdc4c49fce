"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; the application maps each one to its status code and
renders ``{"error": message}``.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    """Malformed input: bad email domain, id number or price."""

    status_code = 400
    default_message = "Invalid request"


class Unauthorized(MarketplaceError):
    """Missing or invalid bearer token, or bad credentials."""

    status_code = 401
    default_message = "Unauthorized"


class Forbidden(MarketplaceError):
    """Authenticated, but not allowed to perform the operation."""

    status_code = 403
    default_message = "Forbidden"


class NotFound(MarketplaceError):
    status_code = 404
    default_message = "Not found"


class InternalError(MarketplaceError):
    status_code = 500
    default_message = "Internal server error"
