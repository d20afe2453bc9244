"""Errors raised by the shortening service.

Every error carries the HTTP status the API layer answers with, so route
handlers never translate them by hand.
"""


class ShortenerError(Exception):
    status_code = 500
    detail = "Internal server error"

    def __init__(self, detail: str = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class InvalidInput(ShortenerError):
    """Raised when a target URL or custom code is malformed."""

    status_code = 400
    detail = "Invalid input"


class Unauthorized(ShortenerError):
    status_code = 401
    detail = "Unauthorized"


class NotFound(ShortenerError):
    """Raised when a short code was never created (or is not visible to the caller)."""

    status_code = 404
    detail = "Link not found"


class CodeTaken(ShortenerError):
    """Raised when a custom code is already reserved."""

    status_code = 409
    detail = "Code already in use"


class LinkExpired(ShortenerError):
    """Raised when a short code exists but is past its expiry."""

    status_code = 410
    detail = "Link expired"


class CodeSpaceExhausted(ShortenerError):
    """Raised when every generated code collided within the retry budget."""

    status_code = 500
    detail = "Could not generate unique code"


class BackendUnavailable(ShortenerError):
    """Raised when the durable store or an upstream service cannot be reached."""

    status_code = 503
    detail = "Backend unavailable"
