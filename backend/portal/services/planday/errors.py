"""Exception taxonomy for the Planday integration."""
from typing import Optional

AUTH_FAILURE_STATUSES = frozenset({401, 403})
SHAPE_ERROR_STATUSES = frozenset({400, 422})


class PlandayError(Exception):
    """Base class for every error raised by the Planday integration."""


class PlandayAuthError(PlandayError):
    """The token endpoint refused the refresh credential or returned no token."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class PlandayConfigError(PlandayAuthError):
    """Client credentials are missing from the environment. Never retried."""


class ExternalApiError(PlandayError):
    """A Planday resource call finished with a non-2xx status."""

    def __init__(self, status: int, body: str = "", path: str = ""):
        self.status = status
        self.body = body
        self.path = path
        snippet = body[:300] if body else ""
        super().__init__(f"Planday API {status}: {snippet}".rstrip(": "))

    @property
    def is_auth_failure(self) -> bool:
        return self.status in AUTH_FAILURE_STATUSES

    @property
    def is_shape_error(self) -> bool:
        """The request shape (params, date format) was rejected; try the next candidate."""
        return self.status in SHAPE_ERROR_STATUSES


class InvalidPayloadError(ExternalApiError):
    """A 2xx reply whose body is not JSON (maintenance pages, proxies)."""

    def __init__(self, status: int, body: str = "", path: str = ""):
        super().__init__(status, body, path)
        Exception.__init__(self, f"Planday API {status}: non-JSON body from {path or 'upstream'}")
