"""Exception taxonomy for redirect resolution.

Every outcome the request handler must branch on is a ``RedirectError``
subclass carrying its own HTTP status and a plain-text client message.
``ProviderUnavailable`` is the one member that never reaches a client: the
mapping cache absorbs it and degrades to the static row set.

Hierarchy
=========
::
    RedirectError (500)
    ├─ ClientInputError (400)    direct mode without domain/slug
    ├─ UnknownKeyError (404)     no active row and no fallback row
    ├─ MappingDataError (500)    matched row has empty domain/slug
    └─ ProviderUnavailable (503) sheet credentials missing or fetch failed
"""

from typing import Any, Optional

__all__ = [
    "RedirectError",
    "ClientInputError",
    "UnknownKeyError",
    "MappingDataError",
    "ProviderUnavailable",
]


class RedirectError(Exception):
    """Base exception for all redirect resolution errors.

    Attributes:
        code: Error code (e.g., "UNKNOWN_REDIRECT_ID")
        message: Plain-text message safe to return to the client
        status_code: HTTP status code
        details: Additional context for logs only
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ClientInputError(RedirectError):
    """Request is missing required parameters (400)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="CLIENT_INPUT_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnknownKeyError(RedirectError):
    """No active row matches the redirect key and no fallback exists (404)."""

    def __init__(self, redirect_id: str):
        super().__init__(
            code="UNKNOWN_REDIRECT_ID",
            message="Unknown or inactive rid",
            status_code=404,
            details={"redirect_id": redirect_id},
        )


class MappingDataError(RedirectError):
    """The matched row is unusable, so the data source is broken (500)."""

    def __init__(self, redirect_id: str, domain: str, slug: str):
        super().__init__(
            code="BAD_MAPPING",
            message="Bad mapping (domain/slug)",
            status_code=500,
            details={"redirect_id": redirect_id, "domain": domain, "slug": slug},
        )


class ProviderUnavailable(RedirectError):
    """Mapping table provider cannot be used (credentials missing or fetch failed)."""

    def __init__(self, provider: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code=f"{provider.upper()}_UNAVAILABLE",
            message=message,
            status_code=503,
            details={"provider": provider, **(details or {})},
        )
