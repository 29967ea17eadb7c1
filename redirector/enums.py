"""Shared enums for the redirect rotation service.

This module defines all status and outcome enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RedirectOutcome", "RefreshStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


class RedirectOutcome(StrEnum):
    """Outcome of a redirect request, used for metrics labels and logging."""

    DIRECT = "direct"
    ROTATED = "rotated"
    FALLBACK = "fallback"
    CLIENT_ERROR = "client_error"
    NOT_FOUND = "not_found"
    MAPPING_ERROR = "mapping_error"
    ERROR = "error"


class RefreshStatus(StrEnum):
    """Result of a mapping table refresh attempt."""

    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
