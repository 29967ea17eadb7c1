"""Redirect Service Layer - Core Business Logic

This module orchestrates one redirect request: it reads the mapping cache,
resolves the row, runs group selection and composes the outbound URL. HTTP
concerns (status codes, headers) stay in ``redirector.routes``.

Request Flow
============
::
    ┌──────────────────┐
    │ GET /api/redirect│
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ split redirect   │
    │ key / passthrough│
    └────────┬─────────┘
     KEY?    │
    ┌────────┴────────┐
    │ NO               │ YES
    ▼                  ▼
┌──────────┐   ┌───────────────┐
│ resolve_ │   │ MappingCache. │
│ direct   │   │ get_rows()    │
└────┬─────┘   └──────┬────────┘
     │                ▼
     │         ┌───────────────┐
     │         │ resolve_keyed │──── FallbackMatch ──► fallback URL verbatim
     │         └──────┬────────┘
     │                ▼ RowMatch
     │         ┌───────────────┐
     │         │ select_group  │
     │         └──────┬────────┘
     ▼                ▼
┌──────────┐   ┌───────────────┐
│ build_   │   │ build_rotated_│
│ direct_  │   │ url           │
│ url      │   └──────┬────────┘
└────┬─────┘          │
     └───────┬────────┘
             ▼
      RedirectDecision (302)

Errors
======
``ClientInputError``, ``UnknownKeyError`` and ``MappingDataError`` propagate
to the route, which turns them into 400, 404 and 500. Provider failures never
get here: the cache absorbs them and serves the degraded row set.

Usage Examples
=============
```python
@router.get("/api/redirect")
async def redirect(
    request: Request,
    service: RedirectService = Depends(get_redirect_service),
) -> Response:
    decision = await service.resolve_redirect(request.query_params)
    return RedirectResponse(decision.location, status_code=302)
```
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from prometheus_client import Counter, Histogram

from redirector.enums import RedirectOutcome
from redirector.exceptions import ClientInputError, MappingDataError, RedirectError, UnknownKeyError
from redirector.resolver import FallbackMatch, resolve_direct, resolve_keyed
from redirector.selection import SelectionResult, select_group
from redirector.url_builder import build_direct_url, build_rotated_url

__all__ = ["RedirectDecision", "RedirectService"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

REDIRECT_REQUESTS_TOTAL = Counter(
    "redirector_redirect_requests_total",
    "Total redirect requests",
    ["outcome"],
)
REDIRECT_DURATION = Histogram(
    "redirector_redirect_duration_seconds",
    "Time taken to resolve a redirect",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0, 5.0],
)

_ERROR_OUTCOMES: dict[type[RedirectError], RedirectOutcome] = {
    ClientInputError: RedirectOutcome.CLIENT_ERROR,
    UnknownKeyError: RedirectOutcome.NOT_FOUND,
    MappingDataError: RedirectOutcome.MAPPING_ERROR,
}


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class RedirectDecision:
    """Where to send the client, and how we got there."""
    location: str
    outcome: RedirectOutcome
    redirect_id: Optional[str] = None
    selection: Optional[SelectionResult] = None


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================

class RedirectService:
    """Resolve redirect requests against the cached mapping table.

    Example:
        >>> service = RedirectService.from_context(ctx)
        >>> decision = await service.resolve_redirect({"rid": "5", "s1pcid": "ABC_1"})
        >>> decision.location
        'https://example.com/bar/?s1pcid=ABC_2&segment=&fbid=...'
    """

    def __init__(self, ctx: 'RequestContext'):
        self._cache = ctx.mapping_cache
        self._rng = ctx.rng
        self._logger = ctx.logger
        self._settings = ctx.settings

    @classmethod
    def from_context(cls, ctx: 'RequestContext') -> 'RedirectService':
        return cls(ctx)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def resolve_redirect(self, params: Mapping[str, str]) -> RedirectDecision:
        """Resolve the outbound URL for one request.

        Args:
            params: Inbound query parameters (single value per key)

        Returns:
            RedirectDecision: Location plus outcome for logging

        Raises:
            ClientInputError: Direct mode without domain/slug
            UnknownKeyError: Unknown or inactive key and no fallback row
            MappingDataError: Matched row has an empty domain or slug
        """
        start_time = time.perf_counter()
        key_param = self._settings.REDIRECT_KEY_PARAM
        redirect_id = params.get(key_param)
        passthrough = {k: v for k, v in params.items() if k != key_param}

        try:
            if not redirect_id:
                decision = self._resolve_direct(passthrough)
            else:
                decision = await self._resolve_rotated(redirect_id, passthrough)
        except RedirectError as exc:
            outcome = _ERROR_OUTCOMES.get(type(exc), RedirectOutcome.ERROR)
            REDIRECT_REQUESTS_TOTAL.labels(outcome=outcome).inc()
            REDIRECT_DURATION.observe(time.perf_counter() - start_time)
            raise
        except Exception:
            REDIRECT_REQUESTS_TOTAL.labels(outcome=RedirectOutcome.ERROR).inc()
            REDIRECT_DURATION.observe(time.perf_counter() - start_time)
            raise

        REDIRECT_REQUESTS_TOTAL.labels(outcome=decision.outcome).inc()
        REDIRECT_DURATION.observe(time.perf_counter() - start_time)
        return decision

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    def _resolve_direct(self, passthrough: dict[str, str]) -> RedirectDecision:
        target = resolve_direct(passthrough)
        return RedirectDecision(
            location=build_direct_url(target.domain, target.slug, passthrough),
            outcome=RedirectOutcome.DIRECT,
        )

    async def _resolve_rotated(self, redirect_id: str, passthrough: dict[str, str]) -> RedirectDecision:
        rows = await self._cache.get_rows()
        match = resolve_keyed(rows, redirect_id)

        if isinstance(match, FallbackMatch):
            self._logger.info(
                f"No active row for rid {redirect_id}, using fallback",
                extra={"operation": "redirect", "redirect_id": redirect_id, "fallback_url": match.url},
            )
            return RedirectDecision(
                location=match.url,
                outcome=RedirectOutcome.FALLBACK,
                redirect_id=redirect_id,
            )

        selection = select_group(
            match.row.groups,
            match.row.weights,
            max_keywords=self._settings.MAX_KEYWORDS,
            rng=self._rng,
        )
        location = build_rotated_url(
            match.domain,
            match.slug,
            passthrough,
            segment=match.row.segment,
            chosen_index=selection.chosen_index,
            keywords=selection.keywords,
            static_fields={
                "fbid": self._settings.STATIC_FBID,
                "fbclick": self._settings.STATIC_FBCLICK,
            },
        )
        self._logger.debug(
            f"rid {redirect_id} rotated to group {selection.chosen_index}",
            extra={"operation": "redirect", "redirect_id": redirect_id, "keywords": list(selection.keywords)},
        )
        return RedirectDecision(
            location=location,
            outcome=RedirectOutcome.ROTATED,
            redirect_id=redirect_id,
            selection=selection,
        )
