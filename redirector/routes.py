"""FastAPI route definitions for the redirect rotation service.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    GET  /api/redirect?rid=...&<passthrough>
    GET  /api/redirect?domain=...&slug=...&<passthrough>
    GET  /            (alias of /api/redirect)
        ├─ 302 Location: computed URL, Cache-Control: no-store
        ├─ 400 Missing domain/slug for non-rid redirect
        ├─ 404 Unknown or inactive rid
        └─ 500 Bad mapping (domain/slug) | Redirect error

Key Behaviours
===============
- Errors are turned into plain-text bodies by the handlers in
  ``redirector.main``; internal details only go to the log.
- Every redirect carries ``Cache-Control: no-store`` so browsers and CDNs
  re-run the rotation on each click.
- A repeated query parameter keeps its last value.
- ``/health`` reports cache state without triggering a refresh.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response

from redirector.dependencies import (
    RequestContext,
    ServiceManager,
    get_redirect_service,
    get_request_context,
    get_service_manager,
)
from redirector.enums import HealthStatus
from redirector.mapping_cache import DEGRADED_SOURCE
from redirector.redirect_service import RedirectService
from redirector.schemas import CacheInfo, HealthResponse

__all__ = ["router"]

router = APIRouter()

NO_STORE_HEADERS = {"Cache-Control": "no-store"}


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(manager: ServiceManager = Depends(get_service_manager)) -> HealthResponse:
    cache = manager.mapping_cache
    snapshot = cache.snapshot
    age = cache.age_seconds()

    if snapshot is None:
        info = CacheInfo(rows=0, age_seconds=None, stale=True, source="empty")
    else:
        info = CacheInfo(
            rows=len(snapshot.rows),
            age_seconds=round(age, 3) if age is not None else None,
            stale=cache.is_stale(),
            source=snapshot.source,
        )

    status = HealthStatus.DEGRADED if info.source == DEGRADED_SOURCE else HealthStatus.HEALTHY
    return HealthResponse(status=status, cache=info)


@router.get("/api/redirect", tags=["redirect"])
@router.get("/", tags=["redirect"], include_in_schema=False)
async def redirect(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    service: RedirectService = Depends(get_redirect_service),
) -> Response:
    ctx.add_tag("redirect")
    decision = await service.resolve_redirect(dict(request.query_params))
    ctx.logger.info(
        f"Redirect {decision.outcome.value}: -> {decision.location}",
        extra={"operation": "redirect", "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=decision.location, status_code=302, headers=NO_STORE_HEADERS)
