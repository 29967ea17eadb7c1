"""FastAPI application entry point for the redirect rotation service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ service      │
    │ manager init │
    │ (settings,   │
    │ logger, rng, │
    │ mapping cache)│
    └──────┬───────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    │ (cache      │
    │ refreshes   │
    │ lazily)     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ cleanup()   │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn redirector.main:app --host 0.0.0.0 --port 8000

**Step 2 — Rotate through the sheet**::
    curl -i "http://localhost:8000/api/redirect?rid=5&s1pcid=ABC_1"

**Step 3 — Direct redirect without the sheet**::
    curl -i "http://localhost:8000/api/redirect?domain=example.com&slug=foo&utm=bar"

Key Behaviours
===============
- The mapping table is not fetched at startup; the first keyed request
  fills the cache.
- Prometheus metrics are exposed at /metrics.
- Errors become plain-text responses: ``RedirectError`` keeps its status,
  anything else is a 500 ``Redirect error`` with the detail only in the log.
- Auto-generated OpenAPI documentation available at /docs and /redoc.

Configuration:
    The app uses environment variables for configuration.
    See redirector/config.py for all available settings.
"""

__all__ = ["app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from prometheus_fastapi_instrumentator import Instrumentator

from redirector.config import get_settings
from redirector.dependencies import _service_manager
from redirector.exceptions import RedirectError
from redirector.routes import router

settings = get_settings()
logger = logging.getLogger("redirector")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await _service_manager.initialize()
    yield
    await _service_manager.cleanup()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Weighted keyword-rotation redirects driven by a Google Sheet",
    lifespan=lifespan,
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)


# ============================================================================
# ERROR HANDLERS
# ============================================================================


def _request_logger(request: Request) -> logging.Logger | logging.LoggerAdapter:
    ctx = getattr(request.state, "request_context", None)
    return ctx.logger if ctx is not None else logger


@app.exception_handler(RedirectError)
async def redirect_error_handler(request: Request, exc: RedirectError) -> PlainTextResponse:
    """Classified failures: plain-text message with the mapped status."""
    log = _request_logger(request)
    log_method = log.error if exc.status_code >= 500 else log.warning
    log_method(
        f"Redirect failed ({exc.code}): {exc.message} {exc.details}",
        extra={"operation": "redirect", "path": request.url.path, "status_code": exc.status_code},
    )
    return PlainTextResponse(exc.message, status_code=exc.status_code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Anything unclassified, including failures while building dependencies."""
    _request_logger(request).exception(
        f"Redirect error: {exc}",
        extra={"operation": "redirect", "path": request.url.path, "error_type": type(exc).__name__},
    )
    return PlainTextResponse("Redirect error", status_code=500)


app.include_router(router)
