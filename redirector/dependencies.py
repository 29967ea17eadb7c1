"""Dependency injection with a process-wide service manager.

The service manager is the composition root: it owns the settings, the
logger, the random source and the single ``MappingCache`` for the process.
Everything per-request is carried by a lightweight ``RequestContext``.
"""

import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request

from redirector.config import Settings, get_settings
from redirector.mapping_cache import MappingCache, parse_table
from redirector.redirect_service import RedirectService
from redirector.selection import RandomSource
from redirector.sheets import TableProvider, build_provider, load_static_table


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of shared resources that live as long as the process.

    Args:
        settings: Settings override (defaults to ``get_settings()``)
        provider: Table provider override (defaults to Google Sheets from settings)
        clock: Clock for cache ageing
        rng: Random source for group and keyword selection
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[TableProvider] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[RandomSource] = None,
    ):
        self._settings_override = settings
        self._provider_override = provider
        self._clock = clock
        self._rng = rng
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.settings = self._settings_override or get_settings()
            self.logger = self._setup_logger()
            self.rng = self._rng or random.Random()
            self.mapping_cache = self._setup_mapping_cache()
            self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("redirector")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    def _setup_mapping_cache(self) -> MappingCache:
        provider = self._provider_override or build_provider(self.settings)
        static_rows = parse_table(load_static_table(self.settings.STATIC_ROWS_JSON))
        self.logger.info(
            f"Mapping cache ready: provider={provider.name}, "
            f"ttl={self.settings.cache_ttl_seconds}s, static_rows={len(static_rows)}"
        )
        return MappingCache(
            provider,
            ttl_seconds=self.settings.cache_ttl_seconds,
            static_rows=static_rows,
            clock=self._clock,
            logger=self.logger,
        )

    async def cleanup(self) -> None:
        """Release shared resources at shutdown."""
        if hasattr(self, "mapping_cache"):
            del self.mapping_cache
        self._initialized = False


_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


class RequestLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that keeps the caller's ``extra`` next to the request fields."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


@dataclass
class RequestContext:
    """Per-request tracking plus access to shared resources.

    Attributes:
        service_manager: Process-wide service manager
        request_id: Unique identifier for this request
        trace_id: Correlation ID from the caller, if any
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def mapping_cache(self) -> MappingCache:
        return self.service_manager.mapping_cache

    @property
    def rng(self) -> RandomSource:
        return self.service_manager.rng

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> RequestLoggerAdapter:
        """Shared logger with request context attached."""
        return RequestLoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    ctx = RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )
    request.state.request_context = ctx
    return ctx


def get_redirect_service(ctx: RequestContext = Depends(get_request_context)) -> RedirectService:
    return RedirectService.from_context(ctx)
