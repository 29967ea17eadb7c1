"""TTL-bounded cache of the redirect mapping table.

The cache holds one immutable ``CacheState`` snapshot. A refresh builds a
complete new snapshot and swaps the reference in a single assignment, so a
reader sees either the old rows or the new rows, never a mix. There is no
lock: concurrent requests that find the cache stale may each refresh, which
costs a few duplicate fetches and nothing else.

Flow Diagram — MappingCache.get_rows()
======================================
::
    ┌─────────────┐
    │ get_rows()  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ snapshot is  │
    │ None or age  │
    │ >= TTL?      │
    └──────┬──────┘
    STALE? │
    ┌──────┴──────┐
    │ NO           │ YES
    ▼              ▼
┌─────────┐  ┌──────────────┐
│ Return  │  │ provider.    │
│ cached  │  │ fetch_table()│
│ rows    │  └──────┬───────┘
└─────────┘  OK?    │
             ┌──────┴───────┐
             │ YES           │ NO (logged, never raised)
             ▼               ▼
       ┌───────────┐   ┌────────────┐
       │ parse rows│   │ static rows│
       └─────┬─────┘   └─────┬──────┘
             └───────┬───────┘
                     ▼
         swap snapshot (fetched_at = now)

Key Behaviours
===============
- The header row is trimmed; every cell is stringified and trimmed, missing
  cells read as "".
- Columns whose header starts with ``group`` become the row's groups, in
  column order, empty values skipped.
- ``weights`` is split on commas; empty entries are dropped.
- A table without an ``active`` column treats every row as active; with the
  column, only cells reading ``TRUE`` (any case) are active.
- A failed refresh still stamps ``fetched_at`` so the provider is retried only
  once per TTL.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from prometheus_client import Counter, Histogram

from redirector.enums import RefreshStatus
from redirector.exceptions import ProviderUnavailable
from redirector.schemas import MappingRow
from redirector.sheets import TableProvider
from redirector.url_builder import normalize_domain, normalize_slug

__all__ = ["CacheState", "MappingCache", "parse_table", "row_from_record", "DEGRADED_SOURCE"]

GROUP_COLUMN_PREFIX = "group"
DEGRADED_SOURCE = "degraded"

CACHE_REFRESH_TOTAL = Counter(
    "redirector_cache_refresh_total",
    "Mapping table refresh attempts",
    ["status"],
)
CACHE_REFRESH_DURATION = Histogram(
    "redirector_cache_refresh_duration_seconds",
    "Time taken to refresh the mapping table",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


@dataclass(frozen=True)
class CacheState:
    rows: tuple[MappingRow, ...]
    fetched_at: float
    source: str


def row_from_record(record: dict[str, str], has_active_column: bool = True) -> MappingRow:
    groups = tuple(
        value for key, value in record.items() if key.startswith(GROUP_COLUMN_PREFIX) and value
    )
    weights = tuple(w.strip() for w in record.get("weights", "").split(",") if w.strip())
    active = record.get("active", "").upper() == "TRUE" if has_active_column else True

    return MappingRow(
        redirect_id=record.get("redirect_id", ""),
        active=active,
        domain=normalize_domain(record.get("domain", "")),
        slug=normalize_slug(record.get("slug", "")),
        segment=record.get("segment", ""),
        groups=groups,
        weights=weights,
        fallback_url=record.get("fallback_url", ""),
        raw=record,
    )


def parse_table(table: Sequence[Sequence[Any]]) -> tuple[MappingRow, ...]:
    """Turn a header row plus data rows into mapping rows.

    Args:
        table: Provider output, header first

    Returns:
        tuple[MappingRow, ...]: One row per data row, in sheet order
    """
    if not table:
        return ()

    headers = [str(h).strip() for h in table[0]]
    has_active_column = "active" in headers
    rows = []
    for cells in table[1:]:
        record = {
            header: _cell(cells, index)
            for index, header in enumerate(headers)
        }
        rows.append(row_from_record(record, has_active_column))
    return tuple(rows)


def _cell(cells: Sequence[Any], index: int) -> str:
    if index >= len(cells) or cells[index] is None:
        return ""
    return str(cells[index]).strip()


class MappingCache:
    """Process-wide mapping table cache with injected provider and clock.

    Args:
        provider: Table provider to refresh from
        ttl_seconds: Maximum snapshot age before a refresh
        static_rows: Rows served when the provider is unavailable
        clock: Monotonic seconds source
        logger: Logger for refresh outcomes
    """

    def __init__(
        self,
        provider: TableProvider,
        ttl_seconds: float,
        static_rows: Sequence[MappingRow] = (),
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self._provider = provider
        self._ttl = ttl_seconds
        self._static_rows = tuple(static_rows)
        self._clock = clock
        self._logger = logger or logging.getLogger("redirector")
        self._state: Optional[CacheState] = None

    @property
    def snapshot(self) -> Optional[CacheState]:
        return self._state

    def is_stale(self) -> bool:
        state = self._state
        return state is None or self._clock() - state.fetched_at >= self._ttl

    def age_seconds(self) -> Optional[float]:
        state = self._state
        if state is None:
            return None
        return self._clock() - state.fetched_at

    async def get_rows(self) -> tuple[MappingRow, ...]:
        state = self._state
        if state is None or self._clock() - state.fetched_at >= self._ttl:
            state = await self.refresh()
        return state.rows

    async def refresh(self) -> CacheState:
        """Fetch the table and swap in a new snapshot. Never raises."""
        started = time.perf_counter()
        provider_name = getattr(self._provider, "name", type(self._provider).__name__)

        try:
            table = await self._provider.fetch_table()
            rows = parse_table(table)
            source = provider_name
            status = RefreshStatus.SUCCESS
            self._logger.info(
                f"Mapping table refreshed: {len(rows)} rows from {provider_name}",
                extra={"operation": "cache_refresh", "rows": len(rows)},
            )
        except ProviderUnavailable as exc:
            rows, source, status = self._static_rows, DEGRADED_SOURCE, RefreshStatus.UNAVAILABLE
            self._logger.error(
                f"Mapping provider unavailable, serving {len(rows)} static rows: {exc.message}",
                extra={"operation": "cache_refresh", "error": exc.code, **exc.details},
            )
        except Exception as exc:
            rows, source, status = self._static_rows, DEGRADED_SOURCE, RefreshStatus.FAILED
            self._logger.exception(
                f"Mapping table refresh failed, serving {len(rows)} static rows: {exc}",
                extra={"operation": "cache_refresh", "error": type(exc).__name__},
            )

        state = CacheState(rows=tuple(rows), fetched_at=self._clock(), source=source)
        self._state = state

        CACHE_REFRESH_TOTAL.labels(status=status).inc()
        CACHE_REFRESH_DURATION.observe(time.perf_counter() - started)
        return state
