"""Pydantic schemas for mapping rows and API responses.

Schema Hierarchy
=================
::
    MappingRow (one sheet record, immutable)
    ├─ redirect_id: str
    ├─ active: bool
    ├─ domain: str (scheme stripped)
    ├─ slug: str (leading slash stripped)
    ├─ segment: str
    ├─ groups: tuple[str, ...] (values of group* columns, in column order)
    ├─ weights: tuple[str, ...] (raw comma-separated weights)
    ├─ fallback_url: str
    └─ raw: dict[str, str] (every column, trimmed)

    CacheInfo (Output)
    ├─ rows: int
    ├─ age_seconds: float | None
    ├─ stale: bool
    └─ source: str

    HealthResponse (Output)
    ├─ status: HealthStatus
    └─ cache: CacheInfo

Key Behaviours
===============
- ``MappingRow`` is frozen; the cache swaps whole tuples of rows and never
  edits one in place.
- ``groups`` and ``weights`` are not required to have the same length.
"""

from pydantic import BaseModel, ConfigDict, Field

from redirector.enums import HealthStatus

__all__ = ["MappingRow", "CacheInfo", "HealthResponse"]


class MappingRow(BaseModel):
    redirect_id: str = ""
    active: bool = True
    domain: str = ""
    slug: str = ""
    segment: str = ""
    groups: tuple[str, ...] = ()
    weights: tuple[str, ...] = ()
    fallback_url: str = ""
    raw: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class CacheInfo(BaseModel):
    rows: int
    age_seconds: float | None = Field(
        None,
        description="Seconds since the last refresh attempt, None before the first one.",
    )
    stale: bool
    source: str = Field(..., description="Where the current rows came from, e.g. 'sheets', 'static' or 'degraded'.")


class HealthResponse(BaseModel):
    status: HealthStatus
    cache: CacheInfo
