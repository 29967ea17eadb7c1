"""Redirect resolution: direct mode, keyed lookup and fallback.

Decision Diagram
================
::
    ┌──────────────┐
    │ redirect key │
    └──────┬───────┘
    PRESENT?│
    ┌──────┴──────┐
    │ NO           │ YES
    ▼              ▼
┌──────────┐  ┌────────────────────┐
│ domain & │  │ first row with      │
│ slug in  │  │ redirect_id == key  │
│ params?  │  │ and active          │
└────┬─────┘  └─────────┬──────────┘
 NO → 400          FOUND?│
 YES → DirectTarget ┌────┴─────┐
                    │ NO        │ YES
                    ▼           ▼
          ┌───────────────┐  ┌──────────────┐
          │ first row with │  │ domain/slug  │
          │ fallback_url   │  │ non-empty?   │
          └──────┬────────┘  └──────┬───────┘
          FOUND → FallbackMatch   NO → 500 MappingDataError
          NONE  → 404             YES → RowMatch

Duplicate redirect ids are not an error: the first active row wins.
Rows arrive with domain and slug already cleaned by ``parse_table``; only
direct-mode params are cleaned here.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from redirector.exceptions import ClientInputError, MappingDataError, UnknownKeyError
from redirector.schemas import MappingRow
from redirector.url_builder import normalize_domain, normalize_slug

__all__ = [
    "DirectTarget",
    "RowMatch",
    "FallbackMatch",
    "resolve_direct",
    "resolve_keyed",
]


@dataclass(frozen=True)
class DirectTarget:
    domain: str
    slug: str


@dataclass(frozen=True)
class RowMatch:
    row: MappingRow
    domain: str
    slug: str


@dataclass(frozen=True)
class FallbackMatch:
    url: str
    row: MappingRow


def resolve_direct(params: Mapping[str, str]) -> DirectTarget:
    domain = normalize_domain(params.get("domain"))
    slug = normalize_slug(params.get("slug"))
    if not domain or not slug:
        raise ClientInputError(
            "Missing domain/slug for non-rid redirect",
            details={"domain": params.get("domain"), "slug": params.get("slug")},
        )
    return DirectTarget(domain=domain, slug=slug)


def resolve_keyed(rows: Sequence[MappingRow], redirect_id: str) -> RowMatch | FallbackMatch:
    """Find the row for ``redirect_id`` or the first fallback row.

    Args:
        rows: Cached mapping rows, in sheet order
        redirect_id: Value of the redirect key parameter

    Returns:
        RowMatch | FallbackMatch: The active row, or the fallback to send the client to

    Raises:
        UnknownKeyError: No active row and no fallback row
        MappingDataError: The active row has an empty domain or slug
    """
    key = str(redirect_id)
    row = next((r for r in rows if str(r.redirect_id) == key and r.active), None)

    if row is None:
        fallback = next((r for r in rows if r.fallback_url), None)
        if fallback is not None:
            return FallbackMatch(url=fallback.fallback_url, row=fallback)
        raise UnknownKeyError(key)

    if not row.domain or not row.slug:
        raise MappingDataError(key, row.domain, row.slug)
    return RowMatch(row=row, domain=row.domain, slug=row.slug)
