"""Outbound redirect URL composition.

Merge Order (later wins on key collision)
=========================================
::
    passthrough params          (everything except the redirect key)
      └─ s1pcid                 (trailing _<n> replaced by _<chosen_index>)
          └─ segment            (row segment or "")
              └─ fbid, fbclick  (static ids from settings)
                  └─ forceKeyA/B/C (only for sampled keywords)

Keys already present in the passthrough keep their position in the query
string; new keys are appended in the order above.

Key Behaviours
===============
- Queries are encoded with ``urllib.parse.urlencode`` (space becomes ``+``).
- The URL always has the form ``https://{domain}/{slug}/?{query}``, even
  when the query is empty.
- Direct mode forwards the passthrough params only; ``domain`` and ``slug``
  are consumed, not forwarded.
- Domain and slug are used as given. Callers clean them once with
  ``normalize_domain`` and ``normalize_slug`` before composing.
"""

import re
from collections.abc import Mapping, Sequence
from urllib.parse import urlencode

__all__ = [
    "KEYWORD_FIELDS",
    "TRACKING_ID_PARAM",
    "normalize_domain",
    "normalize_slug",
    "rewrite_tracking_id",
    "compose_url",
    "build_direct_url",
    "build_rotated_url",
]

KEYWORD_FIELDS = ("forceKeyA", "forceKeyB", "forceKeyC")
TRACKING_ID_PARAM = "s1pcid"
DIRECT_RESERVED_PARAMS = ("domain", "slug")

_SCHEME_RE = re.compile(r"^https?://")
_INDEX_SUFFIX_RE = re.compile(r"_\d+$")


def normalize_domain(domain: str | None) -> str:
    return _SCHEME_RE.sub("", domain or "")


def normalize_slug(slug: str | None) -> str:
    slug = slug or ""
    return slug[1:] if slug.startswith("/") else slug


def rewrite_tracking_id(value: str, chosen_index: int) -> str:
    """Replace a trailing ``_<digits>`` suffix with ``_<chosen_index>``.

    >>> rewrite_tracking_id("ABC_1", 2)
    'ABC_2'
    >>> rewrite_tracking_id("ABC", 1)
    'ABC_1'
    """
    return f"{_INDEX_SUFFIX_RE.sub('', value)}_{chosen_index}"


def compose_url(domain: str, slug: str, params: Mapping[str, str]) -> str:
    return f"https://{domain}/{slug}/?{urlencode(params)}"


def build_direct_url(domain: str, slug: str, params: Mapping[str, str]) -> str:
    query = {k: v for k, v in params.items() if k not in DIRECT_RESERVED_PARAMS}
    return compose_url(domain, slug, query)


def build_rotated_url(
    domain: str,
    slug: str,
    passthrough: Mapping[str, str],
    *,
    segment: str,
    chosen_index: int,
    keywords: Sequence[str],
    static_fields: Mapping[str, str],
) -> str:
    """Build the rotated-mode URL.

    Args:
        domain: Row domain, already without scheme
        slug: Row slug, already without its leading slash
        passthrough: Caller params minus the redirect key
        segment: Row segment, "" when the row has none
        chosen_index: 1-based position of the chosen group (0 without groups)
        keywords: Sampled keywords, at most three are used
        static_fields: Static tracking ids, e.g. {"fbid": ..., "fbclick": ...}

    Returns:
        str: Final redirect target
    """
    params = dict(passthrough)

    if params.get(TRACKING_ID_PARAM):
        params[TRACKING_ID_PARAM] = rewrite_tracking_id(params[TRACKING_ID_PARAM], chosen_index)

    params["segment"] = segment or ""
    params.update(static_fields)

    for field, keyword in zip(KEYWORD_FIELDS, keywords):
        if keyword:
            params[field] = keyword

    return compose_url(domain, slug, params)
