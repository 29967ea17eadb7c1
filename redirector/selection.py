"""Weighted group selection and keyword sampling.

Selection Flow
==============
::
    groups  = ["shoes|boots", "hats"]      weights = ["3", "1"]
                      │                              │
                      ▼                              ▼
              ┌─────────────────────────────────────────┐
              │ pick_weighted_group                      │
              │  total = 4, r = rng.random() * 4         │
              │  r <= 3 → group 1, else r <= 4 → group 2 │
              └─────────────────┬───────────────────────┘
                                ▼
              ┌─────────────────────────────────────────┐
              │ pick_keywords("shoes|boots", 3)          │
              │  split on "|", shuffle, keep first ≤ 3   │
              └─────────────────┬───────────────────────┘
                                ▼
              SelectionResult(chosen_group, chosen_index, keywords)

Edge Cases
==========
- Weights that are empty, unparsable, negative or non-finite count as 0.
- An all-zero weight list is treated as total 1, so the walk never reaches
  the draw and the first group is returned.
- Groups beyond the end of the weight list carry weight 0; the walk can only
  stop on them when the draw sits exactly on the mass accumulated so far.
- A walk that finishes without reaching the draw (e.g. the weight list is
  longer than the group list) returns the first group.

The random source is any object with ``random()`` and ``sample()`` (a
``random.Random`` instance); tests inject a seeded or scripted one.
"""

import math
import random
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional, Protocol

__all__ = [
    "RandomSource",
    "SelectionResult",
    "parse_weight",
    "pick_weighted_group",
    "pick_keywords",
    "select_group",
]

DEFAULT_MAX_KEYWORDS = 3

# Leading numeric prefix, so "2.5x" reads as 2.5 the way spreadsheet users expect.
_FLOAT_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_default_rng = random.Random()


class RandomSource(Protocol):
    def random(self) -> float: ...

    def sample(self, population: Sequence[str], k: int) -> list[str]: ...


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of one group selection, created per request."""

    chosen_group: str = ""
    chosen_index: int = 0
    keywords: tuple[str, ...] = field(default_factory=tuple)


def parse_weight(value: object) -> float:
    match = _FLOAT_PREFIX_RE.match(str(value or ""))
    if not match:
        return 0.0
    weight = float(match.group(0))
    if not math.isfinite(weight) or weight < 0:
        return 0.0
    return weight


def pick_weighted_group(
    groups: Sequence[str],
    weights: Sequence[object],
    rng: Optional[RandomSource] = None,
) -> str:
    """Pick one group with probability proportional to its weight.

    Args:
        groups: Candidate groups, must be non-empty
        weights: Raw weights aligned with ``groups`` by position
        rng: Random source (module default when omitted)

    Returns:
        str: The chosen group value

    Raises:
        ValueError: If ``groups`` is empty
    """
    if not groups:
        raise ValueError("Cannot pick from an empty group list")

    rng = rng or _default_rng
    normalized = [parse_weight(w) for w in weights]
    total = sum(normalized) or 1.0
    draw = rng.random() * total

    acc = 0.0
    for index, group in enumerate(groups):
        acc += normalized[index] if index < len(normalized) else 0.0
        if draw <= acc:
            return group
    return groups[0]


def pick_keywords(
    group_value: str,
    max_count: int = DEFAULT_MAX_KEYWORDS,
    rng: Optional[RandomSource] = None,
) -> list[str]:
    """Sample up to ``max_count`` distinct keywords from a pipe-delimited group."""
    rng = rng or _default_rng
    keywords = list(dict.fromkeys(k.strip() for k in (group_value or "").split("|")))
    keywords = [k for k in keywords if k]
    if not keywords:
        return []

    shuffled = rng.sample(keywords, len(keywords))
    return shuffled[: min(max_count, len(shuffled))]


def select_group(
    groups: Sequence[str],
    weights: Sequence[object],
    max_keywords: int = DEFAULT_MAX_KEYWORDS,
    rng: Optional[RandomSource] = None,
) -> SelectionResult:
    # Rows without groups still redirect, just without keywords.
    if not groups:
        return SelectionResult()

    chosen = pick_weighted_group(groups, weights, rng)
    return SelectionResult(
        chosen_group=chosen,
        chosen_index=list(groups).index(chosen) + 1,
        keywords=tuple(pick_keywords(chosen, max_keywords, rng)),
    )
