"""Utility helpers shared across the engine."""

from __future__ import annotations

from typing import Iterable, List, Optional


def fold(value: Optional[str]) -> str:
    """Case-insensitive comparison key; `None` folds to an empty string."""
    return (value or "").strip().casefold()


def contains_ci(haystack: Optional[str], needle: str) -> bool:
    return fold(needle) in fold(haystack)


def equals_ci(left: Optional[str], right: Optional[str]) -> bool:
    return fold(left) == fold(right)


def uniq_preserve_order(items: Iterable[Optional[str]]) -> List[str]:
    """Deduplicate case-insensitively while preserving first-seen order."""
    seen = set()
    out: List[str] = []
    for it in items:
        if not it or not it.strip():
            continue
        key = fold(it)
        if key in seen:
            continue
        seen.add(key)
        out.append(it.strip())
    return out
