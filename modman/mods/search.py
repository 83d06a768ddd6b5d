# modman/mods/search.py
from __future__ import annotations
from collections.abc import Callable, Iterable
from typing import TypeVar

__all__ = ["searchRanked"]

T = TypeVar("T")



def _rank(query: str, uniqueName: str, name: str) -> int | None:
    """
    0 = exact unique name, 1 = prefix of unique name or display name,
    2 = substring of either, None = no match. Inputs are already lowercased.
    """
    if uniqueName == query:
        return 0
    if uniqueName.startswith(query) or name.startswith(query):
        return 1
    if query in uniqueName or query in name:
        return 2
    return None



def searchRanked(items: Iterable[T], query: str, *, keys: Callable[[T], tuple[str | None, str]]) -> list[T]:
    """
    Case-insensitive substring search over (uniqueName, displayName) pairs.

    Matches come back grouped by rank; within a rank the original iteration
    order is kept (sorted() is stable), so results are reproducible.
    An empty/blank query returns every item in iteration order.
    """
    query = (query or "").strip().lower()
    pool = list(items)
    if not query:
        return pool

    ranked: list[tuple[int, T]] = []
    for item in pool:
        uniqueName, name = keys(item)
        rank = _rank(query, (uniqueName or "").lower(), (name or "").lower())
        if rank is not None:
            ranked.append((rank, item))
    ranked.sort(key=lambda pair: pair[0])
    return [item for _rank_, item in ranked]
