"""Canonical, engine-independent search results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any


@dataclass(frozen=True)
class Status:
    """How many index partitions (shards or segments) a search touched."""

    total: int
    failed: int
    successful: int


@dataclass(frozen=True)
class Explanation:
    """Recursive breakdown of how a score was computed."""

    value: float
    message: str
    children: tuple[Explanation, ...] = ()

    def depth(self) -> int:
        """Return the number of levels in this tree (a leaf has depth 1)."""
        if not self.children:
            return 1
        return 1 + max(child.depth() for child in self.children)


@dataclass(frozen=True)
class Hit:
    """A single matching document.

    ``fields`` holds the values requested through ``SearchOptions.fields``:
    text fields as strings, numeric fields as floats and datetime fields as
    RFC 3339 strings.
    """

    index: str
    id: str
    score: float
    sort: tuple[str, ...] = ()
    explanation: Explanation | None = None
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Result:
    """Outcome of one search call.

    ``hits`` is in the order the engine ranked them and is never re-sorted.
    ``took`` is the time spent inside the engine.
    """

    hits: tuple[Hit, ...]
    total: int
    max_score: float
    took: timedelta
    status: Status | None = None

    @property
    def ids(self) -> list[str]:
        return [hit.id for hit in self.hits]

    def __len__(self) -> int:
        return len(self.hits)

    def __str__(self) -> str:
        if not self.hits:
            return f"0 matches, took {self.took}"
        lines = [f"{rank}. {hit.id} ({hit.score:f})" for rank, hit in enumerate(self.hits, start=1)]
        return f"{len(self.hits)} matches, took {self.took}\n\t" + "\n\t".join(lines)
