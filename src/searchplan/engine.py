"""Public contract between callers and a concrete search backend."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from searchplan.query import Query
from searchplan.results import Result


@dataclass(frozen=True)
class SearchOptions:
    """Request knobs applied alongside a query.

    Args:
        size: Maximum hits to return; ``None`` uses the engine's configured
            default.
        offset: Number of ranked hits to skip.
        fields: Stored fields to copy into each hit; ``"*"`` selects all.
        sort: Sort keys. ``"name"`` sorts ascending, ``"-name"`` descending;
            ``"_score"`` and ``"_id"`` address relevance and document id.
        explain: Attach a score explanation tree to every hit.
    """

    size: int | None = None
    offset: int = 0
    fields: Sequence[str] = ()
    sort: Sequence[str] = ()
    explain: bool = False

    def __post_init__(self) -> None:
        if self.size is not None and self.size < 0:
            msg = f"size must be >= 0, got {self.size}"
            raise ValueError(msg)
        if self.offset < 0:
            msg = f"offset must be >= 0, got {self.offset}"
            raise ValueError(msg)
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "sort", tuple(self.sort))


@runtime_checkable
class Index(Protocol):
    """A named index accepting documents and queries."""

    @property
    def name(self) -> str:  # pragma: no cover - interface definition
        ...

    def index(self, doc_id: str, document: Any, *, timeout: float | None = None) -> None:  # pragma: no cover
        ...

    def search(
        self,
        query: Query,
        options: SearchOptions | None = None,
        *,
        timeout: float | None = None,
    ) -> Result:  # pragma: no cover - interface definition
        ...


@runtime_checkable
class Engine(Protocol):
    """Multiplexes several named indices."""

    def index(self, name: str) -> Index:  # pragma: no cover - interface definition
        ...

    def indices(self) -> list[Index]:  # pragma: no cover - interface definition
        ...
