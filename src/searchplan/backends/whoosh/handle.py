"""Thin wrapper over a Whoosh index: open or create, submit, execute.

Nothing here knows about the engine-neutral query model. The handle takes
already compiled Whoosh queries and returns native responses, which the
normalizer turns into :class:`~searchplan.results.Result` objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
import time
from typing import Any

from whoosh.collectors import TimeLimitCollector
from whoosh.fields import Schema
from whoosh.filedb.filestore import FileStorage, RamStorage
from whoosh.index import Index
from whoosh.query import Query as WhooshQuery
from whoosh.searching import Searcher

from searchplan.backends.whoosh.mapping import (
    ALL_FIELD,
    ID_FIELD,
    FieldKind,
    FlatField,
    IndexMapping,
    field_kind,
)
from searchplan.errors import ConfigurationError, InvalidDocumentError


logger = logging.getLogger(__name__)

SCORE_SORT = "_score"
ID_SORT = "_id"


@dataclass(frozen=True)
class NativeRequest:
    """A compiled query plus paging, projection, sort and explain switches."""

    query: WhooshQuery
    size: int
    offset: int = 0
    fields: tuple[str, ...] = ()
    sort: tuple[str, ...] = ()
    explain: bool = False
    timeout: float | None = None


@dataclass(frozen=True)
class NativeExplanation:
    value: float
    message: str
    children: tuple[NativeExplanation, ...] = ()


@dataclass(frozen=True)
class NativeHit:
    id: str
    score: float
    sort: tuple[str, ...] = ()
    explanation: NativeExplanation | None = None
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NativeResponse:
    """Raw outcome of one execution; ``took`` is in seconds."""

    hits: tuple[NativeHit, ...]
    total: int
    max_score: float
    took: float
    segments: int
    failed_segments: int = 0


@dataclass(frozen=True)
class _SortKey:
    name: str
    descending: bool

    @classmethod
    def parse(cls, spec: str) -> _SortKey:
        if spec.startswith("-"):
            return cls(spec[1:], True)
        return cls(spec.lstrip("+"), False)


def open_index(location: str | Path | None, mapping: IndexMapping) -> WhooshIndexHandle:
    """Open the Whoosh index at ``location``, creating it when absent.

    ``None`` creates a fresh in-memory index.
    """
    if location is None:
        storage = RamStorage()
    else:
        storage = FileStorage(str(location)).create()

    if storage.index_exists():
        index = storage.open_index()
        logger.info("Opened existing index at %s", location)
    else:
        storage.create_index(mapping.base_schema())
        logger.info("Created index at %s", location or ":memory:")
        # Reopen so the schema is read back from the TOC and later field additions are visible
        index = storage.open_index()

    handle = WhooshIndexHandle(index, mapping, location=Path(location) if location is not None else None)
    try:
        handle.ensure_declared_fields()
    except Exception:
        handle.close()
        raise
    return handle


class WhooshIndexHandle:
    """Owns one Whoosh index.

    Writes are serialized with a lock because Whoosh permits a single writer
    at a time. Each search opens a fresh searcher so it sees the latest commit.
    """

    def __init__(self, index: Index, mapping: IndexMapping, *, location: Path | None = None) -> None:
        self._index = index
        self._mapping = mapping
        self._location = location
        self._write_lock = threading.Lock()

    @property
    def mapping(self) -> IndexMapping:
        return self._mapping

    @property
    def location(self) -> Path | None:
        return self._location

    def schema(self) -> Schema:
        return self._index.schema

    def doc_count(self) -> int:
        return self._index.doc_count()

    def ensure_declared_fields(self) -> None:
        """Add declared fields missing from an existing index's schema."""
        schema = self.schema()
        missing = []
        for path, kind in sorted(self._mapping.fields.items()):
            if path not in schema:
                missing.append((path, kind))
                continue
            existing = field_kind(schema[path])
            if existing is not kind:
                msg = f"field {path!r} is declared {kind.value} but the index stores it as {existing}"
                raise ConfigurationError(msg)
        if not missing:
            return
        with self._write_lock, self._index.writer() as writer:
            for path, kind in missing:
                writer.add_field(path, self._mapping.field_type(path, kind))

    def submit(self, doc_id: str, fields: dict[str, FlatField], *, timeout: float | None = None) -> None:
        """Upsert one flattened document, adding newly seen fields to the schema."""
        acquired = self._write_lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            msg = f"timed out after {timeout}s waiting for the index writer"
            raise TimeoutError(msg)
        try:
            with self._index.writer(timeout=timeout or 0.0) as writer:
                schema = writer.schema
                for path, flat in fields.items():
                    if path in schema:
                        existing = field_kind(schema[path])
                        if existing is not flat.kind:
                            held = existing.value if existing is not None else "internal"
                            msg = f"field {path!r} holds {held} values, got {flat.kind.value}"
                            raise InvalidDocumentError(msg)
                for path, flat in fields.items():
                    if path not in schema:
                        writer.add_field(path, self._mapping.field_type(path, flat.kind))
                writer.update_document(**self._native_document(doc_id, fields))
        finally:
            self._write_lock.release()

    def _native_document(self, doc_id: str, fields: dict[str, FlatField]) -> dict[str, Any]:
        document: dict[str, Any] = {ID_FIELD: doc_id}
        all_text: list[str] = []
        for path, flat in fields.items():
            if flat.kind is FieldKind.TEXT:
                texts = flat.values()
                all_text.extend(texts)
                document[path] = " ".join(texts)
                if flat.is_multi:
                    document[f"_stored_{path}"] = list(texts)
            else:
                document[path] = list(flat.value) if flat.is_multi else flat.value
        if all_text:
            document[ALL_FIELD] = "\n".join(all_text)
        return document

    def execute(self, request: NativeRequest) -> NativeResponse:
        """Run a compiled query; engine errors such as ``TimeLimit`` propagate."""
        start = time.perf_counter()
        with self._index.searcher() as searcher:
            if request.sort:
                total, max_score, ranked = self._sorted_hits(searcher, request)
            else:
                total, max_score, ranked = self._ranked_hits(searcher, request)

            hits = tuple(
                self._build_hit(searcher, request, docnum, score, sort_values) for docnum, score, sort_values in ranked
            )
            segments = len(searcher.leaf_searchers())
        took = time.perf_counter() - start
        return NativeResponse(
            hits=hits,
            total=total,
            max_score=max_score,
            took=took,
            segments=segments,
        )

    def close(self) -> None:
        self._index.close()

    def _search(self, searcher: Searcher, query: WhooshQuery, limit: int | None, timeout: float | None):
        if timeout is None:
            return searcher.search(query, limit=limit)
        collector = TimeLimitCollector(searcher.collector(limit=limit), timelimit=timeout)
        searcher.search_with_collector(query, collector)
        return collector.results()

    def _ranked_hits(self, searcher: Searcher, request: NativeRequest):
        # Whoosh's top-N collector needs a positive limit
        limit = max(request.offset + request.size, 1)
        results = self._search(searcher, request.query, limit, request.timeout)
        total = len(results)
        max_score = results.score(0) if results.scored_length() else 0.0
        window = range(request.offset, min(request.offset + request.size, results.scored_length()))
        ranked = [(results.docnum(i), results.score(i), ()) for i in window]
        return total, float(max_score or 0.0), ranked

    def _sorted_hits(self, searcher: Searcher, request: NativeRequest):
        results = self._search(searcher, request.query, None, request.timeout)
        keys = [_SortKey.parse(spec) for spec in request.sort]
        rows = []
        for i in range(results.scored_length()):
            docnum = results.docnum(i)
            score = float(results.score(i) or 0.0)
            stored = searcher.stored_fields(docnum)
            rows.append((docnum, score, [self._sort_value(key, score, stored) for key in keys]))

        # Stable sorts from the least significant key up; missing values go last either way
        for position in range(len(keys) - 1, -1, -1):
            key = keys[position]
            present = [row for row in rows if row[2][position] is not None]
            missing = [row for row in rows if row[2][position] is None]
            present.sort(key=lambda row, p=position: row[2][p], reverse=key.descending)
            rows = present + missing

        max_score = max((row[1] for row in rows), default=0.0)
        window = rows[request.offset : request.offset + request.size]
        ranked = [(docnum, score, tuple(_sort_text(value) for value in values)) for docnum, score, values in window]
        return len(rows), max_score, ranked

    @staticmethod
    def _sort_value(key: _SortKey, score: float, stored: dict[str, Any]) -> Any:
        if key.name == SCORE_SORT:
            return score
        if key.name == ID_SORT:
            return stored.get(ID_FIELD)
        value = stored.get(key.name)
        if isinstance(value, list):
            value = value[0] if value else None
        return value

    def _build_hit(
        self,
        searcher: Searcher,
        request: NativeRequest,
        docnum: int,
        score: float,
        sort_values: tuple[str, ...],
    ) -> NativeHit:
        stored = searcher.stored_fields(docnum)
        if "*" in request.fields:
            selected = {name: value for name, value in stored.items() if name != ID_FIELD}
        else:
            selected = {name: stored[name] for name in request.fields if name in stored}
        explanation = None
        if request.explain:
            explanation = _explain(searcher, request.query, docnum, score)
        return NativeHit(
            id=stored[ID_FIELD],
            score=float(score or 0.0),
            sort=sort_values,
            explanation=explanation,
            fields=selected,
        )


def _sort_text(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _explain(searcher: Searcher, query: WhooshQuery, docnum: int, score: float) -> NativeExplanation:
    """Replay every node of the query tree against one document.

    Whoosh has no explain API, so each node's matcher is advanced to the
    document and its score recorded; nodes that do not match report 0.
    """
    for subsearcher, offset in searcher.leaf_searchers():
        if offset <= docnum < offset + subsearcher.doc_count_all():
            return _explain_node(subsearcher, query, docnum - offset, top_score=score)
    return NativeExplanation(value=score, message=_describe(query))


def _explain_node(searcher: Searcher, query: WhooshQuery, docnum: int, *, top_score: float | None = None) -> NativeExplanation:
    if top_score is not None:
        value = top_score
    else:
        value = _node_score(searcher, query, docnum)
    children = tuple(_explain_node(searcher, child, docnum) for child in query.children())
    message = _describe(query)
    if value is None:
        return NativeExplanation(value=0.0, message=f"{message} (no match)", children=children)
    return NativeExplanation(value=float(value), message=message, children=children)


def _node_score(searcher: Searcher, query: WhooshQuery, docnum: int) -> float | None:
    matcher = query.matcher(searcher, searcher.context())
    if matcher.is_active() and matcher.id() < docnum:
        matcher.skip_to(docnum)
    if not matcher.is_active() or matcher.id() != docnum:
        return None
    return matcher.score()


def _describe(query: WhooshQuery) -> str:
    boost = getattr(query, "boost", 1.0)
    if boost != 1.0:
        return f"{type(query).__name__}({query})^{boost}"
    return f"{type(query).__name__}({query})"
