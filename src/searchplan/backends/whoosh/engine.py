"""Engine and index facade over Whoosh.

Example:
    engine = WhooshEngine([IndexConfig(name="docs", path=Path("var/docs"))])
    docs = engine.index("docs")
    docs.index("a1", {"title": "bar bug"})
    result = docs.search(MatchQuery("bar"))
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from searchplan.backends.whoosh.compiler import QueryCompiler, validate_query
from searchplan.backends.whoosh.handle import NativeRequest, WhooshIndexHandle, open_index
from searchplan.backends.whoosh.mapping import IndexMapping
from searchplan.backends.whoosh.normalizer import normalize_response
from searchplan.config import Settings
from searchplan.engine import SearchOptions
from searchplan.errors import (
    ConfigurationError,
    InvalidDocumentError,
    SearchError,
    UnknownIndexError,
    UnsupportedQueryTypeError,
)
from searchplan.observability.metrics import (
    INDEX_DOC_COUNT,
    INDEX_REQUESTS,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    track_latency,
    track_outcome,
)
from searchplan.observability.tracing import create_span
from searchplan.query import Query
from searchplan.results import Result


logger = logging.getLogger(__name__)


class IndexConfig(BaseModel):
    """One index an engine opens at construction.

    ``path`` is a directory; ``None`` keeps the index in memory.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    path: Path | None = None
    mapping: IndexMapping = Field(default_factory=IndexMapping)


class WhooshIndex:
    """A named index bound to an engine.

    An index looked up under a name the engine does not know latches
    :class:`UnknownIndexError` and raises it from every call.
    """

    def __init__(
        self,
        name: str,
        handle: WhooshIndexHandle | None,
        settings: Settings,
        *,
        error: SearchError | None = None,
    ) -> None:
        self._name = name
        self._handle = handle
        self._settings = settings
        self._error = error
        self._compiler = QueryCompiler(handle.mapping) if handle is not None else None

    @property
    def name(self) -> str:
        return self._name

    @property
    def error(self) -> SearchError | None:
        return self._error

    def _check(self) -> WhooshIndexHandle:
        if self._error is not None:
            raise self._error.with_traceback(None)
        assert self._handle is not None
        return self._handle

    def index(self, doc_id: str, document: Any, *, timeout: float | None = None) -> None:
        """Add or replace ``document`` under ``doc_id``.

        Raises:
            UnknownIndexError: this index is not registered with the engine.
            InvalidDocumentError: the document cannot be mapped onto the index.
        """
        handle = self._check()
        with (
            create_span("searchplan.index", attributes={"searchplan.index": self._name}),
            track_outcome(INDEX_REQUESTS, index=self._name),
        ):
            if not isinstance(doc_id, str) or not doc_id:
                msg = f"document id must be a non-empty string, got {doc_id!r}"
                raise InvalidDocumentError(msg)
            fields = handle.mapping.flatten(document)
            handle.submit(doc_id, fields, timeout=timeout)
        INDEX_DOC_COUNT.labels(index=self._name).set(handle.doc_count())
        logger.debug("Indexed document %s into %s (%d fields)", doc_id, self._name, len(fields))

    def search(self, query: Query, options: SearchOptions | None = None, *, timeout: float | None = None) -> Result:
        """Compile, validate, execute and normalize ``query``.

        A search with no matches returns a result with no hits; it is not an
        error.
        """
        handle = self._check()
        assert self._compiler is not None
        if not isinstance(query, Query):
            raise UnsupportedQueryTypeError(type(query).__name__)
        options = options or SearchOptions()
        plan = query.query_plan()
        query_type = plan.type.name.lower()
        with (
            create_span(
                "searchplan.search",
                attributes={"searchplan.index": self._name, "searchplan.query_type": query_type},
            ) as span,
            track_outcome(SEARCH_REQUESTS, index=self._name),
            track_latency(SEARCH_LATENCY, index=self._name, query_type=query_type),
        ):
            schema = handle.schema()
            native = self._compiler.compile_plan(plan, schema)
            validate_query(native, schema)
            request = NativeRequest(
                query=native,
                size=self._settings.search_size if options.size is None else options.size,
                offset=options.offset,
                fields=tuple(options.fields),
                sort=tuple(options.sort),
                explain=options.explain,
                timeout=timeout,
            )
            result = normalize_response(handle.execute(request), self._name)
            span.set_attribute("searchplan.total_hits", result.total)
        logger.debug("Search on %s matched %d documents: %s", self._name, result.total, native)
        return result


class WhooshEngine:
    """Opens a fixed set of Whoosh indices and hands out :class:`WhooshIndex` objects.

    The set of indices is fixed at construction; lookups need no locking.
    """

    def __init__(self, configs: Iterable[IndexConfig], *, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        handles: dict[str, WhooshIndexHandle] = {}
        try:
            for config in configs:
                if config.name in handles:
                    msg = f"duplicate index name {config.name!r}"
                    raise ConfigurationError(msg)
                handles[config.name] = self._open(config)
        except BaseException:
            for handle in handles.values():
                handle.close()
            raise

        self._handles = MappingProxyType(handles)
        self._indices = MappingProxyType(
            {name: WhooshIndex(name, handle, self._settings) for name, handle in handles.items()}
        )
        logger.info("Search engine ready with %d indices: %s", len(handles), ", ".join(handles) or "-")

    def _open(self, config: IndexConfig) -> WhooshIndexHandle:
        mapping = config.mapping
        if mapping.default_analyzer is None:
            mapping = mapping.model_copy(update={"default_analyzer": self._settings.default_analyzer})
        try:
            mapping.check_analyzers()
            return open_index(config.path, mapping)
        except ConfigurationError:
            raise
        except Exception as exc:
            location = config.path if config.path is not None else ":memory:"
            msg = f"could not open index {config.name!r} at {location}: {exc}"
            raise ConfigurationError(msg) from exc

    @property
    def settings(self) -> Settings:
        return self._settings

    def index(self, name: str) -> WhooshIndex:
        bound = self._indices.get(name)
        if bound is not None:
            return bound
        return WhooshIndex(name, None, self._settings, error=UnknownIndexError(name))

    def indices(self) -> list[WhooshIndex]:
        return list(self._indices.values())

    def close(self) -> None:
        for handle in self._handles.values():
            handle.close()

    def __enter__(self) -> WhooshEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
