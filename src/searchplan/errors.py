"""Error taxonomy for the query layer.

Every error surfaces synchronously to the immediate caller. Nothing here is
retried or logged; failures raised by the underlying engine are not wrapped
and propagate as-is.
"""

from __future__ import annotations


class SearchError(Exception):
    """Base class for errors raised by searchplan itself."""


class ConfigurationError(SearchError):
    """An index could not be opened or created while building an engine."""


class UnknownIndexError(SearchError, KeyError):
    """An operation targeted an index name the engine was not built with."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"index does not exist for this engine: {self.name!r}"


class QueryConstructionError(SearchError, ValueError):
    """A query builder received a value it cannot represent."""


class InvalidQueryError(SearchError, ValueError):
    """A compiled query failed validation against the index schema."""


class UnsupportedQueryTypeError(SearchError):
    """The compiler has no lowering for the plan's query type."""

    def __init__(self, query_type: object) -> None:
        super().__init__(query_type)
        self.query_type = query_type

    def __str__(self) -> str:
        name = getattr(self.query_type, "name", None) or repr(self.query_type)
        return f"unexpected query type: {name}"


class InvalidDocumentError(SearchError, ValueError):
    """A submitted document cannot be mapped onto the index."""
