"""Whoosh backend: compiler, index handle, normalizer and engine facade."""

from searchplan.backends.whoosh.compiler import QueryCompiler, validate_query
from searchplan.backends.whoosh.engine import IndexConfig, WhooshEngine, WhooshIndex
from searchplan.backends.whoosh.handle import (
    NativeExplanation,
    NativeHit,
    NativeRequest,
    NativeResponse,
    WhooshIndexHandle,
    open_index,
)
from searchplan.backends.whoosh.mapping import FieldKind, IndexMapping
from searchplan.backends.whoosh.normalizer import normalize_response


__all__ = [
    "FieldKind",
    "IndexConfig",
    "IndexMapping",
    "NativeExplanation",
    "NativeHit",
    "NativeRequest",
    "NativeResponse",
    "QueryCompiler",
    "WhooshEngine",
    "WhooshIndex",
    "WhooshIndexHandle",
    "normalize_response",
    "open_index",
    "validate_query",
]
