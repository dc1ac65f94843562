"""Engine-neutral query model.

Every query variant is a small mutable builder exposing fluent setters that
return the receiver. Each variant reduces to a single canonical, type-erased
:class:`QueryPlan`; compilers only ever look at plans.

Example:
    query = (
        BooleanQuery()
        .add_must(MatchQuery("bar").set_field("body"))
        .add_must_not(TermQuery("draft").set_field("status"))
    )
    plan = query.query_plan()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import IntEnum
from typing import Protocol, Self, runtime_checkable

from searchplan.errors import QueryConstructionError


Bound = str | float | datetime | None
"""Opaque range bound; the concrete type depends on the query kind."""


class QueryType(IntEnum):
    """Closed set of query kinds a plan can describe."""

    UNKNOWN = 0
    BOOLEAN = 1
    BOOL_FIELD = 2
    DATE_RANGE = 3
    IDS = 4
    MATCH = 5
    MATCH_ALL = 6
    MATCH_NONE = 7
    MATCH_PHRASE = 8
    MULTI_PHRASE = 9
    NUMERIC_RANGE = 10
    PREFIX = 11
    STRING = 12
    TERM = 13
    TERM_RANGE = 14
    WILDCARD = 15
    REGEXP = 16


class MatchOperator(IntEnum):
    """How the terms of a multi-term match combine."""

    OR = 0
    """Document must satisfy AT LEAST ONE of the term searches."""

    AND = 1
    """Document must satisfy ALL of the term searches."""


@dataclass(frozen=True)
class Boost:
    """Explicit score multiplier.

    Plans hold ``Boost | None`` so an unset boost (engine default) is never
    confused with an explicit ``Boost(0.0)``.
    """

    value: float

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            msg = f"boost must be a number, got {self.value!r}"
            raise QueryConstructionError(msg)
        object.__setattr__(self, "value", float(self.value))

    def __float__(self) -> float:
        return self.value


@runtime_checkable
class Query(Protocol):
    """Anything that can lower itself into a :class:`QueryPlan`."""

    def query_plan(self) -> QueryPlan:  # pragma: no cover - interface definition
        ...


@dataclass(frozen=True)
class QueryPlan:
    """Canonical, flattened form every query variant reduces to.

    ``type`` decides which of the remaining fields are meaningful; consumers
    ignore the rest.
    """

    type: QueryType
    should: tuple[Query, ...] = ()
    must: tuple[Query, ...] = ()
    must_not: tuple[Query, ...] = ()
    analyzer: str = ""
    boost: Boost | None = None
    field: str = ""
    bool_value: bool = False
    matches: tuple[str, ...] = ()
    fuzziness: int = 0
    operator: MatchOperator = MatchOperator.OR
    prefix: int = 0
    terms: tuple[tuple[str, ...], ...] = ()
    min: Bound = None
    max: Bound = None
    inclusive_min: bool = False
    inclusive_max: bool = False

    @property
    def boost_value(self) -> float:
        """Effective multiplier: 1.0 when unset."""
        if self.boost is None:
            return 1.0
        return self.boost.value


def _require_text(value: object, what: str) -> str:
    if not isinstance(value, str):
        msg = f"{what} must be a string, got {type(value).__name__}"
        raise QueryConstructionError(msg)
    if not value:
        msg = f"{what} must not be empty"
        raise QueryConstructionError(msg)
    return value


def _require_non_negative(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{what} must be an integer, got {value!r}"
        raise QueryConstructionError(msg)
    if value < 0:
        msg = f"{what} must be >= 0, got {value}"
        raise QueryConstructionError(msg)
    return value


def _numeric_bound(value: object, what: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"{what} must be a number or None, got {value!r}"
        raise QueryConstructionError(msg)
    return float(value)


def _date_bound(value: object, what: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    msg = f"{what} must be a datetime, date or None, got {value!r}"
    raise QueryConstructionError(msg)


def _term_bound(value: object, what: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    msg = f"{what} must be a string or None, got {value!r}"
    raise QueryConstructionError(msg)


class _Boostable:
    boost: Boost | None

    def set_boost(self, value: float) -> Self:
        self.boost = Boost(value)
        return self


class _Fielded:
    field: str

    def set_field(self, name: str) -> Self:
        if not isinstance(name, str):
            msg = f"field must be a string, got {type(name).__name__}"
            raise QueryConstructionError(msg)
        self.field = name
        return self


class _Analyzed:
    analyzer: str

    def set_analyzer(self, name: str) -> Self:
        self.analyzer = name
        return self


@dataclass
class BooleanQuery(_Boostable):
    """Composition of must / should / must-not clauses.

    Empty clause lists are legal; their meaning is left to the engine.
    """

    must: list[Query] = field(default_factory=list)
    should: list[Query] = field(default_factory=list)
    must_not: list[Query] = field(default_factory=list)
    boost: Boost | None = None

    def add_must(self, *queries: Query) -> Self:
        self.must.extend(queries)
        return self

    def add_should(self, *queries: Query) -> Self:
        self.should.extend(queries)
        return self

    def add_must_not(self, *queries: Query) -> Self:
        self.must_not.extend(queries)
        return self

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.BOOLEAN,
            must=tuple(self.must),
            should=tuple(self.should),
            must_not=tuple(self.must_not),
            boost=self.boost,
        )


@dataclass
class BoolFieldQuery(_Fielded, _Boostable):
    """Matches documents whose boolean field equals ``value``."""

    value: bool
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.value, bool):
            msg = f"bool field query needs a bool, got {self.value!r}"
            raise QueryConstructionError(msg)

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.BOOL_FIELD,
            bool_value=self.value,
            field=self.field,
            boost=self.boost,
        )


@dataclass
class DateRangeQuery(_Fielded, _Boostable):
    """Half-open ``[start, end)`` range over a datetime field by default.

    Either bound may be ``None`` for an open-ended range.
    """

    start: datetime | None
    end: datetime | None
    inclusive_start: bool | None = None
    inclusive_end: bool | None = None
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        self.start = _date_bound(self.start, "start")
        self.end = _date_bound(self.end, "end")

    def set_inclusive_start(self, inclusive: bool) -> Self:
        self.inclusive_start = inclusive
        return self

    def set_inclusive_end(self, inclusive: bool) -> Self:
        self.inclusive_end = inclusive
        return self

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.DATE_RANGE,
            min=self.start,
            max=self.end,
            inclusive_min=True if self.inclusive_start is None else self.inclusive_start,
            inclusive_max=False if self.inclusive_end is None else self.inclusive_end,
            field=self.field,
            boost=self.boost,
        )


@dataclass
class IDsQuery(_Boostable):
    """Matches documents by identifier."""

    ids: list[str]
    boost: Boost | None = None

    def __post_init__(self) -> None:
        if isinstance(self.ids, str):
            self.ids = [self.ids]
        self.ids = [_require_text(doc_id, "document id") for doc_id in self.ids]

    def query_plan(self) -> QueryPlan:
        return QueryPlan(type=QueryType.IDS, matches=tuple(self.ids), boost=self.boost)


@dataclass
class MatchQuery(_Fielded, _Analyzed, _Boostable):
    """Analyzed full-text match.

    The text is run through an analyzer and every resulting term is searched;
    ``operator`` decides whether any or all terms must match. With a non-zero
    ``fuzziness`` terms match within that edit distance, and the first
    ``prefix`` characters of each term are exempt from fuzzy matching.
    """

    match: str
    field: str = ""
    analyzer: str = ""
    operator: MatchOperator = MatchOperator.OR
    fuzziness: int = 0
    prefix: int = 0
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.match, "match text")
        _require_non_negative(self.fuzziness, "fuzziness")
        _require_non_negative(self.prefix, "prefix")
        self.operator = MatchOperator(self.operator)

    def set_fuzziness(self, fuzziness: int) -> Self:
        self.fuzziness = _require_non_negative(fuzziness, "fuzziness")
        return self

    def set_prefix(self, prefix: int) -> Self:
        self.prefix = _require_non_negative(prefix, "prefix")
        return self

    def set_operator(self, operator: MatchOperator | int) -> Self:
        self.operator = MatchOperator(operator)
        return self

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.MATCH,
            matches=(self.match,),
            field=self.field,
            analyzer=self.analyzer,
            operator=self.operator,
            fuzziness=self.fuzziness,
            prefix=self.prefix,
            boost=self.boost,
        )


@dataclass
class MatchAllQuery(_Boostable):
    """Matches every document in the index."""

    boost: Boost | None = None

    def query_plan(self) -> QueryPlan:
        return QueryPlan(type=QueryType.MATCH_ALL, boost=self.boost)


@dataclass
class MatchNoneQuery(_Boostable):
    """Matches no documents."""

    boost: Boost | None = None

    def query_plan(self) -> QueryPlan:
        return QueryPlan(type=QueryType.MATCH_NONE, boost=self.boost)


@dataclass
class MatchPhraseQuery(_Fielded, _Analyzed, _Boostable):
    """Analyzed terms must appear adjacent and in order."""

    phrase: str
    field: str = ""
    analyzer: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.phrase, "phrase")

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.MATCH_PHRASE,
            matches=(self.phrase,),
            field=self.field,
            analyzer=self.analyzer,
            boost=self.boost,
        )


@dataclass
class MultiPhraseQuery(_Fielded, _Boostable):
    """Phrase where each position accepts any of several exact terms."""

    terms: list[list[str]]
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        if not self.terms:
            msg = "multi phrase needs at least one position"
            raise QueryConstructionError(msg)
        positions: list[list[str]] = []
        for position in self.terms:
            if isinstance(position, str) or not position:
                msg = f"multi phrase position must be a non-empty list of terms, got {position!r}"
                raise QueryConstructionError(msg)
            positions.append([_require_text(term, "phrase term") for term in position])
        self.terms = positions

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.MULTI_PHRASE,
            terms=tuple(tuple(position) for position in self.terms),
            field=self.field,
            boost=self.boost,
        )


@dataclass
class NumericRangeQuery(_Fielded, _Boostable):
    """Numeric range; min inclusive and max exclusive unless overridden.

    An unset bound (``None``) is open-ended and distinct from a bound of 0.
    """

    min: float | None = None
    max: float | None = None
    inclusive_min: bool | None = None
    inclusive_max: bool | None = None
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        self.min = _numeric_bound(self.min, "min")
        self.max = _numeric_bound(self.max, "max")

    def set_min(self, value: float | None) -> Self:
        self.min = _numeric_bound(value, "min")
        return self

    def set_max(self, value: float | None) -> Self:
        self.max = _numeric_bound(value, "max")
        return self

    def set_inclusive_min(self, inclusive: bool) -> Self:
        self.inclusive_min = inclusive
        return self

    def set_inclusive_max(self, inclusive: bool) -> Self:
        self.inclusive_max = inclusive
        return self

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.NUMERIC_RANGE,
            min=self.min,
            max=self.max,
            inclusive_min=True if self.inclusive_min is None else self.inclusive_min,
            inclusive_max=False if self.inclusive_max is None else self.inclusive_max,
            field=self.field,
            boost=self.boost,
        )


@dataclass
class PrefixQuery(_Fielded, _Boostable):
    """Matches terms starting with ``prefix``; not analyzed."""

    prefix: str
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.prefix, "prefix")

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.PREFIX,
            matches=(self.prefix,),
            field=self.field,
            boost=self.boost,
        )


@dataclass
class QueryStringQuery(_Boostable):
    """Query written in the engine's query-string mini language."""

    query: str
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.query, "query string")

    def query_plan(self) -> QueryPlan:
        return QueryPlan(type=QueryType.STRING, matches=(self.query,), boost=self.boost)


@dataclass
class RegexpQuery(_Fielded, _Boostable):
    """Matches terms against a regular expression."""

    regexp: str
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.regexp, "regexp")

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.REGEXP,
            matches=(self.regexp,),
            field=self.field,
            boost=self.boost,
        )


@dataclass
class TermQuery(_Fielded, _Boostable):
    """Exact, unanalyzed term match."""

    term: str
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.term, "term")

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.TERM,
            matches=(self.term,),
            field=self.field,
            boost=self.boost,
        )


@dataclass
class TermRangeQuery(_Fielded, _Boostable):
    """Lexicographic range over indexed terms.

    ``None`` or ``""`` leaves a side open. Min is inclusive and max exclusive
    unless overridden.
    """

    min: str | None = None
    max: str | None = None
    inclusive_min: bool | None = None
    inclusive_max: bool | None = None
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        self.min = _term_bound(self.min, "min")
        self.max = _term_bound(self.max, "max")

    def set_min(self, value: str | None) -> Self:
        self.min = _term_bound(value, "min")
        return self

    def set_max(self, value: str | None) -> Self:
        self.max = _term_bound(value, "max")
        return self

    def set_inclusive_min(self, inclusive: bool) -> Self:
        self.inclusive_min = inclusive
        return self

    def set_inclusive_max(self, inclusive: bool) -> Self:
        self.inclusive_max = inclusive
        return self

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.TERM_RANGE,
            min=self.min,
            max=self.max,
            inclusive_min=True if self.inclusive_min is None else self.inclusive_min,
            inclusive_max=False if self.inclusive_max is None else self.inclusive_max,
            field=self.field,
            boost=self.boost,
        )


@dataclass
class WildcardQuery(_Fielded, _Boostable):
    """Term pattern with ``*`` (any run) and ``?`` (single character)."""

    wildcard: str
    field: str = ""
    boost: Boost | None = None

    def __post_init__(self) -> None:
        _require_text(self.wildcard, "wildcard")

    def query_plan(self) -> QueryPlan:
        return QueryPlan(
            type=QueryType.WILDCARD,
            matches=(self.wildcard,),
            field=self.field,
            boost=self.boost,
        )

