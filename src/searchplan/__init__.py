"""searchplan: an engine-neutral full-text query layer."""

from searchplan.config import Settings
from searchplan.engine import Engine, Index, SearchOptions
from searchplan.errors import (
    ConfigurationError,
    InvalidDocumentError,
    InvalidQueryError,
    QueryConstructionError,
    SearchError,
    UnknownIndexError,
    UnsupportedQueryTypeError,
)
from searchplan.query import (
    BooleanQuery,
    BoolFieldQuery,
    Boost,
    DateRangeQuery,
    IDsQuery,
    MatchAllQuery,
    MatchNoneQuery,
    MatchOperator,
    MatchPhraseQuery,
    MatchQuery,
    MultiPhraseQuery,
    NumericRangeQuery,
    PrefixQuery,
    Query,
    QueryPlan,
    QueryStringQuery,
    QueryType,
    RegexpQuery,
    TermQuery,
    TermRangeQuery,
    WildcardQuery,
)
from searchplan.results import Explanation, Hit, Result, Status


__version__ = "0.1.0"

__all__ = [
    "BoolFieldQuery",
    "BooleanQuery",
    "Boost",
    "ConfigurationError",
    "DateRangeQuery",
    "Engine",
    "Explanation",
    "Hit",
    "IDsQuery",
    "Index",
    "InvalidDocumentError",
    "InvalidQueryError",
    "MatchAllQuery",
    "MatchNoneQuery",
    "MatchOperator",
    "MatchPhraseQuery",
    "MatchQuery",
    "MultiPhraseQuery",
    "NumericRangeQuery",
    "PrefixQuery",
    "Query",
    "QueryConstructionError",
    "QueryPlan",
    "QueryStringQuery",
    "QueryType",
    "RegexpQuery",
    "Result",
    "SearchError",
    "SearchOptions",
    "Settings",
    "Status",
    "TermQuery",
    "TermRangeQuery",
    "UnknownIndexError",
    "UnsupportedQueryTypeError",
    "WildcardQuery",
    "__version__",
]
