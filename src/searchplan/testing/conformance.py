"""Engine-parametric behavioral test suite.

A backend proves it honors the query model by running this suite against
itself. Subclass :class:`SearchConformanceSuite` in a ``Test*`` class and
provide an ``engine_setup`` fixture returning ``(engine, index_name)`` for a
fresh, empty index::

    class TestMyBackend(SearchConformanceSuite):
        @pytest.fixture
        def engine_setup(self, tmp_path):
            engine = MyEngine([...])
            yield engine, "conformance"
            engine.close()

The suite only talks to the :class:`~searchplan.engine.Engine` and
:class:`~searchplan.engine.Index` protocols. Relevance ties are
engine-specific, so hit order is only asserted where scores clearly differ.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from searchplan.engine import Engine, Index, SearchOptions
from searchplan.errors import (
    InvalidDocumentError,
    InvalidQueryError,
    UnknownIndexError,
    UnsupportedQueryTypeError,
)
from searchplan.query import (
    BooleanQuery,
    BoolFieldQuery,
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
from searchplan.results import Result


SIMPLE_DOCS: dict[str, dict[str, Any]] = {
    "foo1": {"foo1": "bar bug"},
    "foo2": {"foo2": "bar"},
    "bar": {"bar": "baz"},
    "baz": {"baz": "foobar"},
    "fit": {"fit": "foo bar bit fit"},
    "nested bit": {"nest": {"second": "bit", "third": "lift it up"}},
}

BOOL_DOCS: dict[str, dict[str, Any]] = {
    "1t": {"bar": True},
    "2f": {"baz": False},
    "1f": {"bar": False},
    "nestedF": {"nest": {"first": False}},
    "nestedT": {"nest": {"first": True}},
}

NUMERIC_DOCS: dict[str, dict[str, Any]] = {
    "n0": {"n": 0},
    "n5": {"n": 5},
    "neg": {"n": -3},
    "n10": {"n": 10},
    "other": {"other": {"n": 7}},
    "label": {"label": "ten"},
}

TERM_RANGE_DOCS: dict[str, dict[str, Any]] = {
    "1": {"code": "1"},
    "12": {"code": "12"},
    "2": {"code": "2"},
    "20": {"code": "20"},
}

LARGE_PAGE = 100


def date_docs(now: datetime) -> dict[str, dict[str, Any]]:
    def days_ago(days: int) -> datetime:
        return now - timedelta(days=days)

    return {
        "bar 30 days ago": {"bar": days_ago(30)},
        "bar 20 days ago": {"bar": days_ago(20)},
        "bar 10 days ago": {"bar": days_ago(10)},
        "bar today": {"bar": now},
        "baz 10 days ago": {"baz": days_ago(10)},
        "baz today": {"baz": now},
        "nested 10 days ago": {"nested": {"date": days_ago(10)}},
        "nested today": {"nested": {"date": now}},
    }


def load_docs(index: Index, docs: Mapping[str, Any]) -> None:
    for doc_id, document in docs.items():
        index.index(doc_id, document)


def run_search(index: Index, query: Query, **options: Any) -> Result:
    options.setdefault("size", LARGE_PAGE)
    return index.search(query, SearchOptions(**options))


def assert_hit_ids(result: Result, expected: Iterable[str], *, ordered: bool = False) -> None:
    """Assert the result holds exactly ``expected``; order only when asked."""
    expected = list(expected)
    if ordered:
        assert result.ids == expected, f"expected {expected}, got {result.ids}\n{result}"
    else:
        assert sorted(result.ids) == sorted(expected), f"expected {sorted(expected)}, got {sorted(result.ids)}"
    assert result.total == len(expected)


def assert_scores_non_increasing(result: Result) -> None:
    scores = [hit.score for hit in result.hits]
    assert scores == sorted(scores, reverse=True), scores


class _UnknownQuery:
    def query_plan(self) -> QueryPlan:
        return QueryPlan(type=QueryType.UNKNOWN)


class SearchConformanceSuite:
    """Behavioral cases every backend must pass."""

    @pytest.fixture
    def engine_setup(self) -> tuple[Engine, str]:
        pytest.fail("conformance subclasses must provide an engine_setup fixture")

    @pytest.fixture
    def engine(self, engine_setup) -> Engine:
        return engine_setup[0]

    @pytest.fixture
    def search_index(self, engine_setup) -> Index:
        engine, name = engine_setup
        return engine.index(name)

    @pytest.fixture
    def simple_index(self, search_index) -> Index:
        load_docs(search_index, SIMPLE_DOCS)
        return search_index

    # Engine and index lookup

    def test_engine_lists_bound_index(self, engine_setup):
        engine, name = engine_setup
        assert name in [index.name for index in engine.indices()]
        assert engine.index(name).name == name

    def test_unknown_index_latches_error(self, engine):
        missing = engine.index("no-such-index")
        with pytest.raises(UnknownIndexError) as first:
            missing.search(MatchAllQuery())
        with pytest.raises(UnknownIndexError) as second:
            missing.index("doc", {"field": "value"})
        assert first.value is second.value
        assert "no-such-index" in str(first.value)

    def test_unknown_index_is_a_key_error(self, engine):
        with pytest.raises(KeyError):
            engine.index("no-such-index").search(MatchNoneQuery())

    # Match

    def test_match_ranks_shorter_fields_first(self, simple_index):
        result = run_search(simple_index, MatchQuery("bar"))
        assert_hit_ids(result, ["foo2", "foo1", "fit"], ordered=True)

    def test_match_single_document(self, simple_index):
        assert_hit_ids(run_search(simple_index, MatchQuery("foobar")), ["baz"])

    def test_match_multiple_terms_default_or(self, simple_index):
        result = run_search(simple_index, MatchQuery("foobar bar foo"))
        assert_hit_ids(result, ["fit", "baz", "foo2", "foo1"])
        assert_scores_non_increasing(result)

    def test_match_operator_and(self, simple_index):
        query = MatchQuery("bar bug").set_operator(MatchOperator.AND)
        assert_hit_ids(run_search(simple_index, query), ["foo1"])

    def test_match_nested_field(self, simple_index):
        query = MatchQuery("bit").set_field("nest.second")
        assert_hit_ids(run_search(simple_index, query), ["nested bit"])

    def test_match_fuzziness_one(self, simple_index):
        query = MatchQuery("fobar").set_fuzziness(1)
        assert_hit_ids(run_search(simple_index, query), ["baz"])

    def test_match_fuzziness_three(self, simple_index):
        query = MatchQuery("fobarhm").set_fuzziness(3)
        assert_hit_ids(run_search(simple_index, query), ["baz"])

    def test_match_fuzzy_with_prefix(self, simple_index):
        query = MatchQuery("fooba").set_prefix(4).set_fuzziness(1)
        assert_hit_ids(run_search(simple_index, query), ["baz"])

    def test_match_without_fuzziness_is_exact(self, simple_index):
        result = run_search(simple_index, MatchQuery("fobar"))
        assert result.hits == ()
        assert result.total == 0

    def test_match_on_missing_field_is_empty(self, simple_index):
        result = run_search(simple_index, MatchQuery("bar").set_field("does.not.exist"))
        assert result.total == 0

    # Match all / none

    def test_match_all(self, simple_index):
        assert_hit_ids(run_search(simple_index, MatchAllQuery()), SIMPLE_DOCS)

    def test_match_none(self, simple_index):
        result = run_search(simple_index, MatchNoneQuery())
        assert result.hits == ()
        assert result.total == 0

    def test_zero_hits_is_success(self, simple_index):
        result = run_search(simple_index, MatchQuery("nothingmatchesthis"))
        assert result.hits == ()
        assert result.total == 0
        assert result.max_score == 0.0
        assert result.took >= timedelta(0)

    # Phrases

    def test_match_phrase(self, simple_index):
        assert_hit_ids(run_search(simple_index, MatchPhraseQuery("bar bug")), ["foo1"])

    def test_match_phrase_nested_field(self, simple_index):
        query = MatchPhraseQuery("lift it ").set_field("nest.third")
        assert_hit_ids(run_search(simple_index, query), ["nested bit"])

    def test_match_phrase_respects_order(self, simple_index):
        assert run_search(simple_index, MatchPhraseQuery("bug bar")).total == 0

    def test_match_phrase_respects_adjacency(self, simple_index):
        assert run_search(simple_index, MatchPhraseQuery("foo bit")).total == 0

    def test_multi_phrase(self, simple_index):
        query = MultiPhraseQuery([["bar"], ["bug", "baz"]])
        assert_hit_ids(run_search(simple_index, query), ["foo1"])

    # Terms and patterns

    def test_term_is_not_analyzed(self, simple_index):
        assert_hit_ids(run_search(simple_index, TermQuery("foobar")), ["baz"])
        assert run_search(simple_index, TermQuery("FOOBAR")).total == 0

    def test_term_on_field(self, simple_index):
        assert_hit_ids(run_search(simple_index, TermQuery("bug").set_field("foo1")), ["foo1"])
        assert run_search(simple_index, TermQuery("bug").set_field("foo2")).total == 0

    def test_prefix(self, simple_index):
        assert_hit_ids(run_search(simple_index, PrefixQuery("foo")), ["baz", "fit"])

    def test_wildcard(self, simple_index):
        assert_hit_ids(run_search(simple_index, WildcardQuery("fo*r")), ["baz"])
        assert_hit_ids(run_search(simple_index, WildcardQuery("b?g")), ["foo1"])

    def test_regexp_matches_whole_terms(self, simple_index):
        assert_hit_ids(run_search(simple_index, RegexpQuery("b.t")), ["fit", "nested bit"])
        assert run_search(simple_index, RegexpQuery("ba")).total == 0

    def test_ids(self, simple_index):
        query = IDsQuery(["foo1", "bar", "not-indexed"])
        assert_hit_ids(run_search(simple_index, query), ["foo1", "bar"])

    def test_query_string(self, simple_index):
        assert_hit_ids(run_search(simple_index, QueryStringQuery("bar AND NOT bug")), ["foo2", "fit"])

    # Boolean composition

    def test_boolean_must_and_must_not(self, simple_index):
        query = BooleanQuery().add_must(MatchQuery("bar")).add_must_not(MatchQuery("bug"))
        assert_hit_ids(run_search(simple_index, query), ["foo2", "fit"])

    def test_boolean_should_only_requires_one(self, simple_index):
        query = BooleanQuery().add_should(MatchQuery("baz"), MatchQuery("foobar"))
        assert_hit_ids(run_search(simple_index, query), ["bar", "baz"])

    def test_boolean_should_boosts_must_matches(self, simple_index):
        query = BooleanQuery().add_must(MatchQuery("bar")).add_should(MatchQuery("fit"))
        result = run_search(simple_index, query)
        assert_hit_ids(result, ["foo2", "foo1", "fit"])
        assert result.ids[0] == "fit"

    def test_boolean_only_must_not(self, simple_index):
        query = BooleanQuery().add_must_not(MatchQuery("bar"))
        assert_hit_ids(run_search(simple_index, query), ["bar", "baz", "nested bit"])

    def test_empty_boolean_matches_all(self, simple_index):
        assert_hit_ids(run_search(simple_index, BooleanQuery()), SIMPLE_DOCS)

    def test_nested_boolean(self, simple_index):
        inner = BooleanQuery().add_should(TermQuery("foo"), TermQuery("bug"))
        query = BooleanQuery().add_must(inner).add_must_not(IDsQuery(["foo1"]))
        assert_hit_ids(run_search(simple_index, query), ["fit"])

    def test_boost_changes_ranking(self, simple_index):
        query = BooleanQuery().add_should(MatchQuery("baz").set_boost(10.0), MatchQuery("foobar"))
        result = run_search(simple_index, query)
        assert result.ids == ["bar", "baz"]

    # Bool field

    def test_bool_field_true_default_field(self, search_index):
        load_docs(search_index, BOOL_DOCS)
        assert_hit_ids(run_search(search_index, BoolFieldQuery(True)), ["1t", "nestedT"])

    def test_bool_field_false_default_field(self, search_index):
        load_docs(search_index, BOOL_DOCS)
        assert_hit_ids(run_search(search_index, BoolFieldQuery(False)), ["1f", "2f", "nestedF"])

    def test_bool_field_nested(self, search_index):
        load_docs(search_index, BOOL_DOCS)
        assert_hit_ids(run_search(search_index, BoolFieldQuery(True).set_field("nest.first")), ["nestedT"])
        assert_hit_ids(run_search(search_index, BoolFieldQuery(False).set_field("nest.first")), ["nestedF"])

    # Date range

    def test_date_range_covering_everything(self, search_index):
        now = datetime.now(timezone.utc)
        docs = date_docs(now)
        load_docs(search_index, docs)
        query = DateRangeQuery(now - timedelta(days=31), now + timedelta(days=1))
        assert_hit_ids(run_search(search_index, query), docs)

    def test_date_range_end_exclusive_by_default(self, search_index):
        now = datetime.now(timezone.utc)
        load_docs(search_index, date_docs(now))
        query = DateRangeQuery(now - timedelta(days=30), now)
        expected = ["bar 30 days ago", "bar 20 days ago", "bar 10 days ago", "baz 10 days ago", "nested 10 days ago"]
        assert_hit_ids(run_search(search_index, query), expected)

    def test_date_range_exclusive_start(self, search_index):
        now = datetime.now(timezone.utc)
        load_docs(search_index, date_docs(now))
        query = DateRangeQuery(now - timedelta(days=30), now).set_inclusive_start(False).set_inclusive_end(False)
        expected = ["bar 20 days ago", "bar 10 days ago", "baz 10 days ago", "nested 10 days ago"]
        assert_hit_ids(run_search(search_index, query), expected)

    def test_date_range_nested_field(self, search_index):
        now = datetime.now(timezone.utc)
        load_docs(search_index, date_docs(now))
        query = DateRangeQuery(now - timedelta(days=30), now).set_field("nested.date")
        assert_hit_ids(run_search(search_index, query), ["nested 10 days ago"])

    def test_date_range_nested_field_inclusive_end(self, search_index):
        now = datetime.now(timezone.utc)
        load_docs(search_index, date_docs(now))
        query = DateRangeQuery(now - timedelta(days=30), now).set_field("nested.date").set_inclusive_end(True)
        assert_hit_ids(run_search(search_index, query), ["nested 10 days ago", "nested today"])

    def test_date_range_open_start(self, search_index):
        now = datetime.now(timezone.utc)
        load_docs(search_index, date_docs(now))
        query = DateRangeQuery(None, now - timedelta(days=15)).set_field("bar")
        assert_hit_ids(run_search(search_index, query), ["bar 30 days ago", "bar 20 days ago"])

    # Numeric range

    def test_numeric_range_default_inclusivity(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        query = NumericRangeQuery(0, 10).set_field("n")
        assert_hit_ids(run_search(search_index, query), ["n0", "n5"])

    def test_numeric_range_inclusive_max(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        query = NumericRangeQuery(0, 10).set_field("n").set_inclusive_max(True)
        assert_hit_ids(run_search(search_index, query), ["n0", "n5", "n10"])

    def test_numeric_range_exclusive_min(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        query = NumericRangeQuery(0, 10).set_field("n").set_inclusive_min(False)
        assert_hit_ids(run_search(search_index, query), ["n5"])

    def test_numeric_range_zero_bound_is_not_open(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        below_zero = NumericRangeQuery(None, 0).set_field("n")
        assert_hit_ids(run_search(search_index, below_zero), ["neg"])
        from_zero = NumericRangeQuery(0, None).set_field("n")
        assert_hit_ids(run_search(search_index, from_zero), ["n0", "n5", "n10"])

    def test_numeric_range_default_field_searches_all_numbers(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        assert_hit_ids(run_search(search_index, NumericRangeQuery(0, 10)), ["n0", "n5", "other"])

    def test_numeric_range_without_bounds_is_invalid(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        with pytest.raises(InvalidQueryError):
            search_index.search(NumericRangeQuery().set_field("n"))

    def test_numeric_range_on_text_field_is_invalid(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        with pytest.raises(InvalidQueryError):
            search_index.search(NumericRangeQuery(0, 1).set_field("label"))

    @pytest.mark.parametrize(
        "query",
        [
            MatchQuery("ten").set_field("n"),
            MatchQuery("ten").set_field("n").set_fuzziness(1),
            MatchPhraseQuery("ten ten").set_field("n"),
            TermQuery("ten").set_field("n"),
            PrefixQuery("te").set_field("n"),
        ],
        ids=["match", "fuzzy-match", "phrase", "term", "prefix"],
    )
    def test_text_queries_on_numeric_field_are_invalid(self, search_index, query):
        load_docs(search_index, NUMERIC_DOCS)
        with pytest.raises(InvalidQueryError):
            search_index.search(query)

    def test_bool_field_on_text_field_is_invalid(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        with pytest.raises(InvalidQueryError):
            search_index.search(BoolFieldQuery(True).set_field("label"))

    # Term range

    def test_term_range_above_all_terms(self, search_index):
        load_docs(search_index, TERM_RANGE_DOCS)
        result = run_search(search_index, TermRangeQuery("3", "").set_field("code"))
        assert result.hits == ()
        assert result.total == 0

    def test_term_range_is_lexicographic(self, search_index):
        load_docs(search_index, TERM_RANGE_DOCS)
        query = TermRangeQuery("12", "20").set_field("code")
        assert_hit_ids(run_search(search_index, query), ["12", "2"])

    def test_term_range_inclusive_max(self, search_index):
        load_docs(search_index, TERM_RANGE_DOCS)
        query = TermRangeQuery("12", "20").set_field("code").set_inclusive_max(True)
        assert_hit_ids(run_search(search_index, query), ["12", "2", "20"])

    def test_term_range_open_min(self, search_index):
        load_docs(search_index, TERM_RANGE_DOCS)
        query = TermRangeQuery(None, "2").set_field("code")
        assert_hit_ids(run_search(search_index, query), ["1", "12"])

    # Result shape

    def test_result_status_and_timing(self, simple_index):
        result = run_search(simple_index, MatchQuery("bar"))
        assert result.status is not None
        assert result.status.failed == 0
        assert result.status.successful == result.status.total
        assert result.took >= timedelta(0)
        assert result.max_score == max(hit.score for hit in result.hits)
        assert all(hit.index == simple_index.name for hit in result.hits)

    def test_explanations_only_when_requested(self, simple_index):
        plain = run_search(simple_index, MatchQuery("bar"))
        assert all(hit.explanation is None for hit in plain.hits)

        query = BooleanQuery().add_must(MatchQuery("bar")).add_should(MatchQuery("fit"))
        explained = run_search(simple_index, query, explain=True)
        for hit in explained.hits:
            assert hit.explanation is not None
            assert hit.explanation.value == pytest.approx(hit.score)
        assert max(hit.explanation.depth() for hit in explained.hits) >= 2

    def test_requested_fields_are_returned(self, simple_index):
        result = run_search(simple_index, MatchQuery("bug"), fields=("foo1",))
        assert result.hits[0].fields == {"foo1": "bar bug"}

        nested = run_search(simple_index, IDsQuery(["nested bit"]), fields=("*",))
        assert nested.hits[0].fields == {"nest.second": "bit", "nest.third": "lift it up"}

        bare = run_search(simple_index, MatchQuery("bug"))
        assert bare.hits[0].fields == {}

    def test_numeric_and_date_fields_are_normalized(self, search_index):
        stamp = datetime(2024, 5, 17, 12, 30, tzinfo=timezone.utc)
        search_index.index("doc", {"count": 3, "when": stamp})
        hit = run_search(search_index, MatchAllQuery(), fields=("*",)).hits[0]
        assert hit.fields["count"] == 3.0
        assert datetime.fromisoformat(hit.fields["when"]) == stamp

    def test_sort_by_field_puts_missing_last(self, search_index):
        load_docs(search_index, NUMERIC_DOCS)
        ascending = run_search(search_index, MatchAllQuery(), sort=("n",))
        assert ascending.ids[:4] == ["neg", "n0", "n5", "n10"]
        assert sorted(ascending.ids[4:]) == ["label", "other"]
        assert len(ascending.hits[0].sort) == 1

        descending = run_search(search_index, MatchAllQuery(), sort=("-n",))
        assert descending.ids[:4] == ["n10", "n5", "n0", "neg"]

    def test_sort_by_id_and_paging(self, simple_index):
        page = run_search(simple_index, MatchAllQuery(), sort=("_id",), size=2, offset=1)
        assert page.ids == sorted(SIMPLE_DOCS)[1:3]
        assert page.total == len(SIMPLE_DOCS)

    def test_unsorted_paging(self, simple_index):
        everything = run_search(simple_index, MatchQuery("bar"))
        page = run_search(simple_index, MatchQuery("bar"), size=1, offset=1)
        assert page.ids == everything.ids[1:2]
        assert page.total == everything.total

    # Documents and errors

    def test_reindexing_replaces_document(self, search_index):
        search_index.index("doc", {"title": "first version"})
        search_index.index("doc", {"title": "second version"})
        assert run_search(search_index, MatchQuery("first")).total == 0
        assert_hit_ids(run_search(search_index, MatchQuery("second")), ["doc"])

    def test_invalid_document_is_rejected(self, search_index):
        with pytest.raises(InvalidDocumentError):
            search_index.index("doc", "not a document")

    def test_unknown_query_type_is_rejected(self, simple_index):
        with pytest.raises(UnsupportedQueryTypeError):
            simple_index.search(_UnknownQuery())

    # Concurrency

    def test_concurrent_index_and_search(self, search_index):
        doc_ids = [f"doc-{n}" for n in range(40)]

        def add(doc_id: str) -> None:
            search_index.index(doc_id, {"body": f"shared text {doc_id}"})

        def query(_: int) -> int:
            return run_search(search_index, MatchQuery("shared")).total

        with ThreadPoolExecutor(max_workers=8) as pool:
            writes = [pool.submit(add, doc_id) for doc_id in doc_ids]
            reads = [pool.submit(query, n) for n in range(20)]
            for future in writes:
                future.result()
            totals = [future.result() for future in reads]

        assert all(0 <= total <= len(doc_ids) for total in totals)
        final = run_search(search_index, MatchAllQuery())
        assert_hit_ids(final, doc_ids)
