"""Reusable test support for searchplan backends."""

from searchplan.testing.conformance import (
    SearchConformanceSuite,
    assert_hit_ids,
    assert_scores_non_increasing,
    load_docs,
    run_search,
)


__all__ = [
    "SearchConformanceSuite",
    "assert_hit_ids",
    "assert_scores_non_increasing",
    "load_docs",
    "run_search",
]
