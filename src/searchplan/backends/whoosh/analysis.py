"""Named Whoosh analyzers.

Indices and queries refer to analyzers by name so mappings stay plain data.
Every analyzer returned here is built from Whoosh's own components and is
picklable, which Whoosh requires for on-disk schemas.
"""

from __future__ import annotations

from collections.abc import Callable

from whoosh.analysis import (
    Analyzer,
    IDTokenizer,
    SimpleAnalyzer,
    SpaceSeparatedTokenizer,
    StandardAnalyzer,
    StemmingAnalyzer,
)


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    # Lowercased word tokens; no stop list so short words like "it" stay searchable
    "standard": lambda: StandardAnalyzer(stoplist=None, minsize=1),
    "default": lambda: StandardAnalyzer(stoplist=None, minsize=1),
    "simple": lambda: SimpleAnalyzer(),
    "keyword": lambda: IDTokenizer(),
    "english": lambda: StemmingAnalyzer(),
    "whitespace": lambda: SpaceSeparatedTokenizer(),
}


def available_analyzers() -> list[str]:
    return sorted(_ANALYZER_FACTORIES)


def get_analyzer(name: str | None) -> Analyzer:
    """Return analyzer by name, defaulting to the standard analyzer."""

    if not name:
        return _ANALYZER_FACTORIES["standard"]()
    normalized = name.lower()
    if normalized not in _ANALYZER_FACTORIES:
        msg = f"Unknown analyzer '{name}'. Available: {available_analyzers()}"
        raise ValueError(msg)
    return _ANALYZER_FACTORIES[normalized]()


def analyze(analyzer: Analyzer, text: str) -> list[str]:
    """Run ``text`` through ``analyzer`` the way Whoosh does for query text."""
    # Whoosh reuses a single Token object across the stream, so copy out the text
    return [token.text for token in analyzer(text, mode="query")]
