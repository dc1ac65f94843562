"""Lower engine-neutral query plans into Whoosh query trees.

The compiler is a pure function of the plan and the index's current schema:
it never touches index data. Lowering dispatches on ``QueryPlan.type`` through
a table; a type without an entry raises
:class:`~searchplan.errors.UnsupportedQueryTypeError`.

Field resolution:

- Text queries without a field search the composite ``$all`` field.
- Boolean, numeric and date queries without a field search every schema field
  of that kind.
- Any query naming a field the schema does not have matches nothing.
- A query naming a field of a kind it cannot search raises
  :class:`~searchplan.errors.InvalidQueryError`.
"""

from __future__ import annotations

from collections.abc import Callable
from itertools import product

from whoosh import query as wq
from whoosh.fields import Schema
from whoosh.qparser import QueryParser

from searchplan.backends.whoosh.analysis import analyze, get_analyzer
from searchplan.backends.whoosh.mapping import (
    ALL_FIELD,
    ID_FIELD,
    FieldKind,
    IndexMapping,
    field_kind,
    to_naive_utc,
)
from searchplan.errors import InvalidQueryError, UnsupportedQueryTypeError
from searchplan.query import MatchOperator, Query, QueryPlan, QueryType


class QueryCompiler:
    """Compiles queries for indices sharing one :class:`IndexMapping`."""

    def __init__(self, mapping: IndexMapping) -> None:
        self._mapping = mapping

    def compile(self, query: Query, schema: Schema) -> wq.Query:
        return self.compile_plan(query.query_plan(), schema)

    def compile_plan(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        lower = _LOWERINGS.get(plan.type)
        if lower is None:
            raise UnsupportedQueryTypeError(plan.type)
        node = lower(self, plan, schema)
        return _with_boost(node, plan)

    # Compound

    def _boolean(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        musts = [self.compile(clause, schema) for clause in plan.must]
        shoulds = [self.compile(clause, schema) for clause in plan.should]
        nots = [self.compile(clause, schema) for clause in plan.must_not]

        if musts:
            positive: wq.Query = wq.And(musts)
            if shoulds:
                positive = wq.AndMaybe(positive, wq.Or(shoulds))
        elif shoulds:
            positive = wq.Or(shoulds)
        else:
            positive = wq.Every()

        if nots:
            return wq.AndNot(positive, wq.Or(nots))
        return positive

    # Analyzed text

    def _match(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        fieldname = _text_field(plan)
        if fieldname not in schema:
            return wq.NullQuery
        _require_kind(plan, schema, fieldname, FieldKind.TEXT)
        tokens = self._tokens(plan, schema, fieldname)
        if not tokens:
            return wq.NullQuery
        if plan.fuzziness > 0:
            leaves = [
                wq.FuzzyTerm(fieldname, token, maxdist=plan.fuzziness, prefixlength=plan.prefix) for token in tokens
            ]
        else:
            leaves = [wq.Term(fieldname, token) for token in tokens]
        if len(leaves) == 1:
            return leaves[0]
        if plan.operator is MatchOperator.AND:
            return wq.And(leaves)
        return wq.Or(leaves)

    def _match_phrase(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        fieldname = _text_field(plan)
        if fieldname not in schema:
            return wq.NullQuery
        _require_kind(plan, schema, fieldname, FieldKind.TEXT)
        tokens = self._tokens(plan, schema, fieldname)
        if not tokens:
            return wq.NullQuery
        if len(tokens) == 1:
            return wq.Term(fieldname, tokens[0])
        return wq.Phrase(fieldname, tokens, slop=1)

    def _multi_phrase(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        fieldname = _text_field(plan)
        if fieldname not in schema:
            return wq.NullQuery
        _require_kind(plan, schema, fieldname, FieldKind.TEXT)
        phrases: list[wq.Query] = []
        for words in product(*plan.terms):
            if len(words) == 1:
                phrases.append(wq.Term(fieldname, words[0]))
            else:
                phrases.append(wq.Phrase(fieldname, list(words), slop=1))
        if len(phrases) == 1:
            return phrases[0]
        return wq.Or(phrases)

    def _query_string(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return QueryParser(ALL_FIELD, schema).parse(plan.matches[0])

    def _tokens(self, plan: QueryPlan, schema: Schema, fieldname: str) -> list[str]:
        if plan.analyzer:
            try:
                analyzer = get_analyzer(plan.analyzer)
            except ValueError as exc:
                raise InvalidQueryError(str(exc)) from exc
        else:
            field = schema[fieldname]
            analyzer = getattr(field, "analyzer", None) or get_analyzer(self._mapping.analyzer_name(fieldname))
        return analyze(analyzer, plan.matches[0])

    # Unanalyzed terms

    def _term(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return _on_text_field(plan, schema, lambda name: wq.Term(name, plan.matches[0]))

    def _prefix(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return _on_text_field(plan, schema, lambda name: wq.Prefix(name, plan.matches[0]))

    def _wildcard(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return _on_text_field(plan, schema, lambda name: wq.Wildcard(name, plan.matches[0]))

    def _regexp(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        # Whoosh only anchors the start of the pattern; terms must match as a whole
        pattern = f"(?:{plan.matches[0]})$"
        return _on_text_field(plan, schema, lambda name: wq.Regex(name, pattern))

    def _ids(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        if not plan.matches:
            return wq.NullQuery
        terms = [wq.Term(ID_FIELD, doc_id) for doc_id in plan.matches]
        if len(terms) == 1:
            return terms[0]
        return wq.Or(terms)

    # Ranges

    def _term_range(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        start = plan.min or None
        end = plan.max or None
        if start is None and end is None:
            msg = "term range needs at least one of min or max"
            raise InvalidQueryError(msg)
        return _on_text_field(
            plan,
            schema,
            lambda name: wq.TermRange(
                name,
                start,
                end,
                startexcl=not plan.inclusive_min,
                endexcl=not plan.inclusive_max,
            ),
        )

    def _numeric_range(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        if plan.min is None and plan.max is None:
            msg = "numeric range needs at least one of min or max"
            raise InvalidQueryError(msg)
        return _on_typed_fields(
            plan,
            schema,
            FieldKind.NUMERIC,
            lambda name: wq.NumericRange(
                name,
                plan.min,
                plan.max,
                startexcl=not plan.inclusive_min,
                endexcl=not plan.inclusive_max,
            ),
        )

    def _date_range(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        if plan.min is None and plan.max is None:
            msg = "date range needs at least one of start or end"
            raise InvalidQueryError(msg)
        start = to_naive_utc(plan.min) if plan.min is not None else None
        end = to_naive_utc(plan.max) if plan.max is not None else None
        return _on_typed_fields(
            plan,
            schema,
            FieldKind.DATETIME,
            lambda name: wq.DateRange(
                name,
                start,
                end,
                startexcl=not plan.inclusive_min,
                endexcl=not plan.inclusive_max,
            ),
        )

    # Other leaves

    def _bool_field(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return _on_typed_fields(plan, schema, FieldKind.BOOLEAN, lambda name: wq.Term(name, plan.bool_value))

    def _match_all(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return wq.Every()

    def _match_none(self, plan: QueryPlan, schema: Schema) -> wq.Query:
        return wq.NullQuery


def _text_field(plan: QueryPlan) -> str:
    return plan.field or ALL_FIELD


def _on_text_field(plan: QueryPlan, schema: Schema, build: Callable[[str], wq.Query]) -> wq.Query:
    fieldname = _text_field(plan)
    if fieldname not in schema:
        return wq.NullQuery
    _require_kind(plan, schema, fieldname, FieldKind.TEXT)
    return build(fieldname)


def _on_typed_fields(
    plan: QueryPlan,
    schema: Schema,
    kind: FieldKind,
    build: Callable[[str], wq.Query],
) -> wq.Query:
    if plan.field:
        if plan.field not in schema:
            return wq.NullQuery
        _require_kind(plan, schema, plan.field, kind)
        return build(plan.field)
    names = [name for name, field in schema.items() if field_kind(field) is kind]
    if not names:
        return wq.NullQuery
    if len(names) == 1:
        return build(names[0])
    return wq.Or([build(name) for name in names])


def _require_kind(plan: QueryPlan, schema: Schema, fieldname: str, kind: FieldKind) -> None:
    actual = field_kind(schema[fieldname])
    if actual is not kind:
        held = actual.value if actual is not None else "internal"
        msg = f"{plan.type.name.lower()} query needs a {kind.value} field but {fieldname!r} is {held}"
        raise InvalidQueryError(msg)


def _with_boost(node: wq.Query, plan: QueryPlan) -> wq.Query:
    # NullQuery is a shared singleton and scores nothing
    if plan.boost is None or node is wq.NullQuery:
        return node
    node.boost = plan.boost.value
    return node


_LOWERINGS: dict[QueryType, Callable[[QueryCompiler, QueryPlan, Schema], wq.Query]] = {
    QueryType.BOOLEAN: QueryCompiler._boolean,
    QueryType.BOOL_FIELD: QueryCompiler._bool_field,
    QueryType.DATE_RANGE: QueryCompiler._date_range,
    QueryType.IDS: QueryCompiler._ids,
    QueryType.MATCH: QueryCompiler._match,
    QueryType.MATCH_ALL: QueryCompiler._match_all,
    QueryType.MATCH_NONE: QueryCompiler._match_none,
    QueryType.MATCH_PHRASE: QueryCompiler._match_phrase,
    QueryType.MULTI_PHRASE: QueryCompiler._multi_phrase,
    QueryType.NUMERIC_RANGE: QueryCompiler._numeric_range,
    QueryType.PREFIX: QueryCompiler._prefix,
    QueryType.STRING: QueryCompiler._query_string,
    QueryType.TERM: QueryCompiler._term,
    QueryType.TERM_RANGE: QueryCompiler._term_range,
    QueryType.WILDCARD: QueryCompiler._wildcard,
    QueryType.REGEXP: QueryCompiler._regexp,
}


def validate_query(native: wq.Query, schema: Schema) -> None:
    """Reject compiled leaves that target a field of the wrong kind.

    Raises:
        InvalidQueryError: e.g. a numeric range over a text field, or a phrase
            over a field that records no positions.
    """
    for child in native.children():
        validate_query(child, schema)

    fieldname = getattr(native, "fieldname", None)
    if not fieldname or fieldname not in schema:
        return
    kind = field_kind(schema[fieldname])

    if isinstance(native, wq.DateRange):
        expected = FieldKind.DATETIME
    elif isinstance(native, wq.NumericRange):
        expected = FieldKind.NUMERIC
    elif isinstance(native, (wq.Phrase, wq.TermRange, wq.Prefix, wq.Wildcard, wq.Regex, wq.FuzzyTerm)):
        expected = FieldKind.TEXT
    elif isinstance(native, wq.Term) and isinstance(native.text, bool):
        expected = FieldKind.BOOLEAN
    else:
        return

    if kind is not expected:
        held = kind.value if kind is not None else "internal"
        msg = f"{type(native).__name__} needs a {expected.value} field but {fieldname!r} is {held}"
        raise InvalidQueryError(msg)
