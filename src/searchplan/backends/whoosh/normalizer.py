"""Convert native Whoosh responses into engine-neutral results."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from searchplan.backends.whoosh.handle import NativeExplanation, NativeHit, NativeResponse
from searchplan.results import Explanation, Hit, Result, Status


def normalize_response(response: NativeResponse, index_name: str) -> Result:
    """Build a :class:`Result`, preserving the engine's hit order."""
    return Result(
        status=Status(
            total=response.segments,
            failed=response.failed_segments,
            successful=response.segments - response.failed_segments,
        ),
        hits=tuple(normalize_hit(hit, index_name) for hit in response.hits),
        total=response.total,
        max_score=float(response.max_score),
        took=timedelta(seconds=response.took),
    )


def normalize_hit(hit: NativeHit, index_name: str) -> Hit:
    return Hit(
        index=index_name,
        id=hit.id,
        score=float(hit.score),
        sort=tuple(hit.sort),
        explanation=normalize_explanation(hit.explanation),
        fields={name: normalize_field_value(value) for name, value in hit.fields.items()},
    )


def normalize_explanation(explanation: NativeExplanation | None) -> Explanation | None:
    """Copy an explanation tree at full depth; ``None`` stays ``None``."""
    if explanation is None:
        return None
    return Explanation(
        value=float(explanation.value),
        message=explanation.message,
        children=tuple(normalize_explanation(child) for child in explanation.children),
    )


def normalize_field_value(value: Any) -> Any:
    """Map stored values onto the result field types.

    Datetimes become RFC 3339 strings (naive values are UTC), numbers become
    floats, strings and booleans pass through and lists convert element-wise.
    """
    if isinstance(value, (list, tuple)):
        return [normalize_field_value(item) for item in value]
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
