"""Document mapping for Whoosh indices.

Documents arrive as nested mappings, dataclasses or pydantic models. They are
flattened into dotted field paths (``{"nest": {"second": "bit"}}`` becomes
``"nest.second"``), every path gets a field kind, and each kind maps onto one
Whoosh field type.

Two field names are reserved:

- ``$id`` stores the document identifier (unique, stored).
- ``$all`` is a composite text field holding every text value of a document;
  text queries without an explicit field search it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from whoosh.fields import BOOLEAN, DATETIME, ID, NUMERIC, TEXT, FieldType, Schema

from searchplan.backends.whoosh.analysis import get_analyzer
from searchplan.errors import InvalidDocumentError


ID_FIELD = "$id"
ALL_FIELD = "$all"
RESERVED_FIELDS = frozenset({ID_FIELD, ALL_FIELD})


class FieldKind(str, Enum):
    """Kinds of values a document field can hold."""

    TEXT = "text"
    NUMERIC = "numeric"
    DATETIME = "datetime"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class FlatField:
    """One flattened document value ready for Whoosh.

    ``value`` is a scalar, or a tuple of scalars for list values.
    """

    path: str
    kind: FieldKind
    value: Any

    @property
    def is_multi(self) -> bool:
        return isinstance(self.value, tuple)

    def values(self) -> tuple[Any, ...]:
        return self.value if self.is_multi else (self.value,)


def to_naive_utc(value: datetime) -> datetime:
    """Whoosh compares datetimes without zone info; aware values are shifted to UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def field_kind(field: FieldType) -> FieldKind | None:
    """Return the kind a Whoosh field type stores, or None for internal fields."""
    # DATETIME subclasses NUMERIC
    if isinstance(field, DATETIME):
        return FieldKind.DATETIME
    if isinstance(field, NUMERIC):
        return FieldKind.NUMERIC
    if isinstance(field, BOOLEAN):
        return FieldKind.BOOLEAN
    if isinstance(field, TEXT):
        return FieldKind.TEXT
    return None


def check_field_name(path: str) -> None:
    if not path:
        msg = "field names must not be empty"
        raise InvalidDocumentError(msg)
    if path in RESERVED_FIELDS:
        msg = f"field name {path!r} is reserved"
        raise InvalidDocumentError(msg)
    if path.startswith("_") or "*" in path or any(char.isspace() for char in path):
        msg = f"illegal field name {path!r}: must not start with '_' or contain '*' or whitespace"
        raise InvalidDocumentError(msg)


def document_to_mapping(document: Any) -> Mapping[str, Any]:
    """Accept a mapping, a dataclass instance or a pydantic model."""
    if isinstance(document, BaseModel):
        return document.model_dump()
    if is_dataclass(document) and not isinstance(document, type):
        return asdict(document)
    if isinstance(document, Mapping):
        return document
    msg = f"document must be a mapping, dataclass or pydantic model, got {type(document).__name__}"
    raise InvalidDocumentError(msg)


class IndexMapping(BaseModel):
    """How documents map onto one index.

    Attributes:
        default_analyzer: Analyzer for text fields without an override; unset
            means the engine's configured default.
        field_analyzers: Per-path analyzer overrides.
        fields: Declared field kinds. Declared fields are created when the
            index opens; undeclared ones are inferred from their values.
        dynamic: Accept fields that are not declared.
        store: Store field values so searches can return them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_analyzer: str | None = None
    field_analyzers: dict[str, str] = Field(default_factory=dict)
    fields: dict[str, FieldKind] = Field(default_factory=dict)
    dynamic: bool = True
    store: bool = True

    @field_validator("default_analyzer")
    @classmethod
    def _check_default_analyzer(cls, value: str | None) -> str | None:
        if value is not None:
            get_analyzer(value)
        return value

    @field_validator("field_analyzers")
    @classmethod
    def _check_field_analyzers(cls, value: dict[str, str]) -> dict[str, str]:
        for name in value.values():
            get_analyzer(name)
        return value

    def check_analyzers(self) -> None:
        """Resolve every analyzer name; raises ``ValueError`` for an unknown one.

        ``model_copy`` skips validation, so copies are checked again here.
        """
        get_analyzer(self.default_analyzer)
        for name in self.field_analyzers.values():
            get_analyzer(name)

    def analyzer_name(self, path: str) -> str:
        return self.field_analyzers.get(path) or self.default_analyzer or "standard"

    def field_type(self, path: str, kind: FieldKind) -> FieldType:
        """Build the Whoosh field type for ``path``."""
        if kind is FieldKind.TEXT:
            return TEXT(analyzer=get_analyzer(self.analyzer_name(path)), phrase=True, stored=self.store)
        if kind is FieldKind.NUMERIC:
            return NUMERIC(numtype=float, bits=64, signed=True, stored=self.store)
        if kind is FieldKind.DATETIME:
            return DATETIME(stored=self.store)
        return BOOLEAN(stored=self.store)

    def base_schema(self) -> Schema:
        """Schema for a fresh index: the reserved fields plus every declared field."""
        schema = Schema()
        schema.add(ID_FIELD, ID(stored=True, unique=True))
        schema.add(ALL_FIELD, TEXT(analyzer=get_analyzer(self.default_analyzer), phrase=True, stored=False))
        for path, kind in sorted(self.fields.items()):
            check_field_name(path)
            schema.add(path, self.field_type(path, kind))
        return schema

    def flatten(self, document: Any) -> dict[str, FlatField]:
        """Flatten ``document`` into typed fields keyed by dotted path.

        ``None`` values and empty lists are skipped.

        Raises:
            InvalidDocumentError: the document is not a supported container, a
                field name is reserved or illegal, a value has an unsupported
                type or conflicts with its declared kind, or an undeclared field
                appears while the mapping is not dynamic.
        """
        flat: dict[str, FlatField] = {}
        self._flatten_into(flat, "", document_to_mapping(document))
        return flat

    def _flatten_into(self, flat: dict[str, FlatField], prefix: str, data: Mapping[str, Any]) -> None:
        for key, value in data.items():
            if not isinstance(key, str):
                msg = f"field names must be strings, got {key!r}"
                raise InvalidDocumentError(msg)
            path = f"{prefix}{key}"
            if isinstance(value, Mapping):
                self._flatten_into(flat, f"{path}.", value)
                continue
            if value is None:
                continue
            check_field_name(path)
            if path in flat:
                msg = f"field {path!r} appears more than once after flattening"
                raise InvalidDocumentError(msg)
            if path not in self.fields and not self.dynamic:
                msg = f"field {path!r} is not declared and the mapping is not dynamic"
                raise InvalidDocumentError(msg)
            field = self._to_flat_field(path, value)
            if field is not None:
                flat[path] = field

    def _to_flat_field(self, path: str, value: Any) -> FlatField | None:
        declared = self.fields.get(path)
        if isinstance(value, (list, tuple)):
            if not value:
                return None
            converted = [self._scalar(path, item, declared) for item in value]
            kinds = {kind for kind, _ in converted}
            if len(kinds) > 1:
                msg = f"field {path!r} mixes value kinds: {sorted(kind.value for kind in kinds)}"
                raise InvalidDocumentError(msg)
            kind = kinds.pop()
            if kind is FieldKind.BOOLEAN:
                msg = f"field {path!r}: lists of booleans are not supported"
                raise InvalidDocumentError(msg)
            return FlatField(path, kind, tuple(item for _, item in converted))
        kind, scalar = self._scalar(path, value, declared)
        return FlatField(path, kind, scalar)

    def _scalar(self, path: str, value: Any, declared: FieldKind | None) -> tuple[FieldKind, Any]:
        # bool is checked before numbers because bool subclasses int
        if isinstance(value, bool):
            kind, converted = FieldKind.BOOLEAN, value
        elif isinstance(value, (int, float)):
            kind, converted = FieldKind.NUMERIC, float(value)
        elif isinstance(value, datetime):
            kind, converted = FieldKind.DATETIME, to_naive_utc(value)
        elif isinstance(value, date):
            kind, converted = FieldKind.DATETIME, datetime(value.year, value.month, value.day)
        elif isinstance(value, str):
            if declared is FieldKind.DATETIME:
                try:
                    return FieldKind.DATETIME, to_naive_utc(datetime.fromisoformat(value))
                except ValueError as exc:
                    msg = f"field {path!r}: {value!r} is not an ISO 8601 datetime"
                    raise InvalidDocumentError(msg) from exc
            kind, converted = FieldKind.TEXT, value
        else:
            msg = f"field {path!r}: unsupported value type {type(value).__name__}"
            raise InvalidDocumentError(msg)

        if declared is not None and declared is not kind:
            msg = f"field {path!r} is declared {declared.value} but got a {kind.value} value"
            raise InvalidDocumentError(msg)
        return kind, converted
