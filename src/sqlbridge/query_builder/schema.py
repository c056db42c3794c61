"""Normalized view of a model's ``fields``, ``flags`` and ``joins`` maps.

Field definitions arrive in several loose shapes (``True``, a column name, a
mapping). They are resolved once per model class into one of three variants
so the compilers never inspect raw definitions.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union
from weakref import WeakKeyDictionary

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import FilterType
from sqlbridge.utils.casing import to_snake_case


@dataclass(frozen=True)
class PlainField:
    name: str
    column: str
    table: Optional[str] = None

    @property
    def output_alias(self) -> str:
        return self.name


@dataclass(frozen=True)
class AliasedField:
    name: str
    column: str
    alias: str
    table: Optional[str] = None

    @property
    def output_alias(self) -> str:
        return self.alias


@dataclass(frozen=True)
class TypedField:
    name: str
    column: str
    default_filter_type: FilterType
    alias: Optional[str] = None
    table: Optional[str] = None

    @property
    def output_alias(self) -> str:
        return self.alias or self.name


FieldDefinition = Union[PlainField, AliasedField, TypedField]


@dataclass(frozen=True)
class FlagDefinition:
    """A logical boolean backed by one bit of a bitmask column."""

    name: str
    column: str
    bit: int
    table: Optional[str] = None


def _normalize_field(name: str, definition: Any) -> FieldDefinition:
    if not isinstance(name, str) or not name:
        raise query_validation_error(f"Invalid field name {name!r}", clause="fields")

    # A bare logical name maps to its snake_case column; declared columns are kept verbatim
    if definition is True:
        return PlainField(name=name, column=to_snake_case(name))

    if isinstance(definition, str) and definition:
        return PlainField(name=name, column=definition)

    if isinstance(definition, Mapping):
        column = definition.get("field", to_snake_case(name))
        alias = definition.get("alias")
        table = definition.get("table")

        if not isinstance(column, str) or not column:
            raise query_validation_error(f"Invalid column for field {name}", clause="fields", value=column)
        if alias is not None and (not isinstance(alias, str) or not alias):
            raise query_validation_error(f"Invalid alias for field {name}", clause="fields", value=alias)
        if table is not None and (not isinstance(table, str) or not table):
            raise query_validation_error(f"Invalid table for field {name}", clause="fields", value=table)

        if "type" in definition:
            filter_type = FilterType.parse(definition["type"])
            if filter_type is None:
                raise query_validation_error(
                    f"Invalid default filter type for field {name}",
                    clause="fields",
                    value=definition["type"],
                )
            return TypedField(name=name, column=column, default_filter_type=filter_type, alias=alias, table=table)

        if alias is not None:
            return AliasedField(name=name, column=column, alias=alias, table=table)

        return PlainField(name=name, column=column, table=table)

    raise query_validation_error(f"Invalid definition for field {name}", clause="fields", value=definition)


class ModelSchema:
    """Lookup table over a model's declared fields, flags and joins."""

    def __init__(
        self,
        fields: Optional[Mapping[str, Any]] = None,
        flags: Optional[Mapping[str, Any]] = None,
        joins: Optional[Mapping[str, Any]] = None,
    ):
        if fields is not None and not isinstance(fields, Mapping):
            raise query_validation_error("Model fields must be a mapping", clause="fields")
        if flags is not None and not isinstance(flags, Mapping):
            raise query_validation_error("Model flags must be a mapping", clause="flags")
        if joins is not None and not isinstance(joins, Mapping):
            raise query_validation_error("Model joins must be a mapping", clause="joins")

        self.fields: Dict[str, FieldDefinition] = {
            name: _normalize_field(name, definition) for name, definition in (fields or {}).items()
        }
        self.flags: Dict[str, FlagDefinition] = self._normalize_flags(flags or {})
        # Join definitions are validated when a query references them
        self.joins: Mapping[str, Any] = joins or {}

    def _normalize_flags(self, flags: Mapping[str, Any]) -> Dict[str, FlagDefinition]:
        """Keys of ``flags`` are physical bitmask columns of the base table.

        A key that is also a declared field inherits that field's ``table``.
        """
        normalized: Dict[str, FlagDefinition] = {}

        for column, bits in flags.items():
            if not isinstance(column, str) or not column:
                raise query_validation_error(f"Invalid flag column {column!r}", clause="flags")
            if not isinstance(bits, Mapping):
                raise query_validation_error(
                    f"Flags of {column} must be a mapping", clause="flags", value=bits
                )
            owner = self.fields.get(column)
            table = owner.table if owner is not None else None

            for name, bit in bits.items():
                if name not in self.fields:
                    raise query_validation_error(
                        f"Flag {name} must be declared in fields", clause="flags"
                    )
                if isinstance(bit, bool) or not isinstance(bit, int) or bit <= 0:
                    raise query_validation_error(
                        f"Invalid bit for flag {name}", clause="flags", value=bit
                    )
                normalized[name] = FlagDefinition(name=name, column=column, bit=bit, table=table)

        return normalized

    def get_field(self, name: Any) -> Optional[FieldDefinition]:
        if not isinstance(name, str):
            return None
        return self.fields.get(name)

    def get_flag(self, name: Any) -> Optional[FlagDefinition]:
        if not isinstance(name, str):
            return None
        return self.flags.get(name)

    def resolve_field(self, name: Any, clause: str) -> FieldDefinition:
        """Resolve a logical field or fail with a validation error."""
        field = self.get_field(name)
        if field is None:
            raise query_validation_error(f"Unknown field {name!r} in {clause}", clause=clause, value=name)
        return field

    @classmethod
    def from_model(cls, model: Any) -> "ModelSchema":
        """Build (or reuse) the schema declared by a model.

        Schemas declared on the model class are cached per class; schemas
        overridden on an instance are resolved on every call.
        """
        owner = model if isinstance(model, type) else type(model)
        overridden = not isinstance(model, type) and any(
            attr in getattr(model, "__dict__", {}) for attr in ("fields", "flags", "joins")
        )

        if not overridden:
            cached = _schema_cache.get(owner)
            if cached is not None:
                return cached

        schema = cls(
            fields=getattr(model, "fields", None),
            flags=getattr(model, "flags", None),
            joins=getattr(model, "joins", None),
        )

        if not overridden:
            _schema_cache[owner] = schema
        return schema


_schema_cache: "WeakKeyDictionary[type, ModelSchema]" = WeakKeyDictionary()
