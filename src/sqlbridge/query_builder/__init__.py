"""Query builder for MySQL SELECT statements.

This module compiles declarative query descriptors against a model's
field, flag and join schema into parameterized SQL.

Main Components:
    - QueryBuilder: Orchestrates compilation and execution
    - CompiledQuery: Immutable statement plus bound parameters
    - ModelSchema: Normalized field/flag/join lookup for a model
    - statements: INSERT/UPDATE/DELETE assembly for the data access facade
"""

from sqlbridge.query_builder.builder import BuilderState, QueryBuilder, compile_pagination
from sqlbridge.query_builder.nodes import CompiledQuery, quote_alias, quote_identifier, quote_table
from sqlbridge.query_builder.schema import (
    AliasedField,
    FieldDefinition,
    FlagDefinition,
    ModelSchema,
    PlainField,
    TypedField,
)

__all__ = [
    "BuilderState",
    "QueryBuilder",
    "compile_pagination",
    "CompiledQuery",
    "quote_alias",
    "quote_identifier",
    "quote_table",
    "AliasedField",
    "FieldDefinition",
    "FlagDefinition",
    "ModelSchema",
    "PlainField",
    "TypedField",
]
