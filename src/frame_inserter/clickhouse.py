"""ClickHouse create/insert statement builder.

A ``ClickhouseInserter`` is an immutable configuration value: every ``with_*``
or ``replace_*`` call returns a new value. ``build()`` is the single step from
configuring to built, returning a ``BuiltInserter`` that holds the cached
statements and the wire schema.

    inserter = (
        ClickhouseInserter.default("players")
        .with_engine("MergeTree")
        .with_primary_key(["id"])
        .with_schema_from_columns(frame.get_columns())
        .build()
    )
    inserter.get_create_query()
    inserter.get_arrow_body(frame)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Self

import pyarrow as pa

from frame_inserter.encoding import encode
from frame_inserter.errors import ColumnConversionError, NotBuiltError, UnsupportedTypeError
from frame_inserter.type_conversion import polars_to_data_type, sql_type_of, wire_type_of
from frame_inserter.types import DataType, is_nested

if TYPE_CHECKING:
    import polars as pl

logger = getLogger(__name__)

DEFAULT_CREATE_METHOD: Final = "CREATE TABLE IF NOT EXISTS"
STREAM_FORMAT: Final = "ArrowStream"


def field_definition(name: str, *, nullable: bool, sql_type: str) -> str:
    """Render a column definition from its ClickHouse type."""
    return f"{name} {sql_type} {'NULL' if nullable else 'NOT NULL'}"


def table_statement(
    table_name: str,
    columns: Iterable[str],
    table_config: str,
    create_method: str | None = None,
) -> str:
    """Render the create statement."""
    col_spec = ",\n\t".join(columns)
    creator = create_method or DEFAULT_CREATE_METHOD
    return f"{creator} {table_name} (\n\t{col_spec}\n) {table_config}"


def insert_statement(table_name: str) -> str:
    """Render the insert statement for an ArrowStream body."""
    return f"INSERT INTO {table_name} FORMAT {STREAM_FORMAT}"


def key_clause(keyword: str, keys: Iterable[str]) -> str:
    """Render ORDER BY / PRIMARY KEY, parenthesizing composite keys."""
    keys = list(keys)
    if not keys:
        return ""
    if len(keys) == 1:
        return f"{keyword} {keys[0]}"
    return f"{keyword} ({', '.join(keys)})"


@dataclass(frozen=True, slots=True)
class BuiltInserter:
    """Cached statements and wire schema produced by ClickhouseInserter.build()."""

    create_query: str
    insert_query: str
    schema: pa.Schema

    def get_create_query(self) -> str:
        """Get the cached create statement."""
        return self.create_query

    def get_insert_query(self) -> str:
        """Get the cached insert statement."""
        return self.insert_query

    def get_arrow_body(self, frame: pl.DataFrame) -> bytes:
        """Encode a frame as the body of the insert statement."""
        return encode(self.schema, frame)


@dataclass(frozen=True, slots=True)
class ClickhouseInserter:
    """Table configuration accumulated through chained calls.

    Attributes:
        table_name: Unqualified table name.
        db_name: Database qualifier, if any.
        engine: Storage engine rendered as ``Engine = <engine>``.
        order_by: ORDER BY keys, in order.
        primary_key: PRIMARY KEY keys, in order.
        not_null: Columns rendered NOT NULL and non-nullable on the wire.
        override_fields: Literal column definitions keyed by column name.
        override_creation: Replacement for ``CREATE TABLE IF NOT EXISTS``.
        fields: Columns in definition order with their logical type, or None
            for columns that only exist through an override.
        columns: Frame column names, in frame order, from the latest
            with_schema_from_columns call; the wire schema follows this order.

    """

    table_name: str
    db_name: str | None = None
    engine: str | None = None
    order_by: tuple[str, ...] = ()
    primary_key: tuple[str, ...] = ()
    not_null: frozenset[str] = frozenset()
    override_fields: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    override_creation: str | None = None
    fields: Mapping[str, DataType | None] = field(default_factory=lambda: MappingProxyType({}))
    columns: tuple[str, ...] = ()

    @classmethod
    def default(cls, table: str) -> Self:
        """Start an empty configuration for a table."""
        return cls(table_name=table)

    def with_order_by(self, subkeys: Iterable[str]) -> Self:
        """Append ORDER BY keys; ordering keys are never nullable."""
        subkeys = tuple(subkeys)
        return replace(self, order_by=self.order_by + subkeys, not_null=self.not_null | set(subkeys))

    def replace_order_by(self, subkeys: Iterable[str]) -> Self:
        """Append ORDER BY keys, same as with_order_by."""
        return self.with_order_by(subkeys)

    def with_primary_key(self, subkeys: Iterable[str]) -> Self:
        """Append PRIMARY KEY keys; key columns are never nullable."""
        subkeys = tuple(subkeys)
        return replace(
            self,
            primary_key=self.primary_key + subkeys,
            not_null=self.not_null | set(subkeys),
        )

    def replace_primary_key(self, subkeys: Iterable[str]) -> Self:
        """Append PRIMARY KEY keys, same as with_primary_key."""
        return self.with_primary_key(subkeys)

    def with_not_null(self, subkeys: Iterable[str]) -> Self:
        """Add columns to the not-null set."""
        return replace(self, not_null=self.not_null | set(subkeys))

    def replace_not_null(self, subkeys: Iterable[str]) -> Self:
        """Replace the not-null set."""
        return replace(self, not_null=frozenset(subkeys))

    def with_field(self, column: str, constraint: str) -> Self:
        """Override a column definition with literal SQL, e.g. ``String DEFAULT ''``."""
        fields = dict(self.fields)
        fields.setdefault(column, None)
        overrides = {**self.override_fields, column: constraint}
        return replace(
            self,
            fields=MappingProxyType(fields),
            override_fields=MappingProxyType(overrides),
        )

    def with_dbname(self, db_name: str) -> Self:
        """Qualify the table with a database."""
        return replace(self, db_name=db_name)

    def with_engine(self, engine_name: str) -> Self:
        """Set the storage engine."""
        return replace(self, engine=engine_name)

    def with_create_method(self, override_creation: str) -> Self:
        """Replace the create verb, e.g. ``CREATE OR REPLACE TABLE``."""
        return replace(self, override_creation=override_creation)

    def with_table_name(self, table_name: str) -> Self:
        """Rename the table."""
        return replace(self, table_name=table_name)

    def with_schema_from_columns(self, columns: Iterable[pl.Series]) -> Self:
        """Record the logical type of every frame column.

        Column definitions accumulate across calls, but the wire schema only
        covers the columns of the latest frame, in that frame's order.

        Raises:
            ColumnConversionError: a column type has no wire equivalent.

        """
        fields = dict(self.fields)
        names: list[str] = []
        for column in columns:
            try:
                data_type = polars_to_data_type(column.dtype)
                wire_type_of(data_type)
            except UnsupportedTypeError as err:
                msg = f"Cannot convert column type {column.dtype}: {err}"
                raise ColumnConversionError(msg, column.name) from err
            fields[column.name] = data_type
            names.append(column.name)
        return replace(self, fields=MappingProxyType(fields), columns=tuple(names))

    @property
    def qualified_name(self) -> str:
        """Table name, prefixed with the database when one is set."""
        if self.db_name:
            return f"{self.db_name}.{self.table_name}"
        return self.table_name

    @property
    def table_config(self) -> str:
        """Engine, ORDER BY and PRIMARY KEY clauses."""
        parts = [
            f"Engine = {self.engine}" if self.engine else "",
            key_clause("ORDER BY", self.order_by),
            key_clause("PRIMARY KEY", self.primary_key),
        ]
        return " ".join(part for part in parts if part)

    def _column_definition(self, name: str, data_type: DataType | None) -> str:
        if (constraint := self.override_fields.get(name)) is not None:
            return f"{name} {constraint}"
        if data_type is None:
            msg = "Column has neither a type nor an override"
            raise ColumnConversionError(msg, name)
        try:
            sql_type = sql_type_of(data_type)
        except UnsupportedTypeError as err:
            msg = f"Cannot convert column type: {err}"
            raise ColumnConversionError(msg, name) from err
        nullable = name not in self.not_null and not is_nested(data_type)
        return field_definition(name, nullable=nullable, sql_type=sql_type)

    def _wire_schema(self) -> pa.Schema:
        wire_fields: list[pa.Field] = []
        for name in self.columns:
            data_type = self.fields[name]
            if data_type is None:
                msg = "Column has neither a type nor an override"
                raise ColumnConversionError(msg, name)
            try:
                wire_type = wire_type_of(data_type)
            except UnsupportedTypeError as err:
                msg = f"Cannot convert column type: {err}"
                raise ColumnConversionError(msg, name) from err
            wire_fields.append(pa.field(name, wire_type, nullable=name not in self.not_null))
        return pa.schema(wire_fields)

    def build(self) -> BuiltInserter:
        """Compute the create statement, the insert statement and the wire schema.

        Raises:
            ColumnConversionError: a column type has no ClickHouse equivalent.

        """
        table_name = self.qualified_name
        columns = [self._column_definition(name, dtype) for name, dtype in self.fields.items()]
        built = BuiltInserter(
            create_query=table_statement(
                table_name,
                columns,
                self.table_config,
                self.override_creation,
            ),
            insert_query=insert_statement(table_name),
            schema=self._wire_schema(),
        )
        logger.info("Built statements for %s with %d columns", table_name, len(columns))
        return built

    def get_create_query(self) -> str:
        """Fail, statements only exist on the BuiltInserter returned by build()."""
        raise NotBuiltError("clickhouse create_query")

    def get_insert_query(self) -> str:
        """Fail, statements only exist on the BuiltInserter returned by build()."""
        raise NotBuiltError("clickhouse insert_query")
