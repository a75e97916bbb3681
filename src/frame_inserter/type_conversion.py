"""Module for mapping logical column types to ClickHouse SQL and wire types."""

from typing import Final

import polars as pl
import pyarrow as pa

from frame_inserter.errors import UnsupportedTypeError
from frame_inserter.types import (
    DataType,
    IntegerType,
    LogicalField,
    TimeUnit,
    is_nested,
)

# Name polars and arrow give to list elements
LIST_ITEM_NAME: Final = "item"

# polars exports decimals without a precision at the widest decimal128 precision
DEFAULT_DECIMAL_PRECISION: Final = 38

DATETIME64_PRECISION: Final[dict[TimeUnit, int]] = {"s": 0, "ms": 3, "us": 6, "ns": 9}

INTEGER_WIRE_TYPES: Final[dict[tuple[int, bool], pa.DataType]] = {
    (8, True): pa.int8(),
    (16, True): pa.int16(),
    (32, True): pa.int32(),
    (64, True): pa.int64(),
    (8, False): pa.uint8(),
    (16, False): pa.uint16(),
    (32, False): pa.uint32(),
    (64, False): pa.uint64(),
}

FLOAT_WIRE_TYPES: Final[dict[int, pa.DataType]] = {
    32: pa.float32(),
    64: pa.float64(),
}


def _item(data_type: DataType) -> LogicalField:
    return {"name": LIST_ITEM_NAME, "data_type": data_type, "nullable": True}


def _integer(bits: int, *, signed: bool) -> IntegerType:
    return {"type": "integer", "bits": bits, "signed": signed}  # pyright: ignore[reportReturnType]


def polars_to_data_type(dtype: pl.DataType) -> DataType:
    """Derive the logical type of a polars dtype.

    The result describes the array polars hands over through the Arrow C Data
    Interface at its newest compatibility level, so strings and binaries are
    view encoded and lists use 64-bit offsets.

    Examples:
        String -> TextType with encoding="view"
        List(Int32) -> LargeListType of a nullable IntegerType element
        Decimal(None, 2) -> DecimalType with precision=38, scale=2

    """
    if isinstance(dtype, type):
        dtype = dtype()

    match dtype:
        case pl.Null():
            return {"type": "null"}
        case pl.Boolean():
            return {"type": "boolean"}
        case pl.Int8():
            return _integer(8, signed=True)
        case pl.Int16():
            return _integer(16, signed=True)
        case pl.Int32():
            return _integer(32, signed=True)
        case pl.Int64():
            return _integer(64, signed=True)
        case pl.UInt8():
            return _integer(8, signed=False)
        case pl.UInt16():
            return _integer(16, signed=False)
        case pl.UInt32():
            return _integer(32, signed=False)
        case pl.UInt64():
            return _integer(64, signed=False)
        case pl.Float32():
            return {"type": "float", "bits": 32}
        case pl.Float64():
            return {"type": "float", "bits": 64}
        case pl.Decimal():
            return {
                "type": "decimal",
                "precision": dtype.precision or DEFAULT_DECIMAL_PRECISION,
                "scale": dtype.scale,
            }
        case pl.String():
            return {"type": "text", "encoding": "view"}
        case pl.Binary():
            return {"type": "binary", "encoding": "view"}
        case pl.Date():
            return {"type": "date32"}
        case pl.Time():
            return {"type": "time", "unit": "ns"}
        case pl.Datetime():
            return {
                "type": "timestamp",
                "unit": dtype.time_unit,  # pyright: ignore[reportReturnType]
                "timezone": dtype.time_zone,
            }
        case pl.Duration():
            return {"type": "duration", "unit": dtype.time_unit}  # pyright: ignore[reportReturnType]
        case pl.Categorical() | pl.Enum():
            return {
                "type": "dictionary",
                "index": _integer(32, signed=False),
                "value": {"type": "text", "encoding": "view"},
            }
        case pl.List():
            return {"type": "large_list", "element": _item(polars_to_data_type(dtype.inner))}
        case pl.Array():
            return {
                "type": "fixed_size_list",
                "element": _item(polars_to_data_type(dtype.inner)),
                "size": dtype.size,
            }
        case pl.Struct():
            return {
                "type": "struct",
                "fields": [
                    {
                        "name": field.name,
                        "data_type": polars_to_data_type(field.dtype),
                        "nullable": True,
                    }
                    for field in dtype.fields
                ],
            }
        case _:
            msg = f"No logical type for polars dtype: {dtype}"
            raise UnsupportedTypeError(msg, dtype)


def _nullable_sql(field: LogicalField) -> str:
    """Render a child type, wrapping non-nested nullable children in Nullable."""
    inner = sql_type_of(field["data_type"])
    if field["nullable"] and not is_nested(field["data_type"]):
        return f"Nullable({inner})"
    return inner


def sql_type_of(data_type: DataType) -> str:
    """Convert a logical type to the ClickHouse type used in a column definition.

    Examples:
        IntegerType(bits=32, signed=False) -> "UInt32"
        ListType of a nullable Int32 -> "Array(Nullable(Int32))"
        StructType (a Int32, b nullable text) -> "Tuple(a Int32,b Nullable(String))"

    """
    match data_type:
        case {"type": "null"}:
            return "Null"
        case {"type": "boolean"}:
            return "Bool"
        case {"type": "integer", "bits": bits, "signed": True}:
            return f"Int{bits}"
        case {"type": "integer", "bits": bits}:
            return f"UInt{bits}"
        case {"type": "float", "bits": bits}:
            return f"Float{bits}"
        case {"type": "decimal", "precision": precision, "scale": scale}:
            return f"Decimal({precision}, {scale})"
        case {"type": "fixed_binary", "size": size}:
            return f"FixedString({size})"
        case {"type": "text" | "binary"}:
            return "String"
        case {"type": "date32"}:
            return "Date32"
        case {"type": "date64"}:
            return "DateTime"
        case {"type": "time"}:
            return "Timestamp"
        case {"type": "timestamp", "unit": unit, "timezone": None}:
            return f"DateTime64({DATETIME64_PRECISION[unit]})"
        case {"type": "timestamp", "unit": unit, "timezone": timezone}:
            return f"DateTime64({DATETIME64_PRECISION[unit]}, '{timezone}')"
        case {"type": "list" | "large_list" | "fixed_size_list", "element": element}:
            return f"Array({_nullable_sql(element)})"
        case {"type": "struct", "fields": fields}:
            members = ",".join(f"{field['name']} {_nullable_sql(field)}" for field in fields)
            return f"Tuple({members})"
        case _:
            msg = f"Not a ClickHouse SQL data type: {data_type['type']}"
            raise UnsupportedTypeError(msg, data_type)


def field_to_wire(field: LogicalField) -> pa.Field:
    """Convert a logical field to a pyarrow field, keeping name and nullability."""
    return pa.field(field["name"], wire_type_of(field["data_type"]), nullable=field["nullable"])


def wire_type_of(data_type: DataType) -> pa.DataType:
    """Convert a logical type to the pyarrow type written to the ArrowStream body.

    Text is sent as plain binary in every encoding; ClickHouse reads the binary
    payload into the String column declared by the create statement.
    """
    match data_type:
        case {"type": "null"}:
            return pa.null()
        case {"type": "boolean"}:
            return pa.bool_()
        case {"type": "integer", "bits": bits, "signed": signed}:
            return INTEGER_WIRE_TYPES[(bits, signed)]
        case {"type": "float", "bits": bits}:
            return FLOAT_WIRE_TYPES[bits]
        case {"type": "decimal", "precision": precision, "scale": scale}:
            if precision <= DEFAULT_DECIMAL_PRECISION:
                return pa.decimal128(precision, scale)
            return pa.decimal256(precision, scale)
        case {"type": "fixed_binary", "size": size}:
            return pa.binary(size)
        case {"type": "text" | "binary"}:
            return pa.binary()
        case {"type": "date32"}:
            return pa.date32()
        case {"type": "date64"}:
            return pa.date64()
        case {"type": "time", "unit": "s" | "ms" as unit}:
            return pa.time32(unit)
        case {"type": "time", "unit": unit}:
            return pa.time64(unit)
        case {"type": "timestamp", "unit": unit, "timezone": timezone}:
            return pa.timestamp(unit, tz=timezone)
        case {"type": "list", "element": element}:
            return pa.list_(field_to_wire(element))
        case {"type": "large_list", "element": element}:
            return pa.large_list(field_to_wire(element))
        case {"type": "fixed_size_list", "element": element, "size": size}:
            return pa.list_(field_to_wire(element), size)
        case {"type": "struct", "fields": fields}:
            return pa.struct([field_to_wire(field) for field in fields])
        case {"type": "map", "key": key, "value": value, "keys_sorted": keys_sorted}:
            return pa.map_(field_to_wire(key), field_to_wire(value), keys_sorted=keys_sorted)
        case _:
            msg = f"No wire type for: {data_type['type']}"
            raise UnsupportedTypeError(msg, data_type)
