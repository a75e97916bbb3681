"""TypedDict schemas for logical column types."""

from __future__ import annotations

from typing import Literal, TypedDict

type TimeUnit = Literal["s", "ms", "us", "ns"]

# Physical layout of variable-length text and binary values
type Encoding = Literal["plain", "large", "view"]


class NullType(TypedDict):
    """Column holding only nulls."""

    type: Literal["null"]


class BooleanType(TypedDict):
    """Boolean column type."""

    type: Literal["boolean"]


class IntegerType(TypedDict):
    """Signed or unsigned integer column type."""

    type: Literal["integer"]
    bits: Literal[8, 16, 32, 64]
    signed: bool


class FloatType(TypedDict):
    """Floating point column type."""

    type: Literal["float"]
    bits: Literal[32, 64]


class DecimalType(TypedDict):
    """Fixed-point decimal column type."""

    type: Literal["decimal"]
    precision: int
    scale: int


class FixedBinaryType(TypedDict):
    """Fixed-width binary column type."""

    type: Literal["fixed_binary"]
    size: int


class TextType(TypedDict):
    """UTF-8 text column type."""

    type: Literal["text"]
    encoding: Encoding


class BinaryType(TypedDict):
    """Variable-length binary column type."""

    type: Literal["binary"]
    encoding: Encoding


class Date32Type(TypedDict):
    """Days since the epoch."""

    type: Literal["date32"]


class Date64Type(TypedDict):
    """Milliseconds since the epoch."""

    type: Literal["date64"]


class TimeType(TypedDict):
    """Time of day."""

    type: Literal["time"]
    unit: TimeUnit


class TimestampType(TypedDict):
    """Timestamp with an optional timezone."""

    type: Literal["timestamp"]
    unit: TimeUnit
    timezone: str | None


class DurationType(TypedDict):
    """Elapsed time."""

    type: Literal["duration"]
    unit: TimeUnit


class LogicalField(TypedDict):
    """Named child of a nested type."""

    name: str
    data_type: DataType
    nullable: bool


class ListType(TypedDict):
    """List with 32-bit offsets."""

    type: Literal["list"]
    element: LogicalField


class LargeListType(TypedDict):
    """List with 64-bit offsets."""

    type: Literal["large_list"]
    element: LogicalField


class FixedSizeListType(TypedDict):
    """List where every value holds exactly `size` elements."""

    type: Literal["fixed_size_list"]
    element: LogicalField
    size: int


class StructType(TypedDict):
    """Ordered named fields."""

    type: Literal["struct"]
    fields: list[LogicalField]


class MapType(TypedDict):
    """Key/value pairs."""

    type: Literal["map"]
    key: LogicalField
    value: LogicalField
    keys_sorted: bool


class DictionaryType(TypedDict):
    """Dictionary-encoded values, as polars exports categoricals."""

    type: Literal["dictionary"]
    index: IntegerType
    value: DataType


# Union type for all logical column types
type DataType = (
    NullType
    | BooleanType
    | IntegerType
    | FloatType
    | DecimalType
    | FixedBinaryType
    | TextType
    | BinaryType
    | Date32Type
    | Date64Type
    | TimeType
    | TimestampType
    | DurationType
    | ListType
    | LargeListType
    | FixedSizeListType
    | StructType
    | MapType
    | DictionaryType
)

NESTED_TYPES = frozenset({"list", "large_list", "fixed_size_list", "struct", "map"})


def is_nested(data_type: DataType) -> bool:
    """Check whether a type contains child types."""
    return data_type["type"] in NESTED_TYPES
