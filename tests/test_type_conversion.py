"""Tests for mapping polars dtypes to logical, SQL and wire types."""

import polars as pl
import pyarrow as pa
import pytest

from frame_inserter.errors import UnsupportedTypeError
from frame_inserter.type_conversion import polars_to_data_type, sql_type_of, wire_type_of
from frame_inserter.types import DataType, is_nested


def test_integer_dtypes() -> None:
    """Test signed and unsigned integers keep their width."""
    assert polars_to_data_type(pl.Int32) == {"type": "integer", "bits": 32, "signed": True}
    assert polars_to_data_type(pl.UInt8()) == {"type": "integer", "bits": 8, "signed": False}


def test_string_is_view_encoded() -> None:
    """Test strings are described as view encoded text."""
    assert polars_to_data_type(pl.String) == {"type": "text", "encoding": "view"}
    assert polars_to_data_type(pl.Binary) == {"type": "binary", "encoding": "view"}


def test_list_uses_large_offsets() -> None:
    """Test lists become large lists with a nullable item element."""
    result = polars_to_data_type(pl.List(pl.Int32))
    assert result == {
        "type": "large_list",
        "element": {
            "name": "item",
            "data_type": {"type": "integer", "bits": 32, "signed": True},
            "nullable": True,
        },
    }


def test_decimal_without_precision() -> None:
    """Test a decimal without precision gets the widest decimal128 precision."""
    assert polars_to_data_type(pl.Decimal(None, 2)) == {
        "type": "decimal",
        "precision": 38,
        "scale": 2,
    }
    assert polars_to_data_type(pl.Decimal(10, 2)) == {
        "type": "decimal",
        "precision": 10,
        "scale": 2,
    }


def test_datetime_keeps_unit_and_zone() -> None:
    """Test datetimes carry their time unit and time zone."""
    assert polars_to_data_type(pl.Datetime("ms", "UTC")) == {
        "type": "timestamp",
        "unit": "ms",
        "timezone": "UTC",
    }


def test_unknown_dtype_raises() -> None:
    """Test a dtype without a logical type is rejected."""
    with pytest.raises(UnsupportedTypeError):
        polars_to_data_type(pl.Object())


@pytest.mark.parametrize(
    ("dtype", "expected"),
    [
        (pl.Boolean, "Bool"),
        (pl.Int64, "Int64"),
        (pl.UInt16, "UInt16"),
        (pl.Float32, "Float32"),
        (pl.String, "String"),
        (pl.Binary, "String"),
        (pl.Date, "Date32"),
        (pl.Time, "Timestamp"),
        (pl.Null, "Null"),
        (pl.Decimal(12, 4), "Decimal(12, 4)"),
        (pl.Datetime("us"), "DateTime64(6)"),
        (pl.Datetime("ns", "Europe/Paris"), "DateTime64(9, 'Europe/Paris')"),
        (pl.List(pl.String), "Array(Nullable(String))"),
        (pl.Array(pl.Int8, 3), "Array(Nullable(Int8))"),
        (pl.List(pl.List(pl.Int32)), "Array(Array(Nullable(Int32)))"),
    ],
)
def test_sql_types(dtype: pl.DataType, expected: str) -> None:
    """Test ClickHouse column types rendered from polars dtypes."""
    assert sql_type_of(polars_to_data_type(dtype)) == expected


def test_struct_sql_type() -> None:
    """Test structs render as named tuples."""
    data_type: DataType = {
        "type": "struct",
        "fields": [
            {
                "name": "a",
                "data_type": {"type": "integer", "bits": 32, "signed": True},
                "nullable": False,
            },
            {"name": "b", "data_type": {"type": "text", "encoding": "view"}, "nullable": True},
        ],
    }
    assert sql_type_of(data_type) == "Tuple(a Int32,b Nullable(String))"


def test_fixed_binary_sql_type() -> None:
    """Test fixed size binary renders as FixedString."""
    assert sql_type_of({"type": "fixed_binary", "size": 16}) == "FixedString(16)"


@pytest.mark.parametrize(
    "data_type",
    [
        {"type": "duration", "unit": "us"},
        {
            "type": "dictionary",
            "index": {"type": "integer", "bits": 32, "signed": False},
            "value": {"type": "text", "encoding": "view"},
        },
    ],
)
def test_unsupported_types(data_type: DataType) -> None:
    """Test durations and dictionaries have neither a SQL nor a wire type."""
    with pytest.raises(UnsupportedTypeError):
        sql_type_of(data_type)
    with pytest.raises(UnsupportedTypeError):
        wire_type_of(data_type)


def test_map_has_wire_type_only() -> None:
    """Test maps are sendable but have no column type."""
    data_type: DataType = {
        "type": "map",
        "key": {"name": "key", "data_type": {"type": "text", "encoding": "plain"}, "nullable": False},
        "value": {
            "name": "value",
            "data_type": {"type": "integer", "bits": 64, "signed": True},
            "nullable": True,
        },
        "keys_sorted": False,
    }
    assert pa.types.is_map(wire_type_of(data_type))
    with pytest.raises(UnsupportedTypeError):
        sql_type_of(data_type)


@pytest.mark.parametrize("encoding", ["plain", "large", "view"])
def test_text_is_sent_as_binary(encoding: str) -> None:
    """Test every text encoding maps to plain binary on the wire."""
    data_type = {"type": "text", "encoding": encoding}
    assert wire_type_of(data_type) == pa.binary()  # pyright: ignore[reportArgumentType]


def test_nested_wire_types() -> None:
    """Test list and array wire types keep the item field."""
    assert wire_type_of(polars_to_data_type(pl.List(pl.String))) == pa.large_list(
        pa.field("item", pa.binary()),
    )
    assert wire_type_of(polars_to_data_type(pl.Array(pl.Int16, 2))) == pa.list_(
        pa.field("item", pa.int16()),
        2,
    )


def test_wide_decimal_wire_type() -> None:
    """Test precisions above 38 need decimal256."""
    assert wire_type_of({"type": "decimal", "precision": 40, "scale": 0}) == pa.decimal256(40, 0)
    assert wire_type_of({"type": "decimal", "precision": 9, "scale": 3}) == pa.decimal128(9, 3)


def test_time_wire_units() -> None:
    """Test second and millisecond times use time32."""
    assert wire_type_of({"type": "time", "unit": "ms"}) == pa.time32("ms")
    assert wire_type_of({"type": "time", "unit": "ns"}) == pa.time64("ns")


def test_is_nested() -> None:
    """Test only lists, structs and maps count as nested."""
    assert is_nested(polars_to_data_type(pl.List(pl.Int8)))
    assert is_nested(polars_to_data_type(pl.Struct({"a": pl.Int8})))
    assert not is_nested(polars_to_data_type(pl.String))
