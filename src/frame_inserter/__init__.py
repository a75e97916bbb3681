"""Build ClickHouse statements for polars frames and encode them as ArrowStream."""

from frame_inserter.clickhouse import BuiltInserter, ClickhouseInserter
from frame_inserter.encoding import ArrowStreamEncoder, encode, normalize_array
from frame_inserter.errors import (
    BatchWriteError,
    ColumnConversionError,
    EncodingError,
    InserterError,
    InterchangeImportError,
    NotBuiltError,
    StreamInitError,
    UnsupportedTypeError,
)
from frame_inserter.type_conversion import polars_to_data_type, sql_type_of, wire_type_of

__all__ = [
    "ArrowStreamEncoder",
    "BatchWriteError",
    "BuiltInserter",
    "ClickhouseInserter",
    "ColumnConversionError",
    "EncodingError",
    "InserterError",
    "InterchangeImportError",
    "NotBuiltError",
    "StreamInitError",
    "UnsupportedTypeError",
    "encode",
    "normalize_array",
    "polars_to_data_type",
    "sql_type_of",
    "wire_type_of",
]
