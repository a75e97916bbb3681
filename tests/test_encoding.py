"""Tests for normalizing arrays and writing the ArrowStream body."""

import polars as pl
import pyarrow as pa
import pytest

from frame_inserter.encoding import (
    ArrowStreamEncoder,
    encode,
    iter_chunks,
    no_flatten_required,
    normalize_array,
    normalize_field,
)
from frame_inserter.errors import BatchWriteError, StreamInitError
from frame_inserter.interchange import chunk_to_arrow


def read_stream(body: bytes) -> pa.Table:
    """Read an ArrowStream body back into a table."""
    return pa.ipc.open_stream(body).read_all()


def count_batches(body: bytes) -> int:
    """Count the record batches in an ArrowStream body."""
    return sum(1 for _ in pa.ipc.open_stream(body))


def test_no_flatten_required() -> None:
    """Test fixed width types pass through untouched."""
    assert no_flatten_required(pa.int64())
    assert no_flatten_required(pa.decimal128(10, 2))
    assert no_flatten_required(pa.null())
    assert not no_flatten_required(pa.binary())
    assert not no_flatten_required(pa.large_list(pa.int8()))


def test_normalize_field_rewrites_leaves() -> None:
    """Test text leaves become binary while names and nullability are kept."""
    field = pa.field(
        "s",
        pa.struct([pa.field("a", pa.string_view(), nullable=False), pa.field("b", pa.int8())]),
    )
    assert normalize_field(field) == pa.field(
        "s",
        pa.struct([pa.field("a", pa.binary(), nullable=False), pa.field("b", pa.int8())]),
    )
    untouched = pa.field("n", pa.int32())
    assert normalize_field(untouched) is untouched


def test_view_becomes_binary() -> None:
    """Test string views are copied into a binary array."""
    array = normalize_array(chunk_to_arrow(pl.Series(["a", None, "ccc"])))
    assert array.type == pa.binary()
    assert array.to_pylist() == [b"a", None, b"ccc"]


def test_binary_view_becomes_binary() -> None:
    """Test binary views are copied into a binary array."""
    array = normalize_array(chunk_to_arrow(pl.Series([b"\x00\x01", None])))
    assert array.type == pa.binary()
    assert array.to_pylist() == [b"\x00\x01", None]


def test_plain_and_large_strings_are_cast() -> None:
    """Test non-view text encodings are cast to binary."""
    assert normalize_array(pa.array(["x", None])).type == pa.binary()
    large = normalize_array(pa.array(["y"], type=pa.large_string()))
    assert large.to_pylist() == [b"y"]


def test_primitive_array_is_returned_as_is() -> None:
    """Test arrays with nothing to rewrite are not copied."""
    array = pa.array([1, 2, None], type=pa.int32())
    assert normalize_array(array) is array
    numbers = pa.array([[1, 2], None], type=pa.large_list(pa.int32()))
    assert normalize_array(numbers) is numbers


def test_list_of_strings() -> None:
    """Test list children are normalized and list nulls kept."""
    array = normalize_array(chunk_to_arrow(pl.Series([["a"], None, ["b", None]])))
    assert array.type == pa.large_list(pa.field("item", pa.binary()))
    assert array.to_pylist() == [[b"a"], None, [b"b", None]]


def test_sliced_list_of_strings() -> None:
    """Test a sliced list keeps its offset into the rebuilt child."""
    array = chunk_to_arrow(pl.Series([["a"], None, ["b", "c"]])).slice(1)
    assert normalize_array(array).to_pylist() == [None, [b"b", b"c"]]


def test_fixed_size_list_of_strings() -> None:
    """Test fixed size lists keep their size."""
    series = pl.Series([["a", "b"], ["c", None]], dtype=pl.Array(pl.String, 2))
    array = normalize_array(chunk_to_arrow(series))
    assert array.type == pa.list_(pa.field("item", pa.binary()), 2)
    assert array.to_pylist() == [[b"a", b"b"], [b"c", None]]


def test_struct_with_strings() -> None:
    """Test struct children are normalized and struct nulls kept."""
    series = pl.Series([{"a": 1, "b": "x"}, None, {"a": 3, "b": None}])
    array = normalize_array(chunk_to_arrow(series))
    assert array.type.field("b").type == pa.binary()
    assert array.to_pylist() == [{"a": 1, "b": b"x"}, None, {"a": 3, "b": None}]


def test_sliced_struct_with_strings() -> None:
    """Test a sliced struct stays aligned with its validity."""
    series = pl.Series([{"a": 1, "b": "x"}, None, {"a": 3, "b": None}])
    array = normalize_array(chunk_to_arrow(series).slice(1))
    assert array.to_pylist() == [None, {"a": 3, "b": None}]


def test_normalize_is_idempotent() -> None:
    """Test normalizing a normalized array returns the same object."""
    series = pl.Series([{"tags": ["a"], "name": "x"}])
    normalized = normalize_array(chunk_to_arrow(series))
    assert normalize_array(normalized) is normalized


def test_iter_chunks_lockstep() -> None:
    """Test every column advances one chunk at a time."""
    frame = pl.concat(
        [pl.DataFrame({"a": [1, 2], "b": ["x", "y"]}), pl.DataFrame({"a": [3], "b": ["z"]})],
        rechunk=False,
    )
    chunks = list(iter_chunks(frame))
    assert [len(chunk[0]) for chunk in chunks] == [2, 1]
    assert all(len(a) == len(b) for a, b in chunks)


def test_encode_multiple_chunks() -> None:
    """Test one record batch is written per chunk."""
    frame = pl.concat(
        [pl.DataFrame({"a": [1, 2], "b": ["x", None]}), pl.DataFrame({"a": [3], "b": ["z"]})],
        rechunk=False,
    )
    schema = pa.schema([pa.field("a", pa.int64()), pa.field("b", pa.binary())])
    body = encode(schema, frame)
    assert count_batches(body) == 2
    table = read_stream(body)
    assert table.column("a").to_pylist() == [1, 2, 3]
    assert table.column("b").to_pylist() == [b"x", None, b"z"]


def test_encode_zero_rows() -> None:
    """Test an empty frame still produces a readable stream."""
    frame = pl.DataFrame({"a": pl.Series([], dtype=pl.Int32)})
    schema = pa.schema([pa.field("a", pa.int32())])
    table = read_stream(encode(schema, frame))
    assert table.schema == schema
    assert table.num_rows == 0


def test_encode_all_nulls() -> None:
    """Test a column without values keeps its declared type."""
    frame = pl.DataFrame({"a": pl.Series([None, None], dtype=pl.String)})
    schema = pa.schema([pa.field("a", pa.binary())])
    assert read_stream(encode(schema, frame)).column("a").to_pylist() == [None, None]


def test_encoder_states() -> None:
    """Test the encoder moves from uninitialized to writing to finalized."""
    schema = pa.schema([pa.field("a", pa.int64())])
    encoder = ArrowStreamEncoder(schema)
    assert encoder.state == "uninitialized"
    encoder.write_arrays([pa.array([1, 2], type=pa.int64())])
    assert encoder.state == "writing"
    body = encoder.finish()
    assert encoder.state == "finalized"
    assert read_stream(body).num_rows == 2


def test_finish_without_batches() -> None:
    """Test finishing an unused encoder yields a schema-only stream."""
    schema = pa.schema([pa.field("a", pa.int64())])
    table = read_stream(ArrowStreamEncoder(schema).finish())
    assert table.schema == schema
    assert table.num_rows == 0


def test_finalized_encoder_rejects_writes() -> None:
    """Test nothing can be written or finished after finish()."""
    encoder = ArrowStreamEncoder(pa.schema([pa.field("a", pa.int64())]))
    encoder.finish()
    with pytest.raises(BatchWriteError, match="already finalized"):
        encoder.write_arrays([pa.array([1], type=pa.int64())])
    with pytest.raises(BatchWriteError, match="already finalized"):
        encoder.finish()


def test_column_count_mismatch() -> None:
    """Test a batch with the wrong number of columns is rejected."""
    encoder = ArrowStreamEncoder(pa.schema([pa.field("a", pa.int64()), pa.field("b", pa.int64())]))
    with pytest.raises(BatchWriteError, match="1 columns, schema has 2"):
        encoder.write_arrays([pa.array([1], type=pa.int64())])
    assert encoder.state == "uninitialized"


def test_column_type_mismatch() -> None:
    """Test a batch whose column type differs from the schema is rejected."""
    encoder = ArrowStreamEncoder(pa.schema([pa.field("a", pa.int64())]))
    with pytest.raises(BatchWriteError, match="schema expects int64"):
        encoder.write_arrays([pa.array([1], type=pa.int32())])


def test_invalid_schema() -> None:
    """Test the writer cannot be opened without a schema."""
    with pytest.raises(StreamInitError):
        ArrowStreamEncoder("not a schema")  # pyright: ignore[reportArgumentType]


def test_chunk_column_names_must_match_schema() -> None:
    """Test a chunk whose columns are in a different order is rejected."""
    frame = pl.DataFrame({"x": [10], "a": [1]})
    schema = pa.schema([pa.field("a", pa.int64()), pa.field("x", pa.int64())])
    encoder = ArrowStreamEncoder(schema)
    with pytest.raises(BatchWriteError, match="do not match schema columns"):
        encoder.write_chunk(frame.get_columns())
    assert encoder.state == "uninitialized"


def test_empty_strings_are_kept() -> None:
    """Test empty strings stay distinct from nulls."""
    array = normalize_array(chunk_to_arrow(pl.Series(["", None, "long enough to be out of line"])))
    assert array.to_pylist() == [b"", None, b"long enough to be out of line"]
