"""Encode polars frames as an Arrow IPC stream for ClickHouse's ArrowStream format."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from logging import getLogger
from typing import TYPE_CHECKING, Literal

import pyarrow as pa

from frame_inserter.errors import BatchWriteError, StreamInitError
from frame_inserter.interchange import chunk_to_arrow

if TYPE_CHECKING:
    import polars as pl

logger = getLogger(__name__)

type EncoderState = Literal["uninitialized", "writing", "finalized"]


def no_flatten_required(data_type: pa.DataType) -> bool:
    """Check whether values of this type are written as they are imported."""
    return (
        pa.types.is_primitive(data_type)
        or pa.types.is_decimal(data_type)
        or pa.types.is_null(data_type)
    )


def _is_view(data_type: pa.DataType) -> bool:
    return pa.types.is_string_view(data_type) or pa.types.is_binary_view(data_type)


def _is_variable_binary(data_type: pa.DataType) -> bool:
    return (
        pa.types.is_string(data_type)
        or pa.types.is_large_string(data_type)
        or pa.types.is_large_binary(data_type)
    )


def normalize_field(field: pa.Field) -> pa.Field:
    """Rewrite a field so every text or view leaf becomes plain binary."""
    data_type = field.type
    if pa.types.is_large_list(data_type):
        new_type = pa.large_list(normalize_field(data_type.value_field))
    elif pa.types.is_fixed_size_list(data_type):
        new_type = pa.list_(normalize_field(data_type.value_field), data_type.list_size)
    elif pa.types.is_list(data_type):
        new_type = pa.list_(normalize_field(data_type.value_field))
    elif pa.types.is_struct(data_type):
        new_type = pa.struct([normalize_field(child) for child in data_type])
    elif _is_view(data_type) or _is_variable_binary(data_type):
        new_type = pa.binary()
    else:
        return field
    if new_type == data_type:
        return field
    return field.with_type(new_type)


def _rebuild_list(array: pa.Array, new_type: pa.DataType, buffer_count: int) -> pa.Array:
    """Normalize a list's child and rebuild it on the original validity and offsets."""
    child = array.values
    new_child = normalize_array(child)
    if new_child is child:
        return array
    return pa.Array.from_buffers(
        new_type,
        len(array),
        array.buffers()[:buffer_count],
        null_count=array.null_count,
        offset=array.offset,
        children=[new_child],
    )


def _rebuild_struct(array: pa.StructArray) -> pa.Array:
    """Normalize each child of a struct and rebuild it on the original validity."""
    if array.offset:
        # Children of a sliced struct are returned sliced, compact to realign the bitmap
        array = pa.concat_arrays([array])
    children = [array.field(index) for index in range(array.type.num_fields)]
    new_children = [normalize_array(child) for child in children]
    if all(new is old for new, old in zip(new_children, children, strict=True)):
        return array
    new_type = pa.struct(
        [
            field.with_type(child.type)
            for field, child in zip(array.type, new_children, strict=True)
        ],
    )
    return pa.Array.from_buffers(
        new_type,
        len(array),
        array.buffers()[:1],
        null_count=array.null_count,
        children=new_children,
    )


def normalize_array(array: pa.Array) -> pa.Array:
    """Rewrite an array so no leaf uses an encoding the wire schema lacks.

    View-encoded and large text and binary are cast to plain binary. Nested
    arrays are rebuilt only when a descendant changed; otherwise the same array
    object is returned, so normalizing an already normalized array is free.
    """
    data_type = array.type
    if _is_view(data_type) or _is_variable_binary(data_type):
        return array.cast(pa.binary())
    if pa.types.is_large_list(data_type) or pa.types.is_list(data_type):
        if no_flatten_required(data_type.value_type):
            return array
        new_type = normalize_field(pa.field("", data_type)).type
        return _rebuild_list(array, new_type, 2)
    if pa.types.is_fixed_size_list(data_type):
        if no_flatten_required(data_type.value_type):
            return array
        new_type = normalize_field(pa.field("", data_type)).type
        return _rebuild_list(array, new_type, 1)
    if pa.types.is_struct(data_type):
        if all(no_flatten_required(field.type) for field in data_type):
            return array
        return _rebuild_struct(array)
    return array


def iter_chunks(frame: pl.DataFrame) -> Iterator[tuple[pl.Series, ...]]:
    """Yield one chunk per column, advancing all columns in lockstep.

    Columns whose chunk boundaries differ are rechunked into a single chunk first.
    """
    columns = frame.get_columns()
    chunked = [column.get_chunks() for column in columns]
    boundaries = {tuple(len(chunk) for chunk in chunks) for chunks in chunked}
    if len(boundaries) > 1:
        logger.debug("Columns are chunked differently, rechunking %d columns", len(columns))
        chunked = [column.rechunk().get_chunks() for column in columns]
    yield from zip(*chunked, strict=True)


class ArrowStreamEncoder:
    """Arrow IPC stream writer bound to a wire schema.

    States move from "uninitialized" to "writing" after the first chunk and to
    "finalized" once finish() returns the stream bytes.
    """

    def __init__(self, schema: pa.Schema) -> None:
        """Open the stream writer over an in-memory sink."""
        self.schema = schema
        self.state: EncoderState = "uninitialized"
        self.batches = 0
        self._sink = pa.BufferOutputStream()
        try:
            self._writer = pa.ipc.new_stream(self._sink, schema)
        except (pa.ArrowException, TypeError) as err:
            msg = f"Failed to open arrow stream writer: {err}"
            raise StreamInitError(msg) from err

    def _check_arrays(self, arrays: Sequence[pa.Array]) -> None:
        if len(arrays) != len(self.schema):
            msg = f"Batch has {len(arrays)} columns, schema has {len(self.schema)}"
            raise BatchWriteError(msg)
        for field, array in zip(self.schema, arrays, strict=True):
            if array.type != field.type:
                msg = f"Column {field.name} is {array.type}, schema expects {field.type}"
                raise BatchWriteError(msg)

    def write_arrays(self, arrays: Sequence[pa.Array]) -> None:
        """Write normalized arrays, one per schema column, as a record batch."""
        if self.state == "finalized":
            msg = "Arrow stream is already finalized"
            raise BatchWriteError(msg)
        self._check_arrays(arrays)
        try:
            batch = pa.RecordBatch.from_arrays(list(arrays), schema=self.schema)
            self._writer.write_batch(batch)
        except (pa.ArrowException, ValueError) as err:
            msg = f"Failed writing batch to stream: {err}"
            raise BatchWriteError(msg) from err
        self.state = "writing"
        self.batches += 1
        logger.debug("Wrote batch %d with %d rows", self.batches, batch.num_rows)

    def write_chunk(self, chunk: Sequence[pl.Series]) -> None:
        """Move one chunk per column into pyarrow, normalize it and write it.

        Raises:
            BatchWriteError: the chunk columns are not the schema columns in
                schema order.

        """
        if (names := [series.name for series in chunk]) != self.schema.names:
            msg = f"Chunk columns {names} do not match schema columns {self.schema.names}"
            raise BatchWriteError(msg)
        self.write_arrays([normalize_array(chunk_to_arrow(series)) for series in chunk])

    def finish(self) -> bytes:
        """Close the stream and return its bytes."""
        if self.state == "finalized":
            msg = "Arrow stream is already finalized"
            raise BatchWriteError(msg)
        self._writer.close()
        self.state = "finalized"
        return self._sink.getvalue().to_pybytes()


def encode(schema: pa.Schema, frame: pl.DataFrame) -> bytes:
    """Encode every chunk of a frame into a single Arrow IPC stream."""
    encoder = ArrowStreamEncoder(schema)
    for chunk in iter_chunks(frame):
        encoder.write_chunk(chunk)
    body = encoder.finish()
    logger.debug("Encoded %d batches into %d bytes", encoder.batches, len(body))
    return body
