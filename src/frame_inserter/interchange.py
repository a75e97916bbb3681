"""Arrow C Data Interface boundary between polars and pyarrow.

polars and pyarrow implement the same columnar model with different in-memory
representations. Chunks cross from one to the other as a pair of C structs
(``ArrowSchema`` and ``ArrowArray``) allocated through ``pyarrow.cffi``:

    polars Series chunk --export_chunk--> ArrowDescriptor --import_chunk--> pa.Array

Both structs follow the move semantics of the C Data Interface: importing takes
ownership and marks the struct released, and an ``ArrowDescriptor`` releases
whatever was not consumed when its ``with`` block exits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any, Final, NamedTuple, Self

import pyarrow as pa
from pyarrow.cffi import ffi

from frame_inserter.errors import InterchangeImportError

if TYPE_CHECKING:
    from types import TracebackType

    import polars as pl

logger = getLogger(__name__)

# ArrowSchema.flags bit for a nullable field
ARROW_FLAG_NULLABLE: Final = 2


class FieldDescription(NamedTuple):
    """Neutral description of an ArrowSchema struct."""

    name: str
    format: str
    nullable: bool
    children: tuple[FieldDescription, ...]

    def type_tags(self) -> tuple[Any, ...]:
        """Recursive format strings, ignoring names and nullability."""
        return (self.format, tuple(child.type_tags() for child in self.children))


class ArrayDescription(NamedTuple):
    """Neutral description of an ArrowArray struct."""

    length: int
    null_count: int
    offset: int
    n_buffers: int
    children: tuple[ArrayDescription, ...]


def _address(pointer: Any) -> int:  # noqa: ANN401
    return int(ffi.cast("uintptr_t", pointer))


def _text(pointer: Any) -> str:  # noqa: ANN401
    if pointer == ffi.NULL:
        return ""
    return ffi.string(pointer).decode()


def describe_field(c_schema: Any) -> FieldDescription:  # noqa: ANN401
    """Read an ArrowSchema struct into a FieldDescription."""
    return FieldDescription(
        name=_text(c_schema.name),
        format=_text(c_schema.format),
        nullable=bool(c_schema.flags & ARROW_FLAG_NULLABLE),
        children=tuple(
            describe_field(c_schema.children[index]) for index in range(c_schema.n_children)
        ),
    )


def describe_array(c_array: Any) -> ArrayDescription:  # noqa: ANN401
    """Read an ArrowArray struct into an ArrayDescription."""
    return ArrayDescription(
        length=c_array.length,
        null_count=c_array.null_count,
        offset=c_array.offset,
        n_buffers=c_array.n_buffers,
        children=tuple(
            describe_array(c_array.children[index]) for index in range(c_array.n_children)
        ),
    )


@dataclass(slots=True)
class ArrowDescriptor:
    """Owned ArrowSchema/ArrowArray pair describing one exported chunk."""

    c_schema: Any = field(default_factory=lambda: ffi.new("struct ArrowSchema*"))
    c_array: Any = field(default_factory=lambda: ffi.new("struct ArrowArray*"))

    @property
    def schema_address(self) -> int:
        """Address of the ArrowSchema struct."""
        return _address(self.c_schema)

    @property
    def array_address(self) -> int:
        """Address of the ArrowArray struct."""
        return _address(self.c_array)

    @property
    def schema_released(self) -> bool:
        """Whether the ArrowSchema was moved out or released."""
        return self.c_schema.release == ffi.NULL

    @property
    def array_released(self) -> bool:
        """Whether the ArrowArray was moved out or released."""
        return self.c_array.release == ffi.NULL

    def field_description(self) -> FieldDescription:
        """Describe the exported field."""
        return describe_field(self.c_schema)

    def array_description(self) -> ArrayDescription:
        """Describe the exported array."""
        return describe_array(self.c_array)

    def release(self) -> None:
        """Release any struct that has not been imported."""
        if not self.array_released:
            self.c_array.release(self.c_array)
        if not self.schema_released:
            self.c_schema.release(self.c_schema)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()


def export_chunk(series: pl.Series) -> ArrowDescriptor:
    """Export a single-chunk polars Series into C Data Interface structs."""
    descriptor = ArrowDescriptor()
    series._export_arrow_to_c(  # pyright: ignore[reportPrivateUsage]  # noqa: SLF001
        descriptor.array_address,
        descriptor.schema_address,
    )
    return descriptor


def export_field(pa_field: pa.Field) -> FieldDescription:
    """Describe a pyarrow field as it would cross the C Data Interface."""
    c_schema = ffi.new("struct ArrowSchema*")
    pa_field._export_to_c(_address(c_schema))  # pyright: ignore[reportPrivateUsage]  # noqa: SLF001
    try:
        return describe_field(c_schema)
    finally:
        c_schema.release(c_schema)


def import_chunk(descriptor: ArrowDescriptor) -> pa.Array:
    """Import an exported chunk as a pyarrow array.

    The imported field is exported back and its type tags compared with the
    original ones, and the array buffers are validated, before the array is
    returned.

    Raises:
        InterchangeImportError: the structs were already consumed, the import
            failed, the type tags did not round-trip or the buffers are invalid.

    """
    if descriptor.schema_released or descriptor.array_released:
        msg = "Chunk descriptor was already released"
        raise InterchangeImportError(msg)

    exported = descriptor.field_description()
    try:
        imported_field = pa.Field._import_from_c(descriptor.schema_address)  # pyright: ignore[reportPrivateUsage]  # noqa: SLF001
        array = pa.Array._import_from_c(descriptor.array_address, imported_field.type)  # pyright: ignore[reportPrivateUsage]  # noqa: SLF001
    except (pa.ArrowException, ValueError, TypeError) as err:
        msg = "Bad conversion from polars to arrow"
        raise InterchangeImportError(msg, exported, err) from err

    round_trip = export_field(imported_field)
    if round_trip.type_tags() != exported.type_tags():
        msg = f"Type tags did not round-trip: {round_trip.type_tags()}"
        raise InterchangeImportError(msg, exported)

    try:
        array.validate()
    except pa.ArrowInvalid as err:
        msg = "Imported buffers do not match the declared layout"
        raise InterchangeImportError(msg, exported, err) from err

    logger.debug("Imported %s as %s (%d rows)", exported.name, array.type, len(array))
    return array


def chunk_to_arrow(series: pl.Series) -> pa.Array:
    """Move one polars chunk into pyarrow through the C Data Interface."""
    with export_chunk(series) as descriptor:
        return import_chunk(descriptor)
