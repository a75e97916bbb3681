"""Exceptions raised while building statements and encoding frames.

Hierarchy:
    InserterError
    ├── UnsupportedTypeError    A logical type has no SQL or wire equivalent.
    ├── ColumnConversionError   A column's type could not be mapped.
    ├── NotBuiltError           A statement was requested before build().
    └── EncodingError
        ├── StreamInitError         The IPC stream writer could not be opened.
        ├── InterchangeImportError  A chunk failed to cross the C Data Interface.
        └── BatchWriteError         A batch did not match the schema or was rejected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from frame_inserter.interchange import FieldDescription


class InserterError(Exception):
    """Base class for all frame inserter errors."""


class UnsupportedTypeError(InserterError):
    """Raised when a type has no destination equivalent.

    Args:
        message: Human-readable description.
        data_type: The logical type (or polars dtype) that could not be mapped.

    """

    def __init__(self, message: str, data_type: Any = None) -> None:  # noqa: ANN401
        super().__init__(message)
        self.data_type = data_type


class ColumnConversionError(InserterError):
    """Raised when a frame column cannot be mapped to the destination schema."""

    def __init__(self, message: str, column: str) -> None:
        super().__init__(message)
        self.column = column

    def __str__(self) -> str:
        return f"{super().__str__()} | column={self.column}"


class NotBuiltError(InserterError):
    """Raised when a cached statement is read before build() ran."""

    def __init__(self, statement: str) -> None:
        super().__init__(f"{statement} not yet built, call build() first")
        self.statement = statement


class EncodingError(InserterError):
    """Base class for failures while producing the wire body."""


class StreamInitError(EncodingError):
    """Raised when the Arrow IPC stream writer rejects the wire schema."""


class InterchangeImportError(EncodingError):
    """Raised when an exported chunk cannot be imported on the pyarrow side.

    Args:
        message: Human-readable description.
        field: Neutral description of the exported field, if it could be read.
        cause: The underlying exception.

    """

    def __init__(
        self,
        message: str,
        field: FieldDescription | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        parts: list[str] = []
        if self.field is not None:
            parts.append(f"field={self.field.name!r} format={self.field.format!r}")
        if self.cause is not None:
            parts.append(f"cause={self.cause}")
        if parts:
            return f"{base} | {' '.join(parts)}"
        return base


class BatchWriteError(EncodingError):
    """Raised when a record batch cannot be assembled or written."""
