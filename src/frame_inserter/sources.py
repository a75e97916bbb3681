"""Read frames from CSV, JSON and Parquet files."""

from pathlib import Path

import polars as pl

CSV_EXTENSIONS = {".csv"}
JSON_EXTENSIONS = {".json"}
NDJSON_EXTENSIONS = {".ndjson", ".jsonl"}
PARQUET_EXTENSIONS = {".parquet"}
SOURCE_EXTENSIONS = CSV_EXTENSIONS | JSON_EXTENSIONS | NDJSON_EXTENSIONS | PARQUET_EXTENSIONS


def read_frame(source: Path) -> pl.DataFrame:
    """Read a file into a DataFrame, choosing the reader from its extension."""
    suffix = source.suffix.lower()
    if suffix in CSV_EXTENSIONS:
        return pl.read_csv(source, try_parse_dates=True)
    if suffix in JSON_EXTENSIONS:
        return pl.read_json(source)
    if suffix in NDJSON_EXTENSIONS:
        return pl.read_ndjson(source)
    if suffix in PARQUET_EXTENSIONS:
        return pl.read_parquet(source)
    msg = f"Unsupported source extension: {source.suffix}"
    raise ValueError(msg)


def split_keys(text: str | None) -> list[str]:
    """Split a comma separated list of column names, dropping blanks."""
    if not text:
        return []
    return [key.strip() for key in text.split(",") if key.strip()]
