"""Command line interface for Frame Inserter."""

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from logging import DEBUG, INFO, basicConfig, getLogger
from pathlib import Path
from time import perf_counter

from cyclopts import App
from polars import DataFrame
from polars.exceptions import PolarsError
from requests import RequestException
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from frame_inserter.clickhouse import BuiltInserter
from frame_inserter.config import TableSettings, inserter_from_settings, load_settings
from frame_inserter.errors import InserterError
from frame_inserter.sources import SOURCE_EXTENSIONS, read_frame, split_keys
from frame_inserter.transport import send_statements

app = App(help="Create ClickHouse tables from data files and insert them as ArrowStream")

err_console = Console(stderr=True)
logger = getLogger(__name__)

# Engine used by the insert command when none is configured
DEFAULT_ENGINE = "MergeTree"

# Errors reported to the user instead of a traceback
FAILURES = (InserterError, PolarsError, RequestException, OSError, ValueError)


def print_error(message: str) -> None:
    """Print error message to stderr."""
    err_console.print(f"[bold red]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print success message to stderr."""
    err_console.print(f"[bold green]✓[/] {message}")


def print_info(message: str) -> None:
    """Print info message to stderr."""
    err_console.print(f"[bold blue]i[/] {message}")


def configure_logging(*, verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    basicConfig(
        level=DEBUG if verbose else INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@contextmanager
def timed(label: str) -> Iterator[None]:
    """Log how long a stage took."""
    start = perf_counter()
    try:
        yield
    finally:
        logger.info("%s: %.3fs", label, perf_counter() - start)


def validate_source(source: Path) -> None:
    """Validate the data file exists and has a readable extension."""
    if not source.exists():
        print_error(f"Source file does not exist: {source}")
        sys.exit(1)
    if source.suffix.lower() not in SOURCE_EXTENSIONS:
        print_error(
            f"Source file has invalid extension: {', '.join(sorted(SOURCE_EXTENSIONS))}",
        )
        sys.exit(1)


def build_inserter(  # noqa: PLR0913
    source: Path,
    frame: DataFrame,
    *,
    table: str | None,
    database: str | None,
    engine: str | None,
    order_by: str | None,
    primary_key: str | None,
    not_null: str | None,
    create_method: str | None,
    settings: Path | None,
) -> BuiltInserter:
    """Combine the settings file and command line options into built statements."""
    table_settings: TableSettings = load_settings(settings) if settings else {}
    inserter = inserter_from_settings(table_settings, source.stem)
    if table:
        inserter = inserter.with_table_name(table)
    if database:
        inserter = inserter.with_dbname(database)
    if engine:
        inserter = inserter.with_engine(engine)
    if create_method:
        inserter = inserter.with_create_method(create_method)
    inserter = (
        inserter.with_order_by(split_keys(order_by))
        .with_primary_key(split_keys(primary_key))
        .with_not_null(split_keys(not_null))
    )
    print_info(f"ORDER BY: {list(inserter.order_by)}")
    print_info(f"PRIMARY KEY: {list(inserter.primary_key)}")
    print_info(f"NOT NULL: {sorted(inserter.not_null)}")
    return inserter.with_schema_from_columns(frame.get_columns()).build()


@app.command
def ddl(  # noqa: PLR0913
    source: Path,
    *,
    table: str | None = None,
    database: str | None = None,
    engine: str | None = None,
    order_by: str | None = None,
    primary_key: str | None = None,
    not_null: str | None = None,
    create_method: str | None = None,
    settings: Path | None = None,
    verbose: bool = False,
) -> None:
    """Print the create and insert statements for a data file."""
    configure_logging(verbose=verbose)
    validate_source(source)
    print_info(f"Source: {source}")

    try:
        with timed("read"):
            frame = read_frame(source)
        inserter = build_inserter(
            source,
            frame,
            table=table,
            database=database,
            engine=engine,
            order_by=order_by,
            primary_key=primary_key,
            not_null=not_null,
            create_method=create_method,
            settings=settings,
        )
    except FAILURES as e:
        print_error(str(e))
        sys.exit(1)

    sys.stdout.write(f"{inserter.get_create_query()}\n{inserter.get_insert_query()}\n")


@app.command
def encode(  # noqa: PLR0913
    source: Path,
    output: Path,
    *,
    table: str | None = None,
    database: str | None = None,
    engine: str | None = None,
    order_by: str | None = None,
    primary_key: str | None = None,
    not_null: str | None = None,
    create_method: str | None = None,
    settings: Path | None = None,
    verbose: bool = False,
) -> None:
    """Write the ArrowStream body of a data file to OUTPUT, or stdout for '-'."""
    configure_logging(verbose=verbose)
    validate_source(source)
    print_info(f"Source: {source}")

    try:
        with timed("read"):
            frame = read_frame(source)
        inserter = build_inserter(
            source,
            frame,
            table=table,
            database=database,
            engine=engine,
            order_by=order_by,
            primary_key=primary_key,
            not_null=not_null,
            create_method=create_method,
            settings=settings,
        )
        with timed("creating arrow transport"):
            body = inserter.get_arrow_body(frame)
        if str(output) == "-":
            sys.stdout.buffer.write(body)
        else:
            output.write_bytes(body)
    except FAILURES as e:
        print_error(str(e))
        sys.exit(1)

    print_success(f"Encoded {frame.height} rows into {len(body)} bytes")


@app.command
def insert(  # noqa: PLR0913
    source: Path,
    host: str,
    *,
    table: str | None = None,
    database: str | None = None,
    engine: str | None = None,
    order_by: str | None = None,
    primary_key: str | None = None,
    not_null: str | None = None,
    create_method: str | None = None,
    settings: Path | None = None,
    timeout: float = 30,
    verbose: bool = False,
) -> None:
    """Create the table on HOST and insert the data file into it."""
    configure_logging(verbose=verbose)
    validate_source(source)
    print_info(f"Source: {source}")
    print_info(f"Host: {host}")

    try:
        with timed("read"):
            frame = read_frame(source)
        table_settings: TableSettings = load_settings(settings) if settings else {}
        inserter = build_inserter(
            source,
            frame,
            table=table,
            database=database,
            engine=engine or (None if "engine" in table_settings else DEFAULT_ENGINE),
            order_by=order_by,
            primary_key=primary_key,
            not_null=not_null,
            create_method=create_method,
            settings=settings,
        )
        print_info(f"CREATE: {inserter.get_create_query()}")
        with (
            Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=err_console,
            ) as progress,
            timed("insert"),
        ):
            progress.add_task(f"Inserting {frame.height} rows...", total=None)
            results = send_statements(host, inserter, frame, timeout=timeout)
    except FAILURES as e:
        print_error(str(e))
        sys.exit(1)

    for result in results:
        if result.ok:
            print_success(f"{result.label}: status {result.status_code}")
        else:
            print_error(f"{result.label}: status {result.status_code} {result.text.strip()}")
    if not all(result.ok for result in results):
        sys.exit(1)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
