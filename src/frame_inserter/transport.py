"""Module for sending statements to the ClickHouse HTTP interface."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, NamedTuple

from requests import post

if TYPE_CHECKING:
    import polars as pl

    from frame_inserter.clickhouse import BuiltInserter

logger = getLogger(__name__)


class StatementResult(NamedTuple):
    """Outcome of one statement request."""

    label: str
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        """Whether ClickHouse accepted the statement."""
        return 200 <= self.status_code < 300  # noqa: PLR2004


def send_statement(
    host: str,
    label: str,
    query: str,
    body: bytes = b"",
    *,
    timeout: float = 30,
) -> StatementResult:
    """POST one statement, passing it as the ``query`` parameter."""
    response = post(
        host,
        params={"query": query},
        data=body,
        headers={"Content-Length": str(len(body))},
        timeout=timeout,
    )
    result = StatementResult(label, response.status_code, response.text)
    if result.ok:
        logger.info("Response status [%d] for %s", result.status_code, label)
    else:
        logger.warning(
            "Response status [%d] for %s: %s",
            result.status_code,
            label,
            result.text.strip(),
        )
    return result


def send_statements(
    host: str,
    inserter: BuiltInserter,
    frame: pl.DataFrame,
    *,
    timeout: float = 30,
) -> list[StatementResult]:
    """Create the table, then insert the frame, as two independent requests.

    A rejected create statement does not stop the insert; both results are
    returned for the caller to inspect.
    """
    body = inserter.get_arrow_body(frame)
    return [
        send_statement(host, "create", inserter.get_create_query(), timeout=timeout),
        send_statement(host, "insert", inserter.get_insert_query(), body, timeout=timeout),
    ]
