"""
Cursor Utilities - Execute bound statements and materialize rows

Thin helpers over the DB-API cursor protocol shared by the dialects and the
engine components. Rows are returned as plain dicts in column order.
"""

from typing import Any, Dict, List, Optional

from ..core.marshalling import normalize_row_value
from .sql_text import BoundStatement

import logging
logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def execute(connection: Any, statement: BoundStatement):
    """
    Execute a bound statement on a fresh cursor.

    Returns:
        The cursor, positioned on the first result (caller closes it)
    """
    cursor = connection.cursor()
    try:
        cursor.execute(*statement.execute_args())
    except Exception:
        cursor.close()
        raise
    return cursor


def column_names(cursor) -> List[str]:
    """Column labels of the current result set ([] when it has none)."""
    if not cursor.description:
        return []
    return [str(column[0]) for column in cursor.description]


def fetch_rows(cursor, max_rows: Optional[int] = None) -> List[Row]:
    """
    Materialize the current result set.

    Args:
        cursor: Cursor positioned on a result set (or on a statement
            without one, which yields [])
        max_rows: Stop after this many rows (all rows when None)
    """
    names = column_names(cursor)
    if not names:
        return []
    raw = cursor.fetchmany(max_rows) if max_rows else cursor.fetchall()
    return [
        {name: normalize_row_value(value) for name, value in zip(names, record)}
        for record in raw
    ]


def fetch_first_row(cursor) -> Optional[Row]:
    """First row of the current result set, or None."""
    rows = fetch_rows(cursor, max_rows=1)
    return rows[0] if rows else None


def collect_result_sets(cursor, supports_nextset: bool = True) -> List[List[Row]]:
    """
    Materialize every result set a batch produced.

    Statements without a result (row counts, SET NOCOUNT, DECLARE) are
    skipped, so the list only holds result sets that had columns.
    """
    result_sets: List[List[Row]] = []
    while True:
        if cursor.description:
            result_sets.append(fetch_rows(cursor))
        if not supports_nextset or not cursor.nextset():
            break
    return result_sets


def run_query(
    connection: Any,
    statement: BoundStatement,
    max_rows: Optional[int] = None,
    supports_nextset: bool = False,
) -> List[Row]:
    """
    Execute a statement and return its first result set.

    With ``supports_nextset`` the leading results of a batch that carry only
    a row count (an INSERT before the SELECT) are skipped.
    """
    cursor = execute(connection, statement)
    try:
        if supports_nextset:
            while not cursor.description and cursor.nextset():
                pass
        return fetch_rows(cursor, max_rows)
    finally:
        cursor.close()


def run_command(connection: Any, statement: BoundStatement) -> int:
    """Execute a statement and return the affected row count (0 if unknown)."""
    cursor = execute(connection, statement)
    try:
        return max(cursor.rowcount or 0, 0)
    finally:
        cursor.close()
