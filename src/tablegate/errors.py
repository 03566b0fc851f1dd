"""
Errors - Exception hierarchy shared by every engine component

Three kinds of failure reach the caller:
- InvalidInput: a precondition was violated before any statement was sent
- NotAuthorized: a table policy refused the request
- OperationFailed: the database rejected a statement (or could not be reached)

Driver exceptions never escape the engine unwrapped; they are attached as
``__cause__`` of an OperationFailed.
"""

from typing import Any, Optional


class TablegateError(Exception):
    """Base class for every error raised by tablegate."""


class InvalidInput(TablegateError, ValueError):
    """A required argument is missing, blank or malformed."""


class NotAuthorized(TablegateError, PermissionError):
    """The request targets a table the active policy forbids."""


class OperationFailed(TablegateError, RuntimeError):
    """
    A database-level failure with the context it happened in.

    Attributes:
        operation: Statement family (list, insert, invoke_routine, ...)
        table: Target table, when the operation has one
        schema: Schema the statement ran against
        error_code: Native driver error code (int for SQL Server / MySQL,
            SQLSTATE string for PostgreSQL)
        is_referenced_elsewhere: Foreign-key violation (row still referenced)
        is_missing_object: Table, schema or database does not exist
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        schema: Optional[str] = None,
        error_code: Any = None,
        is_referenced_elsewhere: bool = False,
        is_missing_object: bool = False,
    ):
        super().__init__(message)
        self.operation = operation
        self.table = table
        self.schema = schema
        self.error_code = error_code
        self.is_referenced_elsewhere = is_referenced_elsewhere
        self.is_missing_object = is_missing_object


def require_text(value: Any, argument: str) -> str:
    """
    Return ``value`` stripped, or raise InvalidInput when it is blank.

    Args:
        value: Caller-supplied argument
        argument: Argument name used in the error message

    Returns:
        The trimmed text
    """
    if value is None or not str(value).strip():
        raise InvalidInput(f"'{argument}' cannot be empty.")
    return str(value).strip()
