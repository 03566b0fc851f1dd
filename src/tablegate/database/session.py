"""
Database Session - One connection per operation, off the event loop

Every engine operation is a unit of work: acquire a connection, run the
statements, commit (or roll back), close. The blocking DB-API calls run in
a worker thread through ``asyncio.to_thread`` so the caller's event loop
stays free.

Driver exceptions are wrapped here, and only here, into OperationFailed
with the operation context and the dialect's error classification.
"""

import asyncio
from typing import Any, Callable, Optional, TypeVar

from ..errors import OperationFailed, TablegateError

import logging
logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseSession:
    """
    Runs units of work against one dialect and connection source.

    Usage:
        session = DatabaseSession(dialect, connection_source)
        rows = await session.run(lambda conn: run_query(conn, stmt), operation="list")
    """

    def __init__(self, dialect, connection_source, connector: Optional[Callable[[str], Any]] = None):
        """
        Initialize the session.

        Args:
            dialect: DatabaseDialect of the target database
            connection_source: Object with ``get_connection_string()``
            connector: Opens a DB-API connection from a connection string
                (defaults to ``dialect.connect``)
        """
        self.dialect = dialect
        self.connection_source = connection_source
        self._connector = connector or dialect.connect

    async def run(
        self,
        work: Callable[[Any], T],
        operation: str,
        table: Optional[str] = None,
        schema: Optional[str] = None,
        commit: bool = True,
    ) -> T:
        """
        Run ``work(connection)`` in a worker thread.

        Args:
            work: Callable receiving the open connection
            operation: Statement family, used in error context
            table: Target table, used in error context
            schema: Target schema, used in error context
            commit: Commit on success (rolled back otherwise)

        Returns:
            Whatever ``work`` returns

        Raises:
            OperationFailed: Connection or statement failure
        """
        return await asyncio.to_thread(self._run_sync, work, operation, table, schema, commit)

    def _run_sync(self, work, operation, table, schema, commit):
        connection = self._open(operation, table, schema)
        try:
            result = work(connection)
            if commit:
                connection.commit()
            else:
                connection.rollback()
            return result
        except TablegateError:
            self._rollback(connection)
            raise
        except Exception as exc:
            self._rollback(connection)
            raise self.wrap_error(exc, operation, table, schema) from exc
        finally:
            self._close(connection)

    def _open(self, operation, table, schema):
        connection_string = self.connection_source.get_connection_string()
        try:
            return self._connector(connection_string)
        except TablegateError:
            raise
        except Exception as exc:
            logger.debug(f"Connection failed for {operation}: {exc}")
            raise OperationFailed(
                f"Could not connect to the {self.dialect.name} database: {exc}",
                operation=operation,
                table=table,
                schema=schema,
                error_code=self.dialect.error_code(exc),
            ) from exc

    def wrap_error(
        self,
        error: BaseException,
        operation: str,
        table: Optional[str] = None,
        schema: Optional[str] = None,
        message: Optional[str] = None,
    ) -> OperationFailed:
        """Build the OperationFailed describing a driver exception."""
        if message is None:
            target = f" on {schema + '.' if schema else ''}{table}" if table else ""
            message = f"{operation} failed{target}: {error}"
        return OperationFailed(
            message,
            operation=operation,
            table=table,
            schema=schema,
            error_code=self.dialect.error_code(error),
            is_referenced_elsewhere=self.dialect.is_referenced_elsewhere(error),
            is_missing_object=self.dialect.is_missing_object(error),
        )

    @staticmethod
    def _rollback(connection):
        try:
            connection.rollback()
        except Exception as exc:
            # Connection already broken; the original error is what matters
            logger.debug(f"Rollback failed: {exc}")

    @staticmethod
    def _close(connection):
        try:
            connection.close()
        except Exception as exc:
            logger.debug(f"Closing connection failed: {exc}")
