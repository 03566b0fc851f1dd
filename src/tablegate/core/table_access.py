"""
Table Access - Generic CRUD over any table

Lists, reads, inserts, updates and deletes rows of a table named at call
time, without per-table code. Every identifier goes through the dialect's
quoting and every value is bound.

Reads against an explicit, non-default schema that fail because the table
does not exist are retried once against the default schema. Writes never
retry.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union

from ..constants import DEFAULT_LIST_LIMIT
from ..database.cursor_utils import Row, run_command, run_query
from ..errors import InvalidInput, require_text
from .marshalling import parse_encrypt_fields, to_bind_value

import logging
logger = logging.getLogger(__name__)

T = TypeVar("T")
EncryptFields = Union[None, str, Iterable[str]]


def _require_key_value(key_value: Any) -> Any:
    if key_value is None or (isinstance(key_value, str) and not key_value.strip()):
        raise InvalidInput("'key_value' cannot be empty.")
    return key_value


class TableAccess:
    """
    Generic table reader/writer.

    Usage:
        tables = TableAccess(session, hasher=BcryptHasher())
        rows = await tables.list_rows("orders", limit=50)
        created = await tables.create("users", None, {"email": "a@b.c", "password": "s3cret"},
                                      encrypt_fields="password")
    """

    def __init__(self, session, hasher=None, list_limit: int = DEFAULT_LIST_LIMIT):
        """
        Initialize table access.

        Args:
            session: DatabaseSession running the units of work
            hasher: OneWayHash used for encrypted fields (optional)
            list_limit: Row limit applied when list_rows gets none
        """
        self.session = session
        self.dialect = session.dialect
        self.hasher = hasher
        self.list_limit = list_limit

    # ==================== Reads ====================

    async def list_rows(self, table: str, schema: Optional[str] = None, limit: Optional[int] = None) -> List[Row]:
        """
        Return up to ``limit`` rows of a table.

        Args:
            table: Table name
            schema: Schema name (dialect default when None)
            limit: Maximum rows; not a positive integer -> the default limit

        Returns:
            Rows in table order ([] for an empty table)
        """
        table = require_text(table, "table")
        limit = self._effective_limit(limit)

        def run(connection, target_schema):
            sql = self.dialect.select_rows_sql(table, target_schema, limit)
            logger.debug(f"list_rows: {sql}")
            return run_query(connection, self.dialect.bind(sql))

        return await self._read("list", table, schema, run)

    async def get_by_key(self, table: str, schema: Optional[str], key_column: str, key_value: Any) -> List[Row]:
        """Return the rows whose ``key_column`` equals ``key_value``."""
        table = require_text(table, "table")
        key_column = require_text(key_column, "key_column")
        key_value = _require_key_value(key_value)

        def run(connection, target_schema):
            sql = self.dialect.select_by_key_sql(table, target_schema, key_column)
            return run_query(connection, self.dialect.bind(sql, {"key": key_value}))

        return await self._read("get_by_key", table, schema, run)

    async def get_password_hash(
        self,
        table: str,
        schema: Optional[str],
        user_column: str,
        password_column: str,
        user_value: Any,
    ) -> Optional[str]:
        """
        Fetch the stored password hash of one user.

        Returns:
            The hash, or None when the user row is absent or the value is NULL
        """
        table = require_text(table, "table")
        user_column = require_text(user_column, "user_column")
        password_column = require_text(password_column, "password_column")
        user_value = require_text(user_value, "user_value")

        def run(connection, target_schema):
            sql = self.dialect.select_column_by_key_sql(table, target_schema, password_column, user_column)
            rows = run_query(connection, self.dialect.bind(sql, {"key": user_value}), max_rows=1)
            if not rows:
                return None
            value = next(iter(rows[0].values()), None)
            if isinstance(value, bytes):
                return value.decode("utf-8")
            return None if value is None else str(value)

        return await self._read("get_password_hash", table, schema, run)

    # ==================== Writes ====================

    async def create(
        self,
        table: str,
        schema: Optional[str],
        data: Mapping[str, Any],
        encrypt_fields: EncryptFields = None,
    ) -> bool:
        """
        Insert one row.

        Args:
            table: Table name
            schema: Schema name (dialect default when None)
            data: Column -> value; dict/list values are stored as JSON text
            encrypt_fields: Columns whose values are replaced by their hash

        Returns:
            True when a row was inserted
        """
        table = require_text(table, "table")
        columns, values = self._prepare_values(data, encrypt_fields)
        target_schema = self.dialect.effective_schema(schema)
        sql = self.dialect.insert_sql(table, target_schema, columns)
        logger.debug(f"create: {sql}")

        affected = await self.session.run(
            lambda connection: run_command(connection, self.dialect.bind(sql, values)),
            operation="insert", table=table, schema=target_schema,
        )
        return affected > 0

    async def update(
        self,
        table: str,
        schema: Optional[str],
        key_column: str,
        key_value: Any,
        data: Mapping[str, Any],
        encrypt_fields: EncryptFields = None,
    ) -> int:
        """Update the rows matching the key; returns the affected count (0 is normal)."""
        table = require_text(table, "table")
        key_column = require_text(key_column, "key_column")
        key_value = _require_key_value(key_value)
        columns, values = self._prepare_values(data, encrypt_fields)
        values["key"] = key_value
        target_schema = self.dialect.effective_schema(schema)
        sql = self.dialect.update_sql(table, target_schema, columns, key_column)
        logger.debug(f"update: {sql}")

        return await self.session.run(
            lambda connection: run_command(connection, self.dialect.bind(sql, values)),
            operation="update", table=table, schema=target_schema,
        )

    async def delete(self, table: str, schema: Optional[str], key_column: str, key_value: Any) -> int:
        """
        Delete the rows matching the key.

        Raises:
            OperationFailed: with ``is_referenced_elsewhere`` set when a
                foreign key still points at the row
        """
        table = require_text(table, "table")
        key_column = require_text(key_column, "key_column")
        key_value = _require_key_value(key_value)
        target_schema = self.dialect.effective_schema(schema)
        sql = self.dialect.delete_sql(table, target_schema, key_column)

        return await self.session.run(
            lambda connection: run_command(connection, self.dialect.bind(sql, {"key": key_value})),
            operation="delete", table=table, schema=target_schema,
        )

    # ==================== Helpers ====================

    def _effective_limit(self, limit: Any) -> int:
        if limit is None or isinstance(limit, bool):
            return self.list_limit
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            return self.list_limit
        return limit if limit > 0 else self.list_limit

    def _prepare_values(self, data: Mapping[str, Any], encrypt_fields: EncryptFields) -> Tuple[List[str], Dict[str, Any]]:
        """Column list plus @p0..@pN values, hashing the encrypted fields."""
        if not data:
            raise InvalidInput("'data' cannot be empty.")

        fields = parse_encrypt_fields(encrypt_fields)
        if fields and self.hasher is None:
            raise InvalidInput("Encrypted fields were requested but no hasher is configured.")

        columns: List[str] = []
        values: Dict[str, Any] = {}
        for index, (column, value) in enumerate(data.items()):
            column = require_text(column, "column name")
            if column.lower() in fields and value is not None:
                value = self.hasher.hash(str(value))
            columns.append(column)
            values[f"p{index}"] = to_bind_value(value)
        return columns, values

    async def _read(self, operation: str, table: str, schema: Optional[str], run: Callable[[Any, Optional[str]], T]) -> T:
        """
        Run a read with the default-schema fallback.

        Args:
            operation: Statement family for error context
            table: Target table
            schema: Caller-supplied schema (may be None)
            run: ``run(connection, schema)`` executing the read
        """
        dialect = self.dialect
        target_schema = dialect.effective_schema(schema)
        explicit = schema is not None and bool(str(schema).strip())
        can_fall_back = explicit and not dialect.is_default_schema(target_schema)

        def work(connection):
            try:
                return run(connection, target_schema)
            except Exception as exc:
                if not can_fall_back or not dialect.is_missing_object(exc):
                    raise
                first_error = exc

            default_schema = dialect.default_schema
            logger.info(
                f"{operation}: table '{table}' not found in schema '{target_schema}', "
                f"retrying with default schema '{default_schema}'"
            )
            connection.rollback()
            try:
                return run(connection, default_schema)
            except Exception as exc:
                raise self.session.wrap_error(
                    exc, operation, table, default_schema,
                    message=(
                        f"{operation} failed: table '{table}' was not found in schema "
                        f"'{target_schema}' ({first_error}) nor in the default schema "
                        f"'{default_schema or 'of the connection'}' ({exc})"
                    ),
                ) from exc

        return await self.session.run(work, operation=operation, table=table, schema=target_schema)
