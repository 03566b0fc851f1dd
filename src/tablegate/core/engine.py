"""
Data Access Engine - One dialect, one connection source, one hasher

Composes the table reader/writer, query executor, routine invoker and
metadata inspector over a shared DatabaseSession. Engines are cheap and
hold no connection between calls; create one per request if convenient.

Usage:
    engine = DataAccessEngine.from_settings(load_settings())
    rows = await engine.list_rows("orders", limit=20)
    ok, message = await engine.validate("SELECT * FROM orders WHERE id = @id", {"id": 1})
"""

from typing import Any, Callable, List, Mapping, Optional, Tuple

from ..config.settings import SettingsConnectionSource
from ..constants import DEFAULT_LIST_LIMIT, DEFAULT_MAX_ROWS
from ..database.cursor_utils import Row
from ..database.dialects import ColumnDescriptor, DatabaseDialect, DialectFactory
from ..database.session import DatabaseSession
from ..errors import InvalidInput
from ..utils.hashing import BcryptHasher
from .metadata_inspector import MetadataInspector
from .query_executor import QueryExecutor
from .routine_invoker import RoutineInvoker
from .table_access import EncryptFields, TableAccess

import logging
logger = logging.getLogger(__name__)


class DataAccessEngine:
    """Facade over the four engine components."""

    def __init__(
        self,
        dialect: DatabaseDialect,
        connection_source,
        hasher=None,
        connector: Optional[Callable[[str], Any]] = None,
        list_limit: int = DEFAULT_LIST_LIMIT,
        max_rows: int = DEFAULT_MAX_ROWS,
    ):
        """
        Initialize the engine.

        Args:
            dialect: Dialect of the target database
            connection_source: Object with ``get_connection_string()``
            hasher: OneWayHash for encrypted fields and password checks
            connector: Replaces ``dialect.connect`` (tests, custom pools)
            list_limit: Default row limit of list_rows
            max_rows: Default row cap of execute_parameterized
        """
        self.dialect = dialect
        self.hasher = hasher
        self.session = DatabaseSession(dialect, connection_source, connector)
        self.tables = TableAccess(self.session, hasher, list_limit)
        self.queries = QueryExecutor(self.session, max_rows)
        self.routines = RoutineInvoker(self.session)
        self.metadata = MetadataInspector(self.session)

    @classmethod
    def from_settings(cls, settings, hasher=None, connector: Optional[Callable[[str], Any]] = None) -> "DataAccessEngine":
        """
        Build an engine from EngineSettings.

        A BcryptHasher with the configured cost is created when no hasher
        is given.
        """
        dialect = DialectFactory.create(
            settings.provider,
            default_schema=settings.default_schema,
            connect_timeout=settings.connect_timeout,
        )
        if dialect is None:
            raise InvalidInput(f"Unsupported provider '{settings.provider}'.")

        logger.info(f"Engine configured for {dialect.name} (default schema: {dialect.default_schema})")
        return cls(
            dialect,
            SettingsConnectionSource(settings),
            hasher=hasher or BcryptHasher(settings.hash_cost),
            connector=connector,
            list_limit=settings.list_limit,
            max_rows=settings.max_rows,
        )

    # ==================== Tables ====================

    async def list_rows(self, table: str, schema: Optional[str] = None, limit: Optional[int] = None) -> List[Row]:
        return await self.tables.list_rows(table, schema, limit)

    async def get_by_key(self, table: str, schema: Optional[str], key_column: str, key_value: Any) -> List[Row]:
        return await self.tables.get_by_key(table, schema, key_column, key_value)

    async def create(self, table: str, schema: Optional[str], data: Mapping[str, Any],
                     encrypt_fields: EncryptFields = None) -> bool:
        return await self.tables.create(table, schema, data, encrypt_fields)

    async def update(self, table: str, schema: Optional[str], key_column: str, key_value: Any,
                     data: Mapping[str, Any], encrypt_fields: EncryptFields = None) -> int:
        return await self.tables.update(table, schema, key_column, key_value, data, encrypt_fields)

    async def delete(self, table: str, schema: Optional[str], key_column: str, key_value: Any) -> int:
        return await self.tables.delete(table, schema, key_column, key_value)

    async def get_password_hash(self, table: str, schema: Optional[str], user_column: str,
                                password_column: str, user_value: Any) -> Optional[str]:
        return await self.tables.get_password_hash(table, schema, user_column, password_column, user_value)

    # ==================== Queries ====================

    async def execute_parameterized(self, sql_text: str, parameters: Optional[Mapping[str, Any]] = None,
                                    max_rows: Optional[int] = None) -> List[Row]:
        return await self.queries.execute_parameterized(sql_text, parameters, max_rows)

    async def validate(self, sql_text: str, parameters: Optional[Mapping[str, Any]] = None) -> Tuple[bool, Optional[str]]:
        return await self.queries.validate(sql_text, parameters)

    # ==================== Routines ====================

    async def invoke_routine(self, name: str, parameters: Optional[Mapping[str, Any]] = None,
                             schema: Optional[str] = None) -> List[Row]:
        return await self.routines.invoke_routine(name, parameters, schema)

    # ==================== Metadata ====================

    async def resolve_schema(self, table: str, default_schema: Optional[str] = None) -> Optional[str]:
        return await self.metadata.resolve_schema(table, default_schema)

    async def describe_table(self, table: str, schema: Optional[str] = None) -> List[ColumnDescriptor]:
        return await self.metadata.describe_table(table, schema)

    async def describe_database(self, database_name: Optional[str] = None) -> List[ColumnDescriptor]:
        return await self.metadata.describe_database(database_name)
