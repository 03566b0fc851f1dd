"""
Metadata Inspector - Schema resolution and column descriptions
"""

from typing import List, Optional

from ..database.cursor_utils import run_query
from ..database.dialects.base import ColumnDescriptor
from ..errors import require_text

import logging
logger = logging.getLogger(__name__)


class MetadataInspector:
    """Reads table and column metadata from the information schema."""

    def __init__(self, session):
        self.session = session
        self.dialect = session.dialect

    async def resolve_schema(self, table: str, default_schema: Optional[str] = None) -> Optional[str]:
        """
        Find the schema holding ``table``.

        The preferred schema (``default_schema``, else the dialect default)
        wins; otherwise the first schema by name that has the table.

        Returns:
            Schema name, or None when no schema has the table
        """
        table = require_text(table, "table")
        preferred = self.dialect.effective_schema(default_schema)
        statement = self.dialect.bind(self.dialect.resolve_schema_sql(), {"table": table, "schema": preferred})

        rows = await self.session.run(
            lambda connection: run_query(connection, statement, max_rows=1),
            operation="resolve_schema", table=table, schema=preferred,
        )
        if not rows:
            return None
        return next(iter(rows[0].values()))

    async def describe_table(self, table: str, schema: Optional[str] = None) -> List[ColumnDescriptor]:
        """Columns of a table (or view), ordered by ordinal position."""
        table = require_text(table, "table")
        target_schema = self.dialect.effective_schema(schema)
        statement = self.dialect.bind(self.dialect.describe_table_sql(), {"table": table, "schema": target_schema})

        rows = await self.session.run(
            lambda connection: run_query(connection, statement),
            operation="describe_table", table=table, schema=target_schema,
        )
        return [self.dialect.column_from_row(row) for row in rows]

    async def describe_database(self, database_name: Optional[str] = None) -> List[ColumnDescriptor]:
        """
        Columns of every base table of a database.

        Args:
            database_name: Database to describe (the connected one when None)

        Returns:
            ColumnDescriptors ordered by schema, table and ordinal position

        Raises:
            InvalidInput: The dialect cannot reach the named database (PostgreSQL
                only sees the database it is connected to)
        """
        database_name = database_name.strip() if database_name and database_name.strip() else None
        sql = self.dialect.describe_database_sql(database_name)
        statement = self.dialect.bind(sql, {"database": database_name})

        def work(connection):
            if database_name is not None:
                self.dialect.check_database(connection, database_name)
            return run_query(connection, statement)

        rows = await self.session.run(work, operation="describe_database")
        logger.debug(f"describe_database returned {len(rows)} column(s)")
        return [self.dialect.column_from_row(row) for row in rows]
