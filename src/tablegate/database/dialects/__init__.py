"""
Database Dialects - Database-specific SQL operations

One dialect per supported engine, all sharing the DatabaseDialect contract:
identifier quoting, pagination, paramstyle, catalog SQL, error codes and
routine call syntax.

Usage:
    from tablegate.database.dialects import DialectFactory

    dialect = DialectFactory.create("postgresql")
    sql = dialect.select_rows_sql("orders", dialect.default_schema, 100)
    statement = dialect.bind(dialect.select_by_key_sql("orders", "public", "id"), {"key": 7})
"""

from .base import (
    ColumnDescriptor,
    DatabaseDialect,
    ParameterInfo,
    RoutineCall,
    RoutineKind,
    RoutineMetadata,
)
from .factory import DialectFactory

from .sqlserver_dialect import SQLServerDialect
from .postgresql_dialect import PostgreSQLDialect
from .mysql_dialect import MySQLDialect

__all__ = [
    # Base classes
    "DatabaseDialect",
    "ColumnDescriptor",
    "ParameterInfo",
    "RoutineCall",
    "RoutineKind",
    "RoutineMetadata",

    # Factory
    "DialectFactory",

    # Implementations
    "SQLServerDialect",
    "PostgreSQLDialect",
    "MySQLDialect",
]
