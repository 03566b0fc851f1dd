"""
Base Database Dialect - Abstract base class for database-specific SQL

Dialects handle database-specific syntax differences such as:
- Row limiting (LIMIT vs TOP)
- Identifier quoting ([brackets] vs "quotes" vs `backticks`)
- Driver paramstyle (qmark vs pyformat)
- System catalog queries for columns, routines and their parameters
- Procedure/function call syntax (EXEC vs CALL vs SELECT)
- Native error codes (missing object, foreign-key violation)

A dialect holds no connection. Methods that talk to the database receive
the connection of the current unit of work.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ...core.marshalling import BoundValue, TypeFamily
from ..cursor_utils import Row
from ..sql_text import PYFORMAT, BoundStatement, bind_named_markers

import logging
logger = logging.getLogger(__name__)


class RoutineKind(Enum):
    """How a routine has to be called."""
    PROCEDURE = "procedure"
    TABLE_FUNCTION = "table_function"
    SCALAR_FUNCTION = "scalar_function"


@dataclass
class ColumnDescriptor:
    """Column metadata returned by describe_table / describe_database."""
    schema: Optional[str]
    table: str
    ordinal_position: int
    name: str
    data_type: str
    is_nullable: bool = True
    max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    default: Optional[str] = None
    is_identity: bool = False
    is_primary_key: bool = False


@dataclass
class ParameterInfo:
    """Procedure/function parameter info, in catalog ordinal order."""
    name: str
    type_name: str
    mode: str = "IN"
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    native_type: Optional[str] = None  # fully qualified type used in casts

    @property
    def is_input(self) -> bool:
        return self.mode in ("IN", "INOUT")

    @property
    def is_output(self) -> bool:
        return self.mode in ("OUT", "INOUT")


@dataclass
class RoutineMetadata:
    """Catalog description of one routine, fetched per call."""
    name: str
    schema: Optional[str]
    kind: RoutineKind
    parameters: List[ParameterInfo] = field(default_factory=list)


@dataclass
class RoutineCall:
    """
    Statements needed to invoke a routine.

    ``setup`` runs first (session variable assignments), then ``statement``.
    Output parameter values come from ``outputs`` when set, otherwise from
    the last result set ``statement`` produced.
    """
    statement: BoundStatement
    setup: List[BoundStatement] = field(default_factory=list)
    output_names: List[str] = field(default_factory=list)
    outputs: Optional[BoundStatement] = None


def _as_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "1", "TRUE", "Y")
    return bool(value)


class DatabaseDialect(ABC):
    """
    Abstract base class for database dialects.

    Usage:
        dialect = DialectFactory.create("postgresql", default_schema="sales")
        sql = dialect.select_rows_sql("orders", None, 100)
        statement = dialect.bind(sql, {})
    """

    #: Canonical provider key
    name: str = ""
    paramstyle: str = PYFORMAT
    string_quotes: Tuple[str, ...] = ("'",)
    backslash_escapes: bool = False
    #: PostgreSQL $tag$ literals and E'...' escape strings
    dollar_quotes: bool = False
    escape_strings: bool = False
    #: MySQL # comments
    hash_comments: bool = False
    #: Separate DATE and DATETIME types (midnight datetimes sent as dates)
    distinguishes_date: bool = True
    supports_nextset: bool = True

    SYSTEM_SCHEMAS: Tuple[str, ...] = ()
    MISSING_OBJECT_CODES: Tuple[Any, ...] = ()
    REFERENCED_ELSEWHERE_CODES: Tuple[Any, ...] = ()
    TYPE_FAMILIES: Dict[str, TypeFamily] = {}

    def __init__(self, default_schema: Optional[str] = None, connect_timeout: Optional[int] = None):
        """
        Initialize the dialect.

        Args:
            default_schema: Overrides the database's own default schema
            connect_timeout: Login timeout in seconds (driver default if None)
        """
        self._default_schema = default_schema.strip() if default_schema and default_schema.strip() else None
        self.connect_timeout = connect_timeout

    # ==================== Identifier Quoting ====================

    @property
    @abstractmethod
    def quote_char(self) -> str:
        """Character used to quote identifiers (e.g., '"' or '[')."""
        pass

    @property
    def quote_char_end(self) -> str:
        """Closing quote character (same as quote_char for most databases)."""
        return self.quote_char

    @property
    def identifier_quotes(self) -> Tuple[Tuple[str, str], ...]:
        """(open, close) pairs the marker scanner treats as quoted identifiers."""
        return ((self.quote_char, self.quote_char_end),)

    def quote_identifier(self, identifier: str) -> str:
        """Quote a single identifier, doubling any closing quote character inside it."""
        end = self.quote_char_end
        return f"{self.quote_char}{identifier.replace(end, end + end)}{end}"

    def quote_full_table_name(self, table_name: str, schema_name: Optional[str] = None) -> str:
        """
        Quote a table reference with its optional schema.

        Args:
            table_name: Table name
            schema_name: Schema name (omitted from the reference when None)

        Returns:
            e.g. [dbo].[orders] or "public"."orders" or `orders`
        """
        if schema_name:
            return f"{self.quote_identifier(schema_name)}.{self.quote_identifier(table_name)}"
        return self.quote_identifier(table_name)

    # ==================== Default Schema ====================

    @property
    def builtin_default_schema(self) -> Optional[str]:
        """Schema the database uses when none is named."""
        return None

    @property
    def default_schema(self) -> Optional[str]:
        """Configured default schema, else the database's own."""
        return self._default_schema or self.builtin_default_schema

    def effective_schema(self, schema: Optional[str]) -> Optional[str]:
        """Trimmed ``schema`` or the default schema when blank."""
        if schema is not None and str(schema).strip():
            return str(schema).strip()
        return self.default_schema

    def is_default_schema(self, schema: Optional[str]) -> bool:
        default = self.default_schema
        if schema is None or default is None:
            return schema is None and default is None
        return schema.lower() == default.lower()

    # ==================== Parameter Binding ====================

    def bind(self, sql: str, values: Optional[Mapping[str, Any]] = None) -> BoundStatement:
        """Rewrite ``@name`` markers in ``sql`` to this driver's paramstyle."""
        return bind_named_markers(
            sql,
            values or {},
            self.paramstyle,
            string_quotes=self.string_quotes,
            identifier_quotes=self.identifier_quotes,
            backslash_escapes=self.backslash_escapes,
            dollar_quotes=self.dollar_quotes,
            escape_strings=self.escape_strings,
            hash_comments=self.hash_comments,
        )

    # ==================== Statement Generation ====================

    @abstractmethod
    def limit_query(self, columns: str, source: str, limit: int) -> str:
        """
        Build a row-limited SELECT.

        Args:
            columns: Select list
            source: Everything after FROM (table, WHERE, ORDER BY)
            limit: Maximum number of rows
        """
        pass

    def select_rows_sql(self, table: str, schema: Optional[str], limit: int) -> str:
        return self.limit_query("*", self.quote_full_table_name(table, schema), limit)

    def select_by_key_sql(self, table: str, schema: Optional[str], key_column: str) -> str:
        return (
            f"SELECT * FROM {self.quote_full_table_name(table, schema)} "
            f"WHERE {self.quote_identifier(key_column)} = @key"
        )

    def select_column_by_key_sql(
        self, table: str, schema: Optional[str], column: str, key_column: str
    ) -> str:
        return self.limit_query(
            self.quote_identifier(column),
            f"{self.quote_full_table_name(table, schema)} WHERE {self.quote_identifier(key_column)} = @key",
            1,
        )

    def insert_sql(self, table: str, schema: Optional[str], columns: List[str]) -> str:
        """INSERT with markers @p0..@pN in column order."""
        column_list = ", ".join(self.quote_identifier(c) for c in columns)
        markers = ", ".join(f"@p{i}" for i in range(len(columns)))
        return f"INSERT INTO {self.quote_full_table_name(table, schema)} ({column_list}) VALUES ({markers})"

    def update_sql(self, table: str, schema: Optional[str], columns: List[str], key_column: str) -> str:
        """UPDATE with markers @p0..@pN for the new values and @key for the key."""
        assignments = ", ".join(f"{self.quote_identifier(c)} = @p{i}" for i, c in enumerate(columns))
        return (
            f"UPDATE {self.quote_full_table_name(table, schema)} SET {assignments} "
            f"WHERE {self.quote_identifier(key_column)} = @key"
        )

    def delete_sql(self, table: str, schema: Optional[str], key_column: str) -> str:
        return (
            f"DELETE FROM {self.quote_full_table_name(table, schema)} "
            f"WHERE {self.quote_identifier(key_column)} = @key"
        )

    # ==================== Connection ====================

    @abstractmethod
    def connect(self, connection_string: str):
        """Open a DB-API connection (autocommit off)."""
        pass

    # ==================== Error Classification ====================

    @abstractmethod
    def error_code(self, error: BaseException) -> Any:
        """Native error code carried by a driver exception, or None."""
        pass

    def is_missing_object(self, error: BaseException) -> bool:
        return self.error_code(error) in self.MISSING_OBJECT_CODES

    def is_referenced_elsewhere(self, error: BaseException) -> bool:
        return self.error_code(error) in self.REFERENCED_ELSEWHERE_CODES

    # ==================== Type Families ====================

    def family_for(self, type_name: Optional[str]) -> TypeFamily:
        """Map a catalog type name (``varchar(20)``, ``INT``) to its family."""
        if not type_name:
            return TypeFamily.TEXT
        key = type_name.split("(")[0].strip().lower()
        return self.TYPE_FAMILIES.get(key, TypeFamily.TEXT)

    # ==================== Catalog Queries ====================

    def resolve_schema_sql(self) -> str:
        """Schema holding @table, preferring @schema, then by name."""
        return self.limit_query(
            "table_schema",
            "information_schema.tables WHERE table_name = @table "
            "ORDER BY CASE WHEN table_schema = @schema THEN 0 ELSE 1 END, table_schema",
            1,
        )

    @abstractmethod
    def describe_table_sql(self) -> str:
        """Columns of @table in @schema, ordered by ordinal position."""
        pass

    @abstractmethod
    def describe_database_sql(self, database_name: Optional[str]) -> str:
        """Columns of every base table of a database (@database when named)."""
        pass

    def check_database(self, connection, database_name: str) -> None:
        """Raise InvalidInput when ``database_name`` cannot be described over ``connection``."""
        return None

    def column_from_row(self, row: Row) -> ColumnDescriptor:
        """Build a ColumnDescriptor from a catalog row with standard aliases."""
        values = {str(k).lower(): v for k, v in row.items()}
        return ColumnDescriptor(
            schema=values.get("table_schema"),
            table=values["table_name"],
            ordinal_position=int(values["ordinal_position"]),
            name=values["column_name"],
            data_type=values["data_type"],
            is_nullable=_as_bool(values.get("is_nullable")),
            max_length=_as_int(values.get("max_length")),
            numeric_precision=_as_int(values.get("numeric_precision")),
            numeric_scale=_as_int(values.get("numeric_scale")),
            default=values.get("column_default"),
            is_identity=_as_bool(values.get("is_identity")),
            is_primary_key=_as_bool(values.get("is_primary_key")),
        )

    @abstractmethod
    def routine_lookup_sql(self) -> str:
        """Catalog row for routine @name in @schema (routine_type, data_type)."""
        pass

    @abstractmethod
    def routine_kind_from_row(self, row: Row) -> RoutineKind:
        pass

    @abstractmethod
    def routine_parameters_sql(self) -> str:
        """Parameters of routine @name in @schema, ordered by position."""
        pass

    def parameter_from_row(self, row: Row) -> Optional[ParameterInfo]:
        """ParameterInfo from a catalog row; None for return-value rows."""
        values = {str(k).lower(): v for k, v in row.items()}
        name = (values.get("parameter_name") or "").strip()
        if not name:
            return None
        mode = (values.get("parameter_mode") or "IN").strip().upper()
        return ParameterInfo(
            name=name.lstrip("@"),
            type_name=values.get("data_type") or "",
            mode=mode,
            max_length=_as_int(values.get("max_length")),
            precision=_as_int(values.get("numeric_precision")),
            scale=_as_int(values.get("numeric_scale")),
        )

    # ==================== Routine Calls ====================

    @abstractmethod
    def build_routine_call(self, routine: RoutineMetadata, arguments: Mapping[str, BoundValue]) -> RoutineCall:
        """
        Build the statements invoking a routine.

        Args:
            routine: Catalog metadata (parameters in ordinal order)
            arguments: Bound values keyed by lower-cased parameter name;
                a missing key binds SQL NULL
        """
        pass

    def fallback_statements(self, qualified_name: str, count: int) -> List[Tuple[str, str]]:
        """
        Call strategies tried in order when the catalog has no entry.

        Args:
            qualified_name: Quoted routine name
            count: Number of caller arguments (markers @__v0..@__vN)

        Returns:
            (strategy label, SQL) pairs
        """
        markers = ", ".join(f"@__v{i}" for i in range(count))
        return [
            ("call", f"CALL {qualified_name}({markers})"),
            ("table", f"SELECT * FROM {qualified_name}({markers})"),
            ("scalar", f"SELECT {qualified_name}({markers}) AS result"),
        ]

    # ==================== Validation ====================

    @abstractmethod
    def validate(self, connection: Any, sql: str, values: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        """
        Check a statement without executing it.

        Returns:
            (True, None) when valid, (False, message) otherwise
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(default_schema={self.default_schema!r})"
