"""
SQL Server Dialect - SQL Server-specific SQL operations

pyodbc (qmark paramstyle), [bracket] quoting, TOP (n) pagination, ``dbo``
default schema. Routine metadata comes from sys.objects / sys.parameters;
OUTPUT parameters are read back through T-SQL variables declared in the
same batch as the EXEC.
"""

import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Tuple

from ...constants import SQLSERVER
from ...core.marshalling import BoundValue, TypeFamily
from ..connection import connect_sqlserver
from ..cursor_utils import Row, execute
from ..sql_text import QMARK, BoundStatement, normalize_parameter_name
from .base import DatabaseDialect, ParameterInfo, RoutineCall, RoutineKind, RoutineMetadata

import logging
logger = logging.getLogger(__name__)

# "(208) (SQLExecDirectW)" at the end of a pyodbc diagnostic record
_ODBC_NATIVE_CODE_RE = re.compile(r"\((\d+)\)\s*\(SQL\w+\)")
_ANY_CODE_RE = re.compile(r"\((\d+)\)")

_VALIDATION_MESSAGES = {
    102: "Syntax error",
    156: "Syntax error near a reserved keyword",
    170: "Syntax error",
    207: "Invalid column name",
    208: "Table or view does not exist",
}

# sys.objects.type -> routine kind
_OBJECT_TYPES = {
    "P": RoutineKind.PROCEDURE,
    "PC": RoutineKind.PROCEDURE,
    "IF": RoutineKind.TABLE_FUNCTION,
    "TF": RoutineKind.TABLE_FUNCTION,
    "FT": RoutineKind.TABLE_FUNCTION,
    "FN": RoutineKind.SCALAR_FUNCTION,
    "FS": RoutineKind.SCALAR_FUNCTION,
}

_SIZED_TYPES = ("char", "varchar", "nchar", "nvarchar", "binary", "varbinary")
_SCALED_TYPES = ("datetime2", "datetimeoffset", "time")


def _describe_param_type(value: Any) -> str:
    """T-SQL type declared for a bound value in sp_describe_first_result_set."""
    if isinstance(value, bool):
        return "bit"
    if isinstance(value, int):
        return "bigint"
    if isinstance(value, float):
        return "float"
    if isinstance(value, Decimal):
        return "decimal(38, 10)"
    if isinstance(value, datetime):
        return "datetime2"
    if isinstance(value, date):
        return "date"
    if isinstance(value, time):
        return "time"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "varbinary(max)"
    return "nvarchar(max)"


class SQLServerDialect(DatabaseDialect):
    """Dialect for SQL Server databases."""

    name = SQLSERVER
    paramstyle = QMARK
    distinguishes_date = True
    supports_nextset = True

    # Schemas excluded from describe_database
    SYSTEM_SCHEMAS = ("sys", "INFORMATION_SCHEMA", "guest")

    MISSING_OBJECT_CODES = (208,)
    REFERENCED_ELSEWHERE_CODES = (547,)

    TYPE_FAMILIES = {
        "tinyint": TypeFamily.INTEGER,
        "smallint": TypeFamily.INTEGER,
        "int": TypeFamily.INTEGER,
        "bigint": TypeFamily.BIG_INTEGER,
        "decimal": TypeFamily.DECIMAL,
        "numeric": TypeFamily.DECIMAL,
        "money": TypeFamily.DECIMAL,
        "smallmoney": TypeFamily.DECIMAL,
        "float": TypeFamily.FLOAT,
        "real": TypeFamily.FLOAT,
        "bit": TypeFamily.BOOLEAN,
        "date": TypeFamily.DATE,
        "datetime": TypeFamily.DATETIME,
        "datetime2": TypeFamily.DATETIME,
        "smalldatetime": TypeFamily.DATETIME,
        "datetimeoffset": TypeFamily.DATETIME,
        "time": TypeFamily.TIME,
        "binary": TypeFamily.BINARY,
        "varbinary": TypeFamily.BINARY,
        "image": TypeFamily.BINARY,
        "uniqueidentifier": TypeFamily.UUID,
        "json": TypeFamily.JSON,
    }

    @property
    def quote_char(self) -> str:
        return "["

    @property
    def quote_char_end(self) -> str:
        return "]"

    @property
    def identifier_quotes(self) -> Tuple[Tuple[str, str], ...]:
        # QUOTED_IDENTIFIER is on for ODBC sessions
        return (("[", "]"), ('"', '"'))

    @property
    def builtin_default_schema(self) -> Optional[str]:
        return "dbo"

    def limit_query(self, columns: str, source: str, limit: int) -> str:
        """SQL Server row limiting with TOP (n)."""
        return f"SELECT TOP ({int(limit)}) {columns} FROM {source}"

    def connect(self, connection_string: str):
        return connect_sqlserver(connection_string, timeout=self.connect_timeout)

    # ==================== Error Classification ====================

    def error_code(self, error: BaseException) -> Any:
        """Native error number parsed from the pyodbc diagnostic message."""
        number = getattr(error, "number", None)
        if isinstance(number, int):
            return number
        message = " ".join(str(arg) for arg in getattr(error, "args", ()))
        match = _ODBC_NATIVE_CODE_RE.search(message) or _ANY_CODE_RE.search(message)
        return int(match.group(1)) if match else None

    def is_missing_object(self, error: BaseException) -> bool:
        args = getattr(error, "args", ())
        if args and args[0] == "42S02":
            return True
        return super().is_missing_object(error)

    # ==================== Catalog Queries ====================

    def _columns_select(self, catalog_prefix: str) -> str:
        return f"""
            SELECT c.TABLE_SCHEMA AS table_schema, c.TABLE_NAME AS table_name,
                   c.ORDINAL_POSITION AS ordinal_position, c.COLUMN_NAME AS column_name,
                   c.DATA_TYPE AS data_type, c.IS_NULLABLE AS is_nullable,
                   c.CHARACTER_MAXIMUM_LENGTH AS max_length,
                   c.NUMERIC_PRECISION AS numeric_precision, c.NUMERIC_SCALE AS numeric_scale,
                   c.COLUMN_DEFAULT AS column_default,
                   CASE WHEN ic.column_id IS NULL THEN 0 ELSE 1 END AS is_identity,
                   CASE WHEN pk.COLUMN_NAME IS NULL THEN 0 ELSE 1 END AS is_primary_key
            FROM {catalog_prefix}INFORMATION_SCHEMA.COLUMNS c
            LEFT JOIN {catalog_prefix}sys.identity_columns ic
                ON ic.object_id = OBJECT_ID(QUOTENAME(c.TABLE_CATALOG) + '.' + QUOTENAME(c.TABLE_SCHEMA)
                                            + '.' + QUOTENAME(c.TABLE_NAME))
               AND ic.name = c.COLUMN_NAME
            LEFT JOIN (
                SELECT k.TABLE_SCHEMA, k.TABLE_NAME, k.COLUMN_NAME
                FROM {catalog_prefix}INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
                INNER JOIN {catalog_prefix}INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
                    ON tc.CONSTRAINT_NAME = k.CONSTRAINT_NAME
                   AND tc.TABLE_SCHEMA = k.TABLE_SCHEMA
                   AND tc.TABLE_NAME = k.TABLE_NAME
                WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
            ) pk ON pk.TABLE_SCHEMA = c.TABLE_SCHEMA
                AND pk.TABLE_NAME = c.TABLE_NAME
                AND pk.COLUMN_NAME = c.COLUMN_NAME"""

    def resolve_schema_sql(self) -> str:
        return self.limit_query(
            "TABLE_SCHEMA AS table_schema",
            "INFORMATION_SCHEMA.TABLES WHERE TABLE_NAME = @table "
            "ORDER BY CASE WHEN TABLE_SCHEMA = @schema THEN 0 ELSE 1 END, TABLE_SCHEMA",
            1,
        )

    def describe_table_sql(self) -> str:
        return self._columns_select("") + """
            WHERE c.TABLE_NAME = @table AND c.TABLE_SCHEMA = @schema
            ORDER BY c.ORDINAL_POSITION"""

    def describe_database_sql(self, database_name: Optional[str]) -> str:
        prefix = f"{self.quote_identifier(database_name)}." if database_name else ""
        excluded = ", ".join(f"'{s}'" for s in self.SYSTEM_SCHEMAS)
        return self._columns_select(prefix) + f"""
            INNER JOIN {prefix}INFORMATION_SCHEMA.TABLES t
                ON t.TABLE_SCHEMA = c.TABLE_SCHEMA AND t.TABLE_NAME = c.TABLE_NAME
            WHERE t.TABLE_TYPE = 'BASE TABLE' AND c.TABLE_SCHEMA NOT IN ({excluded})
            ORDER BY c.TABLE_SCHEMA, c.TABLE_NAME, c.ORDINAL_POSITION"""

    def routine_lookup_sql(self) -> str:
        return self.limit_query(
            "o.type AS routine_type",
            "sys.objects o INNER JOIN sys.schemas s ON o.schema_id = s.schema_id "
            "WHERE o.name = @name AND s.name = @schema "
            "AND o.type IN ('P', 'PC', 'IF', 'TF', 'FT', 'FN', 'FS')",
            1,
        )

    def routine_kind_from_row(self, row: Row) -> RoutineKind:
        object_type = str(next(iter(row.values()), "") or "").strip().upper()
        return _OBJECT_TYPES.get(object_type, RoutineKind.PROCEDURE)

    def routine_parameters_sql(self) -> str:
        return """
            SELECT p.name AS parameter_name,
                   CASE WHEN p.is_output = 1 THEN 'INOUT' ELSE 'IN' END AS parameter_mode,
                   t.name AS data_type,
                   CASE WHEN t.name IN ('nchar', 'nvarchar') AND p.max_length > 0
                        THEN p.max_length / 2 ELSE p.max_length END AS max_length,
                   p.precision AS numeric_precision, p.scale AS numeric_scale
            FROM sys.parameters p
            INNER JOIN sys.types t ON p.user_type_id = t.user_type_id
            INNER JOIN sys.objects o ON p.object_id = o.object_id
            INNER JOIN sys.schemas s ON o.schema_id = s.schema_id
            WHERE o.name = @name AND s.name = @schema AND p.parameter_id > 0
            ORDER BY p.parameter_id"""

    # ==================== Routine Calls ====================

    def declared_type(self, parameter: ParameterInfo) -> str:
        """T-SQL type used to DECLARE the variable receiving an OUTPUT value."""
        type_name = parameter.type_name.lower()
        quoted = self.quote_identifier(type_name)
        if type_name in _SIZED_TYPES:
            length = "max" if parameter.max_length in (None, -1) else parameter.max_length
            return f"{quoted}({length})"
        if type_name in ("decimal", "numeric"):
            return f"{quoted}({parameter.precision or 38}, {parameter.scale or 0})"
        if type_name in _SCALED_TYPES and parameter.scale is not None:
            return f"{quoted}({parameter.scale})"
        return quoted

    def build_routine_call(self, routine: RoutineMetadata, arguments: Mapping[str, BoundValue]) -> RoutineCall:
        qualified = self.quote_full_table_name(routine.name, routine.schema)
        values = {}
        for index, parameter in enumerate(routine.parameters):
            bound = arguments.get(parameter.name.lower())
            values[f"__v{index}"] = bound.value if bound is not None else None

        if routine.kind is not RoutineKind.PROCEDURE:
            markers = ", ".join(f"@__v{i}" for i in range(len(routine.parameters)))
            if routine.kind is RoutineKind.TABLE_FUNCTION:
                sql = f"SELECT * FROM {qualified}({markers})"
            else:
                sql = f"SELECT {qualified}({markers}) AS [result]"
            return RoutineCall(statement=self.bind(sql, values))

        declarations: List[str] = []
        assignments: List[str] = []
        outputs: List[str] = []
        output_names: List[str] = []
        for index, parameter in enumerate(routine.parameters):
            if parameter.is_output:
                variable = f"@__o{index}"
                declarations.append(f"DECLARE {variable} {self.declared_type(parameter)} = @__v{index};")
                assignments.append(f"@{parameter.name} = {variable} OUTPUT")
                outputs.append(f"{variable} AS {self.quote_identifier(parameter.name)}")
                output_names.append(parameter.name)
            else:
                assignments.append(f"@{parameter.name} = @__v{index}")

        exec_sql = f"EXEC {qualified}"
        if assignments:
            exec_sql += " " + ", ".join(assignments)

        if not outputs:
            return RoutineCall(statement=self.bind(exec_sql, values))

        batch = "SET NOCOUNT ON; " + " ".join(declarations) + f" {exec_sql}; SELECT {', '.join(outputs)};"
        return RoutineCall(statement=self.bind(batch, values), output_names=output_names)

    def fallback_statements(self, qualified_name: str, count: int) -> List[Tuple[str, str]]:
        markers = ", ".join(f"@__v{i}" for i in range(count))
        return [
            ("exec", f"EXEC {qualified_name} {markers}".rstrip()),
            ("table", f"SELECT * FROM {qualified_name}({markers})"),
            ("scalar", f"SELECT {qualified_name}({markers}) AS [result]"),
        ]

    # ==================== Validation ====================

    def validate(self, connection: Any, sql: str, values: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        """Compile-check through sys.sp_describe_first_result_set."""
        declaration = ", ".join(
            f"@{normalize_parameter_name(name)} {_describe_param_type(value)}"
            for name, value in values.items()
        )
        statement = BoundStatement(
            "EXEC sys.sp_describe_first_result_set @tsql = ?, @params = ?",
            [sql, declaration or None],
        )
        try:
            cursor = execute(connection, statement)
            try:
                if cursor.description:
                    cursor.fetchall()
            finally:
                cursor.close()
        except Exception as exc:
            return False, self.validation_message(exc)
        return True, None

    def validation_message(self, error: BaseException) -> str:
        """Readable message for a failed validation."""
        args = getattr(error, "args", ())
        detail = str(args[-1]) if args else str(error)
        code = self.error_code(error)
        readable = _VALIDATION_MESSAGES.get(code)
        if readable:
            return f"{readable} (error {code}): {detail}"
        return detail
