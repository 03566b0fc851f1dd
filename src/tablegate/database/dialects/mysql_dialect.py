"""
MySQL Dialect - MySQL/MariaDB-specific SQL operations

PyMySQL (pyformat paramstyle), `backtick` quoting, LIMIT pagination. MySQL
has no schema separate from the database: the default "schema" is the
database of the connection, and unqualified names resolve against it.
OUT/INOUT procedure parameters travel through session variables.
"""

from typing import Any, List, Mapping, Optional, Tuple

from ...constants import MYSQL
from ...core.marshalling import BoundValue, TypeFamily
from ..connection import connect_mysql
from ..cursor_utils import Row, execute
from ..sql_text import PYFORMAT, statement_type
from .base import DatabaseDialect, RoutineCall, RoutineKind, RoutineMetadata

import logging
logger = logging.getLogger(__name__)

# Statements EXPLAIN accepts
_EXPLAINABLE = ("SELECT", "WITH", "INSERT", "UPDATE", "DELETE", "REPLACE")


class MySQLDialect(DatabaseDialect):
    """Dialect for MySQL/MariaDB databases."""

    name = MYSQL
    paramstyle = PYFORMAT
    string_quotes = ("'", '"')
    backslash_escapes = True
    hash_comments = True
    distinguishes_date = False
    supports_nextset = True

    # System schemas to exclude
    SYSTEM_SCHEMAS = ("information_schema", "mysql", "performance_schema", "sys")

    MISSING_OBJECT_CODES = (1146, 1049)
    REFERENCED_ELSEWHERE_CODES = (1451,)

    TYPE_FAMILIES = {
        "tinyint": TypeFamily.INTEGER,
        "smallint": TypeFamily.INTEGER,
        "mediumint": TypeFamily.INTEGER,
        "int": TypeFamily.INTEGER,
        "integer": TypeFamily.INTEGER,
        "bigint": TypeFamily.BIG_INTEGER,
        "decimal": TypeFamily.DECIMAL,
        "numeric": TypeFamily.DECIMAL,
        "float": TypeFamily.FLOAT,
        "double": TypeFamily.FLOAT,
        "real": TypeFamily.FLOAT,
        "bit": TypeFamily.BOOLEAN,
        "bool": TypeFamily.BOOLEAN,
        "boolean": TypeFamily.BOOLEAN,
        "date": TypeFamily.DATE,
        "datetime": TypeFamily.DATETIME,
        "timestamp": TypeFamily.DATETIME,
        "time": TypeFamily.TIME,
        "binary": TypeFamily.BINARY,
        "varbinary": TypeFamily.BINARY,
        "tinyblob": TypeFamily.BINARY,
        "blob": TypeFamily.BINARY,
        "mediumblob": TypeFamily.BINARY,
        "longblob": TypeFamily.BINARY,
        "json": TypeFamily.JSON,
    }

    @property
    def quote_char(self) -> str:
        """MySQL uses backticks for identifier quoting."""
        return "`"

    def limit_query(self, columns: str, source: str, limit: int) -> str:
        """MySQL row limiting with LIMIT n."""
        return f"SELECT {columns} FROM {source} LIMIT {int(limit)}"

    def connect(self, connection_string: str):
        return connect_mysql(connection_string, timeout=self.connect_timeout)

    def error_code(self, error: BaseException) -> Any:
        """PyMySQL errors carry the server error number as args[0]."""
        args = getattr(error, "args", ())
        if args and isinstance(args[0], int):
            return args[0]
        return None

    # ==================== Catalog Queries ====================

    _COLUMNS_SELECT = """
        SELECT c.TABLE_SCHEMA AS table_schema, c.TABLE_NAME AS table_name,
               c.ORDINAL_POSITION AS ordinal_position, c.COLUMN_NAME AS column_name,
               c.DATA_TYPE AS data_type, c.IS_NULLABLE AS is_nullable,
               c.CHARACTER_MAXIMUM_LENGTH AS max_length,
               c.NUMERIC_PRECISION AS numeric_precision, c.NUMERIC_SCALE AS numeric_scale,
               c.COLUMN_DEFAULT AS column_default,
               CASE WHEN c.EXTRA LIKE '%auto_increment%' THEN 1 ELSE 0 END AS is_identity,
               CASE WHEN c.COLUMN_KEY = 'PRI' THEN 1 ELSE 0 END AS is_primary_key
        FROM information_schema.COLUMNS c"""

    def resolve_schema_sql(self) -> str:
        return self.limit_query(
            "TABLE_SCHEMA AS table_schema",
            "information_schema.TABLES WHERE TABLE_NAME = @table "
            "ORDER BY CASE WHEN TABLE_SCHEMA = COALESCE(@schema, DATABASE()) THEN 0 ELSE 1 END, TABLE_SCHEMA",
            1,
        )

    def describe_table_sql(self) -> str:
        return self._COLUMNS_SELECT + """
        WHERE c.TABLE_NAME = @table AND c.TABLE_SCHEMA = COALESCE(@schema, DATABASE())
        ORDER BY c.ORDINAL_POSITION"""

    def describe_database_sql(self, database_name: Optional[str]) -> str:
        return self._COLUMNS_SELECT + """
        INNER JOIN information_schema.TABLES t
            ON t.TABLE_SCHEMA = c.TABLE_SCHEMA AND t.TABLE_NAME = c.TABLE_NAME
        WHERE t.TABLE_TYPE = 'BASE TABLE'
          AND c.TABLE_SCHEMA = COALESCE(@database, DATABASE())
        ORDER BY c.TABLE_SCHEMA, c.TABLE_NAME, c.ORDINAL_POSITION"""

    def routine_lookup_sql(self) -> str:
        return self.limit_query(
            "ROUTINE_TYPE AS routine_type, DATA_TYPE AS data_type",
            "information_schema.ROUTINES "
            "WHERE ROUTINE_SCHEMA = COALESCE(@schema, DATABASE()) AND ROUTINE_NAME = @name "
            "ORDER BY ROUTINE_TYPE DESC",
            1,
        )

    def routine_kind_from_row(self, row: Row) -> RoutineKind:
        values = {str(k).lower(): v for k, v in row.items()}
        if str(values.get("routine_type") or "").upper() == "FUNCTION":
            return RoutineKind.SCALAR_FUNCTION
        return RoutineKind.PROCEDURE

    def routine_parameters_sql(self) -> str:
        return """
        SELECT PARAMETER_NAME AS parameter_name, PARAMETER_MODE AS parameter_mode,
               DATA_TYPE AS data_type, CHARACTER_MAXIMUM_LENGTH AS max_length,
               NUMERIC_PRECISION AS numeric_precision, NUMERIC_SCALE AS numeric_scale
        FROM information_schema.PARAMETERS
        WHERE SPECIFIC_SCHEMA = COALESCE(@schema, DATABASE())
          AND SPECIFIC_NAME = @name
          AND ROUTINE_TYPE = @routine_type
          AND ORDINAL_POSITION > 0
        ORDER BY ORDINAL_POSITION"""

    # ==================== Routine Calls ====================

    def build_routine_call(self, routine: RoutineMetadata, arguments: Mapping[str, BoundValue]) -> RoutineCall:
        qualified = self.quote_full_table_name(routine.name, routine.schema)
        values = {}
        expressions: List[str] = []
        setup = []
        outputs: List[str] = []
        output_names: List[str] = []

        for index, parameter in enumerate(routine.parameters):
            bound = arguments.get(parameter.name.lower())
            value = bound.value if bound is not None else None
            if parameter.is_output and routine.kind is RoutineKind.PROCEDURE:
                variable = f"@__o{index}"
                if parameter.is_input:
                    setup.append(self.bind(f"SET {variable} = @__v{index}", {f"__v{index}": value}))
                else:
                    setup.append(self.bind(f"SET {variable} = NULL"))
                expressions.append(variable)
                outputs.append(f"{variable} AS {self.quote_identifier(parameter.name)}")
                output_names.append(parameter.name)
            elif parameter.is_input:
                values[f"__v{index}"] = value
                expressions.append(f"@__v{index}")

        argument_list = ", ".join(expressions)
        if routine.kind is RoutineKind.PROCEDURE:
            statement = self.bind(f"CALL {qualified}({argument_list})", values)
        else:
            statement = self.bind(f"SELECT {qualified}({argument_list}) AS result", values)

        return RoutineCall(
            statement=statement,
            setup=setup,
            output_names=output_names,
            outputs=self.bind(f"SELECT {', '.join(outputs)}") if outputs else None,
        )

    # ==================== Validation ====================

    def validate(self, connection: Any, sql: str, values: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        """EXPLAIN for DML; other statements are accepted as-is."""
        kind = statement_type(sql)
        if kind not in _EXPLAINABLE:
            logger.debug(f"Statement type {kind} is not explainable, accepted without a round-trip")
            return True, None
        try:
            cursor = execute(connection, self.bind(f"EXPLAIN {sql}", values))
            try:
                cursor.fetchall()
            finally:
                cursor.close()
        except Exception as exc:
            return False, str(exc)
        return True, None
