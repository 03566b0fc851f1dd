"""
PostgreSQL Dialect - PostgreSQL-specific SQL operations

psycopg2 (pyformat paramstyle), "double-quote" quoting, LIMIT pagination,
``public`` default schema. Routine arguments are cast to the declared
catalog type, so overloads resolve the same way they would in psql.
"""

from typing import Any, List, Mapping, Optional, Tuple

from ...constants import POSTGRESQL
from ...core.marshalling import BoundValue, TypeFamily
from ...errors import InvalidInput
from ..connection import connect_postgresql
from ..cursor_utils import Row, execute, run_query
from ..sql_text import PYFORMAT
from .base import DatabaseDialect, ParameterInfo, RoutineCall, RoutineKind, RoutineMetadata

import logging
logger = logging.getLogger(__name__)


class PostgreSQLDialect(DatabaseDialect):
    """Dialect for PostgreSQL databases."""

    name = POSTGRESQL
    paramstyle = PYFORMAT
    dollar_quotes = True
    escape_strings = True
    distinguishes_date = True
    supports_nextset = False

    # System schemas to exclude
    SYSTEM_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

    MISSING_OBJECT_CODES = ("42P01", "3F000")
    REFERENCED_ELSEWHERE_CODES = ("23503",)

    TYPE_FAMILIES = {
        "smallint": TypeFamily.INTEGER,
        "integer": TypeFamily.INTEGER,
        "int2": TypeFamily.INTEGER,
        "int4": TypeFamily.INTEGER,
        "bigint": TypeFamily.BIG_INTEGER,
        "int8": TypeFamily.BIG_INTEGER,
        "numeric": TypeFamily.DECIMAL,
        "decimal": TypeFamily.DECIMAL,
        "money": TypeFamily.DECIMAL,
        "real": TypeFamily.FLOAT,
        "double precision": TypeFamily.FLOAT,
        "float4": TypeFamily.FLOAT,
        "float8": TypeFamily.FLOAT,
        "boolean": TypeFamily.BOOLEAN,
        "bool": TypeFamily.BOOLEAN,
        "date": TypeFamily.DATE,
        "timestamp without time zone": TypeFamily.DATETIME,
        "timestamp with time zone": TypeFamily.DATETIME,
        "timestamp": TypeFamily.DATETIME,
        "timestamptz": TypeFamily.DATETIME,
        "time without time zone": TypeFamily.TIME,
        "time with time zone": TypeFamily.TIME,
        "time": TypeFamily.TIME,
        "timetz": TypeFamily.TIME,
        "bytea": TypeFamily.BINARY,
        "uuid": TypeFamily.UUID,
        "json": TypeFamily.JSON,
        "jsonb": TypeFamily.JSON,
    }

    @property
    def quote_char(self) -> str:
        return '"'

    @property
    def builtin_default_schema(self) -> Optional[str]:
        return "public"

    def limit_query(self, columns: str, source: str, limit: int) -> str:
        """PostgreSQL row limiting with LIMIT n."""
        return f"SELECT {columns} FROM {source} LIMIT {int(limit)}"

    def connect(self, connection_string: str):
        return connect_postgresql(connection_string, timeout=self.connect_timeout)

    def error_code(self, error: BaseException) -> Any:
        """SQLSTATE carried by psycopg2 errors."""
        return getattr(error, "pgcode", None)

    # ==================== Catalog Queries ====================

    _COLUMNS_SELECT = """
        SELECT c.table_schema AS table_schema, c.table_name AS table_name,
               c.ordinal_position AS ordinal_position, c.column_name AS column_name,
               c.data_type AS data_type, c.is_nullable AS is_nullable,
               c.character_maximum_length AS max_length,
               c.numeric_precision AS numeric_precision, c.numeric_scale AS numeric_scale,
               c.column_default AS column_default,
               CASE WHEN c.is_identity = 'YES' OR c.column_default LIKE 'nextval(%'
                    THEN 1 ELSE 0 END AS is_identity,
               CASE WHEN pk.column_name IS NULL THEN 0 ELSE 1 END AS is_primary_key
        FROM information_schema.columns c
        LEFT JOIN (
            SELECT k.table_schema, k.table_name, k.column_name
            FROM information_schema.table_constraints tc
            INNER JOIN information_schema.key_column_usage k
                ON tc.constraint_name = k.constraint_name
               AND tc.table_schema = k.table_schema
               AND tc.table_name = k.table_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
        ) pk ON pk.table_schema = c.table_schema
            AND pk.table_name = c.table_name
            AND pk.column_name = c.column_name"""

    def describe_table_sql(self) -> str:
        return self._COLUMNS_SELECT + """
        WHERE c.table_name = @table AND c.table_schema = @schema
        ORDER BY c.ordinal_position"""

    def check_database(self, connection, database_name: str) -> None:
        # information_schema only covers the connected database
        rows = run_query(connection, self.bind("SELECT current_database() AS name"), max_rows=1)
        current = rows[0]["name"] if rows else None
        if database_name != current:
            raise InvalidInput(
                f"Database '{database_name}' is not the connected database '{current}'; "
                "PostgreSQL can only describe the database it is connected to."
            )

    def describe_database_sql(self, database_name: Optional[str]) -> str:
        catalog = "@database" if database_name else "current_database()"
        excluded = ", ".join(f"'{s}'" for s in self.SYSTEM_SCHEMAS)
        return self._COLUMNS_SELECT + f"""
        INNER JOIN information_schema.tables t
            ON t.table_schema = c.table_schema AND t.table_name = c.table_name
        WHERE t.table_type = 'BASE TABLE'
          AND c.table_catalog = {catalog}
          AND c.table_schema NOT IN ({excluded})
        ORDER BY c.table_schema, c.table_name, c.ordinal_position"""

    def routine_lookup_sql(self) -> str:
        return self.limit_query(
            "routine_type AS routine_type, data_type AS data_type",
            "information_schema.routines WHERE routine_schema = @schema AND routine_name = @name "
            "ORDER BY specific_name",
            1,
        )

    def routine_kind_from_row(self, row: Row) -> RoutineKind:
        values = {str(k).lower(): v for k, v in row.items()}
        if str(values.get("routine_type") or "").upper() == "PROCEDURE":
            return RoutineKind.PROCEDURE
        # SELECT * FROM f(...) serves set-returning and scalar functions alike
        return RoutineKind.TABLE_FUNCTION

    def routine_parameters_sql(self) -> str:
        return """
        SELECT p.parameter_name AS parameter_name, p.parameter_mode AS parameter_mode,
               p.data_type AS data_type, p.udt_schema AS udt_schema, p.udt_name AS udt_name,
               p.character_maximum_length AS max_length,
               p.numeric_precision AS numeric_precision, p.numeric_scale AS numeric_scale
        FROM information_schema.parameters p
        WHERE p.specific_schema = @schema
          AND p.specific_name = (
              SELECT r.specific_name FROM information_schema.routines r
              WHERE r.routine_schema = @schema AND r.routine_name = @name
              ORDER BY r.specific_name LIMIT 1)
        ORDER BY p.ordinal_position"""

    def parameter_from_row(self, row: Row) -> Optional[ParameterInfo]:
        parameter = super().parameter_from_row(row)
        if parameter is None:
            return None
        values = {str(k).lower(): v for k, v in row.items()}
        if parameter.mode == "VARIADIC":
            parameter.mode = "IN"
        if values.get("udt_name"):
            parameter.native_type = (
                f"{self.quote_identifier(values.get('udt_schema') or 'pg_catalog')}."
                f"{self.quote_identifier(values['udt_name'])}"
            )
            if self.family_for(parameter.type_name) is TypeFamily.TEXT:
                # USER-DEFINED / ARRAY: classify by the underlying type
                udt_family = self.family_for(values["udt_name"])
                if udt_family is not TypeFamily.TEXT:
                    parameter.type_name = values["udt_name"]
        return parameter

    # ==================== Routine Calls ====================

    def cast_type(self, parameter: ParameterInfo, bound: Optional[BoundValue]) -> str:
        """Type an argument is cast to; JSON text goes to json/jsonb."""
        declared = self.family_for(parameter.type_name)
        if bound is not None and bound.family is TypeFamily.JSON and declared is not TypeFamily.TEXT:
            return "jsonb" if parameter.type_name.lower() == "jsonb" else "json"
        return parameter.native_type or parameter.type_name

    def build_routine_call(self, routine: RoutineMetadata, arguments: Mapping[str, BoundValue]) -> RoutineCall:
        qualified = self.quote_full_table_name(routine.name, routine.schema)
        is_procedure = routine.kind is RoutineKind.PROCEDURE
        values = {}
        expressions: List[str] = []
        for index, parameter in enumerate(routine.parameters):
            if not parameter.is_input:
                if is_procedure:
                    expressions.append("NULL")
                continue
            bound = arguments.get(parameter.name.lower())
            values[f"__v{index}"] = bound.value if bound is not None else None
            expressions.append(f"CAST(@__v{index} AS {self.cast_type(parameter, bound)})")

        argument_list = ", ".join(expressions)
        if is_procedure:
            sql = f"CALL {qualified}({argument_list})"
        else:
            sql = f"SELECT * FROM {qualified}({argument_list})"
        return RoutineCall(statement=self.bind(sql, values))

    # ==================== Validation ====================

    def validate(self, connection: Any, sql: str, values: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        """EXPLAIN plans the statement without running it."""
        try:
            cursor = execute(connection, self.bind(f"EXPLAIN {sql}", values))
            cursor.close()
        except Exception as exc:
            return False, str(exc).strip()
        return True, None
