"""
Routine Invoker - Stored procedures and functions by name

The routine's kind and ordered parameter list are read from the catalog on
every call, caller values are bound by declared type family, and the call
is built in the dialect's syntax. OUTPUT parameter values are merged into
the first returned row.

When the catalog has no entry for the routine (typically: no privilege on
the catalog views) an ordered chain of call strategies is tried with the
caller's values in the order given.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..database.cursor_utils import Row, collect_result_sets, execute, run_command, run_query
from ..database.dialects.base import RoutineKind, RoutineMetadata
from ..database.sql_text import normalize_parameter_name
from ..errors import InvalidInput, require_text
from .marshalling import BoundValue, bind_routine_value, marshal_query_value

import logging
logger = logging.getLogger(__name__)


class RoutineInvoker:
    """
    Invokes stored routines.

    Usage:
        invoker = RoutineInvoker(session)
        rows = await invoker.invoke_routine("get_orders", {"@customer_id": 7}, schema="sales")
    """

    def __init__(self, session):
        self.session = session
        self.dialect = session.dialect

    async def invoke_routine(
        self,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        schema: Optional[str] = None,
    ) -> List[Row]:
        """
        Invoke a procedure or function.

        Args:
            name: Routine name (``schema.name`` accepted when schema is None)
            parameters: Argument values keyed by parameter name; a leading
                ``@`` or ``:`` is ignored and names match case-insensitively
            schema: Routine schema (dialect default when None)

        Returns:
            Rows of the first result set, OUTPUT values merged into row 0

        Raises:
            InvalidInput: Blank name, duplicate parameter names, or a value
                that cannot be converted to the declared numeric type
            OperationFailed: The database rejected the call
        """
        name = require_text(name, "name")
        if (schema is None or not str(schema).strip()) and "." in name:
            schema, name = (part.strip() for part in name.rsplit(".", 1))
        arguments = self._normalize_arguments(parameters)
        target_schema = self.dialect.effective_schema(schema)

        def work(connection):
            routine = self._fetch_metadata(connection, name, target_schema)
            if routine is None:
                return self._invoke_fallback(connection, name, target_schema, arguments)
            return self._invoke(connection, routine, arguments)

        return await self.session.run(work, operation="invoke_routine", table=name, schema=target_schema)

    # ==================== Metadata ====================

    @staticmethod
    def _normalize_arguments(parameters: Optional[Mapping[str, Any]]) -> Dict[str, Tuple[str, Any]]:
        """Lower-cased bare name -> (bare name, value), in caller order."""
        arguments: Dict[str, Tuple[str, Any]] = {}
        for raw_name, value in (parameters or {}).items():
            bare = normalize_parameter_name(raw_name)
            if not bare:
                raise InvalidInput("Parameter names cannot be empty.")
            if bare.lower() in arguments:
                raise InvalidInput(f"Parameter '{bare}' is supplied more than once.")
            arguments[bare.lower()] = (bare, value)
        return arguments

    def _fetch_metadata(self, connection, name: str, schema: Optional[str]) -> Optional[RoutineMetadata]:
        """Kind and parameters from the catalog; None when there is no entry."""
        dialect = self.dialect
        lookup = {"name": name, "schema": schema}
        try:
            rows = run_query(connection, dialect.bind(dialect.routine_lookup_sql(), lookup), max_rows=1)
        except Exception as exc:
            logger.info(f"Catalog lookup for routine '{name}' failed, using call strategies: {exc}")
            connection.rollback()
            return None
        if not rows:
            return None

        kind = dialect.routine_kind_from_row(rows[0])
        lookup["routine_type"] = "PROCEDURE" if kind is RoutineKind.PROCEDURE else "FUNCTION"
        parameter_rows = run_query(connection, dialect.bind(dialect.routine_parameters_sql(), lookup))
        parameters = [p for p in (dialect.parameter_from_row(r) for r in parameter_rows) if p is not None]
        logger.debug(f"Routine '{name}' is a {kind.value} with {len(parameters)} parameter(s)")
        return RoutineMetadata(name=name, schema=schema, kind=kind, parameters=parameters)

    # ==================== Invocation ====================

    def _bind_arguments(self, routine: RoutineMetadata, arguments: Dict[str, Tuple[str, Any]]) -> Dict[str, BoundValue]:
        bound: Dict[str, BoundValue] = {}
        declared = set()
        for parameter in routine.parameters:
            key = parameter.name.lower()
            declared.add(key)
            if parameter.is_input and key in arguments:
                family = self.dialect.family_for(parameter.type_name)
                bound[key] = bind_routine_value(arguments[key][1], family, parameter.name)

        ignored = [arguments[key][0] for key in arguments if key not in declared]
        if ignored:
            logger.debug(f"Routine '{routine.name}' does not declare: {', '.join(ignored)}")
        return bound

    def _invoke(self, connection, routine: RoutineMetadata, arguments: Dict[str, Tuple[str, Any]]) -> List[Row]:
        call = self.dialect.build_routine_call(routine, self._bind_arguments(routine, arguments))

        for statement in call.setup:
            run_command(connection, statement)

        cursor = execute(connection, call.statement)
        try:
            result_sets = collect_result_sets(cursor, self.dialect.supports_nextset)
        finally:
            cursor.close()

        output_row: Optional[Row] = None
        if call.output_names:
            if call.outputs is not None:
                outputs = run_query(connection, call.outputs, max_rows=1)
            else:
                outputs = result_sets.pop() if result_sets else []
            output_row = outputs[0] if outputs else None

        rows = result_sets[0] if result_sets else []
        if output_row:
            if rows:
                rows[0].update(output_row)
            else:
                rows = [dict(output_row)]
        return rows

    def _invoke_fallback(
        self, connection, name: str, schema: Optional[str], arguments: Dict[str, Tuple[str, Any]]
    ) -> List[Row]:
        """Try each call strategy in order; the first that does not raise wins."""
        dialect = self.dialect
        qualified = dialect.quote_full_table_name(name, schema)
        values = {
            f"__v{index}": marshal_query_value(value, dialect.distinguishes_date)
            for index, (_, value) in enumerate(arguments.values())
        }

        last_error: Optional[BaseException] = None
        for label, sql in dialect.fallback_statements(qualified, len(values)):
            try:
                cursor = execute(connection, dialect.bind(sql, values))
                try:
                    result_sets = collect_result_sets(cursor, dialect.supports_nextset)
                finally:
                    cursor.close()
            except Exception as exc:
                logger.debug(f"Strategy '{label}' failed for routine '{name}': {exc}")
                last_error = exc
                connection.rollback()
                continue
            logger.info(f"Routine '{name}' invoked with the '{label}' strategy")
            return result_sets[0] if result_sets else []

        raise self.session.wrap_error(
            last_error, "invoke_routine", name, schema,
            message=f"Routine '{name}' could not be invoked with any call strategy: {last_error}",
        ) from last_error
