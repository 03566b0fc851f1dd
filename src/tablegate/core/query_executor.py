"""
Query Executor - Caller-supplied parameterized SQL

Runs SQL text written with ``@name`` markers against any dialect, and
validates such text without executing it.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..constants import DEFAULT_MAX_ROWS
from ..database.cursor_utils import Row, run_query
from ..database.sql_text import normalize_parameter_name
from ..errors import InvalidInput, TablegateError, require_text
from .marshalling import marshal_query_value

import logging
logger = logging.getLogger(__name__)


class QueryExecutor:
    """
    Executes and validates caller-supplied SQL.

    Usage:
        executor = QueryExecutor(session)
        rows = await executor.execute_parameterized(
            "SELECT * FROM orders WHERE customer = @customer", {"@customer": 42})
        ok, message = await executor.validate("SELECT * FROM nowhere", {})
    """

    def __init__(self, session, max_rows: int = DEFAULT_MAX_ROWS):
        self.session = session
        self.dialect = session.dialect
        self.max_rows = max_rows

    def _bind_values(self, parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Strip markers from names and marshal values; names must stay unique."""
        values: Dict[str, Any] = {}
        seen = set()
        for name, value in (parameters or {}).items():
            key = normalize_parameter_name(name)
            if not key:
                raise InvalidInput("Parameter names cannot be empty.")
            if key.lower() in seen:
                raise InvalidInput(f"Parameter '{key}' is supplied more than once.")
            seen.add(key.lower())
            values[key] = marshal_query_value(value, self.dialect.distinguishes_date)
        return values

    async def execute_parameterized(
        self,
        sql_text: str,
        parameters: Optional[Mapping[str, Any]] = None,
        max_rows: Optional[int] = None,
    ) -> List[Row]:
        """
        Execute SQL text and return at most ``max_rows`` rows.

        Args:
            sql_text: SQL with ``@name`` markers
            parameters: Marker values; names may carry a leading ``@`` or ``:``
            max_rows: Row cap (default 10000)

        Returns:
            Rows of the first result set with columns
        """
        sql_text = require_text(sql_text, "sql_text")
        values = self._bind_values(parameters)
        limit = max_rows if max_rows and max_rows > 0 else self.max_rows
        statement = self.dialect.bind(sql_text, values)
        logger.debug(f"execute_parameterized with {len(values)} parameter(s)")

        return await self.session.run(
            lambda connection: run_query(connection, statement, max_rows=limit,
                                         supports_nextset=self.dialect.supports_nextset),
            operation="query",
        )

    async def validate(self, sql_text: str, parameters: Optional[Mapping[str, Any]] = None) -> Tuple[bool, Optional[str]]:
        """
        Check SQL text without executing it; never raises.

        Returns:
            (True, None) when valid, (False, message) otherwise
        """
        if sql_text is None or not str(sql_text).strip():
            return False, "The query cannot be empty."
        try:
            values = self._bind_values(parameters)
            return await self.session.run(
                lambda connection: self.dialect.validate(connection, sql_text, values),
                operation="validate",
                commit=False,
            )
        except TablegateError as exc:
            return False, str(exc)
