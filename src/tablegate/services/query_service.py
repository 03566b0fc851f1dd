"""
Query Service - Caller-facing SQL and routine execution

Request-level rules around the query executor and routine invoker:
- only read-only statements (SELECT / WITH) may be executed as queries
- text naming a forbidden table is refused
- JSON parameter values are converted (numbers, booleans and ISO dates
  hidden in strings are detected; objects and arrays become JSON text)
- routine parameters listed for encryption are hashed before the call,
  unless they already hold a bcrypt hash
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.marshalling import from_json_value, parse_encrypt_fields
from ..core.table_access import EncryptFields
from ..database.cursor_utils import Row
from ..database.sql_text import is_read_only_statement, normalize_parameter_name
from ..errors import InvalidInput, NotAuthorized
from ..utils.hashing import looks_hashed

import logging
logger = logging.getLogger(__name__)

_PARAMETER_NAME_RE = re.compile(r"^[@:]?\w+$")


def convert_json_parameters(parameters: Optional[Mapping[str, Any]], detect_types: bool = True) -> Dict[str, Any]:
    """
    Convert decoded JSON parameters to engine values.

    Args:
        parameters: Name -> value as produced by ``json.loads``
        detect_types: Detect numbers, booleans and dates inside strings

    Returns:
        Name (``@`` prefixed) -> value

    Raises:
        InvalidInput: A parameter name is not a word (``^@?\\w+$``)
    """
    converted: Dict[str, Any] = {}
    for name, value in (parameters or {}).items():
        name = str(name).strip()
        if not _PARAMETER_NAME_RE.match(name):
            raise InvalidInput(f"Invalid parameter name '{name}'.")
        converted["@" + normalize_parameter_name(name)] = from_json_value(value, detect_types)
    return converted


class QueryService:
    """
    Executes caller SQL and routines under the service rules.

    Usage:
        service = QueryService(engine, ForbiddenTablesPolicy(["secrets"]))
        rows = await service.execute_query("SELECT * FROM orders WHERE total > @min", {"min": "100"})
    """

    def __init__(self, engine, policy=None, hasher=None):
        """
        Initialize the service.

        Args:
            engine: DataAccessEngine
            policy: ForbiddenTablesPolicy (or any policy exposing
                ``forbidden_tables``); no text check when None
            hasher: OneWayHash for encrypted routine parameters
                (defaults to the engine's)
        """
        self.engine = engine
        self.policy = policy
        self.hasher = hasher or engine.hasher

    def check_query(self, sql_text: str) -> Tuple[bool, Optional[str]]:
        """
        Apply the read-only and forbidden-table rules.

        Returns:
            (True, None) when the text may run, (False, reason) otherwise
        """
        if sql_text is None or not sql_text.strip():
            return False, "The query cannot be empty."
        if not is_read_only_statement(sql_text):
            return False, "Only SELECT queries are allowed."
        for table in getattr(self.policy, "forbidden_tables", ()):
            if re.search(rf"(?<!\w){re.escape(table)}(?!\w)", sql_text, re.IGNORECASE):
                return False, f"The query accesses the forbidden table '{table}'."
        return True, None

    async def execute_query(
        self,
        sql_text: str,
        parameters: Optional[Mapping[str, Any]] = None,
        max_rows: Optional[int] = None,
    ) -> List[Row]:
        """
        Run a read-only query with JSON parameters.

        Raises:
            InvalidInput: Empty or non-SELECT text, bad parameter names
            NotAuthorized: The text names a forbidden table
        """
        allowed, reason = self.check_query(sql_text)
        if not allowed:
            if sql_text and sql_text.strip() and is_read_only_statement(sql_text):
                raise NotAuthorized(reason)
            raise InvalidInput(reason)
        return await self.engine.execute_parameterized(sql_text, convert_json_parameters(parameters), max_rows)

    async def validate_query(self, sql_text: str, parameters: Optional[Mapping[str, Any]] = None) -> Tuple[bool, Optional[str]]:
        """Validate text without running it (never raises)."""
        try:
            values = convert_json_parameters(parameters)
        except InvalidInput as exc:
            return False, str(exc)
        return await self.engine.validate(sql_text, values)

    async def invoke_routine(
        self,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        schema: Optional[str] = None,
        encrypt_fields: EncryptFields = None,
    ) -> List[Row]:
        """
        Invoke a routine with JSON parameters.

        Args:
            name: Routine name
            parameters: Name -> JSON value
            schema: Routine schema
            encrypt_fields: Parameter names whose text values are hashed
        """
        values = convert_json_parameters(parameters, detect_types=False)
        fields = parse_encrypt_fields(encrypt_fields)
        if fields:
            if self.hasher is None:
                raise InvalidInput("Encrypted parameters were requested but no hasher is configured.")
            for key, value in values.items():
                if normalize_parameter_name(key).lower() not in fields:
                    continue
                if isinstance(value, str) and value.strip() and not looks_hashed(value):
                    values[key] = self.hasher.hash(value)
        return await self.engine.invoke_routine(name, values, schema)
