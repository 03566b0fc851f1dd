"""
CRUD Service - Caller-facing table operations

Adds the request-level rules on top of TableAccess: argument trimming,
forbidden-table policy, default limits and password verification.
"""

from enum import Enum
from typing import Any, List, Mapping, Optional

from ..core.table_access import EncryptFields
from ..database.cursor_utils import Row
from ..errors import InvalidInput, NotAuthorized, require_text

import logging
logger = logging.getLogger(__name__)


class PasswordCheck(Enum):
    """Outcome of verify_password, with the HTTP-like status it maps to."""
    VALID = 200
    WRONG_PASSWORD = 401
    USER_NOT_FOUND = 404

    @property
    def message(self) -> str:
        return {
            PasswordCheck.VALID: "Valid credentials.",
            PasswordCheck.WRONG_PASSWORD: "Wrong password.",
            PasswordCheck.USER_NOT_FOUND: "User not found.",
        }[self]


def _optional_schema(schema: Optional[str]) -> Optional[str]:
    return schema.strip() if schema and schema.strip() else None


class CrudService:
    """
    Table operations guarded by a TablePolicy.

    Usage:
        service = CrudService(engine, ForbiddenTablesPolicy(["secrets"]))
        rows = await service.list_rows("orders", limit=0)  # default limit
        outcome = await service.verify_password("users", None, "email", "password", "a@b.c", "pw")
    """

    def __init__(self, engine, policy=None):
        """
        Initialize the service.

        Args:
            engine: DataAccessEngine
            policy: TablePolicy (every table allowed when None)
        """
        self.engine = engine
        self.policy = policy

    def _check_table(self, table: str) -> str:
        table = require_text(table, "table")
        if self.policy is not None and not self.policy.is_allowed(table):
            logger.info(f"Access to table '{table}' refused by policy")
            raise NotAuthorized(f"Table '{table}' is restricted and cannot be accessed.")
        return table

    async def list_rows(self, table: str, schema: Optional[str] = None, limit: Optional[int] = None) -> List[Row]:
        table = self._check_table(table)
        # TableAccess normalizes the limit
        return await self.engine.list_rows(table, _optional_schema(schema), limit)

    async def get_by_key(self, table: str, schema: Optional[str], key_column: str, key_value: Any) -> List[Row]:
        table = self._check_table(table)
        return await self.engine.get_by_key(
            table, _optional_schema(schema), require_text(key_column, "key_column"), _trim(key_value))

    async def create(self, table: str, schema: Optional[str], data: Mapping[str, Any],
                     encrypt_fields: EncryptFields = None) -> bool:
        table = self._check_table(table)
        if not data:
            raise InvalidInput("'data' cannot be empty.")
        return await self.engine.create(table, _optional_schema(schema), data, encrypt_fields)

    async def update(self, table: str, schema: Optional[str], key_column: str, key_value: Any,
                     data: Mapping[str, Any], encrypt_fields: EncryptFields = None) -> int:
        table = self._check_table(table)
        if not data:
            raise InvalidInput("'data' cannot be empty.")
        return await self.engine.update(
            table, _optional_schema(schema), require_text(key_column, "key_column"), _trim(key_value),
            data, encrypt_fields)

    async def delete(self, table: str, schema: Optional[str], key_column: str, key_value: Any) -> int:
        table = self._check_table(table)
        return await self.engine.delete(
            table, _optional_schema(schema), require_text(key_column, "key_column"), _trim(key_value))

    async def verify_password(
        self,
        table: str,
        schema: Optional[str],
        user_column: str,
        password_column: str,
        user_value: str,
        password: str,
    ) -> PasswordCheck:
        """
        Check a password against the hash stored for a user.

        Returns:
            PasswordCheck.USER_NOT_FOUND when no hash is stored for the user,
            WRONG_PASSWORD when it does not match, VALID otherwise
        """
        table = self._check_table(table)
        user_column = require_text(user_column, "user_column")
        password_column = require_text(password_column, "password_column")
        user_value = require_text(user_value, "user_value")
        if password is None or not str(password).strip():
            raise InvalidInput("'password' cannot be empty.")
        if self.engine.hasher is None:
            raise InvalidInput("Password verification needs a hasher.")

        stored = await self.engine.get_password_hash(
            table, _optional_schema(schema), user_column, password_column, user_value)
        if stored is None:
            return PasswordCheck.USER_NOT_FOUND
        if self.engine.hasher.verify(password, stored):
            return PasswordCheck.VALID
        return PasswordCheck.WRONG_PASSWORD


def _trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value
