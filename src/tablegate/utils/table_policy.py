"""
Table Policy - Which tables callers may reach
"""

from typing import Iterable, List, Optional, Protocol, runtime_checkable

import logging
logger = logging.getLogger(__name__)


@runtime_checkable
class TablePolicy(Protocol):
    """Decides whether a table may be accessed."""

    def is_allowed(self, table: str) -> bool:
        ...


class ForbiddenTablesPolicy:
    """
    Deny-list of table names, compared case-insensitively.

    Usage:
        policy = ForbiddenTablesPolicy(["users_secrets", "Audit_Log"])
        policy.is_allowed("AUDIT_LOG")  # False
    """

    def __init__(self, tables: Optional[Iterable[str]] = None):
        self._tables = {t.strip().lower() for t in (tables or []) if t and t.strip()}
        if self._tables:
            logger.debug(f"{len(self._tables)} forbidden table(s) configured")

    @classmethod
    def from_settings(cls, settings) -> "ForbiddenTablesPolicy":
        return cls(settings.forbidden_tables)

    @property
    def forbidden_tables(self) -> List[str]:
        return sorted(self._tables)

    @property
    def has_restrictions(self) -> bool:
        return bool(self._tables)

    def is_allowed(self, table: str) -> bool:
        """Blank names are never allowed."""
        if not table or not table.strip():
            return False
        return table.strip().lower() not in self._tables
