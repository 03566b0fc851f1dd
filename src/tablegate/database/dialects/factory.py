"""
Dialect Factory - Create the dialect for a configured provider
"""

from typing import Dict, List, Optional, Type

from ...constants import PROVIDER_ALIASES, normalize_provider
from .base import DatabaseDialect

import logging
logger = logging.getLogger(__name__)


class DialectFactory:
    """
    Factory for creating database dialects.

    Usage:
        dialect = DialectFactory.create("SqlServerExpress", default_schema="sales")
        sql = dialect.select_rows_sql("orders", "sales", 100)
    """

    # Registry of supported providers (canonical keys and aliases)
    _dialects: Dict[str, Type[DatabaseDialect]] = {}

    @classmethod
    def create(
        cls,
        provider: str,
        default_schema: Optional[str] = None,
        connect_timeout: Optional[int] = None
    ) -> Optional[DatabaseDialect]:
        """
        Create a dialect for the given provider name.

        Args:
            provider: Provider name or alias (sqlserver, localdb, postgres, mariadb, ...)
            default_schema: Overrides the database's default schema
            connect_timeout: Login timeout in seconds

        Returns:
            DatabaseDialect instance or None if the provider is not supported
        """
        dialect_class = cls._dialects.get(normalize_provider(provider))
        if dialect_class is None:
            logger.warning(f"No dialect for provider: {provider}")
            return None

        return dialect_class(default_schema=default_schema, connect_timeout=connect_timeout)

    @classmethod
    def is_supported(cls, provider: str) -> bool:
        """Check if a provider name is supported."""
        return normalize_provider(provider) in cls._dialects

    @classmethod
    def supported_types(cls) -> List[str]:
        """Get list of supported provider names."""
        return list(cls._dialects.keys())

    @classmethod
    def register(cls, provider: str, dialect_class: Type[DatabaseDialect]):
        """
        Register a new dialect type.

        Args:
            provider: Provider identifier
            dialect_class: DatabaseDialect subclass
        """
        cls._dialects[provider.lower()] = dialect_class
        logger.debug(f"Registered dialect for: {provider}")


def _register_default_dialects():
    """Register built-in dialects under every alias. Called on module import."""
    from .sqlserver_dialect import SQLServerDialect
    from .postgresql_dialect import PostgreSQLDialect
    from .mysql_dialect import MySQLDialect

    by_provider = {
        SQLServerDialect.name: SQLServerDialect,
        PostgreSQLDialect.name: PostgreSQLDialect,
        MySQLDialect.name: MySQLDialect,
    }
    for alias, provider in PROVIDER_ALIASES.items():
        DialectFactory.register(alias, by_provider[provider])


# Register on module import
_register_default_dialects()
