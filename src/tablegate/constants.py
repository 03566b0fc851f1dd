"""
Constants - Shared defaults for the data-access engine

Centralises the values that were previously scattered as magic numbers:
row limits, hashing cost bounds, provider aliases and the system schemas
that never show up in metadata listings.
"""

# ==================== Row Limits ====================

# Rows returned by list_rows when the caller gives no (valid) limit
DEFAULT_LIST_LIMIT = 1000

# Hard cap on rows materialized by execute_parameterized
DEFAULT_MAX_ROWS = 10000

# ==================== Hashing ====================

DEFAULT_HASH_COST = 12
MIN_HASH_COST = 4
MAX_HASH_COST = 31

# Prefix shared by every bcrypt hash ($2a$, $2b$, $2y$)
BCRYPT_PREFIX = "$2"

# ==================== Providers ====================

SQLSERVER = "sqlserver"
POSTGRESQL = "postgresql"
MYSQL = "mysql"

# Configuration spellings accepted for each dialect
PROVIDER_ALIASES = {
    "sqlserver": SQLSERVER,
    "sqlserverexpress": SQLSERVER,
    "localdb": SQLSERVER,
    "mssql": SQLSERVER,
    "postgres": POSTGRESQL,
    "postgresql": POSTGRESQL,
    "mysql": MYSQL,
    "mariadb": MYSQL,
}


def normalize_provider(name: str) -> str:
    """
    Map a configured provider name to its canonical dialect key.

    Args:
        name: Provider name as written in configuration (any case)

    Returns:
        Canonical key (sqlserver, postgresql, mysql) or the lower-cased
        input when it is not a known alias
    """
    key = (name or "").strip().lower()
    return PROVIDER_ALIASES.get(key, key)


# ==================== Configuration ====================

CONFIG_ENV_VAR = "TABLEGATE_CONFIG"
PROVIDER_ENV_VAR = "TABLEGATE_PROVIDER"
CONNECTION_STRING_ENV_VAR = "TABLEGATE_CONNECTION_STRING"
DEFAULT_CONFIG_FILE = "tablegate.yaml"
