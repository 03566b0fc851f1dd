"""
tablegate - Generic data access over SQL Server, PostgreSQL and MySQL

CRUD on any table by name, parameterized SQL, stored routines and schema
metadata, through one async engine per database.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("tablegate")
except PackageNotFoundError:
    # Package not installed (running from a source checkout)
    __version__ = "0.1.0"

from .config.settings import EngineSettings, SettingsConnectionSource, StaticConnectionSource, load_settings
from .core.engine import DataAccessEngine
from .core.marshalling import TypeFamily
from .database.dialects import ColumnDescriptor, DialectFactory, RoutineKind
from .errors import InvalidInput, NotAuthorized, OperationFailed, TablegateError
from .services import CrudService, PasswordCheck, QueryService
from .utils.hashing import BcryptHasher
from .utils.table_policy import ForbiddenTablesPolicy

__all__ = [
    "__version__",
    "BcryptHasher",
    "ColumnDescriptor",
    "CrudService",
    "DataAccessEngine",
    "DialectFactory",
    "EngineSettings",
    "ForbiddenTablesPolicy",
    "InvalidInput",
    "NotAuthorized",
    "OperationFailed",
    "PasswordCheck",
    "QueryService",
    "RoutineKind",
    "SettingsConnectionSource",
    "StaticConnectionSource",
    "TablegateError",
    "TypeFamily",
    "load_settings",
]
