"""
Services - request-level rules over the engine.
"""

from .crud_service import CrudService, PasswordCheck
from .query_service import QueryService, convert_json_parameters

__all__ = ["CrudService", "PasswordCheck", "QueryService", "convert_json_parameters"]
