"""
Type Marshalling - External values to driver bind values and back

Values arrive from callers as JSON-like Python objects (str, int, float,
bool, None, dict, list) and leave the engine as plain scalars. This module
holds the conversions in both directions plus the closed set of declared
type families the routine invoker dispatches on.
"""

import json
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional, Set, Union

from ..errors import InvalidInput

import logging
logger = logging.getLogger(__name__)


class TypeFamily(Enum):
    """Declared-type families a catalog type name maps to."""
    JSON = "json"
    INTEGER = "integer"
    BIG_INTEGER = "big_integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BINARY = "binary"
    UUID = "uuid"
    TEXT = "text"


@dataclass
class BoundValue:
    """A routine argument after conversion, with the family it was bound as."""
    value: Any
    family: TypeFamily


_TRUE_WORDS = ("true", "1", "yes", "y", "on")
_FALSE_WORDS = ("false", "0", "no", "n", "off")

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


# ==================== Write / Query Direction ====================

def is_midnight(value: Any) -> bool:
    """True for a datetime whose time part is exactly 00:00:00."""
    return isinstance(value, datetime) and value.time() == time(0, 0) and value.tzinfo is None


def to_bind_value(value: Any) -> Any:
    """
    Convert a caller value to something every DB-API driver can bind.

    dict/list become JSON text, bytearray/memoryview become bytes, the rest
    is passed through.
    """
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def marshal_query_value(value: Any, distinguishes_date: bool) -> Any:
    """
    Bind value for a caller-supplied query parameter.

    Args:
        value: Caller value
        distinguishes_date: Whether the dialect has separate DATE and
            DATETIME types (a midnight datetime is then sent as a date)
    """
    value = to_bind_value(value)
    if distinguishes_date and is_midnight(value):
        return value.date()
    return value


def parse_encrypt_fields(directive: Union[None, str, Iterable[str]]) -> Set[str]:
    """
    Normalise an encryption directive to a set of lower-cased field names.

    Accepts None, a comma-separated string or any iterable of names.
    """
    if directive is None:
        return set()
    if isinstance(directive, str):
        names = directive.split(",")
    else:
        names = list(directive)
    return {str(name).strip().lower() for name in names if name is not None and str(name).strip()}


# ==================== Routine Arguments ====================

def _looks_like_json(value: Any) -> bool:
    return isinstance(value, str) and value.strip()[:1] in ("{", "[")


def _to_int(value: Any, parameter: str) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise InvalidInput(f"Parameter '{parameter}' expects an integer, got {value!r}.")
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        raise InvalidInput(f"Parameter '{parameter}' expects an integer, got {value!r}.")
    text = str(value).strip()
    if _INTEGER_RE.match(text):
        return int(text)
    raise InvalidInput(f"Parameter '{parameter}' expects an integer, got {value!r}.")


def _to_decimal(value: Any, parameter: str) -> Decimal:
    if isinstance(value, bool):
        return Decimal(int(value))
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidInput(f"Parameter '{parameter}' expects a decimal number, got {value!r}.")
    if not result.is_finite():
        raise InvalidInput(f"Parameter '{parameter}' expects a finite decimal number, got {value!r}.")
    return result


def _to_float(value: Any, parameter: str) -> float:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"Parameter '{parameter}' expects a number, got {value!r}.")


def _to_bool(value: Any, parameter: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise InvalidInput(f"Parameter '{parameter}' expects a boolean, got {value!r}.")


def _to_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date() if is_midnight(value) else value
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return _to_date(datetime.fromisoformat(text))
        except ValueError:
            return text  # let the server parse it
    return value


def _to_datetime(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return value
    return value


def bind_routine_value(value: Any, family: TypeFamily, parameter: str = "?") -> BoundValue:
    """
    Convert a caller value for a routine parameter of the given family.

    JSON-looking text (trimmed value starting with ``{`` or ``[``) is bound
    as JSON whatever the declared family. Absent values bind as SQL NULL.

    Args:
        value: Caller value
        family: Declared type family of the parameter
        parameter: Parameter name, for error messages

    Returns:
        BoundValue

    Raises:
        InvalidInput: When a numeric or boolean value cannot be parsed
    """
    if value is None:
        return BoundValue(None, family)
    if isinstance(value, (dict, list)):
        return BoundValue(json.dumps(value, default=str), TypeFamily.JSON)
    if _looks_like_json(value):
        return BoundValue(value, TypeFamily.JSON)

    if family in (TypeFamily.INTEGER, TypeFamily.BIG_INTEGER):
        return BoundValue(_to_int(value, parameter), family)
    if family is TypeFamily.DECIMAL:
        return BoundValue(_to_decimal(value, parameter), family)
    if family is TypeFamily.FLOAT:
        return BoundValue(_to_float(value, parameter), family)
    if family is TypeFamily.BOOLEAN:
        return BoundValue(_to_bool(value, parameter), family)
    if family is TypeFamily.DATE:
        return BoundValue(_to_date(value), family)
    if family is TypeFamily.DATETIME:
        return BoundValue(_to_datetime(value), family)
    return BoundValue(to_bind_value(value), family)


# ==================== Read Direction ====================

def normalize_row_value(value: Any) -> Any:
    """Driver value to Row scalar (binary buffers become bytes)."""
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


# ==================== JSON Request Values ====================

def infer_scalar_from_text(text: str) -> Any:
    """
    Detect the scalar a JSON string value stands for.

    Tried in order: integer, float, boolean (true/false), ISO datetime.
    Anything else, including UUID text, stays a string (the drivers bind
    UUID columns from their text form).
    """
    stripped = text.strip()
    if _INTEGER_RE.match(stripped):
        return int(stripped)
    if _FLOAT_RE.match(stripped):
        return float(stripped)
    lowered = stripped.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _ISO_DATE_RE.match(stripped):
        try:
            return datetime.fromisoformat(stripped)
        except ValueError:
            pass
    return text


def from_json_value(value: Any, detect_types: bool = False) -> Optional[Any]:
    """
    Convert a decoded JSON value to an engine value.

    Args:
        value: Value produced by ``json.loads``
        detect_types: Run string values through infer_scalar_from_text

    Returns:
        Scalar; objects and arrays are re-serialized to JSON text
    """
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if detect_types and isinstance(value, str):
        return infer_scalar_from_text(value)
    return value
