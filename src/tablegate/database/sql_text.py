"""
SQL Text Helpers - Named-marker binding and statement classification

The engine and its callers write parameters as ``@name`` markers whatever
the target database is. Before a statement reaches the driver the markers
are rewritten to the driver's paramstyle:

- qmark (pyodbc): ``?`` plus a positional list, a value repeated when its
  name appears several times
- pyformat (psycopg2, PyMySQL): ``%(name)s`` plus a dict, with every
  literal ``%`` doubled

String literals (including PostgreSQL ``$tag$`` and ``E'...'`` forms), quoted
identifiers, comments (``#`` too on MySQL) and ``@@`` system names are
copied untouched, as are markers whose name was not supplied (T-SQL local
variables, MySQL session variables).
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import sqlparse

import logging
logger = logging.getLogger(__name__)

QMARK = "qmark"
PYFORMAT = "pyformat"

# $$ or $tag$; a tag never starts with a digit ($1 is a positional parameter)
_DOLLAR_QUOTE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


@dataclass
class BoundStatement:
    """A statement ready for ``cursor.execute``."""
    sql: str
    params: Any = None  # list (qmark), dict (pyformat) or None when unbound

    def execute_args(self) -> Tuple[Any, ...]:
        """Arguments for ``cursor.execute(*args)``."""
        if self.params is None:
            return (self.sql,)
        return (self.sql, self.params)


def normalize_parameter_name(name: Any) -> str:
    """Strip whitespace and a single leading ``@`` or ``:`` marker."""
    text = str(name).strip()
    if text[:1] in ("@", ":"):
        text = text[1:]
    return text


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def _scan_quoted(sql: str, start: int, close: str, backslash_escapes: bool) -> int:
    """Return the index just past the quoted region opened at ``start``."""
    i = start + 1
    length = len(sql)
    while i < length:
        ch = sql[i]
        if backslash_escapes and ch == "\\":
            i += 2
            continue
        if ch == close:
            if i + 1 < length and sql[i + 1] == close:
                # Doubled closing char ('' or ]]) stays inside the region
                i += 2
                continue
            return i + 1
        i += 1
    return length


def bind_named_markers(
    sql: str,
    values: Mapping[str, Any],
    paramstyle: str,
    string_quotes: Sequence[str] = ("'",),
    identifier_quotes: Sequence[Tuple[str, str]] = (('"', '"'),),
    backslash_escapes: bool = False,
    dollar_quotes: bool = False,
    escape_strings: bool = False,
    hash_comments: bool = False,
) -> BoundStatement:
    """
    Rewrite ``@name`` markers to driver placeholders.

    Args:
        sql: Statement text with ``@name`` markers
        values: Marker values keyed by name (matched case-insensitively)
        paramstyle: ``qmark`` or ``pyformat``
        string_quotes: Characters opening a string literal
        identifier_quotes: (open, close) pairs of quoted identifiers
        backslash_escapes: Whether ``\\`` escapes the next char in literals
        dollar_quotes: Treat ``$$...$$`` and ``$tag$...$tag$`` as literals
        escape_strings: ``E'...'`` literals honour ``\\`` escapes
        hash_comments: ``#`` starts a comment running to end of line

    Returns:
        BoundStatement; ``params`` is None (and the text unchanged) when no
        marker matched a supplied value
    """
    lookup: Dict[str, str] = {}
    for key in values:
        lookup[normalize_parameter_name(key).lower()] = key

    closers = {q: q for q in string_quotes}
    closers.update(dict(identifier_quotes))
    escape_percent = paramstyle == PYFORMAT

    out: List[str] = []
    positional: List[Any] = []
    named: Dict[str, Any] = {}
    bound = 0
    i = 0
    length = len(sql)

    def emit(text: str) -> None:
        out.append(text.replace("%", "%%") if escape_percent else text)

    while i < length:
        ch = sql[i]
        after_word = i > 0 and (_is_word_char(sql[i - 1]) or sql[i - 1] == "$")

        if (escape_strings and ch in "Ee" and sql.startswith("'", i + 1)
                and not after_word):
            end = _scan_quoted(sql, i + 1, "'", True)
            emit(sql[i:end])
            i = end
            continue

        if dollar_quotes and ch == "$" and not after_word:
            match = _DOLLAR_QUOTE.match(sql, i)
            if match:
                close = sql.find(match.group(0), match.end())
                end = length if close == -1 else close + len(match.group(0))
                emit(sql[i:end])
                i = end
                continue

        if hash_comments and ch == "#":
            end = sql.find("\n", i)
            end = length if end == -1 else end
            emit(sql[i:end])
            i = end
            continue

        if ch in closers:
            end = _scan_quoted(sql, i, closers[ch],
                               backslash_escapes and ch in string_quotes)
            emit(sql[i:end])
            i = end
            continue

        if ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end
            emit(sql[i:end])
            i = end
            continue

        if ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
            emit(sql[i:end])
            i = end
            continue

        if ch == "@":
            if sql.startswith("@@", i):
                # System name (@@ROWCOUNT, @@IDENTITY): copy as-is
                end = i + 2
                while end < length and _is_word_char(sql[end]):
                    end += 1
                emit(sql[i:end])
                i = end
                continue

            end = i + 1
            while end < length and _is_word_char(sql[end]):
                end += 1
            name = sql[i + 1:end]
            key = lookup.get(name.lower()) if name else None
            if key is None:
                emit(sql[i:end])
            elif paramstyle == QMARK:
                out.append("?")
                positional.append(values[key])
                bound += 1
            else:
                placeholder = normalize_parameter_name(key)
                out.append(f"%({placeholder})s")
                named[placeholder] = values[key]
                bound += 1
            i = end
            continue

        emit(ch)
        i += 1

    if bound == 0:
        return BoundStatement(sql)
    if paramstyle == QMARK:
        return BoundStatement("".join(out), positional)
    return BoundStatement("".join(out), named)


# ==================== Statement Classification ====================

def statement_type(sql: str) -> str:
    """
    Return the upper-cased leading keyword family of the first statement.

    Uses sqlparse, so comments are ignored. ``WITH`` (CTE) statements are
    reported as ``WITH`` since sqlparse classifies them by their final DML.

    Returns:
        SELECT, INSERT, UPDATE, DELETE, REPLACE, WITH, CREATE, ... or
        UNKNOWN when nothing could be classified
    """
    if not sql or not sql.strip():
        return "UNKNOWN"

    cleaned = sqlparse.format(sql, strip_comments=True).strip()
    parsed = sqlparse.parse(cleaned)
    if not parsed:
        return "UNKNOWN"

    statement = parsed[0]
    first = statement.token_first(skip_ws=True, skip_cm=True)
    if first is not None and first.normalized.upper() == "WITH":
        return "WITH"

    kind = statement.get_type()
    if kind and kind != "UNKNOWN":
        return kind.upper()
    if first is not None:
        return first.normalized.split()[0].upper()
    return "UNKNOWN"


def is_read_only_statement(sql: str) -> bool:
    """True when the statement starts with SELECT or WITH."""
    return statement_type(sql) in ("SELECT", "WITH")
