"""
Pytest configuration and fixtures for tablegate tests.

Provides an in-memory DB-API connection whose responses are scripted per
SQL fragment, plus helpers to build engines on top of it.
"""
import asyncio

import pytest

from tablegate.config.settings import StaticConnectionSource
from tablegate.core.engine import DataAccessEngine
from tablegate.database.dialects import DialectFactory


class FakeResult:
    """One result set (or a row count when columns is None)."""

    def __init__(self, columns=None, rows=(), rowcount=-1):
        self.columns = columns
        self.rows = [tuple(r) for r in rows]
        self.rowcount = rowcount


class FakeCursor:
    """DB-API cursor replaying the outcome scripted on its connection."""

    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self.rowcount = -1
        self.closed = False
        self._pending = []
        self._rows = []

    def execute(self, sql, params=None):
        self.connection.executed.append((sql, params))
        outcome = self.connection.respond(sql, params)
        if isinstance(outcome, BaseException):
            raise outcome
        results = list(outcome) if isinstance(outcome, (list, tuple)) else [outcome]
        self._pending = results[1:]
        self._load(results[0] if results else FakeResult())

    def _load(self, result):
        if result.columns:
            self.description = [(c, None, None, None, None, None, None) for c in result.columns]
        else:
            self.description = None
        self._rows = list(result.rows)
        self.rowcount = result.rowcount

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def fetchmany(self, size=1):
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    def nextset(self):
        if not self._pending:
            return None
        self._load(self._pending.pop(0))
        return True

    def close(self):
        self.closed = True


class FakeConnection:
    """
    Scripted DB-API connection.

    ``on(fragment, outcome)`` answers every statement containing
    ``fragment`` with ``outcome``: a FakeResult, a list of them (several
    result sets), an exception instance to raise, or a callable
    ``(sql, params) -> outcome``. The first matching rule wins.
    """

    def __init__(self):
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self._rules = []

    def on(self, fragment, outcome):
        self._rules.append((fragment, outcome))
        return self

    def respond(self, sql, params):
        for fragment, outcome in self._rules:
            if fragment in sql:
                if callable(outcome) and not isinstance(outcome, BaseException):
                    return outcome(sql, params)
                return outcome
        return FakeResult()

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True

    @property
    def statements(self):
        return [sql for sql, _ in self.executed]


class FakeOdbcError(Exception):
    """Shape of a pyodbc error: (sqlstate, diagnostic message)."""

    def __init__(self, number, message="Statement failed.", sqlstate="42000"):
        super().__init__(
            sqlstate,
            f"[{sqlstate}] [Microsoft][ODBC Driver 18 for SQL Server][SQL Server]{message} "
            f"({number}) (SQLExecDirectW)",
        )


class FakePgError(Exception):
    """Shape of a psycopg2 error: message plus pgcode."""

    def __init__(self, pgcode, message="ERROR: statement failed"):
        super().__init__(message)
        self.pgcode = pgcode


class FakeMySQLError(Exception):
    """Shape of a PyMySQL error: (errno, message)."""

    def __init__(self, errno, message="statement failed"):
        super().__init__(errno, message)


class FakeHasher:
    """Deterministic OneWayHash (bcrypt-shaped prefix, reversible on purpose)."""

    def __init__(self):
        self.hashed = []

    def hash(self, plaintext):
        self.hashed.append(plaintext)
        return "$2b$04$" + plaintext[::-1]

    def verify(self, plaintext, hashed):
        return hashed == "$2b$04$" + plaintext[::-1]


def run(coroutine):
    """Drive a coroutine to completion."""
    return asyncio.run(coroutine)


@pytest.fixture
def connection():
    """A fresh scripted connection."""
    return FakeConnection()


@pytest.fixture
def hasher():
    return FakeHasher()


@pytest.fixture
def make_engine():
    """Build a DataAccessEngine for a provider over a given fake connection."""
    def _make(provider, connection, hasher=None, default_schema=None, **kwargs):
        dialect = DialectFactory.create(provider, default_schema=default_schema)
        return DataAccessEngine(
            dialect,
            StaticConnectionSource("fake://"),
            hasher=hasher,
            connector=lambda _: connection,
            **kwargs,
        )
    return _make
