"""
Tests for generic table reads/writes over scripted connections.
"""
import pytest

from tablegate.config.settings import StaticConnectionSource
from tablegate.core.engine import DataAccessEngine
from tablegate.database.dialects import PostgreSQLDialect
from tablegate.errors import InvalidInput, OperationFailed

from conftest import FakeMySQLError, FakeOdbcError, FakePgError, FakeResult, run


ORDERS = FakeResult(["id", "total"], [(1, 10.5), (2, 3.0)])
MISSING = FakeOdbcError(208, "Invalid object name 'sales.orders'.", sqlstate="42S02")


class TestListRows:

    def test_default_limit_and_unit_of_work(self, make_engine, connection):
        connection.on("[dbo].[orders]", ORDERS)
        engine = make_engine("sqlserver", connection)

        rows = run(engine.list_rows("orders"))

        assert rows == [{"id": 1, "total": 10.5}, {"id": 2, "total": 3.0}]
        assert connection.statements == ["SELECT TOP (1000) * FROM [dbo].[orders]"]
        assert connection.commits == 1
        assert connection.closed

    @pytest.mark.parametrize("limit,expected", [(5, "LIMIT 5"), (0, "LIMIT 1000"), (-3, "LIMIT 1000"), ("x", "LIMIT 1000")])
    def test_limits(self, make_engine, connection, limit, expected):
        engine = make_engine("postgresql", connection)
        run(engine.list_rows("orders", limit=limit))
        assert connection.statements[0].endswith(expected)

    def test_configured_list_limit(self, make_engine, connection):
        engine = make_engine("mysql", connection, list_limit=25)
        run(engine.list_rows("orders"))
        assert connection.statements == ["SELECT * FROM `orders` LIMIT 25"]

    def test_empty_table(self, make_engine, connection):
        connection.on("orders", FakeResult(["id"], []))
        engine = make_engine("postgresql", connection)
        assert run(engine.list_rows("orders")) == []

    def test_blank_table_never_connects(self, make_engine, connection):
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput, match="table"):
            run(engine.list_rows("  "))
        assert connection.executed == []
        assert not connection.closed


class TestDefaultSchemaFallback:

    def test_missing_table_retried_in_default_schema(self, make_engine, connection):
        connection.on("[sales].[orders]", MISSING).on("[dbo].[orders]", ORDERS)
        engine = make_engine("sqlserver", connection)

        rows = run(engine.list_rows("orders", schema="sales"))

        assert len(rows) == 2
        assert connection.statements == [
            "SELECT TOP (1000) * FROM [sales].[orders]",
            "SELECT TOP (1000) * FROM [dbo].[orders]",
        ]
        assert connection.rollbacks == 1
        assert connection.commits == 1

    def test_both_schemas_missing(self, make_engine, connection):
        connection.on("orders", FakePgError("42P01", 'relation "orders" does not exist'))
        engine = make_engine("postgresql", connection)

        with pytest.raises(OperationFailed) as excinfo:
            run(engine.get_by_key("orders", "sales", "id", 1))

        error = excinfo.value
        assert "'sales'" in str(error)
        assert "'public'" in str(error)
        assert error.is_missing_object
        assert error.operation == "get_by_key"
        assert error.schema == "public"
        assert len(connection.executed) == 2

    def test_explicit_default_schema_is_not_retried(self, make_engine, connection):
        connection.on("orders", MISSING)
        engine = make_engine("sqlserver", connection)
        with pytest.raises(OperationFailed):
            run(engine.list_rows("orders", schema="DBO"))
        assert len(connection.executed) == 1

    def test_no_schema_is_not_retried(self, make_engine, connection):
        connection.on("orders", MISSING)
        engine = make_engine("sqlserver", connection)
        with pytest.raises(OperationFailed) as excinfo:
            run(engine.list_rows("orders"))
        assert len(connection.executed) == 1
        assert excinfo.value.operation == "list"
        assert excinfo.value.is_missing_object

    def test_other_errors_are_not_retried(self, make_engine, connection):
        connection.on("orders", FakeOdbcError(207, "Invalid column name 'x'."))
        engine = make_engine("sqlserver", connection)
        with pytest.raises(OperationFailed) as excinfo:
            run(engine.list_rows("orders", schema="sales"))
        assert len(connection.executed) == 1
        assert excinfo.value.error_code == 207
        assert not excinfo.value.is_missing_object

    def test_configured_default_schema(self, make_engine, connection):
        connection.on('"sales"."orders"', FakePgError("42P01")).on('"app"."orders"', ORDERS)
        engine = make_engine("postgresql", connection, default_schema="app")
        rows = run(engine.list_rows("orders", schema="sales"))
        assert len(rows) == 2


class TestWrites:

    def test_create_hashes_encrypted_fields(self, make_engine, connection, hasher):
        connection.on("INSERT", FakeResult(rowcount=1))
        engine = make_engine("postgresql", connection, hasher=hasher)

        created = run(engine.create("users", None, {"email": "a@b.c", "Password": "pw"}, encrypt_fields="password"))

        assert created is True
        sql, params = connection.executed[0]
        assert sql == 'INSERT INTO "public"."users" ("email", "Password") VALUES (%(p0)s, %(p1)s)'
        assert params == {"p0": "a@b.c", "p1": "$2b$04$wp"}
        assert hasher.hashed == ["pw"]
        assert connection.commits == 1

    def test_create_reports_no_row(self, make_engine, connection):
        connection.on("INSERT", FakeResult(rowcount=0))
        engine = make_engine("sqlserver", connection)
        assert run(engine.create("users", None, {"email": "a@b.c"})) is False

    def test_encryption_requires_hasher(self, make_engine, connection):
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput):
            run(engine.create("users", None, {"password": "pw"}, encrypt_fields=["password"]))
        assert connection.executed == []

    def test_empty_data(self, make_engine, connection):
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput, match="data"):
            run(engine.create("users", None, {}))

    def test_update_binds_values_then_key(self, make_engine, connection):
        connection.on("UPDATE", FakeResult(rowcount=3))
        engine = make_engine("sqlserver", connection)

        count = run(engine.update("orders", None, "status", "open", {"total": 5, "meta": {"a": 1}}))

        assert count == 3
        sql, params = connection.executed[0]
        assert sql == "UPDATE [dbo].[orders] SET [total] = ?, [meta] = ? WHERE [status] = ?"
        assert params == [5, '{"a": 1}', "open"]

    def test_update_matching_nothing(self, make_engine, connection):
        connection.on("UPDATE", FakeResult(rowcount=0))
        engine = make_engine("mysql", connection)
        assert run(engine.update("orders", None, "id", 99, {"total": 1})) == 0

    def test_writes_are_never_retried(self, make_engine, connection):
        connection.on("INSERT", MISSING)
        engine = make_engine("sqlserver", connection)

        with pytest.raises(OperationFailed) as excinfo:
            run(engine.create("orders", "sales", {"total": 1}))

        assert len(connection.executed) == 1
        assert excinfo.value.operation == "insert"
        assert excinfo.value.schema == "sales"
        assert connection.rollbacks == 1
        assert connection.commits == 0
        assert connection.closed

    def test_delete_of_referenced_row(self, make_engine, connection):
        connection.on("DELETE", FakeOdbcError(547, "The DELETE statement conflicted with the REFERENCE constraint."))
        engine = make_engine("sqlserver", connection)

        with pytest.raises(OperationFailed) as excinfo:
            run(engine.delete("customers", None, "id", 7))

        error = excinfo.value
        assert error.is_referenced_elsewhere
        assert error.error_code == 547
        assert error.operation == "delete"
        assert error.table == "customers"

    def test_delete_referenced_mysql(self, make_engine, connection):
        connection.on("DELETE", FakeMySQLError(1451, "Cannot delete or update a parent row"))
        engine = make_engine("mysql", connection)
        with pytest.raises(OperationFailed) as excinfo:
            run(engine.delete("customers", None, "id", 7))
        assert excinfo.value.is_referenced_elsewhere

    def test_delete_returns_count(self, make_engine, connection):
        connection.on("DELETE", FakeResult(rowcount=1))
        engine = make_engine("postgresql", connection)
        assert run(engine.delete("orders", "public", "id", 1)) == 1
        assert connection.executed[0] == ('DELETE FROM "public"."orders" WHERE "id" = %(key)s', {"key": 1})

    @pytest.mark.parametrize("key_value", [None, "", "   "])
    def test_blank_key_value(self, make_engine, connection, key_value):
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput, match="key_value"):
            run(engine.delete("orders", None, "id", key_value))


class TestPasswordHash:

    def test_fetches_single_column(self, make_engine, connection):
        connection.on("`users`", FakeResult(["password"], [("$2b$12$abc",)]))
        engine = make_engine("mysql", connection)

        value = run(engine.get_password_hash("users", None, "email", "password", "a@b.c"))

        assert value == "$2b$12$abc"
        assert connection.executed[0] == (
            "SELECT `password` FROM `users` WHERE `email` = %(key)s LIMIT 1",
            {"key": "a@b.c"},
        )

    def test_binary_hash_is_decoded(self, make_engine, connection):
        connection.on("users", FakeResult(["password"], [(b"$2b$12$abc",)]))
        engine = make_engine("sqlserver", connection)
        assert run(engine.get_password_hash("users", None, "email", "password", "a")) == "$2b$12$abc"

    @pytest.mark.parametrize("rows", [[], [(None,)]])
    def test_absent_user_or_null_hash(self, make_engine, connection, rows):
        connection.on("users", FakeResult(["password"], rows))
        engine = make_engine("sqlserver", connection)
        assert run(engine.get_password_hash("users", None, "email", "password", "a")) is None


class TestConnectionFailure:

    def test_connect_error_is_wrapped(self):
        def refuse(_):
            raise FakePgError("08001", "could not connect to server")

        engine = DataAccessEngine(PostgreSQLDialect(), StaticConnectionSource("host=nowhere"), connector=refuse)
        with pytest.raises(OperationFailed) as excinfo:
            run(engine.list_rows("orders"))
        assert "Could not connect" in str(excinfo.value)
        assert excinfo.value.error_code == "08001"
