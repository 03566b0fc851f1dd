"""
Tests for stored procedure / function invocation.
"""
from decimal import Decimal

import pytest

from tablegate.errors import InvalidInput, OperationFailed

from conftest import FakeOdbcError, FakePgError, FakeResult, run


SQLSERVER_PARAMETER_COLUMNS = [
    "parameter_name", "parameter_mode", "data_type", "max_length", "numeric_precision", "numeric_scale",
]
PG_PARAMETER_COLUMNS = [
    "parameter_name", "parameter_mode", "data_type", "udt_schema", "udt_name",
    "max_length", "numeric_precision", "numeric_scale",
]


class TestSQLServerRoutines:

    def _script_get_orders(self, connection, exec_outcome):
        connection.on("sys.parameters", FakeResult(SQLSERVER_PARAMETER_COLUMNS, [
            ("@customer_id", "IN", "int", 4, 10, 0),
            ("@total", "INOUT", "decimal", 9, 10, 2),
        ]))
        connection.on("sys.objects", FakeResult(["routine_type"], [("P ",)]))
        connection.on("EXEC", exec_outcome)

    def test_procedure_with_output_merged_into_first_row(self, make_engine, connection):
        self._script_get_orders(connection, [
            FakeResult(["id"], [(1,), (2,)]),
            FakeResult(["total"], [(Decimal("5.50"),)]),
        ])
        engine = make_engine("sqlserver", connection)

        rows = run(engine.invoke_routine("get_orders", {"@Customer_ID": "7"}, schema="sales"))

        assert rows == [{"id": 1, "total": Decimal("5.50")}, {"id": 2}]
        assert connection.executed[0][1] == ["get_orders", "sales"]
        sql, params = connection.executed[2]
        assert sql == (
            "SET NOCOUNT ON; DECLARE @__o1 [decimal](10, 2) = ?; "
            "EXEC [sales].[get_orders] @customer_id = ?, @total = @__o1 OUTPUT; SELECT @__o1 AS [total];"
        )
        assert params == [None, 7]
        assert connection.commits == 1

    def test_outputs_without_result_set(self, make_engine, connection):
        self._script_get_orders(connection, FakeResult(["total"], [(Decimal("0.00"),)]))
        engine = make_engine("sqlserver", connection)
        rows = run(engine.invoke_routine("get_orders", {"customer_id": 1}))
        assert rows == [{"total": Decimal("0.00")}]

    def test_schema_qualified_name(self, make_engine, connection):
        engine = make_engine("sqlserver", connection)
        connection.on("sys.parameters", FakeResult(SQLSERVER_PARAMETER_COLUMNS, []))
        connection.on("sys.objects", FakeResult(["routine_type"], [("FN",)]))
        connection.on("[billing].[tax]", FakeResult(["result"], [(Decimal("1.2"),)]))

        rows = run(engine.invoke_routine("billing.tax"))

        assert rows == [{"result": Decimal("1.2")}]
        assert connection.executed[0][1] == ["tax", "billing"]

    def test_unconvertible_integer(self, make_engine, connection):
        self._script_get_orders(connection, FakeResult())
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput, match="customer_id"):
            run(engine.invoke_routine("get_orders", {"customer_id": "seven"}))
        assert not any(sql.startswith("SET NOCOUNT") for sql in connection.statements)

    def test_fallback_chain_when_catalog_has_no_entry(self, make_engine, connection):
        connection.on("EXEC [dbo].[legacy]", FakeOdbcError(2812, "Could not find stored procedure 'legacy'."))
        connection.on("SELECT * FROM [dbo].[legacy]", FakeResult(["v"], [(1,)]))
        engine = make_engine("sqlserver", connection)

        rows = run(engine.invoke_routine("legacy", {"b": 2, "a": 1}))

        assert rows == [{"v": 1}]
        assert connection.statements[1:] == [
            "EXEC [dbo].[legacy] ?, ?",
            "SELECT * FROM [dbo].[legacy](?, ?)",
        ]
        assert connection.executed[2][1] == [2, 1]
        assert connection.rollbacks == 1

    def test_every_strategy_failing(self, make_engine, connection):
        connection.on("legacy", FakeOdbcError(2812, "Could not find stored procedure 'legacy'."))
        engine = make_engine("sqlserver", connection)

        with pytest.raises(OperationFailed) as excinfo:
            run(engine.invoke_routine("legacy"))

        assert "any call strategy" in str(excinfo.value)
        assert excinfo.value.operation == "invoke_routine"
        assert excinfo.value.error_code == 2812
        assert len(connection.executed) == 4


class TestPostgreSQLRoutines:

    def test_function_arguments_cast_to_declared_type(self, make_engine, connection):
        connection.on("information_schema.parameters", FakeResult(PG_PARAMETER_COLUMNS, [
            ("cid", "IN", "integer", "pg_catalog", "int4", None, 32, 0),
            ("filters", "IN", "jsonb", "pg_catalog", "jsonb", None, None, None),
        ]))
        connection.on("information_schema.routines", FakeResult(["routine_type", "data_type"], [("FUNCTION", "record")]))
        connection.on('"public"."find_orders"', FakeResult(["n"], [(3,)]))
        engine = make_engine("postgresql", connection)

        rows = run(engine.invoke_routine("find_orders", {"cid": "5", "filters": {"open": True}}))

        assert rows == [{"n": 3}]
        sql, params = connection.executed[-1]
        assert sql == (
            'SELECT * FROM "public"."find_orders"'
            '(CAST(%(__v0)s AS "pg_catalog"."int4"), CAST(%(__v1)s AS jsonb))'
        )
        assert params == {"__v0": 5, "__v1": '{"open": true}'}

    def test_catalog_failure_falls_back(self, make_engine, connection):
        connection.on("information_schema.routines", FakePgError("42501", "permission denied"))
        engine = make_engine("postgresql", connection)

        rows = run(engine.invoke_routine("cleanup", {"days": 30}))

        assert rows == []
        assert connection.executed[-1] == ('CALL "public"."cleanup"(%(__v0)s)', {"__v0": 30})
        assert connection.rollbacks == 1
        assert connection.commits == 1


class TestMySQLRoutines:

    def test_out_parameters_read_from_session_variables(self, make_engine, connection):
        connection.on("information_schema.PARAMETERS", FakeResult(SQLSERVER_PARAMETER_COLUMNS, [
            ("cid", "IN", "int", None, 10, 0),
            ("total", "OUT", "decimal", None, 10, 2),
        ]))
        connection.on("information_schema.ROUTINES", FakeResult(["routine_type", "data_type"], [("PROCEDURE", "")]))
        connection.on("CALL", FakeResult(["x"], [(1,)]))
        connection.on("SELECT @__o1", FakeResult(["total"], [(Decimal("9.50"),)]))
        engine = make_engine("mysql", connection)

        rows = run(engine.invoke_routine("order_total", {"cid": 4}))

        assert rows == [{"x": 1, "total": Decimal("9.50")}]
        assert connection.statements[2:] == [
            "SET @__o1 = NULL",
            "CALL `order_total`(%(__v0)s, @__o1)",
            "SELECT @__o1 AS `total`",
        ]
        assert connection.executed[1][1]["routine_type"] == "PROCEDURE"


class TestArguments:

    def test_blank_name(self, make_engine, connection):
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput):
            run(engine.invoke_routine(" "))

    def test_duplicate_parameter_names(self, make_engine, connection):
        engine = make_engine("sqlserver", connection)
        with pytest.raises(InvalidInput, match="more than once"):
            run(engine.invoke_routine("p", {"@a": 1, "A": 2}))
        assert connection.executed == []
