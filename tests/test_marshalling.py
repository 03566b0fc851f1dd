"""
Unit tests for value marshalling between callers and drivers.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from tablegate.core.marshalling import (
    TypeFamily,
    bind_routine_value,
    from_json_value,
    infer_scalar_from_text,
    is_midnight,
    marshal_query_value,
    parse_encrypt_fields,
    to_bind_value,
)
from tablegate.errors import InvalidInput


class TestQueryValues:

    def test_midnight_becomes_date_when_dialect_distinguishes(self):
        value = datetime(2024, 3, 1)
        assert marshal_query_value(value, distinguishes_date=True) == date(2024, 3, 1)
        assert marshal_query_value(value, distinguishes_date=False) == value

    def test_non_midnight_is_kept(self):
        value = datetime(2024, 3, 1, 10, 30)
        assert not is_midnight(value)
        assert marshal_query_value(value, distinguishes_date=True) == value

    def test_structures_become_json(self):
        assert to_bind_value({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert to_bind_value(bytearray(b"ab")) == b"ab"
        assert to_bind_value("x") == "x"


class TestEncryptFields:

    @pytest.mark.parametrize("directive,expected", [
        (None, set()),
        ("", set()),
        ("Password, PIN ,", {"password", "pin"}),
        (["Password", " ", None], {"password"}),
    ])
    def test_directive_forms(self, directive, expected):
        assert parse_encrypt_fields(directive) == expected


class TestRoutineValues:

    def test_none_binds_null(self):
        bound = bind_routine_value(None, TypeFamily.INTEGER)
        assert bound.value is None
        assert bound.family is TypeFamily.INTEGER

    def test_json_text_wins_over_declared_family(self):
        bound = bind_routine_value(' {"id": 1}', TypeFamily.INTEGER)
        assert bound.family is TypeFamily.JSON
        assert bound.value == ' {"id": 1}'

    def test_structures_are_serialized(self):
        bound = bind_routine_value([1, 2], TypeFamily.TEXT)
        assert (bound.value, bound.family) == ("[1, 2]", TypeFamily.JSON)

    @pytest.mark.parametrize("value,expected", [("42", 42), (7, 7), (3.0, 3), (" -5 ", -5)])
    def test_integers(self, value, expected):
        assert bind_routine_value(value, TypeFamily.INTEGER).value == expected

    @pytest.mark.parametrize("value", ["abc", 2.5, "1.5"])
    def test_bad_integer_is_rejected(self, value):
        with pytest.raises(InvalidInput, match="qty"):
            bind_routine_value(value, TypeFamily.INTEGER, "qty")

    def test_decimal(self):
        assert bind_routine_value("12.50", TypeFamily.DECIMAL).value == Decimal("12.50")
        with pytest.raises(InvalidInput):
            bind_routine_value("twelve", TypeFamily.DECIMAL)
        with pytest.raises(InvalidInput):
            bind_routine_value("NaN", TypeFamily.DECIMAL)

    def test_float(self):
        assert bind_routine_value("1e3", TypeFamily.FLOAT).value == 1000.0
        with pytest.raises(InvalidInput):
            bind_routine_value("fast", TypeFamily.FLOAT)

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("No", False), ("1", True), (0, False), (True, True),
    ])
    def test_booleans(self, value, expected):
        assert bind_routine_value(value, TypeFamily.BOOLEAN).value is expected

    def test_bad_boolean_is_rejected(self):
        with pytest.raises(InvalidInput):
            bind_routine_value("maybe", TypeFamily.BOOLEAN)

    def test_dates(self):
        assert bind_routine_value("2024-03-01", TypeFamily.DATE).value == date(2024, 3, 1)
        assert bind_routine_value("2024-03-01T00:00:00", TypeFamily.DATE).value == date(2024, 3, 1)
        assert bind_routine_value("next monday", TypeFamily.DATE).value == "next monday"
        assert bind_routine_value("2024-03-01T10:00:00", TypeFamily.DATETIME).value == datetime(2024, 3, 1, 10)

    def test_text_passes_through(self):
        bound = bind_routine_value("hello", TypeFamily.TEXT)
        assert (bound.value, bound.family) == ("hello", TypeFamily.TEXT)


class TestJsonValues:

    @pytest.mark.parametrize("text,expected", [
        ("42", 42),
        ("-3.5", -3.5),
        ("TRUE", True),
        ("false", False),
        ("2024-03-01", datetime(2024, 3, 1)),
        ("hello", "hello"),
        ("3f2504e0-4f89-11d3-9a0c-0305e82c3301", "3f2504e0-4f89-11d3-9a0c-0305e82c3301"),
    ])
    def test_infer_scalar(self, text, expected):
        assert infer_scalar_from_text(text) == expected

    def test_detection_is_optional(self):
        assert from_json_value("42") == "42"
        assert from_json_value("42", detect_types=True) == 42

    def test_nested_values_are_reserialized(self):
        assert from_json_value({"a": 1}) == '{"a": 1}'
        assert from_json_value(None) is None
