"""
Tests for YAML settings, environment overrides and engine construction.
"""
import pytest

from tablegate.config.settings import EngineSettings, load_settings
from tablegate.core.engine import DataAccessEngine
from tablegate.database.dialects import PostgreSQLDialect
from tablegate.errors import InvalidInput
from tablegate.utils.hashing import BcryptHasher

from conftest import FakeConnection, FakeResult, run


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate every test from the caller's environment and working directory."""
    for name in ("TABLEGATE_CONFIG", "TABLEGATE_PROVIDER", "TABLEGATE_CONNECTION_STRING"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def write_config(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadSettings:

    def test_defaults_without_file(self):
        settings = load_settings()
        assert settings.provider == "sqlserver"
        assert settings.list_limit == 1000
        assert settings.max_rows == 10000
        assert settings.hash_cost == 12

    def test_yaml_file(self, tmp_path):
        config = write_config(tmp_path / "engine.yaml", """
provider: Postgres
default_schema: sales
connection_strings:
  postgresql: "host=db1 dbname=shop"
forbidden_tables: secrets, audit_log
list_limit: 50
connect_timeout: 5
""")
        settings = load_settings(config)
        assert settings.dialect_name == "postgresql"
        assert settings.default_schema == "sales"
        assert settings.connection_string() == "host=db1 dbname=shop"
        assert settings.forbidden_tables == ["secrets", "audit_log"]
        assert settings.list_limit == 50
        assert settings.connect_timeout == 5

    def test_default_file_in_working_directory(self, tmp_path):
        write_config(tmp_path / "tablegate.yaml", "provider: mysql\n")
        assert load_settings().dialect_name == "mysql"

    def test_config_env_var(self, tmp_path, monkeypatch):
        config = write_config(tmp_path / "other.yaml", "provider: MariaDB\n")
        monkeypatch.setenv("TABLEGATE_CONFIG", str(config))
        assert load_settings().dialect_name == "mysql"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yaml")

    def test_environment_overrides(self, tmp_path, monkeypatch):
        config = write_config(tmp_path / "engine.yaml", """
provider: sqlserver
connection_strings:
  SqlServer: "Server=yaml"
  postgres: "host=yaml"
""")
        monkeypatch.setenv("TABLEGATE_PROVIDER", "PostgreSQL")
        monkeypatch.setenv("TABLEGATE_CONNECTION_STRING", "host=env")
        settings = load_settings(config)
        assert settings.dialect_name == "postgresql"
        assert settings.connection_string() == "host=env"
        assert settings.connection_strings["SqlServer"] == "Server=yaml"

    def test_unknown_keys_are_ignored(self, tmp_path, caplog):
        config = write_config(tmp_path / "engine.yaml", "provider: mysql\ncolour: blue\n")
        assert load_settings(config).provider == "mysql"
        assert "colour" in caplog.text

    @pytest.mark.parametrize("text", [
        "provider: oracle\n",
        "list_limit: 0\n",
        "max_rows: -1\n",
        "hash_cost: 40\n",
        "connect_timeout: 0\n",
        "- just\n- a list\n",
    ])
    def test_invalid_values(self, tmp_path, text):
        config = write_config(tmp_path / "engine.yaml", text)
        with pytest.raises(InvalidInput):
            load_settings(config)

    def test_missing_connection_string(self):
        with pytest.raises(InvalidInput, match="No connection string"):
            EngineSettings(provider="mysql").connection_string()


class TestEngineFromSettings:

    def test_builds_dialect_and_hasher(self):
        connection = FakeConnection().on("orders", FakeResult(["id"], [(1,)]))
        opened = []

        def connector(conn_str):
            opened.append(conn_str)
            return connection

        settings = EngineSettings(
            provider="postgres",
            connection_strings={"postgresql": "host=db1"},
            default_schema="sales",
            list_limit=10,
            hash_cost=4,
        )
        engine = DataAccessEngine.from_settings(settings, connector=connector)

        assert isinstance(engine.dialect, PostgreSQLDialect)
        assert engine.dialect.default_schema == "sales"
        assert isinstance(engine.hasher, BcryptHasher)
        assert engine.hasher.cost == 4

        assert run(engine.list_rows("orders")) == [{"id": 1}]
        assert opened == ["host=db1"]
        assert connection.statements == ['SELECT * FROM "sales"."orders" LIMIT 10']

    def test_unsupported_provider(self):
        with pytest.raises(InvalidInput):
            DataAccessEngine.from_settings(EngineSettings(provider="oracle"))
