"""Unit tests for database settings and config validation."""

import pytest

from sqlbridge.common.exceptions import ErrorCode, SQLBridgeError
from sqlbridge.settings import DatabaseSettings, get_settings, validate_config


class TestDatabaseSettings:

    def test_defaults(self, monkeypatch):
        for name in ("MYSQL_HOST", "MYSQL_PORT", "MYSQL_CONNECTION_LIMIT", "MYSQL_DEFAULT_LIMIT"):
            monkeypatch.delenv(name, raising=False)

        settings = DatabaseSettings()

        assert settings.host == "localhost"
        assert settings.port == 3306
        assert settings.connection_limit == 10
        assert settings.max_idle_timeout == 300
        assert settings.idle_check_interval == 5.0
        assert settings.connection_retry_delay == 0.5
        assert settings.max_connection_retries == 1
        assert settings.default_limit == 500
        assert settings.driver == "mysql+aiomysql"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("MYSQL_HOST", "db.internal")
        monkeypatch.setenv("MYSQL_CONNECTION_LIMIT", "25")

        settings = DatabaseSettings()

        assert settings.host == "db.internal"
        assert settings.connection_limit == 25

    def test_password_reaches_url_but_not_connection_info(self):
        settings = DatabaseSettings(host="db", user="app", password="s3cret", database="shop")

        url = settings.build_url()

        assert url.drivername == "mysql+aiomysql"
        assert url.password == "s3cret"
        assert url.database == "shop"
        assert "s3cret" not in str(settings.get_connection_info())

    def test_pool_key_ignores_password(self):
        first = DatabaseSettings(host="db", password="a")
        second = DatabaseSettings(host="db", password="b")

        assert first.pool_key == second.pool_key

    def test_blank_host_fails(self):
        with pytest.raises(ValueError):
            DatabaseSettings(host="  ")


class TestValidateConfig:

    def test_mapping(self):
        settings = validate_config({"host": "db", "connection_limit": 3})

        assert settings.host == "db"
        assert settings.connection_limit == 3

    def test_settings_instance_passes_through(self):
        settings = DatabaseSettings(host="db")

        assert validate_config(settings) is settings

    def test_non_mapping_fails(self):
        with pytest.raises(SQLBridgeError, match="expected a mapping") as exc_info:
            validate_config(["db"])
        assert exc_info.value.error_code is ErrorCode.INVALID_CONFIG

    def test_invalid_values_name_the_settings(self):
        with pytest.raises(SQLBridgeError) as exc_info:
            validate_config({"connection_limit": 0, "port": "x"})

        error = exc_info.value
        assert error.error_code is ErrorCode.INVALID_SETTING
        assert "connection_limit" in error.details["setting"]
        assert "port" in error.details["setting"]

    def test_get_settings_is_cached(self):
        first = get_settings(force_reload=True)

        assert get_settings() is first
        assert get_settings(force_reload=True) is not first
