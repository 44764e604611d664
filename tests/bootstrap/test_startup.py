from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from conftest import StubEngine, build_fake_redis, build_test_app, build_test_config
from fastapi.testclient import TestClient

from ingos_api import create_app
from ingos_api.bootstrap import validate_startup_config


def test_create_app_applies_database_pool_settings():
    captured = {}

    def fake_create_engine(url, **create_engine_kwargs):
        captured["url"] = url
        captured["kwargs"] = create_engine_kwargs
        return StubEngine()

    with patch("ingos_api.database.create_engine", side_effect=fake_create_engine):
        app = create_app(
            build_test_config(
                DATABASE_URL="postgresql+psycopg://u:p@db:5432/ingos",
                DB_POOL_SIZE=7,
                DB_MAX_OVERFLOW=13,
                DB_POOL_TIMEOUT_SECONDS=11,
                DB_POOL_RECYCLE_SECONDS=1800,
            )
        )

    assert app is not None
    assert captured["url"] == "postgresql+psycopg://u:p@db:5432/ingos"
    kwargs = captured["kwargs"]
    assert kwargs["pool_pre_ping"] is True
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 13
    assert kwargs["pool_timeout"] == 11
    assert kwargs["pool_recycle"] == 1800


@pytest.mark.parametrize(
    ("config_overrides", "expected_message"),
    [
        ({"APP_CORS_ORIGINS": None}, "APP_CORS_ORIGINS must be set"),
        ({"AUTH_SERVER_MODE": "kerberos"}, "AUTH_SERVER_MODE must be one of"),
        ({"AUTH_SERVER_SECRET": None}, "requires AUTH_SERVER_SECRET"),
        ({"AUTH_SERVER_SECRET": "short"}, "at least 32 bytes"),
        ({"AUTH_SERVER_ISSUER": " "}, "requires AUTH_SERVER_ISSUER"),
        ({"AUTH_SERVER_AUDIENCE": ""}, "requires AUTH_SERVER_AUDIENCE"),
        ({"AUTH_SERVER_EXPIRATION": -1}, "AUTH_SERVER_EXPIRATION"),
        ({"AUTH_SERVER_MODE": "remote", "AUTH_SERVER_AUTHORITY": None}, "requires AUTH_SERVER_AUTHORITY"),
        (
            {"AUTH_SERVER_MODE": "remote", "AUTH_SERVER_AUTHORITY": "http://auth.ingos.test"},
            "must use https",
        ),
        ({"APP_ENV": "production", "REDIS_CONFIGURATION": None}, "REDIS_CONFIGURATION must be set"),
        ({"DB_POOL_SIZE": 0}, "DB_POOL_SIZE"),
        ({"DB_POOL_TIMEOUT_SECONDS": 0}, "DB_POOL_TIMEOUT_SECONDS"),
    ],
)
def test_invalid_startup_config_is_rejected(config_overrides, expected_message):
    with pytest.raises(RuntimeError, match=expected_message):
        validate_startup_config(build_test_config(**config_overrides))


def test_remote_mode_accepts_plain_http_when_https_metadata_is_not_required():
    validate_startup_config(
        build_test_config(
            AUTH_SERVER_MODE="remote",
            AUTH_SERVER_AUTHORITY="http://localhost:44301",
            AUTH_SERVER_REQUIRE_HTTPS_METADATA=False,
            AUTH_SERVER_SECRET=None,
        )
    )


def test_create_app_fails_fast_on_invalid_config():
    with pytest.raises(RuntimeError, match="APP_CORS_ORIGINS"):
        build_test_app(build_test_config(APP_CORS_ORIGINS=None))


def test_production_app_connects_redis_for_cache_and_data_protection():
    client = build_fake_redis()
    factory = MagicMock(return_value=client)
    config = build_test_config(APP_ENV="production", REDIS_CONFIGURATION="redis://cache:6379/0")

    app = build_test_app(config, redis_factory=factory)

    assert app.state.cache.is_distributed
    client.ping.assert_called_once_with()
    assert app.state.data_protector.key_count == 1
    assert "developer_exception_page" not in app.state.pipeline


def test_production_app_aborts_when_redis_is_unreachable():
    client = MagicMock()
    client.ping.side_effect = ConnectionError("connection refused")
    config = build_test_config(APP_ENV="production", REDIS_CONFIGURATION="redis://cache:6379/0")

    with pytest.raises(ConnectionError):
        build_test_app(config, redis_factory=MagicMock(return_value=client))


def test_lifespan_disposes_engine():
    engine = StubEngine()
    app = build_test_app(engine=engine)
    with TestClient(app):
        assert not engine.disposed
    assert engine.disposed
