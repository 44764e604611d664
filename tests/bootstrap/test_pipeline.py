from __future__ import annotations

import logging
import re
from unittest.mock import MagicMock

import pytest
from conftest import StubEngine, build_fake_redis, build_test_app, build_test_config
from fastapi import Depends
from fastapi.testclient import TestClient

from ingos_api.bootstrap import build_pipeline, validate_pipeline_order
from ingos_api.bootstrap.services import build_cors_options
from ingos_api.unit_of_work import UnitOfWork, get_unit_of_work

EXPECTED_STAGES = [
    "developer_exception_page",
    "request_localization",
    "correlation_id",
    "virtual_files",
    "routing",
    "cors",
    "authentication",
    "authorization",
    "health_checks",
    "swagger",
    "auditing",
    "log_enrichment",
    "unit_of_work",
    "endpoints",
]


def test_development_pipeline_order(app_instance):
    assert app_instance.state.pipeline == EXPECTED_STAGES


def test_pipeline_without_developer_exception_page_outside_development(app_instance):
    config = build_test_config(APP_ENV="staging")
    stages = build_pipeline(app_instance, config, app_instance.state.services)
    assert [stage.name for stage in stages] == EXPECTED_STAGES[1:]


@pytest.mark.parametrize(
    ("names", "expected_message"),
    [
        (["authentication", "cors", "authorization", "unit_of_work", "endpoints"], "'cors' must run before"),
        (["cors", "authorization", "authentication", "unit_of_work", "endpoints"], "'authentication' must run"),
        (["cors", "authentication", "authorization", "endpoints", "unit_of_work"], "must be the last"),
        (["cors", "authentication", "authorization", "endpoints"], "'unit_of_work'"),
    ],
)
def test_pipeline_order_violations_are_rejected(names, expected_message):
    with pytest.raises(RuntimeError, match=expected_message):
        validate_pipeline_order(names)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def test_cors_options_follow_configured_origins():
    options = build_cors_options(build_test_config(APP_CORS_ORIGINS="https://a.com/,https://b.com"))
    assert set(options["allow_origins"]) == {"https://a.com", "https://b.com"}
    assert options["allow_credentials"] is True
    assert options["allow_methods"] == ["*"]
    assert options["allow_headers"] == ["*"]
    assert "Token-Expired" in options["expose_headers"]
    assert "allow_origin_regex" not in options


def test_cors_options_support_wildcard_subdomains():
    options = build_cors_options(build_test_config(APP_CORS_ORIGINS="https://*.ingos.dev"))
    assert options["allow_origins"] == []

    pattern = re.compile(options["allow_origin_regex"])
    assert pattern.fullmatch("https://app.ingos.dev")
    assert not pattern.fullmatch("https://ingos.dev.evil.com")


def test_cors_preflight_allows_configured_origin(client):
    resp = client.options(
        "/api/v1/profile",
        headers={
            "Origin": "https://a.com",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "authorization",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "https://a.com"
    assert resp.headers["access-control-allow-credentials"] == "true"


def test_cors_rejects_unknown_origin(client):
    resp = client.get("/api/abp/application-configuration", headers={"Origin": "https://evil.com"})
    assert resp.status_code == 200
    assert "access-control-allow-origin" not in resp.headers


def test_cors_exposes_token_expired_header(client):
    resp = client.get("/api/abp/application-configuration", headers={"Origin": "https://b.com"})
    assert resp.headers["access-control-allow-origin"] == "https://b.com"
    assert "Token-Expired" in resp.headers["access-control-expose-headers"]


# ---------------------------------------------------------------------------
# Correlation id, static files, error envelope
# ---------------------------------------------------------------------------


def test_correlation_id_is_generated(client):
    resp = client.get("/api/abp/application-configuration")
    assert len(resp.headers["X-Correlation-Id"]) == 32


def test_correlation_id_is_propagated(client):
    resp = client.get("/api/v1/profile", headers={"X-Correlation-Id": "req-123"})
    assert resp.status_code == 401
    assert resp.headers["X-Correlation-Id"] == "req-123"
    assert resp.json()["request_id"] == "req-123"


def test_virtual_files_serve_wwwroot(client):
    resp = client.get("/robots.txt")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "User-agent" in resp.text


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nothing-here")
    assert resp.status_code == 404
    payload = resp.json()
    assert payload["code"] == "NOT_FOUND"
    assert payload["error"] == payload["message"]


# ---------------------------------------------------------------------------
# Unit of work and unhandled errors
# ---------------------------------------------------------------------------


def _app_with_probe_routes(config=None, **kwargs):
    engine = StubEngine()
    app = build_test_app(config, engine=engine, **kwargs)

    @app.post("/probe/write")
    def probe_write(uow: UnitOfWork = Depends(get_unit_of_work)):
        uow.connection.execute("UPDATE t SET x = 1")
        uow.record_entity_change("Probe", 1, "Updated")
        return {"ok": True}

    @app.get("/probe/conflict")
    def probe_conflict(uow: UnitOfWork = Depends(get_unit_of_work)):
        from ingos_api.errors import http_error

        uow.connection.execute("UPDATE t SET x = 2")
        raise http_error(409, "CONFLICT", "Conflict")

    @app.get("/probe/crash")
    def probe_crash(uow: UnitOfWork = Depends(get_unit_of_work)):
        uow.connection.execute("UPDATE t SET x = 3")
        raise ValueError("boom")

    return app, engine


def test_unit_of_work_commits_successful_requests():
    app, engine = _app_with_probe_routes()
    with TestClient(app) as client:
        assert client.post("/probe/write").status_code == 200
    transaction = engine.connection.transactions[-1]
    assert transaction.committed
    assert engine.connection.closed


def test_unit_of_work_rolls_back_error_responses():
    app, engine = _app_with_probe_routes()
    with TestClient(app) as client:
        resp = client.get("/probe/conflict")
    assert resp.status_code == 409
    assert resp.json()["code"] == "CONFLICT"
    transaction = engine.connection.transactions[-1]
    assert transaction.rolled_back
    assert not transaction.committed


def test_unhandled_exception_rolls_back_and_returns_envelope_outside_development():
    config = build_test_config(APP_ENV="staging", REDIS_CONFIGURATION="redis://cache:6379/0")
    app, engine = _app_with_probe_routes(config, redis_factory=MagicMock(return_value=build_fake_redis()))
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/probe/crash")
    assert resp.status_code == 500
    assert resp.json()["code"] == "INTERNAL_ERROR"
    assert engine.connection.transactions[-1].rolled_back


def test_unhandled_exception_renders_developer_page_in_development():
    app, _engine = _app_with_probe_routes()
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/probe/crash", headers={"Accept": "text/html"})
    assert resp.status_code == 500
    assert "ValueError" in resp.text


def test_auditing_records_writes_with_entity_changes(caplog, auth_headers):
    app, _engine = _app_with_probe_routes()
    with caplog.at_level(logging.INFO, logger="ingos.audit"):
        with TestClient(app) as client:
            client.post("/probe/write", headers={**auth_headers, "X-Correlation-Id": "audit-1"})
            client.get("/api/abp/application-configuration")

    audits = [r.audit for r in caplog.records if r.name == "ingos.audit"]
    assert len(audits) == 1
    audit = audits[0]
    assert audit["application_name"] == "Ingos"
    assert audit["http_method"] == "POST"
    assert audit["url"] == "/probe/write"
    assert audit["http_status_code"] == 200
    assert audit["user_id"] == "user-1"
    assert audit["correlation_id"] == "audit-1"
    assert audit["entity_changes"] == [{"entity_type": "Probe", "entity_id": "1", "change_type": "Updated"}]


def test_auditing_records_failed_reads(caplog):
    app, _engine = _app_with_probe_routes()
    with caplog.at_level(logging.INFO, logger="ingos.audit"):
        with TestClient(app, raise_server_exceptions=False) as client:
            client.get("/probe/crash")

    audit = next(r.audit for r in caplog.records if r.name == "ingos.audit")
    assert audit["http_status_code"] == 500
    assert audit["exceptions"] == ["ValueError: boom"]


def test_query_validation_errors_use_camel_case_fields():
    app, _engine = _app_with_probe_routes()

    @app.get("/probe/page")
    def probe_page(page_size: int):
        return {"page_size": page_size}

    with TestClient(app) as client:
        resp = client.get("/probe/page", params={"page_size": "many"})

    assert resp.status_code == 400
    payload = resp.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"][0]["field"] == "query.pageSize"
    assert payload["message"].startswith("query.pageSize: ")


def test_rejected_protected_payload_is_a_bad_request():
    app, _engine = _app_with_probe_routes()

    @app.get("/probe/unprotect")
    def probe_unprotect(token: str):
        return {"value": app.state.data_protector.unprotect(token).decode("utf-8")}

    good = app.state.data_protector.protect("hello")
    with TestClient(app) as client:
        ok = client.get("/probe/unprotect", params={"token": good})
        rejected = client.get("/probe/unprotect", params={"token": "not-a-token"})

    assert ok.json() == {"value": "hello"}
    assert rejected.status_code == 400
    assert rejected.json()["code"] == "INVALID_PROTECTED_PAYLOAD"
