import json
import logging

from ingos_api.logging_config import JsonFormatter, LogContextFilter, correlation_id_var, user_id_var


def metric_counter_value(metrics_text: str, *, method: str, path: str, status_code: str) -> float:
    prefix = (
        "ingos_http_requests_total{"
        f'method="{method}",path="{path}",status_code="{status_code}"'
        "} "
    )
    for line in metrics_text.splitlines():
        if line.startswith(prefix):
            return float(line[len(prefix) :])
    return 0.0


def test_metrics_use_route_template_labels(client, auth_headers):
    before = metric_counter_value(
        client.get("/metrics").text, method="GET", path="/api/v{version}/profile", status_code="200"
    )

    assert client.get("/api/v1/profile", headers=auth_headers).status_code == 200
    assert client.get("/api/v2/profile", headers=auth_headers).status_code == 200

    after = metric_counter_value(
        client.get("/metrics").text, method="GET", path="/api/v{version}/profile", status_code="200"
    )
    assert after == before + 2


def test_unmatched_paths_share_one_label(client):
    before = metric_counter_value(client.get("/metrics").text, method="GET", path="/_unmatched", status_code="404")
    client.get("/no/such/route/abc")
    client.get("/no/such/route/def")
    after = metric_counter_value(client.get("/metrics").text, method="GET", path="/_unmatched", status_code="404")
    assert after == before + 2


def test_log_filter_adds_request_context():
    record = logging.LogRecord("ingos.test", logging.INFO, __file__, 1, "hello", None, None)
    correlation_token = correlation_id_var.set("corr-1")
    user_token = user_id_var.set("user-1")
    try:
        assert LogContextFilter().filter(record)
    finally:
        user_id_var.reset(user_token)
        correlation_id_var.reset(correlation_token)

    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "hello"
    assert payload["correlation_id"] == "corr-1"
    assert payload["user_id"] == "user-1"
    assert "request_path" not in payload


def test_json_formatter_keeps_startup_fields():
    record = logging.LogRecord("ingos.test", logging.INFO, __file__, 1, "services_configured", None, None)
    record.modules = ["domain_shared", "api"]
    record.auth_mode = "local"
    record.api_versions = ["1.0", "2.0"]
    record.development = False
    record.redis_key = "Ingos-Protection-Keys"
    record.module_name = "framework_http_api"
    record.key = "Ingos:localization:Ingos:en"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["modules"] == ["domain_shared", "api"]
    assert payload["auth_mode"] == "local"
    assert payload["api_versions"] == ["1.0", "2.0"]
    assert payload["development"] is False
    assert payload["redis_key"] == "Ingos-Protection-Keys"
    assert payload["module_name"] == "framework_http_api"
    assert payload["key"] == "Ingos:localization:Ingos:en"


def test_request_completed_log_carries_correlation_id(client, caplog):
    with caplog.at_level(logging.INFO, logger="ingos.api"):
        client.get("/api/abp/application-configuration", headers={"X-Correlation-Id": "trace-42"})

    record = next(r for r in caplog.records if r.getMessage() == "request_completed")
    assert record.path == "/api/abp/application-configuration"
    assert record.status_code == 200
    assert getattr(record, "correlation_id", None) == "trace-42"
