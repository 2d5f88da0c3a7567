import logging

from shared.core.logging_config import RecipientDataFilter

def test_liveness(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "pass"
    assert body["service"] == "shipments-service"

    assert client.get('/health/live').json() == {"status": "alive"}

def test_readiness_checks_database_and_schema(client):
    resp = client.get('/health/ready')
    assert resp.status_code in [200, 503]
    checks = resp.json()["checks"]
    assert checks["database:connectivity"]["status"] == "pass"
    assert checks["database:schema"]["status"] == "pass"

def test_startup_reports_started_when_tables_exist(client):
    resp = client.get('/health/startup')
    assert resp.status_code == 200
    assert resp.json()["status"] == "started"

def test_metrics_include_active_streams(client):
    body = client.get('/metrics').json()
    assert "uptime_seconds" in body
    assert body["service_metrics"] == {"active_streams": 0}

def test_recipient_data_is_redacted():
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "created", None, None)
    record.extra_fields = {"recipient_phone": "+1-555-0100", "order_id": 42}
    assert RecipientDataFilter().filter(record) is True
    assert record.extra_fields == {"recipient_phone": "***REDACTED***", "order_id": 42}
