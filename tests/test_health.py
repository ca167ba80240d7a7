def test_health_endpoint(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == {"status": "ok"}


def test_api_health_endpoint_alias(client):
    resp = client.get("/api/v1/health", headers={"x-user-id": "anonymous"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "ok"}


def test_trace_and_request_ids_are_echoed(client):
    resp = client.get("/healthz", headers={"x-trace-id": "trace_abc", "x-request-id": "req_abc"})
    assert resp.headers["x-trace-id"] == "trace_abc"
    assert resp.headers["x-request-id"] == "req_abc"
    assert resp.json()["meta"]["trace_id"] == "trace_abc"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nothing-here")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "REQ_NOT_FOUND"
