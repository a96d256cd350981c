"""Integration tests for API endpoints"""

import inspect
import httpx
import pytest
from fastapi.testclient import TestClient
from upi_guard.api.dependencies import build_scorer, get_report_client, get_scorer
from upi_guard.api.v1 import sessions
from upi_guard.infrastructure.clients.scoring import RemoteScorer

MANUAL_BODY = {"payee_identifier": "alice@bank", "amount": "5000", "monthly_frequency": 2}


class RecordingReportClient:
    def __init__(self):
        self.payloads = []

    async def send_fraud_report(self, payload):
        self.payloads.append(payload)


def remote_scorer(handler) -> RemoteScorer:
    return RemoteScorer(base_url="http://scoring.test", timeout=1.0, transport=httpx.MockTransport(handler))


def use_scorer(client: TestClient, scorer) -> None:
    client.app.dependency_overrides[get_scorer] = lambda: scorer


def open_session(client: TestClient) -> str:
    response = client.post("/v1/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


@pytest.mark.parametrize(
    "kind,scorer_name",
    [("local", "local_heuristic"), ("remote", "remote"), ("simulated", "simulated")],
)
def test_build_scorer_selects_implementation(kind, scorer_name):
    assert build_scorer(kind).name == scorer_name


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["scorer"] == "local_heuristic"
    assert data["scorer_status"] == "local"


def test_health_endpoint_reports_offline_remote(client: TestClient):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    use_scorer(client, remote_scorer(handler))

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["scorer_status"] == "offline"


def test_metrics_endpoint(client: TestClient):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "upi_guard_evaluation_total" in response.text


def test_request_id_header_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"


def test_evaluate_manual(client: TestClient):
    response = client.post("/v1/evaluate", json=MANUAL_BODY)

    assert response.status_code == 200
    data = response.json()
    assert data["transaction"]["payee_identifier"] == "alice@bank"
    assert data["features"]["monthly_frequency_band"] == "rare"
    assert data["features"]["amount_deviation"] == 3000
    assert data["assessment"]["label"] == "MEDIUM"
    assert data["decision"]["allowed"] is True
    assert data["decision"]["warning"] is True


def test_evaluate_scan_without_address(client: TestClient):
    response = client.post("/v1/evaluate", json={"source": "scanned", "payload": "merchant123"})

    assert response.status_code == 200
    data = response.json()
    assert data["transaction"]["low_confidence"] is True
    assert data["transaction"]["amount"] is None
    assert data["features"]["amount_deviation"] is None


@pytest.mark.parametrize(
    "body",
    [
        {"payee_identifier": "alice"},
        {"payee_identifier": "alice@bank", "amount": "-5"},
        {"payee_identifier": "alice@bank", "monthly_frequency": 0},
        {"source": "scanned"},
    ],
)
def test_evaluate_rejects_invalid_input(client: TestClient, body):
    response = client.post("/v1/evaluate", json=body)
    assert response.status_code == 422


def test_evaluate_remote_high_risk_blocks(client: TestClient):
    use_scorer(
        client,
        remote_scorer(
            lambda request: httpx.Response(
                200, json={"fraud_prediction": 1, "fraud_probability": 0.88, "risk_level": "HIGH"}
            )
        ),
    )

    response = client.post("/v1/evaluate", json=MANUAL_BODY)

    assert response.status_code == 200
    data = response.json()
    assert data["assessment"]["label"] == "HIGH"
    assert data["decision"]["allowed"] is False
    assert data["decision"]["display_label"] == "BLOCKED"


def test_evaluate_remote_failures(client: TestClient):
    use_scorer(client, remote_scorer(lambda request: httpx.Response(502)))
    assert client.post("/v1/evaluate", json=MANUAL_BODY).status_code == 503

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    use_scorer(client, remote_scorer(timeout))
    assert client.post("/v1/evaluate", json=MANUAL_BODY).status_code == 504


def test_manual_session_flow_and_pay(client: TestClient):
    session_id = open_session(client)

    response = client.post(f"/v1/sessions/{session_id}/manual/start")
    assert response.json()["state"] == "capturing_manual"

    response = client.post(f"/v1/sessions/{session_id}/manual/submit", json={"payee_identifier": "alice"})
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "capturing_manual"
    assert data["error"]["kind"] == "validation_error"

    response = client.post(
        f"/v1/sessions/{session_id}/manual/submit",
        json={**MANUAL_BODY, "payee_name": "Alice"},
    )
    data = response.json()
    assert data["state"] == "decided"
    assert data["error"] is None
    assert data["assessment"]["label"] == "MEDIUM"

    response = client.post(f"/v1/sessions/{session_id}/pay")
    assert response.status_code == 200
    assert response.json()["payment_uri"] == "upi://pay?pa=alice%40bank&pn=Alice&am=5000.00&cu=INR"

    response = client.post(f"/v1/sessions/{session_id}/reset")
    data = response.json()
    assert data["state"] == "idle"
    assert data["transaction"] is None
    assert data["assessment"] is None


def test_scan_session_flow(client: TestClient):
    session_id = open_session(client)

    response = client.post(f"/v1/sessions/{session_id}/scan/start", json={"monthly_frequency": 12})
    assert response.json()["state"] == "capturing_scan"

    response = client.post(
        f"/v1/sessions/{session_id}/scan",
        json={"payload": "upi://pay?pa=shop@okaxis&pn=Shop&am=24000"},
    )
    data = response.json()
    assert data["accepted"] is True
    assert data["session"]["state"] == "decided"
    assert data["session"]["features"]["monthly_frequency_band"] == "active"
    assert data["session"]["features"]["amount_deviation"] == 1000

    # Scanner keeps feeding after the decision: ignored
    response = client.post(f"/v1/sessions/{session_id}/scan", json={"payload": "shop@okaxis"})
    assert response.json()["accepted"] is False


def test_scan_permission_denied(client: TestClient):
    session_id = open_session(client)

    response = client.post(f"/v1/sessions/{session_id}/scan/start", json={"camera_permission": "denied"})
    data = response.json()
    assert data["state"] == "permission_denied"
    assert data["error"]["kind"] == "permission_error"

    response = client.post(f"/v1/sessions/{session_id}/cancel")
    assert response.json()["state"] == "idle"


def test_session_timeout_returns_to_capture(client: TestClient):
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    use_scorer(client, remote_scorer(timeout))
    session_id = open_session(client)
    client.post(f"/v1/sessions/{session_id}/manual/start")

    response = client.post(f"/v1/sessions/{session_id}/manual/submit", json=MANUAL_BODY)

    data = response.json()
    assert data["state"] == "capturing_manual"
    assert data["error"]["kind"] == "timeout_error"
    assert data["assessment"] is None


def test_pay_blocked_for_high_risk(client: TestClient):
    use_scorer(
        client,
        remote_scorer(
            lambda request: httpx.Response(
                200, json={"fraud_prediction": 1, "fraud_probability": 0.95, "risk_level": "HIGH"}
            )
        ),
    )
    session_id = open_session(client)
    client.post(f"/v1/sessions/{session_id}/manual/start")
    client.post(f"/v1/sessions/{session_id}/manual/submit", json=MANUAL_BODY)

    response = client.post(f"/v1/sessions/{session_id}/pay")
    assert response.status_code == 403


def test_pay_requires_decision(client: TestClient):
    session_id = open_session(client)
    assert client.post(f"/v1/sessions/{session_id}/pay").status_code == 409


def test_report_fraud_is_queued(client: TestClient):
    report_client = RecordingReportClient()
    client.app.dependency_overrides[get_report_client] = lambda: report_client

    session_id = open_session(client)
    client.post(f"/v1/sessions/{session_id}/manual/start")
    client.post(f"/v1/sessions/{session_id}/manual/submit", json=MANUAL_BODY)

    response = client.post(f"/v1/sessions/{session_id}/report")

    assert response.status_code == 202
    assert len(report_client.payloads) == 1
    assert report_client.payloads[0]["payee_identifier"] == "alice@bank"
    assert report_client.payloads[0]["risk_label"] == "MEDIUM"


def test_invalid_transition_is_conflict(client: TestClient):
    session_id = open_session(client)
    assert client.post(f"/v1/sessions/{session_id}/reset").status_code == 409
    assert client.post(f"/v1/sessions/{session_id}/manual/submit", json=MANUAL_BODY).status_code == 409


def test_unknown_session_not_found(client: TestClient):
    assert client.get("/v1/sessions/does-not-exist").status_code == 404


def test_delete_session(client: TestClient):
    session_id = open_session(client)
    assert client.delete(f"/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/v1/sessions/{session_id}").status_code == 404


def test_evaluate_rejects_amount_beyond_maximum(client: TestClient):
    response = client.post(
        "/v1/evaluate",
        json={"payee_identifier": "alice@bank", "amount": "1e400", "monthly_frequency": 2},
    )
    assert response.status_code == 422


def test_evaluate_remote_contradicting_label_is_unavailable(client: TestClient):
    use_scorer(
        client,
        remote_scorer(
            lambda request: httpx.Response(
                200, json={"fraud_prediction": 0, "fraud_probability": 0.05, "risk_level": "HIGH"}
            )
        ),
    )
    assert client.post("/v1/evaluate", json=MANUAL_BODY).status_code == 503


def test_session_routes_run_on_event_loop():
    endpoints = [route.endpoint for route in sessions.router.routes]
    assert endpoints
    assert all(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)


def test_abandoned_sessions_are_evicted(client: TestClient):
    registry = client.app.state.sessions
    clock = [0.0]
    registry.clock = lambda: clock[0]
    registry.idle_ttl = 60.0

    for _ in range(50):
        session_id = open_session(client)
        client.post(f"/v1/sessions/{session_id}/manual/start")
        client.post(f"/v1/sessions/{session_id}/manual/submit", json=MANUAL_BODY)
        client.post(f"/v1/sessions/{session_id}/reset")
    assert len(registry) == 50

    clock[0] = 61.0
    survivor = open_session(client)

    assert len(registry) == 1
    assert client.get(f"/v1/sessions/{survivor}").status_code == 200
