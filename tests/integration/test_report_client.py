"""Integration tests for fraud report delivery"""

import httpx
import pytest
from upi_guard.config import settings
from upi_guard.infrastructure.clients.reports import ReportClient, is_retryable


def client_for(handler, max_retries: int = 3) -> ReportClient:
    return ReportClient(
        webhook_url="http://reports.test/fraud",
        max_retries=max_retries,
        backoff_base=0.0,
        transport=httpx.MockTransport(handler),
    )


async def test_report_delivered_first_try():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    await client_for(handler).send_fraud_report({"event": "FRAUD_REPORTED"})

    assert len(received) == 1
    assert received[0].url == "http://reports.test/fraud"


async def test_report_retried_until_success():
    statuses = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    await client_for(handler).send_fraud_report({"event": "FRAUD_REPORTED"})


async def test_report_raises_after_max_retries():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.ConnectError):
        await client_for(handler, max_retries=3).send_fraud_report({"event": "FRAUD_REPORTED"})

    assert len(attempts) == 3


async def test_report_rejected_with_4xx_is_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(400, json={"detail": "malformed report"})

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        await client_for(handler, max_retries=3).send_fraud_report({"event": "FRAUD_REPORTED"})

    assert excinfo.value.response.status_code == 400
    assert len(attempts) == 1


async def test_report_server_errors_exhaust_retries():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503)

    with pytest.raises(httpx.HTTPStatusError):
        await client_for(handler, max_retries=3).send_fraud_report({"event": "FRAUD_REPORTED"})

    assert len(attempts) == 3


async def test_report_timeout_comes_from_settings():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.extensions["timeout"])
        return httpx.Response(202)

    await client_for(handler).send_fraud_report({"event": "FRAUD_REPORTED"})

    assert ReportClient().timeout == settings.report_timeout_seconds
    assert seen[0]["read"] == settings.report_timeout_seconds


def test_transport_failures_are_retryable():
    assert is_retryable(httpx.ConnectError("refused")) is True
    assert is_retryable(httpx.ReadTimeout("slow")) is True
