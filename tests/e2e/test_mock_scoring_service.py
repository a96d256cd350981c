"""
E2E tests: remote scoring through the full pipeline against the mock prediction service.

The mock service is mounted in-process with httpx.ASGITransport, so no
server needs to be running.

Scenarios:
- typical spend on a known handle: LOW, payment allowed
- atypical spend: MEDIUM, payment allowed with warning
- amount far below an active user's baseline: HIGH, payment blocked
"""

import httpx
import pytest
from mocks.scoring_server.main import app as mock_app
from upi_guard.domain.models import RiskLabel
from upi_guard.infrastructure.clients.scoring import RemoteScorer
from upi_guard.services.pipeline import evaluate
from upi_guard.services.session import SessionController, SessionState


@pytest.fixture
def remote_scorer() -> RemoteScorer:
    return RemoteScorer(base_url="http://mock-scoring", timeout=2.0, transport=httpx.ASGITransport(app=mock_app))


async def test_mock_service_is_healthy(remote_scorer: RemoteScorer):
    assert await remote_scorer.health() == "healthy"


async def test_typical_spend_is_allowed(remote_scorer: RemoteScorer):
    evaluation = await evaluate(
        {"payee_identifier": "grocer@okhdfcbank", "amount": "2000"},
        "manual",
        remote_scorer,
        monthly_frequency=2,
    )

    assert evaluation.assessment.label is RiskLabel.LOW
    assert evaluation.decision.allowed is True


async def test_atypical_spend_warns(remote_scorer: RemoteScorer):
    evaluation = await evaluate(
        {"payee_identifier": "alice@bank", "amount": "5000"},
        "manual",
        remote_scorer,
        monthly_frequency=2,
    )

    assert evaluation.features.amount_deviation == 3000
    assert evaluation.assessment.label is RiskLabel.MEDIUM
    assert evaluation.decision.allowed is True
    assert evaluation.decision.warning is True


async def test_extreme_deviation_blocks_through_session(remote_scorer: RemoteScorer):
    controller = SessionController(remote_scorer)
    await controller.start_scan(monthly_frequency=20)

    accepted = await controller.on_scan("upi://pay?pa=prize.claim@okaxis&pn=Prize&am=100")

    assert accepted is True
    assert controller.state is SessionState.DECIDED
    assert controller.assessment.label is RiskLabel.HIGH
    assert controller.decision.allowed is False
    assert controller.decision.display_label == "BLOCKED"


async def test_mock_service_rejects_bad_features():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=mock_app), base_url="http://mock-scoring") as client:
        response = await client.post(
            "/predict",
            json={"amount": -1, "Transaction_Frequency": 1, "Transaction_Amount_Deviation": 0},
        )
    assert response.status_code == 400
