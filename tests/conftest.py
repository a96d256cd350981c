"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from fastapi.testclient import TestClient
from upi_guard.api.main import create_app
from upi_guard.api.dependencies import get_scorer
from upi_guard.domain.models import Transaction, TransactionSource
from upi_guard.domain.scoring import LocalHeuristicScorer


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time"""
    return datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def scorer() -> LocalHeuristicScorer:
    return LocalHeuristicScorer()


@pytest.fixture
def client(scorer) -> TestClient:
    """Create FastAPI test client with the deterministic local scorer"""
    app = create_app()
    app.dependency_overrides[get_scorer] = lambda: scorer
    return TestClient(app)


@pytest.fixture
def manual_transaction(now: datetime) -> Transaction:
    """Manually entered payment to an unfamiliar handle"""
    return Transaction(
        source=TransactionSource.MANUAL,
        payee_identifier="alice@bank",
        payee_name="Alice",
        amount=Decimal("5000"),
        occurred_at=now,
    )


@pytest.fixture
def known_payee_transaction(now: datetime) -> Transaction:
    """Typical-size payment to a major bank handle"""
    return Transaction(
        source=TransactionSource.MANUAL,
        payee_identifier="grocer@okhdfcbank",
        payee_name="Grocer",
        amount=Decimal("2000"),
        occurred_at=now,
    )
