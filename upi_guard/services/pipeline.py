"""Evaluation pipeline: raw input → Transaction → DerivedFeatures → RiskAssessment → PaymentDecision"""

import asyncio
import time
import uuid
from datetime import datetime
from typing import Any, Optional, Tuple

from upi_guard.config import settings
from upi_guard.domain.exceptions import ScoringError, ScoringTimeoutError
from upi_guard.domain.features import derive
from upi_guard.domain.models import DerivedFeatures, Evaluation, RiskAssessment, Transaction, TransactionSource
from upi_guard.domain.normalizer import normalize
from upi_guard.domain.policy import decide
from upi_guard.domain.scoring import RiskScorer
from upi_guard.infrastructure.observability.logging import log_evaluation
from upi_guard.infrastructure.observability.metrics import (
    record_evaluation,
    scoring_failure_counter,
    scoring_latency_histogram,
)


def prepare(
    raw: Any,
    source: TransactionSource | str,
    monthly_frequency: Any = None,
    now: Optional[datetime] = None,
) -> Tuple[Transaction, DerivedFeatures]:
    """
    Normalize raw input and derive its features.

    Raises:
        ValidationError: Malformed identifier, amount or frequency; nothing
            malformed ever reaches the scorer
    """
    transaction = normalize(
        raw,
        source,
        now=now,
        fallback_identifier=settings.fallback_payee_identifier,
        unresolved_name=settings.unresolved_payee_name,
    )
    return transaction, derive(transaction, monthly_frequency)


async def score_with_timeout(
    scorer: RiskScorer,
    transaction: Transaction,
    features: DerivedFeatures,
    timeout: Optional[float] = None,
) -> RiskAssessment:
    """
    Run the scorer under a hard time bound.

    Raises:
        ScoringTimeoutError: Scorer (or its own client) exceeded the bound
        NetworkError, ServiceError: Propagated unchanged from the scorer
    """
    timeout = timeout if timeout is not None else settings.scoring_timeout_seconds
    start_time = time.perf_counter()
    try:
        return await asyncio.wait_for(scorer.score(transaction, features), timeout=timeout)
    except ScoringError as e:
        scoring_failure_counter.labels(kind=e.kind).inc()
        raise
    except asyncio.TimeoutError as e:
        scoring_failure_counter.labels(kind=ScoringTimeoutError.kind).inc()
        raise ScoringTimeoutError(f"Scoring did not finish within {timeout}s") from e
    finally:
        scoring_latency_histogram.labels(scorer=scorer.name).observe(time.perf_counter() - start_time)


async def assess(
    transaction: Transaction,
    features: DerivedFeatures,
    scorer: RiskScorer,
    request_id: Optional[str] = None,
    timeout: Optional[float] = None,
    session_id: Optional[str] = None,
) -> Evaluation:
    """Score a prepared transaction and pass the assessment through the policy gate"""
    request_id = request_id or str(uuid.uuid4())
    start_time = time.time()

    assessment = await score_with_timeout(scorer, transaction, features, timeout)
    decision = decide(assessment)

    duration_ms = (time.time() - start_time) * 1000
    record_evaluation(assessment.label.value, decision.allowed, transaction.low_confidence)
    log_evaluation(
        request_id,
        session_id,
        assessment.label.value,
        decision.allowed,
        transaction.low_confidence,
        duration_ms,
    )

    return Evaluation(
        request_id=request_id,
        transaction=transaction,
        features=features,
        assessment=assessment,
        decision=decision,
    )


async def evaluate(
    raw: Any,
    source: TransactionSource | str,
    scorer: RiskScorer,
    monthly_frequency: Any = None,
    timeout: Optional[float] = None,
    request_id: Optional[str] = None,
) -> Evaluation:
    """
    Main entry point: one complete evaluation without a session.

    Raises:
        ValidationError: Input rejected before scoring
        ScoringError: Scorer failed or timed out; no result is fabricated
    """
    transaction, features = prepare(raw, source, monthly_frequency)
    return await assess(transaction, features, scorer, request_id=request_id, timeout=timeout)
