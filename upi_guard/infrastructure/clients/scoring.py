"""Remote prediction API client implementing the RiskScorer capability"""

import logging
from typing import Any, Dict

import httpx

from upi_guard.config import settings
from upi_guard.domain.exceptions import NetworkError, ScoringTimeoutError, ServiceError
from upi_guard.domain.models import DerivedFeatures, RiskAssessment, RiskLabel, Transaction
from upi_guard.domain.scoring import RiskScorer, classify_probability

OFFLINE = "offline"


def build_prediction_payload(transaction: Transaction, features: DerivedFeatures) -> Dict[str, Any]:
    """
    Render the POST /predict body.

    The wire format has no "unknown" value: an unspecified amount, an
    absent frequency and an unknown deviation are all sent as 0.
    """
    payload: Dict[str, Any] = {
        "amount": float(transaction.amount) if transaction.amount is not None else 0.0,
        "Transaction_Frequency": features.monthly_frequency or 0,
        "Transaction_Amount_Deviation": (
            float(features.amount_deviation) if features.amount_deviation is not None else 0.0
        ),
    }
    payload.update(transaction.context.to_payload())
    return payload


def parse_prediction(data: Any, features: DerivedFeatures, scorer_name: str = "remote") -> RiskAssessment:
    """
    Validate a prediction response and turn it into an assessment.

    The remote risk_level must agree with the thresholds applied to
    fraud_probability; a contradicting pair is rejected rather than trusted.

    Raises:
        ServiceError: When the body does not match the prediction schema
    """
    try:
        probability = float(data["fraud_probability"])
        label = RiskLabel(str(data["risk_level"]).upper())
        flagged = int(data.get("fraud_prediction", 0)) == 1
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ServiceError(f"Invalid prediction from scoring API: {e}") from e

    if not 0.0 <= probability <= 1.0:
        raise ServiceError(f"Invalid prediction from scoring API: probability {probability}")

    expected = classify_probability(probability)
    if label is not expected:
        logging.warning(
            "Scoring API risk level contradicts its probability",
            extra={"fraud_probability": probability, "risk_level": label.value, "expected_risk_level": expected.value},
        )
        raise ServiceError(
            f"Invalid prediction from scoring API: risk level {label.value} for probability {probability}"
        )

    reasons = [f"Model fraud probability {probability:.0%}"]
    if flagged:
        reasons.append("Model flagged this transaction as fraudulent")
    if features.amount_deviation is not None:
        reasons.append(f"Amount deviation from typical spend: {features.amount_deviation}")
    else:
        reasons.append("Typical spend unknown; amount deviation not assessed")

    return RiskAssessment(
        probability=probability,
        label=label,
        reasons=tuple(reasons),
        scorer=scorer_name,
    )


class RemoteScorer(RiskScorer):
    """Client for the external fraud prediction API"""

    name = "remote"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.scoring_api_base
        self.timeout = timeout or settings.scoring_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def health(self) -> str:
        """
        Query GET /health.

        Returns the reported status ("healthy", ...) or "offline" when the
        service cannot be reached or answers with anything unexpected.
        Never raises.
        """
        async with self._client() as client:
            try:
                response = await client.get("/health")
                response.raise_for_status()
                status = response.json().get("status")
            except Exception as e:
                logging.warning(f"Scoring API health check failed: {e}")
                return OFFLINE
        return str(status) if status else OFFLINE

    async def score(self, transaction: Transaction, features: DerivedFeatures) -> RiskAssessment:
        """
        POST /predict and map the response to a RiskAssessment.

        Raises:
            ScoringTimeoutError: No response within the timeout
            NetworkError: Host unreachable or connection dropped
            ServiceError: Non-2xx status or malformed body
        """
        payload = build_prediction_payload(transaction, features)
        async with self._client() as client:
            try:
                response = await client.post("/predict", json=payload)
                response.raise_for_status()
                data = response.json()

            except httpx.TimeoutException as e:
                raise ScoringTimeoutError(f"Scoring API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ServiceError(
                    f"Scoring API error: {e.response.status_code}",
                    status_code=e.response.status_code,
                ) from e
            except httpx.RequestError as e:
                raise NetworkError(f"Scoring API unreachable: {e}") from e
            except ValueError as e:
                raise ServiceError(f"Scoring API returned invalid JSON: {e}") from e

        return parse_prediction(data, features, self.name)
