"""Risk scoring - the pluggable scorer interface and its local implementations"""

import random
from abc import ABC, abstractmethod
from typing import List, Optional

from upi_guard.domain.exceptions import UnknownFeatureError
from upi_guard.domain.features import band_baseline
from upi_guard.domain.models import DerivedFeatures, RiskAssessment, RiskLabel, Transaction

LOW_RISK_CEILING = 0.4
HIGH_RISK_FLOOR = 0.7

# Payment handles of major UPI issuers (the part after "@")
KNOWN_BANK_HANDLES = frozenset(
    {
        "apl",
        "axisbank",
        "axl",
        "hdfcbank",
        "ibl",
        "icici",
        "kotak",
        "okaxis",
        "okhdfcbank",
        "okicici",
        "oksbi",
        "paytm",
        "sbi",
        "upi",
        "yapl",
        "ybl",
    }
)


def classify_probability(probability: float) -> RiskLabel:
    """
    Map a fraud probability to its risk label.

    Bands:
    - below 0.4:          LOW
    - 0.4 to 0.7 (incl.): MEDIUM
    - above 0.7:          HIGH
    """
    if not 0.0 <= probability <= 1.0:
        raise ValueError(f"probability out of range: {probability}")
    if probability < LOW_RISK_CEILING:
        return RiskLabel.LOW
    if probability <= HIGH_RISK_FLOOR:
        return RiskLabel.MEDIUM
    return RiskLabel.HIGH


class RiskScorer(ABC):
    """Capability that turns a transaction and its features into an assessment"""

    name = "scorer"

    @abstractmethod
    async def score(self, transaction: Transaction, features: DerivedFeatures) -> RiskAssessment:
        """
        Score one well-formed transaction.

        features.amount_deviation may be unknown and must be handled as such.

        Raises:
            ScoringError: When no assessment can be produced
        """


class LocalHeuristicScorer(RiskScorer):
    """
    Deterministic on-device scorer.

    Scoring weights (additive, capped at 1.0):
    - 0.05: Base rate
    - 0.30: Payee handle is not a known bank handle
    - 0.35: Scan carried no payment address (fallback identifier used)
    - 0.05: Amount not specified
    - 0.10: Amount deviation unknown (no declared frequency)
    - 0.00-0.40: Amount deviation, 0.2 per multiple of the band baseline, capped at 2x

    Thresholds rationale:
    - A known handle with typical spend stays well under 0.4 (LOW)
    - An unknown handle alone with an atypical amount lands in MEDIUM
    - An unknown handle with a very atypical amount (2x baseline) is HIGH
    """

    name = "local_heuristic"

    BASE_RATE = 0.05
    UNKNOWN_HANDLE_WEIGHT = 0.30
    LOW_CONFIDENCE_WEIGHT = 0.35
    UNSPECIFIED_AMOUNT_WEIGHT = 0.05
    UNKNOWN_DEVIATION_WEIGHT = 0.10
    DEVIATION_WEIGHT = 0.20
    DEVIATION_CAP = 2.0

    def assess(self, transaction: Transaction, features: DerivedFeatures) -> RiskAssessment:
        probability = self.BASE_RATE
        reasons: List[str] = []

        if transaction.low_confidence:
            probability += self.LOW_CONFIDENCE_WEIGHT
            reasons.append("Unknown merchant: QR code carried no payment address")
        else:
            reasons.append("Valid UPI format")

        if transaction.payee_handle.lower() in KNOWN_BANK_HANDLES:
            reasons.append("Known bank domain")
        else:
            probability += self.UNKNOWN_HANDLE_WEIGHT
            reasons.append(f"Unknown bank domain '@{transaction.payee_handle}'")

        if not transaction.amount_specified:
            probability += self.UNSPECIFIED_AMOUNT_WEIGHT
            reasons.append("Amount not specified")

        try:
            deviation = features.require_amount_deviation()
        except UnknownFeatureError:
            # Only meaningful once there is an amount to compare
            if transaction.amount_specified:
                probability += self.UNKNOWN_DEVIATION_WEIGHT
                reasons.append("Typical spend unknown; amount deviation not assessed")
        else:
            baseline = band_baseline(features.monthly_frequency_band)
            ratio = min(float(deviation / baseline), self.DEVIATION_CAP)
            probability += self.DEVIATION_WEIGHT * ratio
            if ratio >= 1.0:
                reasons.append(f"High amount: deviates {deviation} from typical spend of {baseline}")
            elif ratio >= 0.5:
                reasons.append(f"Amount differs from typical spend of {baseline}")
            else:
                reasons.append("Amount close to typical spend")

        probability = round(min(probability, 1.0), 3)
        return RiskAssessment(
            probability=probability,
            label=classify_probability(probability),
            reasons=tuple(reasons),
            scorer=self.name,
        )

    async def score(self, transaction: Transaction, features: DerivedFeatures) -> RiskAssessment:
        return self.assess(transaction, features)


class SimulatedScorer(RiskScorer):
    """Randomized scorer for demos; seed it for reproducible runs"""

    name = "simulated"

    REASONS = {
        RiskLabel.LOW: ("Valid UPI format", "Known bank domain"),
        RiskLabel.MEDIUM: ("New merchant", "High amount"),
        RiskLabel.HIGH: ("Suspicious pattern detected", "Unknown merchant"),
    }

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._random = random.Random(seed)

    async def score(self, transaction: Transaction, features: DerivedFeatures) -> RiskAssessment:
        probability = round(self._random.random(), 3)
        label = classify_probability(probability)
        return RiskAssessment(
            probability=probability,
            label=label,
            reasons=self.REASONS[label],
            scorer=self.name,
        )
