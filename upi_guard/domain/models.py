"""Domain models - immutable dataclasses flowing through the evaluation pipeline"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from upi_guard.domain.exceptions import UnknownFeatureError


class TransactionSource(str, Enum):
    """Where the raw input came from"""

    SCANNED = "scanned"
    MANUAL = "manual"


class FrequencyBand(str, Enum):
    """User-declared activity level, bucketed by monthly transaction count"""

    RARE = "rare"  # <= 3 per month
    REGULAR = "regular"  # 4-10 per month
    ACTIVE = "active"  # > 10 per month


class RiskLabel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class TransactionContext:
    """Categorical attributes sent to the scorer alongside the amount"""

    channel: str = "Mobile"
    payment_gateway: str = "UPI"
    device_os: str = "Android"
    merchant_category: str = "Other"
    status: str = "Pending"
    city: str = "Unknown"
    state: str = "Unknown"

    def to_payload(self) -> Dict[str, str]:
        """Render with the field names the prediction endpoint expects"""
        return {
            "Transaction_Channel": self.channel,
            "Payment_Gateway": self.payment_gateway,
            "Device_OS": self.device_os,
            "Merchant_Category": self.merchant_category,
            "Transaction_Status": self.status,
            "Transaction_City": self.city,
            "Transaction_State": self.state,
        }


@dataclass(frozen=True)
class Transaction:
    """Canonical record of the payment being evaluated"""

    source: TransactionSource
    payee_identifier: str  # validated local@domain
    payee_name: str
    amount: Optional[Decimal]  # None means unspecified, never zero
    occurred_at: datetime
    context: TransactionContext = field(default_factory=TransactionContext)
    low_confidence: bool = False  # fallback identifier substituted for a scan

    @property
    def payee_handle(self) -> str:
        return self.payee_identifier.split("@", 1)[1]

    @property
    def amount_specified(self) -> bool:
        return self.amount is not None


@dataclass(frozen=True)
class DerivedFeatures:
    """Features computed from a transaction and the user's declared activity"""

    monthly_frequency: Optional[int]
    monthly_frequency_band: Optional[FrequencyBand]
    amount_deviation: Optional[Decimal]  # None means unknown, not zero

    @property
    def deviation_known(self) -> bool:
        return self.amount_deviation is not None

    def require_amount_deviation(self) -> Decimal:
        """
        Return the amount deviation.

        Raises:
            UnknownFeatureError: When frequency or amount was not supplied
        """
        if self.amount_deviation is None:
            raise UnknownFeatureError("amount deviation is unknown")
        return self.amount_deviation


@dataclass(frozen=True)
class RiskAssessment:
    """Output of one scoring call"""

    probability: float
    label: RiskLabel
    reasons: Tuple[str, ...]
    scorer: str = "unknown"

    def __post_init__(self) -> None:
        if not 0.0 <= self.probability <= 1.0:
            raise ValueError(f"probability out of range: {self.probability}")
        if not self.reasons:
            raise ValueError("assessment requires at least one reason")


@dataclass(frozen=True)
class PaymentDecision:
    """Policy outcome for the payment action"""

    allowed: bool
    reason_code: str
    display_label: str
    warning: bool
    message: str


@dataclass(frozen=True)
class Evaluation:
    """One evaluation of one transaction"""

    request_id: str
    transaction: Transaction
    features: DerivedFeatures
    assessment: RiskAssessment
    decision: PaymentDecision
