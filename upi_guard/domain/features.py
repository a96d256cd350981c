"""Feature derivation - behavioral features the scorer needs but the input does not carry"""

from decimal import Decimal
from typing import Any, Dict, Optional

from upi_guard.domain.exceptions import ValidationError
from upi_guard.domain.models import DerivedFeatures, FrequencyBand, Transaction

# Typical spend per activity level, same currency unit as Transaction.amount
BAND_BASELINES: Dict[FrequencyBand, Decimal] = {
    FrequencyBand.RARE: Decimal("2000"),
    FrequencyBand.REGULAR: Decimal("15000"),
    FrequencyBand.ACTIVE: Decimal("25000"),
}


def frequency_band(monthly_frequency: int) -> FrequencyBand:
    """Bucket a monthly transaction count: <=3 rare, 4-10 regular, >10 active"""
    if monthly_frequency <= 3:
        return FrequencyBand.RARE
    if monthly_frequency <= 10:
        return FrequencyBand.REGULAR
    return FrequencyBand.ACTIVE


def band_baseline(band: FrequencyBand) -> Decimal:
    return BAND_BASELINES[band]


def parse_monthly_frequency(value: Any) -> Optional[int]:
    """
    Validate a user-declared monthly transaction count.

    Absent (None or blank) stays absent. Anything present must be a
    positive whole number; integral strings such as "7" are accepted.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("Monthly frequency must be a whole number")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if not text.isdigit():
            raise ValidationError(f"Monthly frequency {text!r} is not a whole number")
        frequency = int(text)
    elif isinstance(value, int):
        frequency = value
    elif isinstance(value, float) and value.is_integer():
        frequency = int(value)
    elif isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        frequency = int(value)
    else:
        raise ValidationError("Monthly frequency must be a whole number")

    if frequency <= 0:
        raise ValidationError("Monthly frequency must be positive")
    return frequency


def derive(transaction: Transaction, monthly_frequency: Any = None) -> DerivedFeatures:
    """
    Compute the derived features for one transaction.

    amount_deviation = |amount - baseline(band)|, left unknown (None)
    when either the frequency or the amount is missing. Unknown is never
    coerced to zero: zero deviation means "exactly typical spend".

    Deterministic and side-effect free; no clock reads.
    """
    frequency = parse_monthly_frequency(monthly_frequency)
    if frequency is None:
        return DerivedFeatures(monthly_frequency=None, monthly_frequency_band=None, amount_deviation=None)

    band = frequency_band(frequency)
    deviation = None
    if transaction.amount is not None:
        deviation = abs(transaction.amount - band_baseline(band))

    return DerivedFeatures(
        monthly_frequency=frequency,
        monthly_frequency_band=band,
        amount_deviation=deviation,
    )
