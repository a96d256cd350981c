"""Policy gate - maps a risk label to the payment action and its user-facing messaging"""

from typing import Dict

from upi_guard.domain.models import PaymentDecision, RiskAssessment, RiskLabel

# The label is the sole authority: probability is never inspected here,
# so UI and logic stay consistent when scorer thresholds move.
DECISIONS: Dict[RiskLabel, PaymentDecision] = {
    RiskLabel.LOW: PaymentDecision(
        allowed=True,
        reason_code="risk_low",
        display_label="PROCEED",
        warning=False,
        message="No significant fraud signals found. You can proceed to pay.",
    ),
    RiskLabel.MEDIUM: PaymentDecision(
        allowed=True,
        reason_code="risk_medium",
        display_label="CAUTION",
        warning=True,
        message="Some risk signals found. Verify the payee before paying.",
    ),
    RiskLabel.HIGH: PaymentDecision(
        allowed=False,
        reason_code="risk_high",
        display_label="BLOCKED",
        warning=False,
        message="Payment blocked: this transaction looks fraudulent.",
    ),
}


def decide(assessment: RiskAssessment | RiskLabel | str) -> PaymentDecision:
    """
    Decide whether the payment action is enabled.

    HIGH blocks; MEDIUM and LOW allow (MEDIUM with a warning banner).
    Accepts an assessment or a bare label.
    """
    label = assessment.label if isinstance(assessment, RiskAssessment) else RiskLabel(assessment)
    return DECISIONS[label]
