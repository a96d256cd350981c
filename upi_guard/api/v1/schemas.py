"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from upi_guard.domain.models import DerivedFeatures, Evaluation, PaymentDecision, RiskAssessment, Transaction
from upi_guard.services.session import SessionController

# Amounts and frequencies are passed to the normalizer as received;
# it owns the validation rules.
RawNumber = Optional[Union[str, int, float]]


class ContextSchema(BaseModel):
    """Categorical risk context; omitted fields take their defaults"""

    channel: Optional[str] = None
    payment_gateway: Optional[str] = None
    device_os: Optional[str] = None
    merchant_category: Optional[str] = None
    status: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class ManualEntryRequest(BaseModel):
    """Manual-entry form fields"""

    payee_identifier: Optional[str] = Field(None, description="UPI ID, e.g. name@bank")
    payee_name: Optional[str] = None
    amount: RawNumber = None
    monthly_frequency: RawNumber = Field(None, description="Declared transactions per month")
    occurred_at: Optional[str] = None
    context: Optional[ContextSchema] = None

    def to_fields(self) -> Dict[str, Any]:
        fields = self.model_dump(exclude={"context"})
        if self.context is not None:
            fields["context"] = self.context.model_dump(exclude_none=True)
        return fields


class EvaluateRequest(ManualEntryRequest):
    """Request body for POST /v1/evaluate"""

    source: Literal["scanned", "manual"] = "manual"
    payload: Optional[str] = Field(None, description="Decoded QR payload (scanned source)")


class TransactionSchema(BaseModel):
    source: str
    payee_identifier: str
    payee_name: str
    amount: Optional[float]
    occurred_at: datetime
    context: Dict[str, str]
    low_confidence: bool

    @classmethod
    def from_domain(cls, transaction: Transaction) -> "TransactionSchema":
        return cls(
            source=transaction.source.value,
            payee_identifier=transaction.payee_identifier,
            payee_name=transaction.payee_name,
            amount=transaction.amount,
            occurred_at=transaction.occurred_at,
            context=transaction.context.to_payload(),
            low_confidence=transaction.low_confidence,
        )


class FeaturesSchema(BaseModel):
    monthly_frequency: Optional[int]
    monthly_frequency_band: Optional[str]
    amount_deviation: Optional[float]  # null means unknown

    @classmethod
    def from_domain(cls, features: DerivedFeatures) -> "FeaturesSchema":
        band = features.monthly_frequency_band
        return cls(
            monthly_frequency=features.monthly_frequency,
            monthly_frequency_band=band.value if band else None,
            amount_deviation=features.amount_deviation,
        )


class AssessmentSchema(BaseModel):
    probability: float
    label: str
    reasons: List[str]
    scorer: str

    @classmethod
    def from_domain(cls, assessment: RiskAssessment) -> "AssessmentSchema":
        return cls(
            probability=assessment.probability,
            label=assessment.label.value,
            reasons=list(assessment.reasons),
            scorer=assessment.scorer,
        )


class DecisionSchema(BaseModel):
    allowed: bool
    reason_code: str
    display_label: str
    warning: bool
    message: str

    @classmethod
    def from_domain(cls, decision: PaymentDecision) -> "DecisionSchema":
        return cls(
            allowed=decision.allowed,
            reason_code=decision.reason_code,
            display_label=decision.display_label,
            warning=decision.warning,
            message=decision.message,
        )


class EvaluationResponse(BaseModel):
    """Response for POST /v1/evaluate"""

    request_id: str
    transaction: TransactionSchema
    features: FeaturesSchema
    assessment: AssessmentSchema
    decision: DecisionSchema

    @classmethod
    def from_domain(cls, evaluation: Evaluation) -> "EvaluationResponse":
        return cls(
            request_id=evaluation.request_id,
            transaction=TransactionSchema.from_domain(evaluation.transaction),
            features=FeaturesSchema.from_domain(evaluation.features),
            assessment=AssessmentSchema.from_domain(evaluation.assessment),
            decision=DecisionSchema.from_domain(evaluation.decision),
        )


class ErrorSchema(BaseModel):
    kind: str
    message: str


class SessionResponse(BaseModel):
    """Observable state of one session"""

    session_id: str
    state: str
    transaction: Optional[TransactionSchema] = None
    features: Optional[FeaturesSchema] = None
    assessment: Optional[AssessmentSchema] = None
    decision: Optional[DecisionSchema] = None
    error: Optional[ErrorSchema] = None

    @classmethod
    def from_controller(cls, controller: SessionController) -> "SessionResponse":
        error = None
        if controller.last_error is not None:
            error = ErrorSchema(kind=controller.error_kind, message=controller.error_message)
        return cls(
            session_id=controller.session_id,
            state=controller.state.value,
            transaction=TransactionSchema.from_domain(controller.transaction) if controller.transaction else None,
            features=FeaturesSchema.from_domain(controller.features) if controller.features else None,
            assessment=AssessmentSchema.from_domain(controller.assessment) if controller.assessment else None,
            decision=DecisionSchema.from_domain(controller.decision) if controller.decision else None,
            error=error,
        )


class ScanStartRequest(BaseModel):
    """Request body for POST /v1/sessions/{id}/scan/start"""

    camera_permission: Literal["granted", "denied"] = "granted"
    monthly_frequency: RawNumber = None


class ScanEventRequest(BaseModel):
    """One decoded QR payload from the scanner"""

    payload: str


class ScanEventResponse(BaseModel):
    accepted: bool
    session: SessionResponse


class PaymentResponse(BaseModel):
    """Response for POST /v1/sessions/{id}/pay"""

    payment_uri: str
    decision: DecisionSchema


class ReportResponse(BaseModel):
    status: str
