"""/v1/sessions - scan-or-type evaluation sessions driven through the state machine"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response

from upi_guard.api.v1.schemas import (
    DecisionSchema,
    ManualEntryRequest,
    PaymentResponse,
    ReportResponse,
    ScanEventRequest,
    ScanEventResponse,
    ScanStartRequest,
    SessionResponse,
)
from upi_guard.api.dependencies import get_report_client, get_request_id, get_scorer, get_session, get_session_registry
from upi_guard.domain.exceptions import InvalidTransitionError, ValidationError
from upi_guard.domain.scoring import RiskScorer
from upi_guard.domain.upi import build_payment_uri
from upi_guard.infrastructure.clients.reports import ReportClient
from upi_guard.services.session import SessionController, SessionRegistry, SessionState, StaticPermissionProvider

router = APIRouter()


def _conflict(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    registry: SessionRegistry = Depends(get_session_registry),
    scorer: RiskScorer = Depends(get_scorer),
):
    """Open a new idle session"""
    return SessionResponse.from_controller(registry.create(scorer))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session_state(session: SessionController = Depends(get_session)):
    return SessionResponse.from_controller(session)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    registry.discard(session_id)
    return Response(status_code=204)


@router.post("/sessions/{session_id}/scan/start", response_model=SessionResponse)
async def start_scan(
    request_body: ScanStartRequest,
    session: SessionController = Depends(get_session),
):
    """
    Open the scanner.

    The client app reports the camera permission it obtained; a denial
    moves the session to permission_denied.
    """
    provider = StaticPermissionProvider(granted=request_body.camera_permission == "granted")
    try:
        await session.start_scan(request_body.monthly_frequency, permission_provider=provider)
    except InvalidTransitionError as e:
        raise _conflict(e)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.reason)
    return SessionResponse.from_controller(session)


@router.post("/sessions/{session_id}/scan", response_model=ScanEventResponse)
async def scan_event(
    request_body: ScanEventRequest,
    session: SessionController = Depends(get_session),
):
    """
    Feed one decoded QR payload.

    Payloads arriving while the session is not capturing (e.g. while an
    earlier scan is being scored) are dropped: accepted=false.
    """
    accepted = await session.on_scan(request_body.payload)
    return ScanEventResponse(accepted=accepted, session=SessionResponse.from_controller(session))


@router.post("/sessions/{session_id}/manual/start", response_model=SessionResponse)
async def start_manual(session: SessionController = Depends(get_session)):
    try:
        session.start_manual()
    except InvalidTransitionError as e:
        raise _conflict(e)
    return SessionResponse.from_controller(session)


@router.post("/sessions/{session_id}/manual/submit", response_model=SessionResponse)
async def submit_manual(
    request_body: ManualEntryRequest,
    session: SessionController = Depends(get_session),
):
    """
    Submit the manual-entry form.

    Validation and scoring failures are reported in the session's error
    field; the session stays in (or returns to) capturing_manual.
    """
    try:
        await session.submit(request_body.to_fields())
    except InvalidTransitionError as e:
        raise _conflict(e)
    return SessionResponse.from_controller(session)


@router.post("/sessions/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(session: SessionController = Depends(get_session)):
    try:
        session.cancel()
    except InvalidTransitionError as e:
        raise _conflict(e)
    return SessionResponse.from_controller(session)


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(session: SessionController = Depends(get_session)):
    try:
        session.reset()
    except InvalidTransitionError as e:
        raise _conflict(e)
    return SessionResponse.from_controller(session)


@router.post("/sessions/{session_id}/pay", response_model=PaymentResponse)
async def pay(session: SessionController = Depends(get_session)):
    """Hand off to the UPI app; only available when the policy gate allows"""
    if session.state is not SessionState.DECIDED:
        raise HTTPException(status_code=409, detail="No decision available for this session")
    if not session.decision.allowed:
        raise HTTPException(status_code=403, detail=session.decision.message)
    return PaymentResponse(
        payment_uri=build_payment_uri(session.transaction),
        decision=DecisionSchema.from_domain(session.decision),
    )


@router.post("/sessions/{session_id}/report", response_model=ReportResponse, status_code=202)
async def report_fraud(
    background_tasks: BackgroundTasks,
    request: Request,
    session: SessionController = Depends(get_session),
    report_client: ReportClient = Depends(get_report_client),
):
    """Report the evaluated payee as fraudulent; delivery happens in the background"""
    if session.state is not SessionState.DECIDED:
        raise HTTPException(status_code=409, detail="Only evaluated transactions can be reported")

    transaction = session.transaction
    background_tasks.add_task(
        report_client.send_fraud_report,
        {
            "event": "FRAUD_REPORTED",
            "session_id": session.session_id,
            "payee_identifier": transaction.payee_identifier,
            "payee_name": transaction.payee_name,
            "amount": str(transaction.amount) if transaction.amount is not None else None,
            "low_confidence": transaction.low_confidence,
            "risk_label": session.assessment.label.value,
            "fraud_probability": session.assessment.probability,
        },
    )
    logging.info(
        "Fraud report queued",
        extra={"request_id": get_request_id(request), "session_id": session.session_id},
    )
    return ReportResponse(status="queued")
