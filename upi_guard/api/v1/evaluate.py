"""POST /v1/evaluate - one-shot transaction risk evaluation"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from upi_guard.api.v1.schemas import EvaluateRequest, EvaluationResponse
from upi_guard.api.dependencies import get_request_id, get_scorer
from upi_guard.domain.exceptions import NetworkError, ScoringTimeoutError, ServiceError, ValidationError
from upi_guard.domain.scoring import RiskScorer
from upi_guard.services.pipeline import evaluate

router = APIRouter()


@router.post("/evaluate", response_model=EvaluationResponse)
async def evaluate_transaction(
    request_body: EvaluateRequest,
    request: Request,
    scorer: RiskScorer = Depends(get_scorer),
):
    """
    Evaluate a transaction without a session.

    Flow:
    1. Normalize the scan payload or manual fields into a Transaction
    2. Derive amount deviation from the declared monthly frequency
    3. Score with the configured scorer (time-bounded)
    4. Pass the assessment through the payment policy gate
    """
    request_id = get_request_id(request)
    raw = request_body.payload if request_body.source == "scanned" else request_body.to_fields()

    try:
        evaluation = await evaluate(
            raw,
            request_body.source,
            scorer,
            monthly_frequency=request_body.monthly_frequency,
            request_id=request_id,
        )
        return EvaluationResponse.from_domain(evaluation)

    except ValidationError as e:
        logging.warning(f"Rejected input: {e.reason}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=e.reason)

    except ScoringTimeoutError as e:
        logging.error(f"Scoring timeout: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=504, detail="Risk scoring timed out")

    except (NetworkError, ServiceError) as e:
        logging.error(f"Scoring unavailable: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Risk scoring service unavailable")
