from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import os

app = FastAPI(title="Mock Fraud Prediction Server", version="1.0.0")
# Set MOCK_SCORING_STATUS=offline to exercise the offline path
STATUS = os.environ.get("MOCK_SCORING_STATUS", "healthy")


class PredictRequest(BaseModel):
    amount: float
    Transaction_Frequency: int
    Transaction_Amount_Deviation: float
    Transaction_Channel: str = "Mobile"
    Payment_Gateway: str = "UPI"
    Device_OS: str = "Android"
    Merchant_Category: str = "Other"
    Transaction_Status: str = "Pending"
    Transaction_City: str = "Unknown"
    Transaction_State: str = "Unknown"


def risk_level(probability: float) -> str:
    if probability < 0.4: return "LOW"
    if probability <= 0.7: return "MEDIUM"
    return "HIGH"


@app.get("/health")
def health(): return {"status": STATUS}


@app.post("/predict")
def predict(body: PredictRequest):
    if body.amount < 0 or body.Transaction_Frequency < 0:
        raise HTTPException(status_code=400, detail="invalid features")
    # Deviation relative to amount drives the mock model; unknown (0) scores neutral
    ratio = body.Transaction_Amount_Deviation / max(body.amount, 1.0)
    probability = round(min(0.1 + 0.7 * min(ratio, 1.0) + (0.2 if body.Transaction_Frequency == 0 else 0.0), 1.0), 3)
    return {
        "fraud_prediction": 1 if probability > 0.5 else 0,
        "fraud_probability": probability,
        "risk_level": risk_level(probability),
    }
