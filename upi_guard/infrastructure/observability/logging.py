"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "upi-guard"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_evaluation(
    request_id: str,
    session_id: str | None,
    label: str,
    allowed: bool,
    low_confidence: bool,
    duration_ms: float,
) -> None:
    """Log structured evaluation outcome for analysis"""
    logging.info(
        "Evaluation completed",
        extra={
            "request_id": request_id,
            "session_id": session_id,
            "step": "evaluation_complete",
            "risk_label": label,
            "payment_outcome": "allowed" if allowed else "blocked",
            "low_confidence": low_confidence,
            "duration_ms": duration_ms,
        },
    )


def log_transition(session_id: str, previous: str, current: str, event: str) -> None:
    """Log a session state machine transition"""
    logging.info(
        "Session transition",
        extra={
            "session_id": session_id,
            "step": "session_transition",
            "event": event,
            "from_state": previous,
            "to_state": current,
        },
    )
