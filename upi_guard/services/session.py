"""Session controller - the state machine behind one scan-or-type, score, decide interaction"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from upi_guard.domain.exceptions import (
    CameraPermissionError,
    DomainException,
    InvalidTransitionError,
    ScoringError,
    ValidationError,
)
from upi_guard.domain.features import parse_monthly_frequency
from upi_guard.domain.models import (
    DerivedFeatures,
    PaymentDecision,
    RiskAssessment,
    Transaction,
    TransactionSource,
)
from upi_guard.domain.scoring import RiskScorer
from upi_guard.infrastructure.observability.logging import log_transition
from upi_guard.infrastructure.observability.metrics import dropped_scan_counter, stale_response_counter
from upi_guard.services.pipeline import assess, prepare


class SessionState(str, Enum):
    IDLE = "idle"
    CAPTURING_SCAN = "capturing_scan"
    CAPTURING_MANUAL = "capturing_manual"
    SCORING = "scoring"
    DECIDED = "decided"
    PERMISSION_DENIED = "permission_denied"


class PermissionProvider(ABC):
    """Answers whether the camera may be used for scanning"""

    @abstractmethod
    async def camera_permission_granted(self) -> bool:
        pass


class StaticPermissionProvider(PermissionProvider):
    """Permission answer known up front (e.g. reported by the client app)"""

    def __init__(self, granted: bool = True):
        self.granted = granted

    async def camera_permission_granted(self) -> bool:
        return self.granted


class SessionController:
    """
    Drives one user interaction through the evaluation pipeline.

    Transitions:
        idle --start_scan--> capturing_scan | permission_denied
        idle --start_manual--> capturing_manual
        capturing_scan --scan--> scoring (first event only; the rest are dropped)
        capturing_manual --submit(valid)--> scoring
        scoring --success--> decided
        scoring --failure--> originating capture state, error surfaced
        decided --reset--> idle
        capturing_* | permission_denied | scoring --cancel--> idle

    Only one scoring call is ever in flight. Each call is tagged with a
    request id; a response whose id no longer matches the live request
    (the session was cancelled meanwhile) is discarded.
    """

    def __init__(
        self,
        scorer: RiskScorer,
        permission_provider: Optional[PermissionProvider] = None,
        scoring_timeout: Optional[float] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self._clock = clock
        self.touched_at = clock()
        self.scorer = scorer
        self.permission_provider = permission_provider or StaticPermissionProvider(granted=True)
        self.scoring_timeout = scoring_timeout

        self.state = SessionState.IDLE
        self.monthly_frequency: Optional[int] = None
        self.transaction: Optional[Transaction] = None
        self.features: Optional[DerivedFeatures] = None
        self.assessment: Optional[RiskAssessment] = None
        self.decision: Optional[PaymentDecision] = None
        self.last_error: Optional[DomainException] = None
        self.request_id: Optional[str] = None
        self._origin: Optional[SessionState] = None

    @property
    def error_kind(self) -> Optional[str]:
        if self.last_error is None:
            return None
        if isinstance(self.last_error, ScoringError):
            return self.last_error.kind
        if isinstance(self.last_error, ValidationError):
            return "validation_error"
        if isinstance(self.last_error, CameraPermissionError):
            return "permission_error"
        return "error"

    @property
    def error_message(self) -> Optional[str]:
        return str(self.last_error) if self.last_error is not None else None

    def _transition(self, new_state: SessionState, event: str) -> None:
        log_transition(self.session_id, self.state.value, new_state.value, event)
        self.state = new_state
        self.touch()

    def touch(self) -> None:
        self.touched_at = self._clock()

    def _require(self, event: str, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(f"Cannot {event} while session is {self.state.value}")

    def _discard(self) -> None:
        self.monthly_frequency = None
        self.transaction = None
        self.features = None
        self.assessment = None
        self.decision = None
        self.last_error = None
        self.request_id = None
        self._origin = None

    async def start_scan(
        self,
        monthly_frequency: Any = None,
        permission_provider: Optional[PermissionProvider] = None,
    ) -> SessionState:
        """
        Open the scanner if the camera may be used.

        A denied permission (or a provider that fails to answer) routes to
        permission_denied; the manual path stays available after cancel.
        """
        self._require("start scan", SessionState.IDLE)
        frequency = parse_monthly_frequency(monthly_frequency)
        provider = permission_provider or self.permission_provider

        try:
            granted = await provider.camera_permission_granted()
        except Exception as e:
            logging.warning(f"Camera permission query failed: {e}", extra={"session_id": self.session_id})
            granted = False

        # A concurrent start_scan may have won while we were waiting
        if self.state is not SessionState.IDLE:
            return self.state

        self.monthly_frequency = frequency
        if granted:
            self.last_error = None
            self._transition(SessionState.CAPTURING_SCAN, "start_scan")
        else:
            self.last_error = CameraPermissionError("Camera permission denied")
            self._transition(SessionState.PERMISSION_DENIED, "start_scan")
        return self.state

    def start_manual(self) -> SessionState:
        self._require("start manual entry", SessionState.IDLE)
        self.last_error = None
        self._transition(SessionState.CAPTURING_MANUAL, "start_manual")
        return self.state

    async def on_scan(self, payload: Any) -> bool:
        """
        Handle one decoded QR payload from the scan source.

        Returns True when the payload was taken for scoring. Events outside
        capturing_scan, notably the stream of repeats that arrives while the
        first one is being scored, are dropped rather than queued.
        """
        self.touch()
        if self.state is not SessionState.CAPTURING_SCAN:
            dropped_scan_counter.inc()
            logging.debug("Scan event dropped", extra={"session_id": self.session_id, "state": self.state.value})
            return False

        try:
            transaction, features = prepare(payload, TransactionSource.SCANNED, self.monthly_frequency)
        except ValidationError as e:
            self.last_error = e
            return False

        await self._score(transaction, features, SessionState.CAPTURING_SCAN, "scan")
        return True

    async def submit(self, fields: Any) -> SessionState:
        """
        Submit the manual-entry form.

        Invalid input keeps the session in capturing_manual with the
        validation error surfaced; valid input is scored.
        """
        self._require("submit", SessionState.CAPTURING_MANUAL)
        self.touch()
        monthly_frequency = fields.get("monthly_frequency") if isinstance(fields, Mapping) else None

        try:
            transaction, features = prepare(fields, TransactionSource.MANUAL, monthly_frequency)
        except ValidationError as e:
            self.last_error = e
            return self.state

        self.monthly_frequency = features.monthly_frequency
        await self._score(transaction, features, SessionState.CAPTURING_MANUAL, "submit")
        return self.state

    async def _score(
        self,
        transaction: Transaction,
        features: DerivedFeatures,
        origin: SessionState,
        event: str,
    ) -> None:
        request_id = str(uuid.uuid4())
        self.request_id = request_id
        self._origin = origin
        self.transaction = transaction
        self.features = features
        self.assessment = None
        self.decision = None
        self.last_error = None
        self._transition(SessionState.SCORING, event)

        try:
            evaluation = await assess(
                transaction,
                features,
                self.scorer,
                request_id=request_id,
                timeout=self.scoring_timeout,
                session_id=self.session_id,
            )
        except ScoringError as e:
            self._fail(request_id, e)
            return
        except (Exception, asyncio.CancelledError) as e:
            # Never leave the session parked in scoring
            self._fail(request_id, ScoringError(f"Scoring aborted: {e!r}"))
            raise

        if not self._is_live(request_id):
            self._drop_stale(request_id)
            return

        self.assessment = evaluation.assessment
        self.decision = evaluation.decision
        self.request_id = None
        self._transition(SessionState.DECIDED, "success")

    def _is_live(self, request_id: str) -> bool:
        return self.state is SessionState.SCORING and self.request_id == request_id

    def _drop_stale(self, request_id: str) -> None:
        stale_response_counter.inc()
        logging.info(
            "Discarded stale scoring response",
            extra={"session_id": self.session_id, "request_id": request_id, "state": self.state.value},
        )

    def _fail(self, request_id: str, error: ScoringError) -> None:
        if not self._is_live(request_id):
            self._drop_stale(request_id)
            return
        logging.warning(
            f"Scoring failed: {error}",
            extra={"session_id": self.session_id, "request_id": request_id, "error_kind": error.kind},
        )
        origin = self._origin or SessionState.IDLE
        self.transaction = None
        self.features = None
        self.request_id = None
        self.last_error = error
        self._transition(origin, "failure")

    def cancel(self) -> SessionState:
        """Abandon the interaction; a scoring response still in flight will be discarded"""
        self._require(
            "cancel",
            SessionState.CAPTURING_SCAN,
            SessionState.CAPTURING_MANUAL,
            SessionState.PERMISSION_DENIED,
            SessionState.SCORING,
        )
        self._discard()
        self._transition(SessionState.IDLE, "cancel")
        return self.state

    def reset(self) -> SessionState:
        """Leave the decided state, discarding the transaction, features and assessment"""
        self._require("reset", SessionState.DECIDED)
        self._discard()
        self._transition(SessionState.IDLE, "reset")
        return self.state


class SessionRegistry:
    """
    In-memory index of live sessions; nothing is persisted.

    Sessions untouched for longer than idle_ttl seconds are evicted when
    the next session is created. A session with a scoring call in flight
    is never evicted.
    """

    def __init__(
        self,
        scoring_timeout: Optional[float] = None,
        idle_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.scoring_timeout = scoring_timeout
        self.idle_ttl = idle_ttl
        self.clock = clock
        self._sessions: Dict[str, SessionController] = {}

    def create(self, scorer: RiskScorer) -> SessionController:
        self.evict_expired()
        controller = SessionController(scorer, scoring_timeout=self.scoring_timeout, clock=self.clock)
        self._sessions[controller.session_id] = controller
        return controller

    def evict_expired(self) -> int:
        """Drop abandoned sessions; returns how many were removed"""
        if self.idle_ttl is None:
            return 0
        cutoff = self.clock() - self.idle_ttl
        expired = [
            session_id
            for session_id, controller in self._sessions.items()
            if controller.touched_at < cutoff and controller.state is not SessionState.SCORING
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logging.info("Evicted idle sessions", extra={"evicted": len(expired), "live": len(self._sessions)})
        return len(expired)

    def get(self, session_id: str) -> SessionController:
        """
        Raises:
            KeyError: Unknown or discarded session
        """
        return self._sessions[session_id]

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
