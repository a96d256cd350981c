"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache

from fastapi import Depends, HTTPException, Request

from upi_guard.config import settings
from upi_guard.domain.scoring import LocalHeuristicScorer, RiskScorer, SimulatedScorer
from upi_guard.infrastructure.clients.reports import ReportClient
from upi_guard.infrastructure.clients.scoring import RemoteScorer
from upi_guard.services.session import SessionController, SessionRegistry


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def build_scorer(kind: str | None = None) -> RiskScorer:
    """Select the scorer implementation named in configuration"""
    kind = kind or settings.scorer
    if kind == "remote":
        return RemoteScorer()
    if kind == "simulated":
        return SimulatedScorer(seed=settings.simulation_seed)
    return LocalHeuristicScorer()


@lru_cache
def get_scorer() -> RiskScorer:
    """Provide the process-wide risk scorer"""
    return build_scorer()


async def get_session_registry(request: Request) -> SessionRegistry:
    """Provide the in-memory session registry owned by the app; resolved on the event loop"""
    return request.app.state.sessions


async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionController:
    """Resolve a live session or answer 404"""
    try:
        return registry.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


def get_report_client() -> ReportClient:
    """Provide fraud report webhook client instance"""
    return ReportClient()
