"""FastAPI application factory"""

from fastapi import Depends, FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from upi_guard.api.dependencies import get_scorer
from upi_guard.api.middleware import RequestIDMiddleware, MetricsMiddleware
from upi_guard.api.v1 import evaluate, sessions
from upi_guard.domain.scoring import RiskScorer
from upi_guard.infrastructure.clients.scoring import RemoteScorer
from upi_guard.infrastructure.observability.logging import setup_logging
from upi_guard.services.session import SessionRegistry
from upi_guard.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="UPI Guard",
        description="Pre-payment fraud risk evaluation for UPI transactions",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Live sessions only; discarded with the process
    app.state.sessions = SessionRegistry(
        scoring_timeout=settings.scoring_timeout_seconds,
        idle_ttl=settings.session_idle_ttl_seconds,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    async def health_check(scorer: RiskScorer = Depends(get_scorer)):
        scorer_status = await scorer.health() if isinstance(scorer, RemoteScorer) else "local"
        return {
            "status": "ok",
            "service": settings.service_name,
            "scorer": scorer.name,
            "scorer_status": scorer_status,
        }

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(evaluate.router, prefix="/v1", tags=["evaluations"])
    app.include_router(sessions.router, prefix="/v1", tags=["sessions"])

    return app


app = create_app()
