"""Configuration management using Pydantic Settings"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from upi_guard.domain.normalizer import FALLBACK_PAYEE_IDENTIFIER, UNRESOLVED_PAYEE_NAME


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "upi-guard"
    log_level: str = "INFO"

    # Scoring
    scorer: Literal["local", "remote", "simulated"] = "local"
    simulation_seed: Optional[int] = None
    scoring_api_base: str = "http://localhost:8000"
    scoring_timeout_seconds: float = 5.0  # Bound on every scoring call, local or remote

    # Sessions
    session_idle_ttl_seconds: float = 900.0  # Abandoned sessions are evicted after this long

    # Input normalization
    fallback_payee_identifier: str = FALLBACK_PAYEE_IDENTIFIER
    unresolved_payee_name: str = UNRESOLVED_PAYEE_NAME

    # Fraud report webhook
    report_webhook_url: str = "http://localhost:8002/mock-fraud-reports"
    report_timeout_seconds: float = 10.0
    report_max_retries: int = 5
    report_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()
