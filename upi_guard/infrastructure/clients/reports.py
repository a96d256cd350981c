"""Fraud report webhook client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from upi_guard.config import settings
from upi_guard.infrastructure.observability.metrics import report_failure_counter, report_latency_histogram


def is_retryable(error: httpx.HTTPError) -> bool:
    """Transport failures and 5xx may succeed later; a 4xx means the report itself was refused"""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, httpx.RequestError)


class ReportClient:
    """Delivers user fraud reports to the reporting webhook"""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or settings.report_webhook_url
        self.max_retries = max_retries if max_retries is not None else settings.report_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.report_backoff_base
        self.timeout = timeout if timeout is not None else settings.report_timeout_seconds
        self.transport = transport

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> None:
        with report_latency_histogram.time():
            response = await client.post(self.webhook_url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    async def send_fraud_report(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one fraud report.

        Network failures and 5xx responses are retried up to max_retries
        attempts with backoff_base * 2^(attempt-1) seconds between them.
        A 4xx is raised on the first attempt.

        Raises:
            httpx.HTTPError: Report refused, or still failing after the last attempt
        """
        async with httpx.AsyncClient(transport=self.transport) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    await self._post(client, payload)
                    return
                except httpx.HTTPError as e:
                    report_failure_counter.inc()
                    if not is_retryable(e) or attempt >= self.max_retries:
                        logging.error(
                            f"Fraud report not delivered: {e}",
                            extra={"session_id": payload.get("session_id"), "attempts": attempt},
                        )
                        raise
                    await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))
