"""
Analysis Backend Client

Async client for the rubric analysis backend (`POST /analyze-entry`).
Retries transient failures (network errors, timeouts, 5xx) with
exponential backoff; rejected requests and malformed payloads fail at once.
"""

import asyncio
import json
import logging
import time
from typing import Optional

import httpx
from pydantic import BaseModel

from config import Settings
from workshop.exceptions import AnalysisBackendError, AnalysisPayloadError, AnalysisTimeoutError
from workshop.models.analysis import ActivityContext, AnalysisResult, RawCoaching

logger = logging.getLogger("workshop.analysis_client")


class AnalysisResponse(BaseModel):
    analysis: AnalysisResult
    coaching: Optional[RawCoaching] = None


def parse_analysis_response(body: object) -> AnalysisResponse:
    """
    Interpret an `/analyze-entry` response body.

    Raises:
        AnalysisBackendError: If the backend reported failure
        AnalysisPayloadError: If the result cannot be interpreted
    """
    if not isinstance(body, dict):
        raise AnalysisPayloadError("response is not an object")
    if not body.get("success") or not body.get("result"):
        raise AnalysisBackendError(body.get("error") or "Analysis returned no results")

    result = body["result"]
    if not isinstance(result, dict):
        raise AnalysisPayloadError("result is not an object")
    report = result.get("report") or result.get("analysis")
    if report is None:
        raise AnalysisPayloadError("result has no report")

    return AnalysisResponse(
        analysis=AnalysisResult.from_payload(report),
        coaching=RawCoaching.from_payload(result.get("coaching")),
    )


class AnalysisBackendClient:
    """Calls the analysis backend with timeout and retry."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
        initial_retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisBackendClient":
        return cls(
            base_url=settings.analysis_api_url,
            timeout_seconds=settings.analysis_timeout_seconds,
            max_retries=settings.analysis_max_retries,
            initial_retry_delay=settings.analysis_retry_delay_seconds,
        )

    async def analyze_entry(
        self,
        description: str,
        activity: ActivityContext,
        depth: str = "comprehensive",
        skip_coaching: bool = False,
    ) -> AnalysisResponse:
        """
        Analyze a draft.

        Args:
            description: Draft text
            activity: Activity the draft describes
            depth: Analysis depth requested from the backend
            skip_coaching: Ask the backend not to produce coaching

        Returns:
            AnalysisResponse with the analysis and optional coaching

        Raises:
            AnalysisTimeoutError: If every attempt timed out
            AnalysisBackendError: On any other failure
        """
        request = {
            "description": description,
            "activity": activity.model_dump(mode="json"),
            "depth": depth,
            "skip_coaching": skip_coaching,
        }
        url = f"{self.base_url}/analyze-entry"
        start_time = time.time()
        delay = self.initial_retry_delay
        attempts = self.max_retries + 1
        last_error: Optional[AnalysisBackendError] = None

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.post(url, json=request)
                    # 5xx is retried below; 4xx is re-raised as is
                    if response.status_code >= 400:
                        raise AnalysisBackendError(
                            self._error_message(response), code=f"HTTP_{response.status_code}",
                            status_code=response.status_code,
                        )
                    body = response.json()
                    parsed = parse_analysis_response(body)

                    logger.info(json.dumps({
                        "step": "ANALYZE_ENTRY",
                        "status": "complete",
                        "activity_id": activity.activity_id,
                        "nqi": parsed.analysis.nqi,
                        "categories": len(parsed.analysis.categories),
                        "duration_ms": int((time.time() - start_time) * 1000),
                        "attempts": attempt,
                    }))
                    return parsed

                except httpx.TimeoutException:
                    last_error = AnalysisTimeoutError(self.timeout_seconds)
                except httpx.TransportError as e:
                    last_error = AnalysisBackendError(f"Network error: {e}", code="NETWORK_ERROR")
                except ValueError as e:
                    raise AnalysisPayloadError(f"response is not valid JSON: {e}") from e
                except AnalysisBackendError as e:
                    if e.status_code is None or e.status_code < 500:
                        logger.error(f"Analysis rejected for {activity.activity_id}: {e.message}")
                        raise
                    last_error = e

                if attempt < attempts:
                    logger.warning(
                        f"Analysis attempt {attempt}/{attempts} failed ({last_error.code}). "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    delay *= 2

        logger.error(json.dumps({
            "step": "ANALYZE_ENTRY",
            "status": "failed",
            "activity_id": activity.activity_id,
            "error": last_error.message,
            "duration_ms": int((time.time() - start_time) * 1000),
            "attempts": attempts,
        }))
        raise last_error

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"Analysis failed with HTTP {response.status_code}"
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return f"Analysis failed with HTTP {response.status_code}"
