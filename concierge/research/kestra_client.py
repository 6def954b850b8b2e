"""
Workflow-engine research backend.

Triggers the ``research_providers`` flow in Kestra, polls the execution
until it reaches a terminal state and parses the flow's JSON output.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import httpx

from concierge.config import ResearchConfig
from concierge.errors import ResearchUnavailable
from concierge.schemas.provider_schema import Provider, ProviderSource
from concierge.schemas.research_schema import (
    ResearchMethod,
    ResearchRequest,
    ResearchResult,
    ResearchStatus,
)

logger = logging.getLogger(__name__)

FLOW_ID = "research_providers"
TERMINAL_STATES = {"SUCCESS", "FAILED", "KILLED", "WARNING"}
DEFAULT_MIN_RATING = 4.0
DEFAULT_DAYS_NEEDED = 7


def _execution_state(execution: dict[str, Any]) -> str:
    state = execution.get("state")
    if isinstance(state, dict):
        return str(state.get("current", ""))
    return str(state or "")


def parse_execution(execution: dict[str, Any]) -> ResearchResult:
    """Map a finished execution onto a ``ResearchResult``."""
    state = _execution_state(execution)
    raw = (execution.get("outputs") or {}).get("json")
    if state != "SUCCESS" or not raw:
        return ResearchResult(
            status=ResearchStatus.ERROR,
            method=ResearchMethod.KESTRA,
            error=(
                "No output from Kestra execution" if state == "SUCCESS"
                else f"Kestra execution {state.lower()}"
            ),
        )

    parsed = json.loads(raw) if isinstance(raw, str) else raw
    providers = [
        Provider(
            name=p.get("name") or "Unknown Provider",
            phone=p.get("phone"),
            rating=p.get("rating"),
            address=p.get("address"),
            reason=p.get("reason"),
            source=ProviderSource.SEARCH_RESULT,
        )
        for p in parsed.get("providers", [])
    ]
    return ResearchResult(
        status=ResearchStatus.SUCCESS if providers else ResearchStatus.ERROR,
        method=ResearchMethod.KESTRA,
        providers=providers,
        reasoning=f"Found {len(providers)} providers via Kestra research flow",
        error=None if providers else "Kestra flow returned no providers",
        total_found=len(providers),
        filtered_count=len(providers),
    )


class KestraResearchClient:
    """HTTP client for the Kestra research flow."""

    def __init__(
        self,
        config: ResearchConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not config.kestra_url:
            raise ValueError("KESTRA_URL must be set to use the Kestra research backend")
        self._config = config
        self._http = http_client or httpx.AsyncClient(
            base_url=config.kestra_url.rstrip("/"), timeout=30.0
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def health_check(self) -> bool:
        try:
            response = await self._http.get(
                "/api/v1/health", timeout=self._config.kestra_health_timeout_sec
            )
        except httpx.HTTPError as exc:
            logger.warning("Kestra health check failed: %s", exc)
            return False
        return response.status_code == 200

    async def research(self, request: ResearchRequest) -> ResearchResult:
        inputs = {
            "service": request.service,
            "location": request.location,
            "days_needed": DEFAULT_DAYS_NEEDED,
            "min_rating": request.min_rating or DEFAULT_MIN_RATING,
        }
        try:
            response = await self._http.post(
                f"/api/v1/executions/{self._config.kestra_namespace}/{FLOW_ID}",
                json=inputs,
            )
            response.raise_for_status()
            execution_id = response.json()["id"]
            logger.info("Kestra execution %s triggered", execution_id)
            execution = await self._poll(execution_id)
            return parse_execution(execution)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise ResearchUnavailable(f"Kestra research failed: {exc}") from exc

    async def _poll(self, execution_id: str) -> dict[str, Any]:
        for attempt in range(1, self._config.kestra_max_polls + 1):
            response = await self._http.get(f"/api/v1/executions/{execution_id}")
            response.raise_for_status()
            execution = response.json()
            state = _execution_state(execution)
            logger.debug("Kestra execution %s: %s (poll %d)", execution_id, state, attempt)
            if state in TERMINAL_STATES:
                return execution
            await asyncio.sleep(self._config.kestra_poll_interval_sec)
        raise ResearchUnavailable(
            f"Kestra execution {execution_id} did not finish after "
            f"{self._config.kestra_max_polls} polls"
        )
