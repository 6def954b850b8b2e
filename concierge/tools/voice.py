"""
Vapi outbound-call client.

Creates a call for a destination number with an inline assistant built
from a ``CallScript``, then polls the call until it leaves the active
states. Exhausting the poll budget reports a timeout; HTTP or transport
errors raise ``ExternalCallFailure``.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from concierge.config import ModelConfig, VoiceConfig
from concierge.errors import ExternalCallFailure
from concierge.schemas.call_schema import CallScript, VoiceCallResult, VoiceCallStatus

logger = logging.getLogger(__name__)

ACTIVE_CALL_STATES = {"queued", "ringing", "in-progress"}

STRUCTURED_DATA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "availability": {
            "type": "string",
            "enum": ["available", "unavailable", "callback_requested", "unclear"],
        },
        "earliest_availability": {"type": "string"},
        "estimated_rate": {"type": "string"},
        "single_person_found": {"type": "boolean"},
        "all_criteria_met": {"type": "boolean"},
        "call_outcome": {"type": "string", "enum": ["positive", "negative", "neutral"]},
        "recommended": {"type": "boolean"},
        "disqualified": {"type": "boolean"},
        "disqualification_reason": {"type": "string"},
    },
}


def build_assistant_config(script: CallScript, model: ModelConfig) -> dict[str, Any]:
    """Inline assistant definition for one call."""
    return {
        "firstMessage": script.first_message,
        "endCallMessage": script.closing_script or None,
        "model": {
            "provider": "openai",
            "model": model.llm_model,
            "temperature": model.llm_temperature,
            "messages": [{"role": "system", "content": script.system_prompt}],
        },
        "voicemailDetection": {"provider": "vapi"},
        "analysisPlan": {
            "summaryPlan": {"enabled": True},
            "structuredDataPlan": {"enabled": True, "schema": STRUCTURED_DATA_SCHEMA},
        },
    }


def map_call_status(call: dict[str, Any]) -> VoiceCallStatus:
    """Derive our call status from Vapi's status and ended reason."""
    ended_reason = call.get("endedReason") or ""
    if call.get("status") != "ended":
        return VoiceCallStatus.ERROR
    if "no-answer" in ended_reason or "no_answer" in ended_reason:
        return VoiceCallStatus.NO_ANSWER
    if "voicemail" in ended_reason:
        return VoiceCallStatus.VOICEMAIL
    return VoiceCallStatus.COMPLETED


def _duration_seconds(call: dict[str, Any]) -> Optional[float]:
    if call.get("durationSeconds") is not None:
        return float(call["durationSeconds"])
    if call.get("durationMinutes") is not None:
        return round(float(call["durationMinutes"]) * 60, 1)
    return None


def to_call_result(call: dict[str, Any]) -> VoiceCallResult:
    """Map a finished Vapi call object onto ``VoiceCallResult``."""
    artifact = call.get("artifact") or {}
    analysis = call.get("analysis") or {}
    transcript = artifact.get("transcript") or call.get("transcript")
    messages = [
        {"role": m.get("role"), "message": m.get("message") or m.get("content", "")}
        for m in (artifact.get("messages") or call.get("messages") or [])
        if isinstance(m, dict)
    ]
    return VoiceCallResult(
        status=map_call_status(call),
        call_id=call.get("id"),
        duration_seconds=_duration_seconds(call),
        ended_reason=call.get("endedReason"),
        transcript=transcript if isinstance(transcript, str) else None,
        messages=messages,
        summary=analysis.get("summary") or None,
        structured_data=analysis.get("structuredData") or {},
    )


class VapiClient:
    """Places calls through the Vapi REST API and waits for them to end."""

    def __init__(
        self,
        config: VoiceConfig,
        model: ModelConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not config.vapi_api_key or not config.vapi_phone_number_id:
            raise ValueError("VAPI_API_KEY and VAPI_PHONE_NUMBER_ID must be set for live calls")
        self._config = config
        self._model = model
        self._http = http_client or httpx.AsyncClient(
            base_url=config.vapi_base_url,
            headers={"Authorization": f"Bearer {config.vapi_api_key}"},
            timeout=30.0,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(
        self,
        destination: str,
        script: CallScript,
        metadata: Optional[dict[str, Any]] = None,
    ) -> VoiceCallResult:
        payload = {
            "phoneNumberId": self._config.vapi_phone_number_id,
            "customer": {"number": destination},
            "assistant": build_assistant_config(script, self._model),
            "metadata": metadata or {},
        }
        try:
            response = await self._http.post("/call", json=payload)
            response.raise_for_status()
            call_id = response.json()["id"]
            logger.info("Vapi call %s created", call_id)
            return await self._wait_for_end(call_id)
        except httpx.HTTPStatusError as exc:
            raise ExternalCallFailure(
                f"Vapi returned HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.RequestError, KeyError, ValueError) as exc:
            raise ExternalCallFailure(f"Vapi call request failed: {exc}") from exc

    async def _wait_for_end(self, call_id: str) -> VoiceCallResult:
        for attempt in range(1, self._config.max_poll_attempts + 1):
            response = await self._http.get(f"/call/{call_id}")
            response.raise_for_status()
            call = response.json()
            logger.debug(
                "Polling call %s: %s (attempt %d/%d)",
                call_id, call.get("status"), attempt, self._config.max_poll_attempts,
            )
            if call.get("status") not in ACTIVE_CALL_STATES:
                return to_call_result(call)
            await asyncio.sleep(self._config.poll_interval_sec)

        logger.warning(
            "Call %s still active after %d polls", call_id, self._config.max_poll_attempts
        )
        return VoiceCallResult(
            status=VoiceCallStatus.TIMEOUT,
            call_id=call_id,
            ended_reason="poll_timeout",
            error="Call did not finish before the polling limit",
        )
