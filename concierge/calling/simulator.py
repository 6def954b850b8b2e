"""
Simulated calls for environments without live calling.

The simulator satisfies the same ``call`` contract as the live voice
client, so everything downstream of the dispatcher is mode-agnostic.
"""

import logging
import uuid
from typing import Any, Optional

from concierge.errors import ExternalCallFailure
from concierge.ports import LanguageModel
from concierge.prompts.prompt_templates import build_simulation_prompt
from concierge.prompts.system_prompts import CALL_SIMULATOR_SYSTEM_PROMPT
from concierge.schemas.call_schema import CallScript, VoiceCallResult, VoiceCallStatus

logger = logging.getLogger(__name__)

SIMULATED_ENDED_REASON = "assistant-ended-call"


class CallSimulator:
    """Generates a plausible call outcome with a language model."""

    def __init__(self, model: LanguageModel) -> None:
        self._model = model

    async def call(
        self,
        destination: str,
        script: CallScript,
        metadata: Optional[dict[str, Any]] = None,
    ) -> VoiceCallResult:
        metadata = metadata or {}
        prompt = build_simulation_prompt(
            metadata.get("provider") or {}, script, metadata.get("task", "")
        )
        try:
            payload = await self._model.generate_json(prompt, system=CALL_SIMULATOR_SYSTEM_PROMPT)
        except Exception as exc:
            raise ExternalCallFailure(f"Simulation failed: {exc}") from exc

        call_id = f"sim-{uuid.uuid4().hex[:8]}"
        try:
            result = self._to_result(call_id, payload)
        except (TypeError, ValueError, AttributeError) as exc:  # ValidationError is a ValueError
            raise ExternalCallFailure(f"Malformed simulation reply: {exc}") from exc

        logger.info(
            "Simulated call %s to %s: %s",
            call_id, destination, result.structured_data.get("call_outcome"),
        )
        return result

    @staticmethod
    def _to_result(call_id: str, payload: dict[str, Any]) -> VoiceCallResult:
        lines = [
            {"role": "assistant" if t.get("speaker") == "AI" else "user", "message": str(t.get("text", ""))}
            for t in payload.get("transcript") or []
            if isinstance(t, dict)
        ]
        structured = dict(payload.get("structured_data") or {})
        outcome = str(payload.get("outcome") or "neutral").lower()
        structured.setdefault("call_outcome", outcome)

        return VoiceCallResult(
            status=VoiceCallStatus.COMPLETED,
            call_id=call_id,
            ended_reason=SIMULATED_ENDED_REASON,
            transcript="\n".join(
                f"{'AI' if m['role'] == 'assistant' else 'Provider'}: {m['message']}" for m in lines
            ),
            messages=lines,
            summary=payload.get("summary"),
            structured_data=structured,
        )
