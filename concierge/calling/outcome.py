"""
Classification of call results into interaction logs.

Live and simulated calls map onto the same ``InteractionLog`` shape; only
the rule for picking the log status differs.
"""

from typing import Any, Optional

from concierge.schemas.call_schema import VoiceCallResult, VoiceCallStatus
from concierge.schemas.interaction_schema import CallData, InteractionLog, LogStatus, TranscriptLine
from concierge.schemas.provider_schema import CallStatus
from concierge.utils import PhoneCheck

SIMULATED_FAILURE_DETAIL = "Call failed to connect or dropped."

_OUTCOME_STATUS = {
    "positive": LogStatus.SUCCESS,
    "negative": LogStatus.ERROR,
    "neutral": LogStatus.WARNING,
}

_PROVIDER_CALL_STATUS = {
    VoiceCallStatus.COMPLETED: CallStatus.COMPLETED,
    VoiceCallStatus.NO_ANSWER: CallStatus.NO_ANSWER,
    VoiceCallStatus.VOICEMAIL: CallStatus.VOICEMAIL,
    VoiceCallStatus.TIMEOUT: CallStatus.TIMEOUT,
    VoiceCallStatus.ERROR: CallStatus.FAILED,
}


def step_name_for(name: str) -> str:
    return f"Calling {name}"


def provider_call_status(result: Optional[VoiceCallResult]) -> CallStatus:
    if result is None:
        return CallStatus.FAILED
    return _PROVIDER_CALL_STATUS[result.status]


def transcript_lines(result: VoiceCallResult) -> Optional[list[TranscriptLine]]:
    lines = [
        TranscriptLine(
            speaker="AI" if m.get("role") in ("assistant", "bot") else "Provider",
            text=str(m.get("message") or ""),
        )
        for m in result.messages
        if m.get("role") in ("assistant", "bot", "user")
    ]
    return lines or None


def to_call_data(result: VoiceCallResult) -> CallData:
    return CallData(
        call_id=result.call_id,
        status=result.status.value,
        duration=result.duration_seconds,
        ended_reason=result.ended_reason,
        transcript=result.transcript,
        structured_data=result.structured_data or None,
    )


def _completed_detail(name: str, result: VoiceCallResult) -> tuple[LogStatus, str]:
    data: dict[str, Any] = result.structured_data
    if data.get("disqualified"):
        reason = data.get("disqualification_reason") or "Does not meet criteria"
        return LogStatus.WARNING, f"{name} was disqualified: {reason}"
    if data.get("all_criteria_met") is False:
        return LogStatus.WARNING, f"{name}: {result.summary or 'Does not meet all criteria'}"

    detail = f"{name}: {result.summary or 'Call completed successfully'}"
    if data.get("earliest_availability"):
        detail += f" Available: {data['earliest_availability']}."
    if data.get("estimated_rate"):
        detail += f" Rate: {data['estimated_rate']}."
    return LogStatus.SUCCESS, detail


def classify_live_result(name: str, result: VoiceCallResult) -> tuple[LogStatus, str]:
    """Log status and detail text for a live call result."""
    if result.status == VoiceCallStatus.COMPLETED:
        return _completed_detail(name, result)
    if result.status == VoiceCallStatus.NO_ANSWER:
        return LogStatus.WARNING, f"{name}: No answer - call went unanswered"
    if result.status == VoiceCallStatus.VOICEMAIL:
        return LogStatus.WARNING, f"{name}: Reached voicemail"
    if result.status == VoiceCallStatus.TIMEOUT:
        return LogStatus.ERROR, f"{name}: Call timed out - {result.error or 'no result before the time limit'}"
    failure = result.error or result.ended_reason or "Unknown error"
    return LogStatus.ERROR, f"{name}: Call failed - {failure}"


def classify_simulated_result(name: str, result: VoiceCallResult) -> tuple[LogStatus, str]:
    """Log status and detail text for a simulated call, keyed on its outcome."""
    outcome = str(result.structured_data.get("call_outcome", "")).lower()
    if outcome not in _OUTCOME_STATUS:
        return classify_live_result(name, result)
    return _OUTCOME_STATUS[outcome], f"{name}: {result.summary or 'Simulated call completed'}"


def result_to_log(
    name: str,
    result: VoiceCallResult,
    simulated: bool,
    provider_id: Optional[str] = None,
    step_name: Optional[str] = None,
) -> InteractionLog:
    classify = classify_simulated_result if simulated else classify_live_result
    status, detail = classify(name, result)
    return InteractionLog(
        provider_id=provider_id,
        step_name=step_name or step_name_for(name),
        detail=detail,
        status=status,
        transcript=transcript_lines(result),
        call_data=to_call_data(result),
    )


def failure_log(
    name: str,
    error: Exception,
    simulated: bool,
    provider_id: Optional[str] = None,
    step_name: Optional[str] = None,
) -> InteractionLog:
    """Error log for an attempt that never produced a call result."""
    detail = SIMULATED_FAILURE_DETAIL if simulated else f"Call failed to connect: {error}"
    return InteractionLog(
        provider_id=provider_id,
        step_name=step_name or step_name_for(name),
        detail=detail,
        status=LogStatus.ERROR,
    )


def invalid_phone_log(
    name: str,
    check: PhoneCheck,
    provider_id: Optional[str] = None,
    step_name: Optional[str] = None,
) -> InteractionLog:
    return InteractionLog(
        provider_id=provider_id,
        step_name=step_name or step_name_for(name),
        detail=str(check.to_error()),
        status=LogStatus.ERROR,
    )
