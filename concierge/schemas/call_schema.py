"""Models for task analysis, call scripts, voice-call results and recommendations."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class TaskType(str, Enum):
    NEGOTIATE_PRICE = "negotiate_price"
    REQUEST_REFUND = "request_refund"
    COMPLAIN_ISSUE = "complain_issue"
    SCHEDULE_APPOINTMENT = "schedule_appointment"
    CANCEL_SERVICE = "cancel_service"
    MAKE_INQUIRY = "make_inquiry"
    GENERAL_TASK = "general_task"


class Difficulty(str, Enum):
    EASY = "easy"
    MODERATE = "moderate"
    COMPLEX = "complex"


class TaskClassification(BaseModel):
    task_type: TaskType = TaskType.GENERAL_TASK
    intent: str = ""
    difficulty: Difficulty = Difficulty.MODERATE


class StrategicGuidance(BaseModel):
    key_goals: list[str] = Field(default_factory=list)
    talking_points: list[str] = Field(default_factory=list)
    objection_handlers: dict[str, str] = Field(default_factory=dict)
    success_criteria: list[str] = Field(default_factory=list)


class CallScript(BaseModel):
    """Instructions handed to the voice agent for one call."""

    system_prompt: str
    first_message: str
    closing_script: str = ""


class TaskAnalysis(BaseModel):
    classification: TaskClassification
    guidance: StrategicGuidance
    script: CallScript


class VoiceCallStatus(str, Enum):
    COMPLETED = "completed"
    NO_ANSWER = "no_answer"
    VOICEMAIL = "voicemail"
    TIMEOUT = "timeout"
    ERROR = "error"


class VoiceCallResult(BaseModel):
    """What the voice-call capability reports back for one call."""

    status: VoiceCallStatus
    call_id: Optional[str] = None
    duration_seconds: Optional[float] = None
    ended_reason: Optional[str] = None
    transcript: Optional[str] = None
    messages: list[dict[str, Any]] = Field(default_factory=list)
    summary: Optional[str] = None
    structured_data: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class Recommendation(BaseModel):
    provider_id: str
    provider_name: str
    score: int
    reasoning: str
    earliest_availability: Optional[str] = None
    estimated_rate: Optional[str] = None
    criteria_matched: bool = False
