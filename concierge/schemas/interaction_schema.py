"""Interaction logs: the immutable, append-only record of orchestration steps."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LogStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class TranscriptLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker: str
    text: str


class CallData(BaseModel):
    """Raw metadata from a placed call."""

    model_config = ConfigDict(frozen=True)

    call_id: Optional[str] = None
    status: Optional[str] = None
    duration: Optional[float] = None
    ended_reason: Optional[str] = None
    transcript: Optional[str] = None
    structured_data: Optional[dict[str, Any]] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InteractionLog(BaseModel):
    """One orchestration step's outcome. Never mutated once created."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[str] = None
    request_id: Optional[str] = None
    provider_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    step_name: str
    detail: str
    status: LogStatus
    transcript: Optional[list[TranscriptLine]] = None
    call_data: Optional[CallData] = None

    @property
    def succeeded(self) -> bool:
        return self.status == LogStatus.SUCCESS

    def to_record(self, request_id: str) -> dict[str, Any]:
        record = self.model_dump(mode="json", exclude_none=True, exclude={"id"})
        record["request_id"] = request_id
        return record
