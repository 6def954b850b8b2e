"""Provider records: search candidates plus their call and booking tracking."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ProviderSource(str, Enum):
    SEARCH_RESULT = "search_result"
    USER_INPUT = "user_input"


class CallStatus(str, Enum):
    """Outcome of the most recent call attempt to a provider."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NO_ANSWER = "no_answer"
    VOICEMAIL = "voicemail"
    TIMEOUT = "timeout"
    FAILED = "failed"
    SKIPPED = "skipped"


class Provider(BaseModel):
    """A candidate business or contact that may be called for a request."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    request_id: Optional[str] = None
    name: str
    phone: Optional[str] = None
    international_phone: Optional[str] = None
    rating: Optional[float] = None
    address: Optional[str] = None
    source: ProviderSource = ProviderSource.SEARCH_RESULT
    reason: Optional[str] = None

    # Call tracking
    call_status: Optional[CallStatus] = None
    call_result: Optional[dict[str, Any]] = None
    call_transcript: Optional[str] = None
    call_summary: Optional[str] = None
    call_duration: Optional[float] = None
    called_at: Optional[datetime] = None
    call_id: Optional[str] = None

    # Research
    review_count: Optional[int] = None
    distance: Optional[float] = None
    distance_text: Optional[str] = None
    hours_of_operation: Optional[list[str]] = None
    is_open_now: Optional[bool] = None
    google_maps_uri: Optional[str] = None
    website: Optional[str] = None
    place_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Booking confirmation
    booking_confirmed: bool = False
    booking_date: Optional[str] = None
    booking_time: Optional[str] = None
    confirmation_number: Optional[str] = None

    def to_record(self) -> dict[str, Any]:
        """Row representation for the record store (no id when unsaved)."""
        return self.model_dump(mode="json", exclude_none=True)
