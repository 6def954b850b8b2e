"""Service request models and the closed status/type vocabularies."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from concierge.schemas.call_schema import Recommendation
from concierge.schemas.interaction_schema import InteractionLog
from concierge.schemas.provider_schema import Provider
from concierge.schemas.research_schema import Coordinates

logger = logging.getLogger(__name__)


class RequestStatus(str, Enum):
    """Lifecycle states of a service request."""

    PENDING = "pending"
    SEARCHING = "searching"
    CALLING = "calling"
    ANALYZING = "analyzing"
    RECOMMENDED = "recommended"
    BOOKING = "booking"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.FAILED})

# Unknown persisted values are treated as terminal so a re-run never repeats
# an external side effect for a record we cannot interpret.
UNKNOWN_STATUS_DEFAULT = RequestStatus.FAILED


def parse_status(value: Any) -> RequestStatus:
    """Map a persisted status string onto ``RequestStatus``. Never raises."""
    if isinstance(value, RequestStatus):
        return value
    try:
        return RequestStatus(str(value).strip().lower())
    except ValueError:
        logger.warning(
            "Unknown request status %r, treating as %s", value, UNKNOWN_STATUS_DEFAULT.value
        )
        return UNKNOWN_STATUS_DEFAULT


class RequestType(str, Enum):
    RESEARCH_AND_BOOK = "research_and_book"
    DIRECT_TASK = "direct_task"


class ContactPreference(str, Enum):
    PHONE = "phone"
    TEXT = "text"


class DirectContact(BaseModel):
    name: str
    phone: str


class RequestInput(BaseModel):
    """Validated input for creating a service request."""

    type: RequestType
    title: str = Field(min_length=1)
    description: str = ""
    criteria: str = ""
    location: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    direct_contact: Optional[DirectContact] = None
    contact_preference: Optional[ContactPreference] = None
    user_phone: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_flow_fields(self) -> "RequestInput":
        if self.type == RequestType.DIRECT_TASK and self.direct_contact is None:
            raise ValueError("direct_task requests require direct_contact")
        if self.type == RequestType.RESEARCH_AND_BOOK and not self.location:
            raise ValueError("research_and_book requests require a location")
        return self


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ServiceRequest(BaseModel):
    """A user-initiated unit of work tracked through the lifecycle."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: RequestType
    title: str
    description: str = ""
    criteria: str = ""
    location: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    selected_provider_id: Optional[str] = None
    final_outcome: Optional[str] = None
    direct_contact: Optional[DirectContact] = None
    contact_preference: Optional[ContactPreference] = None
    user_phone: Optional[str] = None
    user_id: Optional[str] = None
    recommendations: list[Recommendation] = Field(default_factory=list)
    notification_sent_at: Optional[datetime] = None
    notification_method: Optional[ContactPreference] = None

    # Assembled from their own tables, never stored on the request row
    providers: list[Provider] = Field(default_factory=list)
    interactions: list[InteractionLog] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> RequestStatus:
        return parse_status(value)

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def task_text(self) -> str:
        """The free-text objective handed to calls and heuristics."""
        return self.description or self.criteria
