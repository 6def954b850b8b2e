"""Research request/result models shared by both research backends."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from concierge.schemas.provider_schema import Provider


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class ResearchMethod(str, Enum):
    """Which backend produced a research result."""

    KESTRA = "kestra"
    DIRECT = "direct_gemini"


class ResearchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class ResearchRequest(BaseModel):
    """What to look for, and where."""

    service: str
    location: str
    coordinates: Optional[Coordinates] = None
    service_request_id: Optional[str] = None
    max_results: int = 10
    min_rating: Optional[float] = None


class ResearchResult(BaseModel):
    """Normalized output of either research backend."""

    status: ResearchStatus
    method: ResearchMethod
    providers: list[Provider] = Field(default_factory=list)
    reasoning: Optional[str] = None
    error: Optional[str] = None
    total_found: Optional[int] = None
    filtered_count: Optional[int] = None


class SystemStatus(BaseModel):
    """Diagnostics for which research path is active."""

    kestra_enabled: bool
    kestra_url: Optional[str] = None
    kestra_healthy: bool
    active_method: ResearchMethod


class PlaceDetails(BaseModel):
    """Fields the orchestrator consumes from a place search or details lookup."""

    place_id: str
    name: str = ""
    address: str = ""
    phone: Optional[str] = None
    international_phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    location: Optional[Coordinates] = None
    google_maps_uri: Optional[str] = None
    opening_hours: Optional[list[str]] = None
    open_now: Optional[bool] = None


class SearchPage(BaseModel):
    """One page of place search results."""

    places: list[PlaceDetails] = Field(default_factory=list)
    next_page_token: Optional[str] = None
