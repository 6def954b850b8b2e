"""
Capability interfaces the orchestration core depends on.

Concrete adapters live in ``concierge.tools``; tests substitute fakes.
Each protocol is the minimal surface the core actually calls.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from concierge.schemas.call_schema import CallScript, VoiceCallResult
from concierge.schemas.request_schema import ContactPreference
from concierge.schemas.research_schema import (
    Coordinates,
    PlaceDetails,
    ResearchRequest,
    ResearchResult,
    SearchPage,
)

REQUESTS_TABLE = "service_requests"
PROVIDERS_TABLE = "providers"
INTERACTIONS_TABLE = "interaction_logs"


@runtime_checkable
class RecordStore(Protocol):
    """Durable keyed storage for requests, providers and interaction logs."""

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]: ...

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]: ...

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...


@runtime_checkable
class PlacesLookup(Protocol):
    """Place search plus per-place details."""

    async def search(
        self,
        query: str,
        coordinates: Optional[Coordinates] = None,
        radius_meters: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> SearchPage: ...

    async def details(self, place_id: str) -> Optional[PlaceDetails]: ...


@runtime_checkable
class VoiceCaller(Protocol):
    """Places one outbound call and waits for its result."""

    async def call(
        self,
        destination: str,
        script: CallScript,
        metadata: Optional[dict[str, Any]] = None,
    ) -> VoiceCallResult: ...


@runtime_checkable
class LanguageModel(Protocol):
    """Produces a JSON object from a prompt."""

    async def generate_json(
        self, prompt: str, system: Optional[str] = None
    ) -> dict[str, Any]: ...


@runtime_checkable
class ResearchBackend(Protocol):
    """One way of finding providers for a research request."""

    async def research(self, request: ResearchRequest) -> ResearchResult: ...

    async def health_check(self) -> bool: ...


@runtime_checkable
class UserNotifier(Protocol):
    """Delivers a short message to the requesting user; returns a delivery id."""

    async def notify(
        self, destination: str, message: str, method: ContactPreference
    ) -> str: ...
