"""Shared test fixtures, fakes for external capabilities, and helpers."""

from typing import Any, Optional

import pytest

from concierge.config import OrchestratorConfig
from concierge.schemas.call_schema import CallScript, VoiceCallResult, VoiceCallStatus
from concierge.schemas.provider_schema import Provider
from concierge.schemas.research_schema import (
    Coordinates,
    PlaceDetails,
    ResearchMethod,
    ResearchResult,
    ResearchStatus,
    SearchPage,
)
from concierge.tools.persistence import InMemoryStore

GREENVILLE = Coordinates(latitude=34.8526, longitude=-82.3940)
CHARLOTTE = Coordinates(latitude=35.2271, longitude=-80.8431)


def make_config(**overrides: Any) -> OrchestratorConfig:
    """OrchestratorConfig with simulated calls and no pauses unless overridden."""
    values = dict(
        live_calls_enabled=False,
        test_override_number=None,
        batch_size=5,
        batch_delay_ms=200,
        call_delay_ms=0,
        default_country_code="1",
        analyze_direct_tasks=True,
    )
    values.update(overrides)
    return OrchestratorConfig(**values)


def make_call_result(
    status: VoiceCallStatus = VoiceCallStatus.COMPLETED,
    summary: Optional[str] = "They can help this week.",
    call_id: str = "call-1",
    **structured: Any,
) -> VoiceCallResult:
    return VoiceCallResult(
        status=status,
        call_id=call_id,
        duration_seconds=42.0,
        ended_reason="customer-ended-call",
        transcript="AI: Hello\nProvider: Hi",
        messages=[
            {"role": "assistant", "message": "Hello"},
            {"role": "user", "message": "Hi"},
        ],
        summary=summary,
        structured_data=structured,
    )


def make_provider(index: int, place_id: Optional[str] = "auto", **fields: Any) -> Provider:
    return Provider(
        name=f"Provider {index}",
        place_id=f"place-{index}" if place_id == "auto" else place_id,
        **fields,
    )


class FakePlaces:
    """In-process places capability recording every lookup."""

    def __init__(
        self,
        details: Optional[dict[str, PlaceDetails]] = None,
        places: Optional[list[PlaceDetails]] = None,
        fail_ids: tuple[str, ...] = (),
    ) -> None:
        self.details_by_id = details or {}
        self.places = places or []
        self.fail_ids = set(fail_ids)
        self.detail_calls: list[str] = []
        self.search_calls: list[tuple[str, Optional[Coordinates], Optional[int]]] = []

    async def search(self, query, coordinates=None, radius_meters=None, page_token=None):
        self.search_calls.append((query, coordinates, radius_meters))
        return SearchPage(places=list(self.places))

    async def details(self, place_id: str) -> Optional[PlaceDetails]:
        self.detail_calls.append(place_id)
        if place_id in self.fail_ids:
            raise RuntimeError("OVER_QUERY_LIMIT")
        return self.details_by_id.get(place_id)


class FakeVoice:
    """Voice capability returning queued results (the last one repeats)."""

    def __init__(self, *results: VoiceCallResult, error: Optional[Exception] = None) -> None:
        self.results = list(results) or [make_call_result()]
        self.error = error
        self.calls: list[tuple[str, CallScript, dict]] = []

    async def call(self, destination, script, metadata=None):
        self.calls.append((destination, script, metadata or {}))
        if self.error is not None:
            raise self.error
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class FakeModel:
    """Language model returning queued JSON replies."""

    def __init__(self, *replies: dict, error: Optional[Exception] = None) -> None:
        self.replies = list(replies)
        self.error = error
        self.prompts: list[tuple[str, Optional[str]]] = []

    async def generate_json(self, prompt, system=None):
        self.prompts.append((prompt, system))
        if self.error is not None:
            raise self.error
        if not self.replies:
            raise ValueError("no reply queued")
        return self.replies.pop(0)


class FakeRouter:
    def __init__(self, result: Optional[ResearchResult] = None) -> None:
        self.result = result or ResearchResult(
            status=ResearchStatus.ERROR, method=ResearchMethod.DIRECT, error="nothing"
        )
        self.requests = []

    async def search_providers(self, request):
        self.requests.append(request)
        return self.result


class FakeBackend:
    def __init__(
        self,
        result: Optional[ResearchResult] = None,
        healthy: bool = True,
        error: Optional[Exception] = None,
    ) -> None:
        self.result = result
        self.healthy = healthy
        self.error = error
        self.research_calls = 0

    async def health_check(self) -> bool:
        return self.healthy

    async def research(self, request):
        self.research_calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakeNotifier:
    """Notifier recording each message; raises ``error`` when set."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.sent: list[tuple[str, str, Any]] = []

    async def notify(self, destination, message, method):
        if self.error is not None:
            raise self.error
        self.sent.append((destination, message, method))
        return f"SM{len(self.sent)}"


class Sleeps:
    """Stand-in for asyncio.sleep that records the requested pauses."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sleeps():
    return Sleeps()
