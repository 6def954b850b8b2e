"""Tests for the request lifecycle manager driving both request flows."""

import asyncio

import pytest

from concierge.calling.dispatcher import CallDispatcher
from concierge.calling.outcome import SIMULATED_FAILURE_DETAIL
from concierge.calling.simulator import CallSimulator
from concierge.errors import (
    NotFound,
    NotificationFailure,
    PersistenceFailure,
    ProviderSelectionError,
)
from concierge.lifecycle.manager import (
    DIRECT_FAILURE_OUTCOME,
    DIRECT_SUCCESS_OUTCOME,
    NO_PROVIDERS_OUTCOME,
    NO_QUALIFIED_OUTCOME,
    STORAGE_FAILURE_OUTCOME,
    RequestLifecycleManager,
    is_scheduling_task,
)
from concierge.ports import INTERACTIONS_TABLE, REQUESTS_TABLE
from concierge.schemas.call_schema import VoiceCallStatus
from concierge.schemas.interaction_schema import InteractionLog, LogStatus
from concierge.schemas.provider_schema import CallStatus, ProviderSource
from concierge.schemas.request_schema import (
    ContactPreference,
    RequestInput,
    RequestStatus,
    ServiceRequest,
)
from concierge.schemas.research_schema import ResearchMethod, ResearchResult, ResearchStatus
from concierge.tools.persistence import AdapterError, InMemoryStore
from tests.conftest import (
    FakeModel,
    FakeNotifier,
    FakeRouter,
    FakeVoice,
    Sleeps,
    make_call_result,
    make_config,
    make_provider,
)


def direct_input(description="Schedule a cleaning appointment for next week"):
    return RequestInput(
        type="direct_task",
        title="Call the dentist",
        description=description,
        direct_contact={"name": "Dr. Smith", "phone": "864-555-1234"},
        user_id="user-1",
    )


def research_input():
    return RequestInput(
        type="research_and_book",
        title="plumber",
        description="Licensed, can fix a leaking pipe this week",
        location="Greenville, SC",
        user_id="user-1",
    )


def found(*providers):
    return FakeRouter(ResearchResult(
        status=ResearchStatus.SUCCESS, method=ResearchMethod.DIRECT, providers=list(providers)
    ))


def three_providers():
    return found(*(make_provider(i, phone=f"864555010{i}", rating=4.6) for i in (1, 2, 3)))


def simulated_manager(store, model, router=None, **config):
    cfg = make_config(**config)
    dispatcher = CallDispatcher(cfg, simulator=CallSimulator(model))
    return RequestLifecycleManager(store, cfg, dispatcher, router or FakeRouter())


def live_manager(store, voice, router=None, sleep=None, **config):
    cfg = make_config(live_calls_enabled=True, analyze_direct_tasks=False, **config)
    dispatcher = CallDispatcher(cfg, live_caller=voice)
    return RequestLifecycleManager(store, cfg, dispatcher, router or FakeRouter(), sleep=sleep or Sleeps())


class FlakyStore(InMemoryStore):
    """Fails the first ``failures`` inserts into ``table`` (all of them when None)."""

    def __init__(self, table, failures=None):
        super().__init__()
        self.table = table
        self.failures = failures
        self.attempts = 0

    async def insert(self, table, record):
        if table == self.table:
            self.attempts += 1
            if self.failures is None or self.attempts <= self.failures:
                raise AdapterError("connection reset")
        return await super().insert(table, record)


class YieldingStore(InMemoryStore):
    """Suspends before every operation, like a store behind network I/O."""

    async def insert(self, table, record):
        await asyncio.sleep(0)
        return await super().insert(table, record)

    async def update(self, table, record_id, changes, expected=None):
        await asyncio.sleep(0)
        return await super().update(table, record_id, changes, expected)

    async def get(self, table, record_id):
        await asyncio.sleep(0)
        return await super().get(table, record_id)

    async def query(self, table, *args, **kwargs):
        await asyncio.sleep(0)
        return await super().query(table, *args, **kwargs)


class TestSchedulingKeywords:
    @pytest.mark.parametrize("text,expected", [
        ("Schedule a cleaning", True),
        ("Book an APPOINTMENT", True),
        ("rescheduled visit", True),
        ("Ask about refunds", False),
        (None, False),
    ])
    def test_detection(self, text, expected):
        assert is_scheduling_task(text) is expected


class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_direct_request_gets_contact_provider(self, store):
        manager = simulated_manager(store, FakeModel())
        request = await manager.create_request(direct_input())

        assert request.status == RequestStatus.PENDING
        assert len(request.providers) == 1
        assert request.providers[0].source == ProviderSource.USER_INPUT
        assert request.providers[0].name == "Dr. Smith"

    @pytest.mark.asyncio
    async def test_unknown_request_is_not_found(self, store):
        manager = simulated_manager(store, FakeModel())
        with pytest.raises(NotFound):
            await manager.get_request("missing")

    @pytest.mark.asyncio
    async def test_list_for_user(self, store):
        manager = simulated_manager(store, FakeModel())
        await manager.create_request(direct_input())
        await manager.create_request(research_input())
        await manager.create_request(direct_input().model_copy(update={"user_id": "user-2"}))

        requests = await manager.list_for_user("user-1")

        assert len(requests) == 2
        assert all(r.user_id == "user-1" for r in requests)


class TestDirectTaskFlow:
    @pytest.mark.asyncio
    async def test_scheduling_task_completes_with_booking_log(self, store):
        model = FakeModel({"outcome": "positive", "summary": "Booked for Tuesday at 3pm."})
        manager = simulated_manager(store, model)
        request = await manager.create_request(direct_input())

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.COMPLETED
        assert result.final_outcome == DIRECT_SUCCESS_OUTCOME
        assert [log.step_name for log in result.interactions] == [
            "Calling Dr. Smith", "Booking Appointment",
        ]
        assert all(log.status == LogStatus.SUCCESS for log in result.interactions)
        assert result.providers[0].call_status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_non_scheduling_task_has_single_log(self, store):
        model = FakeModel({"outcome": "positive", "summary": "They will refund the charge."})
        manager = simulated_manager(store, model)
        request = await manager.create_request(direct_input("Ask for a refund of the late fee"))

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.COMPLETED
        assert len(result.interactions) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", ["negative", "neutral"])
    async def test_unsuccessful_call_fails_request(self, store, outcome):
        manager = simulated_manager(store, FakeModel({"outcome": outcome, "summary": "No luck."}))
        request = await manager.create_request(direct_input())

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.FAILED
        assert result.final_outcome == DIRECT_FAILURE_OUTCOME
        assert len(result.interactions) == 1

    @pytest.mark.asyncio
    async def test_malformed_simulated_reply_fails_request(self, store):
        model = FakeModel({"outcome": "positive", "summary": ["not", "a", "string"]})
        manager = simulated_manager(store, model)
        request = await manager.create_request(direct_input())

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.FAILED
        assert result.final_outcome == DIRECT_FAILURE_OUTCOME
        assert [log.status for log in result.interactions] == [LogStatus.ERROR]
        assert result.interactions[0].detail == SIMULATED_FAILURE_DETAIL

    @pytest.mark.asyncio
    async def test_invalid_phone_fails_without_calling(self, store):
        voice = FakeVoice()
        manager = live_manager(store, voice)
        request = await manager.create_request(RequestInput(
            type="direct_task",
            title="Call the dentist",
            description="Ask about opening hours",
            direct_contact={"name": "Dr. Smith", "phone": "12"},
        ))

        result = await manager.advance(request.id)

        assert voice.calls == []
        assert result.status == RequestStatus.FAILED
        assert "Invalid phone number format" in result.interactions[0].detail

    @pytest.mark.asyncio
    async def test_advancing_a_terminal_request_is_a_no_op(self, store):
        model = FakeModel({"outcome": "positive", "summary": "Done."})
        manager = simulated_manager(store, model)
        request = await manager.create_request(direct_input())
        first = await manager.advance(request.id)

        second = await manager.advance(request.id)

        assert len(model.prompts) == 1
        assert second.status == first.status
        assert len(second.interactions) == len(first.interactions)

    @pytest.mark.asyncio
    async def test_recorded_call_outcome_is_reused(self, store):
        model = FakeModel()
        manager = simulated_manager(store, model)
        request = await manager.create_request(direct_input())
        await store.update(REQUESTS_TABLE, request.id, {"status": "calling"})
        await store.insert(INTERACTIONS_TABLE, InteractionLog(
            step_name="Calling Dr. Smith", detail="Dr. Smith: Booked.", status=LogStatus.SUCCESS,
        ).to_record(request.id))

        result = await manager.advance(request.id)

        assert model.prompts == []
        assert result.status == RequestStatus.COMPLETED
        assert [log.step_name for log in result.interactions] == [
            "Calling Dr. Smith", "Booking Appointment",
        ]

    @pytest.mark.asyncio
    async def test_test_mode_routes_direct_call(self, store):
        voice = FakeVoice()
        manager = live_manager(store, voice, test_override_number="+18645550000")
        request = await manager.create_request(direct_input("Ask about opening hours"))

        await manager.advance(request.id)

        assert voice.calls[0][0] == "+18645550000"


class TestResearchFlow:
    @pytest.mark.asyncio
    async def test_full_flow_through_booking(self, store):
        voice = FakeVoice(
            make_call_result(call_id="call-1", call_outcome="positive", all_criteria_met=True,
                             earliest_availability="Tuesday 9am", estimated_rate="$95/hr"),
            make_call_result(VoiceCallStatus.NO_ANSWER, summary=None, call_id="call-2"),
            make_call_result(call_id="call-3", call_outcome="neutral"),
            make_call_result(call_id="call-4", booking_date="Tuesday", booking_time="9:00 AM",
                             confirmation_number="ABC123"),
        )
        manager = live_manager(store, voice, router=three_providers())
        request = await manager.create_request(research_input())

        recommended = await manager.advance(request.id)

        assert recommended.status == RequestStatus.RECOMMENDED
        assert [log.step_name for log in recommended.interactions] == [
            "Market Research",
            "Calling Provider 1",
            "Calling Provider 2",
            "Calling Provider 3",
            "Analysis & Selection",
        ]
        assert recommended.interactions[0].detail == "Found 3 providers using direct_gemini"
        assert [r.provider_name for r in recommended.recommendations] == ["Provider 1", "Provider 3"]
        assert recommended.interactions[-1].detail.startswith("We strongly recommend Provider 1")

        top = recommended.recommendations[0]
        selected = await manager.select_provider(request.id, top.provider_id)
        assert selected.status == RequestStatus.BOOKING
        assert selected.selected_provider_id == top.provider_id

        done = await manager.advance(request.id)

        assert done.status == RequestStatus.COMPLETED
        assert done.final_outcome.startswith("Booked with Provider 1.")
        booked = next(p for p in done.providers if p.id == top.provider_id)
        assert booked.booking_confirmed
        assert booked.confirmation_number == "ABC123"
        assert booked.booking_time == "9:00 AM"
        assert done.interactions[-1].step_name == "Booking Appointment"
        assert len(voice.calls) == 4

    @pytest.mark.asyncio
    async def test_provider_call_tracking_is_persisted(self, store):
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=found(make_provider(1, phone="8645550101")))
        request = await manager.create_request(research_input())

        result = await manager.advance(request.id)

        provider = result.providers[0]
        assert provider.call_status == CallStatus.COMPLETED
        assert provider.call_id == "call-1"
        assert provider.call_summary == "They can help this week."
        assert provider.called_at is not None

    @pytest.mark.asyncio
    async def test_no_providers_fails(self, store):
        manager = live_manager(store, FakeVoice())
        request = await manager.create_request(research_input())

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.FAILED
        assert result.final_outcome == NO_PROVIDERS_OUTCOME
        assert result.interactions[0].step_name == "Market Research"
        assert result.interactions[0].status == LogStatus.ERROR

    @pytest.mark.asyncio
    async def test_nobody_qualified_fails(self, store):
        voice = FakeVoice(make_call_result(VoiceCallStatus.NO_ANSWER, summary=None))
        manager = live_manager(store, voice, router=three_providers())
        request = await manager.create_request(research_input())

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.FAILED
        assert result.final_outcome == NO_QUALIFIED_OUTCOME
        assert result.interactions[-1].status == LogStatus.WARNING

    @pytest.mark.asyncio
    async def test_test_mode_calls_only_first_provider(self, store):
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(
            store, voice, router=three_providers(), test_override_number="864-555-0000"
        )
        request = await manager.create_request(research_input())

        result = await manager.advance(request.id)

        assert len(voice.calls) == 1
        assert voice.calls[0][0] == "+18645550000"
        assert result.status == RequestStatus.RECOMMENDED
        assert [p.call_status for p in result.providers] == [CallStatus.COMPLETED, None, None]

    @pytest.mark.asyncio
    async def test_pauses_between_calls(self, store):
        sleeps = Sleeps()
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=three_providers(), sleep=sleeps, call_delay_ms=500)
        request = await manager.create_request(research_input())

        await manager.advance(request.id)

        assert sleeps.calls == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_already_called_providers_are_skipped(self, store):
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=three_providers())
        request = await manager.create_request(research_input())
        await store.update(REQUESTS_TABLE, request.id, {"status": "searching"})
        await manager._research(await manager._load_row(request.id))
        first = (await manager.get_request(request.id)).providers[0]
        await store.update("providers", first.id, {
            "call_status": "completed", "call_result": {"call_outcome": "positive"},
        })

        await manager.advance(request.id)

        assert len(voice.calls) == 2

    @pytest.mark.asyncio
    async def test_simulated_booking_is_synthetic(self, store):
        model = FakeModel(
            {"outcome": "positive", "summary": "Can come Monday.",
             "structured_data": {"earliest_availability": "Monday 8am"}},
        )
        manager = simulated_manager(store, model, router=found(make_provider(1, phone="8645550101")))
        request = await manager.create_request(research_input())
        recommended = await manager.advance(request.id)
        await manager.select_provider(request.id, recommended.recommendations[0].provider_id)

        done = await manager.advance(request.id)

        assert done.status == RequestStatus.COMPLETED
        provider = done.providers[0]
        assert provider.confirmation_number.startswith("CONF-")
        assert provider.booking_date == "Monday 8am"
        assert len(model.prompts) == 1


class TestProviderSelection:
    @pytest.mark.asyncio
    async def test_selection_requires_recommended(self, store):
        manager = simulated_manager(store, FakeModel())
        request = await manager.create_request(research_input())
        with pytest.raises(ProviderSelectionError):
            await manager.select_provider(request.id, "anything")

    @pytest.mark.asyncio
    async def test_unknown_provider_is_not_found(self, store):
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=found(make_provider(1, phone="8645550101")))
        request = await manager.create_request(research_input())
        await manager.advance(request.id)

        with pytest.raises(NotFound):
            await manager.select_provider(request.id, "not-a-provider")

    @pytest.mark.asyncio
    async def test_reselecting_same_provider_is_a_no_op(self, store):
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=found(make_provider(1, phone="8645550101")))
        request = await manager.create_request(research_input())
        recommended = await manager.advance(request.id)
        provider_id = recommended.recommendations[0].provider_id
        await manager.select_provider(request.id, provider_id)

        again = await manager.select_provider(request.id, provider_id)

        assert again.status == RequestStatus.BOOKING

    @pytest.mark.asyncio
    async def test_second_different_selection_is_rejected(self, store):
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=three_providers())
        request = await manager.create_request(research_input())
        recommended = await manager.advance(request.id)
        first, second = recommended.recommendations[:2]
        await manager.select_provider(request.id, first.provider_id)

        with pytest.raises(ProviderSelectionError):
            await manager.select_provider(request.id, second.provider_id)

    @pytest.mark.asyncio
    async def test_concurrent_selections_have_one_winner(self):
        store = YieldingStore()
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=three_providers())
        request = await manager.create_request(research_input())
        recommended = await manager.advance(request.id)
        first, second = recommended.recommendations[:2]

        results = await asyncio.gather(
            manager.select_provider(request.id, first.provider_id),
            manager.select_provider(request.id, second.provider_id),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, ServiceRequest)]
        rejected = [r for r in results if isinstance(r, ProviderSelectionError)]
        assert len(winners) == 1
        assert len(rejected) == 1
        row = await store.get(REQUESTS_TABLE, request.id)
        assert row["status"] == RequestStatus.BOOKING.value
        assert row["selected_provider_id"] == winners[0].selected_provider_id

    @pytest.mark.asyncio
    async def test_concurrent_same_selection_both_succeed(self):
        store = YieldingStore()
        voice = FakeVoice(make_call_result(call_outcome="positive"))
        manager = live_manager(store, voice, router=three_providers())
        request = await manager.create_request(research_input())
        recommended = await manager.advance(request.id)
        top = recommended.recommendations[0]

        results = await asyncio.gather(
            manager.select_provider(request.id, top.provider_id),
            manager.select_provider(request.id, top.provider_id),
        )

        assert [r.selected_provider_id for r in results] == [top.provider_id] * 2


class TestPersistenceFailures:
    @pytest.mark.asyncio
    async def test_single_failure_is_retried(self):
        store = FlakyStore(INTERACTIONS_TABLE, failures=1)
        manager = simulated_manager(store, FakeModel({"outcome": "positive", "summary": "ok"}))
        request = await manager.create_request(direct_input("Ask about hours"))

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.COMPLETED
        assert len(result.interactions) == 1

    @pytest.mark.asyncio
    async def test_persistent_failure_fails_request(self):
        store = FlakyStore(INTERACTIONS_TABLE)
        manager = simulated_manager(store, FakeModel({"outcome": "positive", "summary": "ok"}))
        request = await manager.create_request(direct_input("Ask about hours"))

        with pytest.raises(PersistenceFailure):
            await manager.advance(request.id)

        row = await store.get(REQUESTS_TABLE, request.id)
        assert row["status"] == RequestStatus.FAILED.value
        assert row["final_outcome"] == STORAGE_FAILURE_OUTCOME
        assert store.attempts == 2


def notifying_manager(store, notifier):
    cfg = make_config(live_calls_enabled=True, analyze_direct_tasks=False)
    dispatcher = CallDispatcher(cfg, live_caller=FakeVoice(make_call_result(call_outcome="positive")))
    return RequestLifecycleManager(
        store, cfg, dispatcher, three_providers(), sleep=Sleeps(),
        notifier=notifier, frontend_url="https://concierge.example/",
    )


def research_input_with_phone(**fields):
    return RequestInput(
        type="research_and_book",
        title="plumber",
        description="Licensed, can fix a leaking pipe this week",
        location="Greenville, SC",
        user_phone="864-555-0199",
        **fields,
    )


class TestRecommendationNotifications:
    @pytest.mark.asyncio
    async def test_text_notice_sent_when_recommended(self, store):
        notifier = FakeNotifier()
        manager = notifying_manager(store, notifier)
        request = await manager.create_request(research_input_with_phone())

        recommended = await manager.advance(request.id)

        assert recommended.status == RequestStatus.RECOMMENDED
        assert len(notifier.sent) == 1
        destination, message, method = notifier.sent[0]
        assert destination == "+18645550199"
        assert method == ContactPreference.TEXT
        assert "Top pick: Provider" in message
        assert f"https://concierge.example/request/{request.id}" in message
        assert recommended.notification_sent_at is not None
        assert recommended.notification_method == ContactPreference.TEXT

    @pytest.mark.asyncio
    async def test_notice_is_not_resent(self, store):
        notifier = FakeNotifier()
        manager = notifying_manager(store, notifier)
        request = await manager.create_request(research_input_with_phone())
        await manager.advance(request.id)

        await manager.advance(request.id)

        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_phone_preference_places_a_call(self, store):
        notifier = FakeNotifier()
        manager = notifying_manager(store, notifier)
        request = await manager.create_request(
            research_input_with_phone(contact_preference="phone")
        )

        await manager.advance(request.id)

        assert notifier.sent[0][2] == ContactPreference.PHONE

    @pytest.mark.asyncio
    async def test_no_user_phone_means_no_notice(self, store):
        notifier = FakeNotifier()
        manager = notifying_manager(store, notifier)
        request = await manager.create_request(research_input())

        recommended = await manager.advance(request.id)

        assert recommended.status == RequestStatus.RECOMMENDED
        assert notifier.sent == []
        assert recommended.notification_sent_at is None

    @pytest.mark.asyncio
    async def test_failed_notice_is_retried_on_next_advance(self, store):
        notifier = FakeNotifier(error=NotificationFailure("carrier rejected"))
        manager = notifying_manager(store, notifier)
        request = await manager.create_request(research_input_with_phone())

        recommended = await manager.advance(request.id)
        assert recommended.status == RequestStatus.RECOMMENDED
        assert recommended.notification_sent_at is None

        notifier.error = None
        again = await manager.advance(request.id)

        assert len(notifier.sent) == 1
        assert again.notification_sent_at is not None

    @pytest.mark.asyncio
    async def test_direct_tasks_are_not_notified(self, store):
        notifier = FakeNotifier()
        cfg = make_config()
        dispatcher = CallDispatcher(
            cfg, simulator=CallSimulator(FakeModel({"outcome": "positive", "summary": "Done."}))
        )
        manager = RequestLifecycleManager(store, cfg, dispatcher, FakeRouter(), notifier=notifier)
        request = await manager.create_request(RequestInput(
            type="direct_task",
            title="Call the dentist",
            description="Ask about opening hours",
            direct_contact={"name": "Dr. Smith", "phone": "864-555-1234"},
            user_phone="864-555-0199",
        ))

        result = await manager.advance(request.id)

        assert result.status == RequestStatus.COMPLETED
        assert notifier.sent == []
