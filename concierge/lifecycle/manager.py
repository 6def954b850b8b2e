"""
Request lifecycle orchestration.

``RequestLifecycleManager`` owns every status change of a service request.
Each step re-reads the persisted request, performs at most one kind of
external side effect, appends interaction logs and persists the resulting
transition before the next step starts. Re-running ``advance`` after a
crash therefore resumes from the last persisted status instead of
repeating finished work.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from concierge.calling.dispatcher import CallAttempt, CallDispatcher, CallTarget
from concierge.calling.outcome import provider_call_status, step_name_for
from concierge.calling.scheduler import BOOKING_STEP, AppointmentScheduler
from concierge.config import OrchestratorConfig
from concierge.errors import (
    NotFound,
    NotificationFailure,
    PersistenceFailure,
    ProviderSelectionError,
)
from concierge.lifecycle.recommendations import (
    notification_message,
    recommend_providers,
    summarize,
)
from concierge.lifecycle.state_machine import RequestStateMachine, TransitionTrigger
from concierge.logging_context import get_request_logger, reset_request_id, set_request_id
from concierge.ports import (
    INTERACTIONS_TABLE,
    PROVIDERS_TABLE,
    REQUESTS_TABLE,
    RecordStore,
    UserNotifier,
)
from concierge.prompts.prompt_templates import build_research_call_script
from concierge.research.router import WorkflowRouter
from concierge.schemas.interaction_schema import InteractionLog, LogStatus
from concierge.schemas.provider_schema import CallStatus, Provider, ProviderSource
from concierge.schemas.request_schema import (
    ContactPreference,
    RequestInput,
    RequestStatus,
    RequestType,
    ServiceRequest,
)
from concierge.schemas.research_schema import ResearchRequest, ResearchStatus
from concierge.tools.persistence import (
    PersistenceError,
    PreconditionFailedError,
    RecordNotFoundError,
)
from concierge.utils import check_phone

logger = get_request_logger(__name__)

SCHEDULING_KEYWORDS = frozenset({"schedule", "appointment"})

RESEARCH_STEP = "Market Research"
ANALYSIS_STEP = "Analysis & Selection"

DIRECT_SUCCESS_OUTCOME = "Call completed successfully."
DIRECT_FAILURE_OUTCOME = "Call did not result in a positive outcome."
NO_PROVIDERS_OUTCOME = "No providers found in your area."
NO_QUALIFIED_OUTCOME = "Could not find a suitable provider matching all criteria."
STORAGE_FAILURE_OUTCOME = "A storage error interrupted this request. Please try again."


def is_scheduling_task(text: Optional[str]) -> bool:
    """True when the task mentions scheduling (fixed, case-insensitive keyword set)."""
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in SCHEDULING_KEYWORDS)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _call_tracking(attempt: CallAttempt) -> dict[str, Any]:
    result = attempt.result
    return {
        "call_status": provider_call_status(result).value,
        "call_result": result.structured_data if result else None,
        "call_transcript": result.transcript if result else None,
        "call_summary": result.summary if result else None,
        "call_duration": result.duration_seconds if result else None,
        "call_id": result.call_id if result else None,
        "called_at": _utcnow_iso(),
    }


class RequestLifecycleManager:
    """
    Drives service requests through their status graph.

    Args:
        store: Durable record store; the persisted request is the source of truth.
        config: Orchestrator flags and tunables.
        dispatcher: Places individual calls.
        router: Research entry point for research-and-book requests.
        scheduler: Books the selected provider; defaults to one over ``dispatcher``.
        sleep: Awaitable used for the pause between research calls.
        notifier: Tells the user once recommendations are ready; optional.
        frontend_url: Base URL linked from notifications.
    """

    def __init__(
        self,
        store: RecordStore,
        config: OrchestratorConfig,
        dispatcher: CallDispatcher,
        router: WorkflowRouter,
        scheduler: Optional[AppointmentScheduler] = None,
        max_research_results: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        notifier: Optional[UserNotifier] = None,
        frontend_url: Optional[str] = None,
    ) -> None:
        self._store = store
        self._config = config
        self._dispatcher = dispatcher
        self._router = router
        self._scheduler = scheduler or AppointmentScheduler(dispatcher)
        self._max_research_results = max_research_results
        self._sleep = sleep
        self._notifier = notifier
        self._frontend_url = frontend_url.rstrip("/") if frontend_url else None

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def _retrying(self, description: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        """Run a store operation with one corrective retry."""
        try:
            return await operation()
        except PreconditionFailedError:
            raise
        except RecordNotFoundError as exc:
            raise NotFound(str(exc)) from exc
        except PersistenceError as exc:
            logger.error("%s failed, retrying once: %s", description, exc)
        try:
            return await operation()
        except PreconditionFailedError:
            raise
        except RecordNotFoundError as exc:
            raise NotFound(str(exc)) from exc
        except PersistenceError as exc:
            logger.error("%s failed after retry: %s", description, exc)
            raise PersistenceFailure(f"{description} failed: {exc}") from exc

    async def _read(self, description: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await operation()
        except PersistenceError as exc:
            raise PersistenceFailure(f"{description} failed: {exc}") from exc

    async def _update_request(
        self,
        request_id: str,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> None:
        await self._retrying(
            f"Update of request {request_id}",
            lambda: self._store.update(REQUESTS_TABLE, request_id, changes, expected),
        )

    async def _update_provider(self, provider_id: str, changes: dict[str, Any]) -> None:
        await self._retrying(
            f"Update of provider {provider_id}",
            lambda: self._store.update(PROVIDERS_TABLE, provider_id, changes),
        )

    async def _append_log(self, request_id: str, log: InteractionLog) -> None:
        await self._retrying(
            f"Interaction log '{log.step_name}'",
            lambda: self._store.insert(INTERACTIONS_TABLE, log.to_record(request_id)),
        )

    async def _transition(
        self,
        request: ServiceRequest,
        trigger: TransitionTrigger,
        expected: Optional[dict[str, Any]] = None,
        **changes: Any,
    ) -> ServiceRequest:
        machine = RequestStateMachine(request.type, request.status)
        new_status = machine.transition(trigger)
        await self._update_request(
            request.id, {"status": new_status.value, **changes}, expected
        )
        logger.info(
            "Request %s: %s -> %s", request.id, request.status.value, new_status.value
        )
        return request.model_copy(update={"status": new_status, **changes})

    async def _fail(self, request: ServiceRequest, outcome: str) -> ServiceRequest:
        logger.warning("Request %s failed: %s", request.id, outcome)
        return await self._transition(request, TransitionTrigger.FAIL, final_outcome=outcome)

    async def _load_row(self, request_id: str) -> ServiceRequest:
        row = await self._read(
            f"Read of request {request_id}",
            lambda: self._store.get(REQUESTS_TABLE, request_id),
        )
        if row is None:
            raise NotFound(f"Service request {request_id} not found")
        return ServiceRequest.model_validate(row)

    async def _providers(self, request_id: str) -> list[Provider]:
        rows = await self._read(
            f"Provider query for {request_id}",
            lambda: self._store.query(
                PROVIDERS_TABLE, {"request_id": request_id}, order_by="created_at"
            ),
        )
        return [Provider.model_validate(r) for r in rows]

    async def _interactions(self, request_id: str) -> list[InteractionLog]:
        rows = await self._read(
            f"Interaction query for {request_id}",
            lambda: self._store.query(
                INTERACTIONS_TABLE, {"request_id": request_id}, order_by="created_at"
            ),
        )
        return [InteractionLog.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create_request(self, request_input: RequestInput) -> ServiceRequest:
        """Persist a new request in ``pending`` and return it."""
        record = request_input.model_dump(mode="json", exclude_none=True)
        record["status"] = RequestStatus.PENDING.value
        row = await self._retrying(
            "Create service request",
            lambda: self._store.insert(REQUESTS_TABLE, record),
        )
        request_id = row["id"]
        logger.info("Created %s request %s", request_input.type.value, request_id)

        if request_input.direct_contact is not None:
            contact = Provider(
                request_id=request_id,
                name=request_input.direct_contact.name,
                phone=request_input.direct_contact.phone,
                source=ProviderSource.USER_INPUT,
            )
            await self._retrying(
                "Create direct contact",
                lambda: self._store.insert(PROVIDERS_TABLE, contact.to_record()),
            )
        return await self.get_request(request_id)

    async def get_request(self, request_id: str) -> ServiceRequest:
        """The persisted request with its providers and interaction logs."""
        request = await self._load_row(request_id)
        return request.model_copy(update={
            "providers": await self._providers(request_id),
            "interactions": await self._interactions(request_id),
        })

    async def list_for_user(self, user_id: str) -> list[ServiceRequest]:
        """A user's requests, newest first, without providers or logs."""
        rows = await self._read(
            f"Request query for user {user_id}",
            lambda: self._store.query(
                REQUESTS_TABLE, {"user_id": user_id}, order_by="created_at", descending=True
            ),
        )
        return [ServiceRequest.model_validate(r) for r in rows]

    async def advance(self, request_id: str) -> ServiceRequest:
        """
        Run the request forward until it is terminal or waiting for the user.

        Safe to call repeatedly: terminal requests are returned untouched and
        every step checks persisted state before repeating a side effect.
        """
        token = set_request_id(request_id)
        try:
            request = await self._load_row(request_id)
            while not request.is_terminal and request.status != RequestStatus.RECOMMENDED:
                try:
                    await self._run_step(request)
                except PersistenceFailure:
                    await self._fail_after_storage_error(request_id)
                    raise
                request = await self._load_row(request_id)
            if request.status == RequestStatus.RECOMMENDED:
                await self._notify_recommendations(request)
            return await self.get_request(request_id)
        finally:
            reset_request_id(token)

    async def select_provider(self, request_id: str, provider_id: str) -> ServiceRequest:
        """
        Record the user's choice and move the request to ``booking``.

        The write only lands while the persisted status is still
        ``recommended``, so of two concurrent selections exactly one wins
        and the other is rejected. Re-selecting the already selected
        provider is a no-op.
        """
        request = await self._load_row(request_id)
        if request.selected_provider_id == provider_id and request.status in (
            RequestStatus.BOOKING, RequestStatus.COMPLETED
        ):
            return await self.get_request(request_id)
        if request.status != RequestStatus.RECOMMENDED:
            raise ProviderSelectionError(
                f"Request {request_id} is '{request.status.value}', "
                f"a provider can only be selected once it is 'recommended'"
            )
        providers = await self._providers(request_id)
        if not any(p.id == provider_id for p in providers):
            raise NotFound(f"Provider {provider_id} does not belong to request {request_id}")

        try:
            await self._transition(
                request,
                TransitionTrigger.PROVIDER_SELECTED,
                expected={"status": RequestStatus.RECOMMENDED.value},
                selected_provider_id=provider_id,
            )
        except PreconditionFailedError as exc:
            current = await self._load_row(request_id)
            if current.selected_provider_id == provider_id:
                return await self.get_request(request_id)
            logger.warning("Selection of %s for %s lost a race: %s", provider_id, request_id, exc)
            raise ProviderSelectionError(
                f"Request {request_id} changed to '{current.status.value}' "
                f"while selecting provider {provider_id}"
            ) from exc
        return await self.get_request(request_id)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_step(self, request: ServiceRequest) -> None:
        direct = request.type == RequestType.DIRECT_TASK
        if request.status == RequestStatus.PENDING:
            trigger = TransitionTrigger.START_CALL if direct else TransitionTrigger.START_RESEARCH
            await self._transition(request, trigger)
        elif request.status == RequestStatus.CALLING and direct:
            await self._call_direct_contact(request)
        elif request.status == RequestStatus.SEARCHING and not direct:
            await self._research(request)
        elif request.status == RequestStatus.CALLING:
            await self._call_providers(request)
        elif request.status == RequestStatus.ANALYZING and not direct:
            await self._analyze(request)
        elif request.status == RequestStatus.BOOKING and not direct:
            await self._book(request)
        else:
            await self._fail(request, f"Request reached unexpected status '{request.status.value}'.")

    async def _fail_after_storage_error(self, request_id: str) -> None:
        try:
            request = await self._load_row(request_id)
            if not request.is_terminal:
                await self._fail(request, STORAGE_FAILURE_OUTCOME)
        except (PersistenceFailure, NotFound) as exc:
            logger.error("Could not record failure for request %s: %s", request_id, exc)

    async def _call_direct_contact(self, request: ServiceRequest) -> None:
        providers = await self._providers(request.id)
        contact = next((p for p in providers if p.source == ProviderSource.USER_INPUT), None)
        if contact is None and request.direct_contact is not None:
            contact = Provider(
                name=request.direct_contact.name, phone=request.direct_contact.phone
            )
        if contact is None:
            await self._fail(request, "No contact was provided for this task.")
            return

        step = step_name_for(contact.name)
        logs = await self._interactions(request.id)
        call_log = next((log for log in logs if log.step_name == step), None)
        if call_log is None:
            task = request.task_text or request.title
            attempt = await self._dispatcher.dispatch(
                CallTarget(name=contact.name, phone=contact.phone, provider_id=contact.id),
                task=task,
                metadata={"service_request_id": request.id, "kind": "direct_task"},
            )
            call_log = attempt.log
            await self._append_log(request.id, call_log)
            if contact.id:
                await self._update_provider(contact.id, _call_tracking(attempt))
        else:
            logger.info("Reusing recorded call outcome for request %s", request.id)

        if not call_log.succeeded:
            await self._fail(request, DIRECT_FAILURE_OUTCOME)
            return

        if is_scheduling_task(request.task_text or request.title) and not any(
            log.step_name == BOOKING_STEP for log in logs
        ):
            await self._append_log(
                request.id, self._scheduler.confirm_direct(contact.name, contact.id)
            )
        await self._transition(
            request, TransitionTrigger.CALL_SUCCEEDED, final_outcome=DIRECT_SUCCESS_OUTCOME
        )

    async def _research(self, request: ServiceRequest) -> None:
        existing = await self._providers(request.id)
        if existing:
            logger.info("Request %s already has %d providers", request.id, len(existing))
            await self._transition(request, TransitionTrigger.PROVIDERS_FOUND)
            return

        result = await self._router.search_providers(ResearchRequest(
            service=request.title,
            location=request.location or "",
            coordinates=request.coordinates,
            service_request_id=request.id,
            max_results=self._max_research_results,
        ))
        if result.status == ResearchStatus.ERROR or not result.providers:
            await self._append_log(request.id, InteractionLog(
                step_name=RESEARCH_STEP,
                detail=result.error or "No providers found",
                status=LogStatus.ERROR,
            ))
            await self._fail(request, NO_PROVIDERS_OUTCOME)
            return

        for provider in result.providers:
            record = provider.model_copy(update={
                "id": None,
                "request_id": request.id,
                "source": ProviderSource.SEARCH_RESULT,
            }).to_record()
            await self._retrying(
                f"Insert provider {provider.name}",
                lambda record=record: self._store.insert(PROVIDERS_TABLE, record),
            )
        await self._append_log(request.id, InteractionLog(
            step_name=RESEARCH_STEP,
            detail=f"Found {len(result.providers)} providers using {result.method.value}",
            status=LogStatus.SUCCESS,
        ))
        await self._transition(request, TransitionTrigger.PROVIDERS_FOUND)

    async def _call_providers(self, request: ServiceRequest) -> None:
        providers = await self._providers(request.id)
        if self._config.test_mode:
            providers = providers[:1]
            logger.info("Test mode: calling only the first provider")
        pending = [p for p in providers if p.call_status is None]

        criteria = request.task_text
        for index, provider in enumerate(pending):
            if index > 0 and self._config.call_delay_ms > 0:
                await self._sleep(self._config.call_delay_ms / 1000)
            await self._update_provider(
                provider.id, {"call_status": CallStatus.IN_PROGRESS.value}
            )
            attempt = await self._dispatcher.dispatch(
                CallTarget(
                    name=provider.name,
                    phone=provider.phone,
                    provider_id=provider.id,
                    profile=provider.model_dump(
                        include={"rating", "review_count", "address", "is_open_now"},
                        exclude_none=True,
                    ),
                ),
                task=criteria or request.title,
                script=build_research_call_script(
                    provider.name, request.title, criteria, request.location
                ),
                metadata={"service_request_id": request.id, "kind": "research"},
            )
            await self._update_provider(provider.id, _call_tracking(attempt))
            await self._append_log(request.id, attempt.log)

        await self._transition(request, TransitionTrigger.CALLS_FINISHED)

    async def _analyze(self, request: ServiceRequest) -> None:
        recommendations = recommend_providers(await self._providers(request.id))
        if not recommendations:
            await self._append_log(request.id, InteractionLog(
                step_name=ANALYSIS_STEP,
                detail="No provider qualified after the calls.",
                status=LogStatus.WARNING,
            ))
            await self._fail(request, NO_QUALIFIED_OUTCOME)
            return

        await self._append_log(request.id, InteractionLog(
            step_name=ANALYSIS_STEP,
            detail=summarize(recommendations),
            status=LogStatus.SUCCESS,
        ))
        await self._transition(
            request,
            TransitionTrigger.PROVIDERS_QUALIFIED,
            recommendations=[r.model_dump(mode="json") for r in recommendations],
        )

    async def _notify_recommendations(self, request: ServiceRequest) -> None:
        """Send the recommendation notice once; the persisted timestamp marks it sent."""
        if self._notifier is None or request.notification_sent_at is not None:
            return
        if not request.user_phone or not request.recommendations:
            logger.info("Request %s: no user phone or recommendations to notify", request.id)
            return
        check = check_phone(request.user_phone, self._config.default_country_code)
        if not check.ok:
            logger.warning("Not notifying for request %s: %s", request.id, check.to_error())
            return

        method = request.contact_preference or ContactPreference.TEXT
        request_url = f"{self._frontend_url}/request/{request.id}" if self._frontend_url else None
        message = notification_message(request.title, request.recommendations, request_url)
        try:
            await self._notifier.notify(check.normalized, message, method)
        except NotificationFailure as exc:
            logger.error("Notification for request %s failed: %s", request.id, exc)
            return

        try:
            await self._update_request(request.id, {
                "notification_sent_at": _utcnow_iso(),
                "notification_method": method.value,
            })
        except PersistenceFailure as exc:
            logger.error("Could not record notification for request %s: %s", request.id, exc)

    async def _book(self, request: ServiceRequest) -> None:
        providers = await self._providers(request.id)
        provider = next((p for p in providers if p.id == request.selected_provider_id), None)
        if provider is None:
            await self._fail(request, "No provider was selected for booking.")
            return

        reasoning = next(
            (r.reasoning for r in request.recommendations if r.provider_id == provider.id), ""
        )
        outcome = f"Booked with {provider.name}. {reasoning}".strip()
        if provider.booking_confirmed:
            await self._transition(
                request, TransitionTrigger.BOOKING_CONFIRMED, final_outcome=outcome
            )
            return

        booking = await self._scheduler.book(provider, request.title, request.task_text)
        if not booking.confirmed:
            await self._append_log(request.id, booking.log)
            await self._fail(request, f"Could not confirm a booking with {provider.name}.")
            return
        await self._update_provider(provider.id, booking.provider_updates)
        await self._append_log(request.id, booking.log)
        await self._transition(
            request, TransitionTrigger.BOOKING_CONFIRMED, final_outcome=outcome
        )
