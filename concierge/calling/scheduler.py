"""Booking confirmation for the chosen provider and for direct scheduling tasks."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from concierge.calling.dispatcher import CallDispatcher, CallTarget
from concierge.prompts.prompt_templates import build_booking_script
from concierge.schemas.interaction_schema import InteractionLog, LogStatus
from concierge.schemas.provider_schema import Provider

logger = logging.getLogger(__name__)

BOOKING_STEP = "Booking Appointment"


@dataclass(frozen=True)
class BookingOutcome:
    log: InteractionLog
    confirmed: bool
    provider_updates: dict[str, Any] = field(default_factory=dict)


def _confirmation_number() -> str:
    return f"CONF-{uuid.uuid4().hex[:8].upper()}"


class AppointmentScheduler:
    """Confirms appointments, by phone when live calls are on and synthetically otherwise."""

    def __init__(self, dispatcher: CallDispatcher) -> None:
        self._dispatcher = dispatcher

    def confirm_direct(self, contact_name: str, provider_id: Optional[str] = None) -> InteractionLog:
        """Scheduling sub-step appended after a successful direct scheduling call."""
        return InteractionLog(
            provider_id=provider_id,
            step_name=BOOKING_STEP,
            detail=f"Appointment confirmed with {contact_name}.",
            status=LogStatus.SUCCESS,
        )

    async def book(self, provider: Provider, service: str, criteria: str) -> BookingOutcome:
        """Book ``provider``; the outcome carries the provider fields to persist."""
        earlier = provider.call_result or {}
        earliest = earlier.get("earliest_availability")

        if not self._dispatcher.live_mode:
            number = _confirmation_number()
            logger.info("Synthetic booking with %s (%s)", provider.name, number)
            return BookingOutcome(
                log=InteractionLog(
                    provider_id=provider.id,
                    step_name=BOOKING_STEP,
                    detail=f"Appointment confirmed with {provider.name}. Confirmation number {number}.",
                    status=LogStatus.SUCCESS,
                ),
                confirmed=True,
                provider_updates={
                    "booking_confirmed": True,
                    "booking_date": earliest,
                    "confirmation_number": number,
                },
            )

        attempt = await self._dispatcher.dispatch(
            CallTarget(name=provider.name, phone=provider.phone, provider_id=provider.id),
            task=criteria or service,
            script=build_booking_script(provider.name, service, criteria, earliest),
            step_name=BOOKING_STEP,
            metadata={"kind": "booking"},
        )
        if not attempt.log.succeeded:
            return BookingOutcome(log=attempt.log, confirmed=False)

        data = attempt.result.structured_data if attempt.result else {}
        return BookingOutcome(
            log=attempt.log,
            confirmed=True,
            provider_updates={
                "booking_confirmed": True,
                "booking_date": data.get("booking_date") or data.get("earliest_availability") or earliest,
                "booking_time": data.get("booking_time"),
                "confirmation_number": data.get("confirmation_number"),
            },
        )
