"""
Finite state machine for service request status transitions.

Defines the request lifecycle and the explicit transitions each flow may
take. Research-and-book requests go through search, calls, analysis,
recommendation and booking; direct tasks go straight from pending to a
single call. ``failed`` is reachable from every non-terminal state and is
itself terminal.

Usage:
    sm = RequestStateMachine(RequestType.DIRECT_TASK)
    sm.transition(TransitionTrigger.START_CALL)
    assert sm.current_state == RequestStatus.CALLING
"""

import logging
from dataclasses import dataclass
from enum import Enum

from concierge.errors import InvalidTransitionError
from concierge.schemas.request_schema import TERMINAL_STATUSES, RequestStatus, RequestType

logger = logging.getLogger(__name__)

_BOTH_FLOWS = frozenset(RequestType)
_RESEARCH_ONLY = frozenset({RequestType.RESEARCH_AND_BOOK})
_DIRECT_ONLY = frozenset({RequestType.DIRECT_TASK})


class TransitionTrigger(str, Enum):
    """Events that cause status transitions."""

    START_RESEARCH = "start_research"
    START_CALL = "start_call"
    PROVIDERS_FOUND = "providers_found"
    CALLS_FINISHED = "calls_finished"
    PROVIDERS_QUALIFIED = "providers_qualified"
    PROVIDER_SELECTED = "provider_selected"
    BOOKING_CONFIRMED = "booking_confirmed"
    CALL_SUCCEEDED = "call_succeeded"
    FAIL = "fail"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""

    from_state: RequestStatus
    to_state: RequestStatus
    trigger: TransitionTrigger
    flows: frozenset = _BOTH_FLOWS


def _failure_transitions() -> list[Transition]:
    return [
        Transition(state, RequestStatus.FAILED, TransitionTrigger.FAIL)
        for state in RequestStatus
        if state not in TERMINAL_STATUSES
    ]


class RequestStateMachine:
    """
    Status transitions for one service request.

    Every transition must be explicitly defined for the request's flow.
    Anything else is rejected with an error listing the allowed triggers.
    """

    TRANSITIONS: list[Transition] = [
        # --- Research and book ---
        Transition(RequestStatus.PENDING, RequestStatus.SEARCHING,
                   TransitionTrigger.START_RESEARCH, _RESEARCH_ONLY),
        Transition(RequestStatus.SEARCHING, RequestStatus.CALLING,
                   TransitionTrigger.PROVIDERS_FOUND, _RESEARCH_ONLY),
        Transition(RequestStatus.CALLING, RequestStatus.ANALYZING,
                   TransitionTrigger.CALLS_FINISHED, _RESEARCH_ONLY),
        Transition(RequestStatus.ANALYZING, RequestStatus.RECOMMENDED,
                   TransitionTrigger.PROVIDERS_QUALIFIED, _RESEARCH_ONLY),
        Transition(RequestStatus.RECOMMENDED, RequestStatus.BOOKING,
                   TransitionTrigger.PROVIDER_SELECTED, _RESEARCH_ONLY),
        Transition(RequestStatus.BOOKING, RequestStatus.COMPLETED,
                   TransitionTrigger.BOOKING_CONFIRMED, _RESEARCH_ONLY),

        # --- Direct task ---
        Transition(RequestStatus.PENDING, RequestStatus.CALLING,
                   TransitionTrigger.START_CALL, _DIRECT_ONLY),
        Transition(RequestStatus.CALLING, RequestStatus.COMPLETED,
                   TransitionTrigger.CALL_SUCCEEDED, _DIRECT_ONLY),

        # --- Failure, from anywhere non-terminal ---
        *_failure_transitions(),
    ]

    def __init__(
        self,
        flow: RequestType,
        initial: RequestStatus = RequestStatus.PENDING,
    ) -> None:
        self._flow = flow
        self._current_state = initial

    @property
    def current_state(self) -> RequestStatus:
        return self._current_state

    def transition(self, trigger: TransitionTrigger) -> RequestStatus:
        """
        Execute a status transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new request status.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if (
                t.from_state == self._current_state
                and t.trigger == trigger
                and self._flow in t.flows
            ):
                old_state = self._current_state
                self._current_state = t.to_state
                logger.debug(
                    "Status transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}' for {self._flow.value}. "
            f"Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current status for this flow."""
        return [
            t.trigger
            for t in self.TRANSITIONS
            if t.from_state == self._current_state and self._flow in t.flows
        ]
