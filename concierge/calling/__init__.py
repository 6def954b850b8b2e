from concierge.calling.dispatcher import CallAttempt, CallDispatcher, CallTarget
from concierge.calling.scheduler import AppointmentScheduler, BookingOutcome
from concierge.calling.simulator import CallSimulator
from concierge.calling.task_analyzer import TaskAnalyzer

__all__ = [
    "CallDispatcher", "CallTarget", "CallAttempt",
    "AppointmentScheduler", "BookingOutcome",
    "CallSimulator", "TaskAnalyzer",
]
