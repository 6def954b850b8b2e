from concierge.lifecycle.manager import RequestLifecycleManager, is_scheduling_task
from concierge.lifecycle.recommendations import recommend_providers
from concierge.lifecycle.state_machine import RequestStateMachine, TransitionTrigger

__all__ = [
    "RequestLifecycleManager",
    "is_scheduling_task",
    "recommend_providers",
    "RequestStateMachine",
    "TransitionTrigger",
]
