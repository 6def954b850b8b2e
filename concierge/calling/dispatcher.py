"""
Dispatch of a single outbound call, live or simulated.

The dispatcher validates the destination, picks a script, applies the
operator test-number override and turns whatever happens into exactly one
``InteractionLog``. It never retries; whether to try another provider is
the lifecycle manager's decision.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from concierge.calling.outcome import (
    failure_log,
    invalid_phone_log,
    result_to_log,
    step_name_for,
)
from concierge.calling.task_analyzer import TaskAnalyzer
from concierge.config import OrchestratorConfig
from concierge.errors import ExternalCallFailure
from concierge.ports import VoiceCaller
from concierge.prompts.prompt_templates import default_call_script
from concierge.schemas.call_schema import CallScript, VoiceCallResult
from concierge.schemas.interaction_schema import InteractionLog
from concierge.utils import check_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallTarget:
    """Who to call. ``profile`` feeds the simulator with business details."""

    name: str
    phone: Optional[str]
    provider_id: Optional[str] = None
    profile: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CallAttempt:
    """One attempt's log plus the raw result when a call was actually placed."""

    log: InteractionLog
    result: Optional[VoiceCallResult] = None
    simulated: bool = False

    @property
    def placed(self) -> bool:
        return self.result is not None


class CallDispatcher:
    """
    Places one call per ``dispatch`` through the live or simulated caller.

    Args:
        config: Supplies the live-call flag, the test override number and
            the default country code.
        live_caller: Real voice-call capability; required when live calls
            are enabled.
        simulator: Synthetic caller used when live calls are disabled.
        analyzer: Optional task analyzer for live direct-task calls.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        live_caller: Optional[VoiceCaller] = None,
        simulator: Optional[VoiceCaller] = None,
        analyzer: Optional[TaskAnalyzer] = None,
    ) -> None:
        if config.live_calls_enabled and live_caller is None:
            raise ValueError("Live calls are enabled but no voice caller was provided")
        if not config.live_calls_enabled and simulator is None:
            raise ValueError("Live calls are disabled but no call simulator was provided")
        self._config = config
        self._live_caller = live_caller
        self._simulator = simulator
        self._analyzer = analyzer

    @property
    def live_mode(self) -> bool:
        return self._config.live_calls_enabled

    async def resolve_script(self, target: CallTarget, task: str) -> CallScript:
        """Analyzer script when available, otherwise the generic default."""
        if self._analyzer is not None and self._config.analyze_direct_tasks:
            analysis = await self._analyzer.analyze(task, target.name, target.phone)
            if analysis is not None:
                return analysis.script
            logger.info("Using default call script for %s", target.name)
        return default_call_script(target.name, task)

    def _destination(self, number: str) -> str:
        override = self._config.test_override_number
        if not override:
            return number
        check = check_phone(override, self._config.default_country_code)
        destination = check.normalized if check.ok else override
        logger.info("Test mode: routing call for %s to %s", number, destination)
        return destination

    async def dispatch(
        self,
        target: CallTarget,
        task: str,
        script: Optional[CallScript] = None,
        step_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> CallAttempt:
        """
        Make one call attempt to ``target``.

        Args:
            target: Contact to call.
            task: The objective, in the user's words.
            script: Explicit script; when omitted one is resolved from ``task``.
            step_name: Log step name, defaults to "Calling <name>".
            metadata: Extra call metadata passed to the caller.

        Returns:
            The attempt's interaction log and, if a call was placed, its result.
        """
        step = step_name or step_name_for(target.name)
        simulated = not self.live_mode

        if simulated:
            caller = self._simulator
            destination = self._destination(target.phone or "")
            script = script or default_call_script(target.name, task)
        else:
            check = check_phone(target.phone, self._config.default_country_code)
            if not check.ok:
                logger.warning("%s", check.to_error())
                return CallAttempt(
                    log=invalid_phone_log(target.name, check, target.provider_id, step)
                )
            caller = self._live_caller
            destination = self._destination(check.normalized)
            script = script or await self.resolve_script(target, task)

        call_metadata = {
            **(metadata or {}),
            "task": task,
            "provider": {"name": target.name, **target.profile},
        }
        if target.provider_id:
            call_metadata["provider_id"] = target.provider_id

        try:
            result = await caller.call(destination, script, call_metadata)
        except ExternalCallFailure as exc:
            logger.error("Call to %s failed: %s", target.name, exc)
            return CallAttempt(
                log=failure_log(target.name, exc, simulated, target.provider_id, step),
                simulated=simulated,
            )
        except Exception as exc:
            logger.exception("Unexpected error calling %s", target.name)
            return CallAttempt(
                log=failure_log(target.name, exc, simulated, target.provider_id, step),
                simulated=simulated,
            )

        log = result_to_log(target.name, result, simulated, target.provider_id, step)
        logger.info("Call to %s finished: %s", target.name, log.status.value)
        return CallAttempt(log=log, result=result, simulated=simulated)
