"""
Direct-task analysis: classify the user's objective and build a call script.

Two model calls: a classification (task type, intent, difficulty) and a
calling strategy. Any failure returns ``None`` so callers fall back to the
default script.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from concierge.errors import AnalysisUnavailable
from concierge.ports import LanguageModel
from concierge.prompts.prompt_templates import (
    build_classification_prompt,
    build_generated_script,
    build_strategy_prompt,
)
from concierge.prompts.system_prompts import STRATEGY_SYSTEM_PROMPT, TASK_CLASSIFIER_SYSTEM_PROMPT
from concierge.schemas.call_schema import (
    Difficulty,
    StrategicGuidance,
    TaskAnalysis,
    TaskClassification,
    TaskType,
)

logger = logging.getLogger(__name__)


def _enum_or_default(enum_cls, value: Any, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def parse_classification(payload: dict[str, Any]) -> TaskClassification:
    if not isinstance(payload, dict) or "taskType" not in payload:
        raise AnalysisUnavailable("Classification reply is missing taskType")
    return TaskClassification(
        task_type=_enum_or_default(TaskType, payload["taskType"], TaskType.GENERAL_TASK),
        intent=str(payload.get("intent") or ""),
        difficulty=_enum_or_default(Difficulty, payload.get("difficulty"), Difficulty.MODERATE),
    )


def parse_guidance(payload: dict[str, Any]) -> StrategicGuidance:
    try:
        return StrategicGuidance(
            key_goals=payload.get("keyGoals") or [],
            talking_points=payload.get("talkingPoints") or [],
            objection_handlers=payload.get("objectionHandlers") or {},
            success_criteria=payload.get("successCriteria") or [],
        )
    except ValidationError as exc:
        raise AnalysisUnavailable(f"Strategy reply has the wrong shape: {exc}") from exc


class TaskAnalyzer:
    """Turns a free-text task into a tailored ``CallScript``."""

    def __init__(self, model: LanguageModel) -> None:
        self._model = model

    async def analyze(
        self, task: str, contact_name: str, phone: Optional[str] = None
    ) -> Optional[TaskAnalysis]:
        """
        Classify ``task`` and generate a call script for ``contact_name``.

        Returns:
            The analysis, or None when it could not be produced.
        """
        if not task.strip():
            return None
        try:
            classification = parse_classification(await self._model.generate_json(
                build_classification_prompt(task, contact_name),
                system=TASK_CLASSIFIER_SYSTEM_PROMPT,
            ))
            guidance = parse_guidance(await self._model.generate_json(
                build_strategy_prompt(task, classification),
                system=STRATEGY_SYSTEM_PROMPT,
            ))
        except Exception as exc:
            logger.warning("Task analysis unavailable for call to %s: %s", contact_name, exc)
            return None

        logger.info(
            "Task classified as %s (%s)",
            classification.task_type.value, classification.difficulty.value,
        )
        return TaskAnalysis(
            classification=classification,
            guidance=guidance,
            script=build_generated_script(contact_name, task, classification, guidance),
        )
