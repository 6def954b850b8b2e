"""Dynamic prompt and call-script construction for each kind of call."""

import json
from typing import Any, Optional

from concierge.prompts.system_prompts import (
    BOOKING_CALL_RULES,
    DIRECT_TASK_RULES,
    RESEARCH_CALL_RULES,
    VOICE_STYLE_RULES,
)
from concierge.schemas.call_schema import CallScript, StrategicGuidance, TaskClassification

DEFAULT_CLOSING = "Thank you so much for your time. Have a great day!"


def default_call_script(contact_name: str, task: str) -> CallScript:
    """Generic direct-task script used when task analysis is unavailable."""
    system_prompt = (
        f"You are a warm, confident AI assistant making a real phone call to "
        f"{contact_name} on behalf of your client.\n\n"
        f"Your client has asked you to perform the following task:\n{task}\n"
        f"{DIRECT_TASK_RULES}{VOICE_STYLE_RULES}"
    )
    return CallScript(
        system_prompt=system_prompt,
        first_message=(
            f"Hi, is this {contact_name}? I'm an AI assistant calling on behalf of "
            f"a client about a request they have."
        ),
        closing_script=DEFAULT_CLOSING,
    )


def build_research_call_script(
    provider_name: str,
    service: str,
    criteria: str,
    location: Optional[str] = None,
) -> CallScript:
    """Script for the information-gathering call to a search result."""
    where = f" in {location}" if location else ""
    system_prompt = (
        f"You are an AI assistant calling {provider_name} on behalf of a client "
        f"who needs {service}{where}.\n\n"
        f"Client criteria:\n{criteria or 'None beyond the service itself.'}\n"
        f"{RESEARCH_CALL_RULES}{VOICE_STYLE_RULES}"
    )
    return CallScript(
        system_prompt=system_prompt,
        first_message=(
            f"Hi, is this {provider_name}? I'm an AI assistant calling on behalf of a "
            f"client who is looking for help with {service}. Do you have a moment?"
        ),
        closing_script=DEFAULT_CLOSING,
    )


def build_booking_script(
    provider_name: str,
    service: str,
    criteria: str,
    earliest_availability: Optional[str] = None,
) -> CallScript:
    """Script for the follow-up call that books the chosen provider."""
    slot = (
        f"Earlier they mentioned availability: {earliest_availability}. Try to book that slot.\n"
        if earliest_availability else ""
    )
    system_prompt = (
        f"You are an AI assistant calling {provider_name} back to book {service} "
        f"for your client.\n\nClient criteria:\n{criteria or 'None.'}\n{slot}"
        f"{BOOKING_CALL_RULES}{VOICE_STYLE_RULES}"
    )
    return CallScript(
        system_prompt=system_prompt,
        first_message=(
            f"Hi, this is the AI assistant who called earlier about {service}. "
            f"My client would like to go ahead and book."
        ),
        closing_script="Thank you, we look forward to it. Goodbye!",
    )


def build_classification_prompt(task: str, contact_name: str) -> str:
    return f"Task for a call to {contact_name}:\n{task}"


def build_strategy_prompt(task: str, classification: TaskClassification) -> str:
    return (
        f"Task: {task}\n"
        f"Task type: {classification.task_type.value}\n"
        f"Intent: {classification.intent}\n"
        f"Difficulty: {classification.difficulty.value}"
    )


def build_generated_script(
    contact_name: str,
    task: str,
    classification: TaskClassification,
    guidance: StrategicGuidance,
) -> CallScript:
    """Turn an analyzed task into a tailored script for the voice agent."""
    lines = [
        f"You are a warm, confident AI assistant making a real phone call to "
        f"{contact_name} on behalf of your client.",
        "",
        f"TASK: {task}",
        f"GOAL: {classification.intent}",
        "",
    ]
    if guidance.key_goals:
        lines.append("KEY GOALS:")
        lines.extend(f"- {goal}" for goal in guidance.key_goals)
    if guidance.talking_points:
        lines.append("TALKING POINTS:")
        lines.extend(f"- {point}" for point in guidance.talking_points)
    if guidance.objection_handlers:
        lines.append("IF THEY PUSH BACK:")
        lines.extend(
            f'- If they say "{objection}": {response}'
            for objection, response in guidance.objection_handlers.items()
        )
    if guidance.success_criteria:
        lines.append("THE CALL SUCCEEDS WHEN:")
        lines.extend(f"- {criterion}" for criterion in guidance.success_criteria)

    system_prompt = "\n".join(lines) + "\n" + DIRECT_TASK_RULES + VOICE_STYLE_RULES
    regarding = classification.intent.rstrip(".") or "a request they have"
    return CallScript(
        system_prompt=system_prompt,
        first_message=(
            f"Hi, is this {contact_name}? I'm an AI assistant calling on behalf of a "
            f"client. The reason for my call: {regarding}."
        ),
        closing_script=DEFAULT_CLOSING,
    )


def build_simulation_prompt(
    provider: dict[str, Any],
    script: CallScript,
    task: str,
) -> str:
    """Describe the business and the assistant's instructions for a simulated call."""
    profile = {
        k: provider.get(k)
        for k in ("name", "rating", "review_count", "address", "is_open_now")
        if provider.get(k) is not None
    }
    return (
        f"Business profile: {json.dumps(profile)}\n\n"
        f"The assistant's objective: {task}\n\n"
        f"The assistant opens with: {script.first_message}\n\n"
        "Simulate the full call and report the outcome."
    )
