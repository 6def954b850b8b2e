"""
Deterministic ranking of called providers.

Only providers whose call completed with a recorded outcome, and who were
not disqualified, are ranked. Scores combine conversation quality, service
fit, reputation and trust signals, capped at 100.
"""

import logging
from typing import Any, Optional

from concierge.schemas.call_schema import Recommendation
from concierge.schemas.provider_schema import CallStatus, Provider

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3
MAX_SCORE = 100
_UNKNOWN_VALUES = {"", "unknown", "Quote upon request"}

_RATING_POINTS = [(4.5, 20), (4.0, 16), (3.5, 12), (3.0, 8)]
_REVIEW_POINTS = [(100, 5), (50, 4), (20, 3), (10, 2)]


def _known(value: Any) -> bool:
    return bool(value) and str(value) not in _UNKNOWN_VALUES


def is_qualified(provider: Provider) -> bool:
    data = provider.call_result or {}
    if provider.call_status != CallStatus.COMPLETED:
        return False
    if data.get("call_outcome") in (None, "", "no_answer", "voicemail"):
        return False
    return not data.get("disqualified")


def score_provider(provider: Provider) -> int:
    data = provider.call_result or {}
    score = 0

    # Conversation quality
    outcome = data.get("call_outcome")
    if outcome == "positive":
        score += 20
    elif outcome == "neutral":
        score += 10
    if _known(data.get("earliest_availability")):
        score += 8
    if _known(data.get("estimated_rate")):
        score += 7

    # Service fit
    if data.get("all_criteria_met"):
        score += 20
    if data.get("availability") == "available":
        score += 7
    elif data.get("availability") == "callback_requested":
        score += 3
    if data.get("single_person_found"):
        score += 3

    # Reputation
    rating = provider.rating or 0
    score += next((pts for floor, pts in _RATING_POINTS if rating >= floor), 4 if rating > 0 else 0)
    reviews = provider.review_count or 0
    score += next((pts for floor, pts in _REVIEW_POINTS if reviews >= floor), 1 if reviews > 0 else 0)

    # Trust
    if data.get("recommended"):
        score += 10

    return min(score, MAX_SCORE)


def build_reasoning(provider: Provider) -> str:
    data = provider.call_result or {}
    parts: list[str] = []
    if data.get("all_criteria_met"):
        parts.append("Meets all your requirements")
    elif data.get("call_outcome") == "positive":
        parts.append("Positive conversation")

    if _known(data.get("earliest_availability")):
        parts.append(f"Available: {data['earliest_availability']}")
    elif data.get("availability") == "available":
        parts.append("Available now")

    if provider.rating and provider.rating >= 3.5:
        reviews = f" ({provider.review_count} reviews)" if provider.review_count else ""
        parts.append(f"{provider.rating} stars{reviews}")

    if _known(data.get("estimated_rate")):
        parts.append(f"Quoted: {data['estimated_rate']}")

    return " | ".join(parts) if parts else "Answered and can help with your request"


def recommend_providers(providers: list[Provider]) -> list[Recommendation]:
    """Rank qualified providers and return the best three."""
    ranked = []
    for provider in providers:
        if not is_qualified(provider):
            logger.debug("Not recommending %s (status %s)", provider.name, provider.call_status)
            continue
        data = provider.call_result or {}
        ranked.append(Recommendation(
            provider_id=provider.id or "",
            provider_name=provider.name,
            score=score_provider(provider),
            reasoning=build_reasoning(provider),
            earliest_availability=data.get("earliest_availability"),
            estimated_rate=data.get("estimated_rate"),
            criteria_matched=bool(data.get("all_criteria_met")),
        ))
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked[:MAX_RECOMMENDATIONS]


def summarize(recommendations: list[Recommendation]) -> str:
    """One-line explanation of the ranking for the request's outcome text."""
    if not recommendations:
        return "Unfortunately, we couldn't find a qualified provider."
    top = recommendations[0]
    if len(recommendations) == 1:
        return (
            f"We recommend {top.provider_name} (Score: {top.score}/100). "
            f"They were the only provider who answered and could meet your needs."
        )
    if top.score - recommendations[1].score >= 15:
        return (
            f"We strongly recommend {top.provider_name} (Score: {top.score}/100). "
            f"They significantly outperformed the other options."
        )
    return (
        f"We recommend {top.provider_name} (Score: {top.score}/100), "
        f"with {len(recommendations) - 1} close alternative(s)."
    )


def notification_message(
    service: str, recommendations: list[Recommendation], request_url: Optional[str] = None
) -> str:
    """Short recommendation notice for SMS or a read-aloud call."""
    count = len(recommendations)
    top = recommendations[0]
    lines = [
        f"Your concierge found {count} qualified provider{'s' if count != 1 else ''} "
        f"for {service}.",
        f"Top pick: {top.provider_name} (Score: {top.score}/100)",
        f"Available: {top.earliest_availability or 'Contact for details'}",
    ]
    if _known(top.estimated_rate):
        lines.append(f"Est. rate: {top.estimated_rate}")
    if count > 1:
        lines.append("Also recommended: " + ", ".join(r.provider_name for r in recommendations[1:]))
    if request_url:
        lines.append(f"Choose a provider: {request_url}")
    return "\n".join(lines)
