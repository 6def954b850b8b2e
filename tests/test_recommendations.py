"""Tests for provider qualification, scoring and ranking."""

import pytest

from concierge.lifecycle.recommendations import (
    build_reasoning,
    is_qualified,
    recommend_providers,
    score_provider,
    summarize,
)
from concierge.schemas.call_schema import Recommendation
from concierge.schemas.provider_schema import CallStatus, Provider


def called(name, outcome="positive", rating=None, reviews=None, status=CallStatus.COMPLETED, **data):
    return Provider(
        id=name.lower(),
        name=name,
        rating=rating,
        review_count=reviews,
        call_status=status,
        call_result={"call_outcome": outcome, **data} if outcome is not None else data,
    )


class TestQualification:
    def test_completed_positive_call_qualifies(self):
        assert is_qualified(called("Ace"))

    @pytest.mark.parametrize("status", [
        CallStatus.NO_ANSWER, CallStatus.VOICEMAIL, CallStatus.FAILED, CallStatus.TIMEOUT, None,
    ])
    def test_unfinished_calls_do_not_qualify(self, status):
        assert not is_qualified(called("Ace", status=status))

    @pytest.mark.parametrize("outcome", [None, "", "no_answer", "voicemail"])
    def test_missing_outcome_does_not_qualify(self, outcome):
        assert not is_qualified(called("Ace", outcome=outcome))

    def test_disqualified_does_not_qualify(self):
        assert not is_qualified(called("Ace", disqualified=True))


class TestScoring:
    def test_full_marks_are_capped(self):
        provider = called(
            "Ace", rating=4.9, reviews=500, all_criteria_met=True, availability="available",
            earliest_availability="Today", estimated_rate="$90", single_person_found=True,
            recommended=True,
        )
        assert score_provider(provider) == 100

    def test_points_add_up(self):
        provider = called("Ace", outcome="neutral", rating=4.2, reviews=30, availability="callback_requested")
        # neutral 10 + callback 3 + rating 16 + reviews 3
        assert score_provider(provider) == 32

    def test_unknown_values_score_nothing(self):
        provider = called("Ace", outcome="negative", earliest_availability="unknown",
                          estimated_rate="Quote upon request")
        assert score_provider(provider) == 0

    def test_low_rating_and_few_reviews(self):
        assert score_provider(called("Ace", outcome="negative", rating=2.5, reviews=3)) == 5


class TestReasoning:
    def test_joins_parts(self):
        provider = called("Ace", rating=4.8, reviews=120, all_criteria_met=True,
                          earliest_availability="Tomorrow 9am", estimated_rate="$110")
        assert build_reasoning(provider) == (
            "Meets all your requirements | Available: Tomorrow 9am | "
            "4.8 stars (120 reviews) | Quoted: $110"
        )

    def test_fallback_text(self):
        provider = called("Ace", outcome="neutral")
        assert build_reasoning(provider) == "Answered and can help with your request"


class TestRanking:
    def test_top_three_by_score(self):
        providers = [
            called("Low", outcome="neutral"),
            called("Best", all_criteria_met=True, rating=4.9),
            called("Gone", status=CallStatus.NO_ANSWER),
            called("Mid", rating=4.0),
            called("Good", all_criteria_met=True),
        ]
        recs = recommend_providers(providers)

        assert [r.provider_name for r in recs] == ["Best", "Good", "Mid"]
        assert recs[0].criteria_matched

    def test_no_qualified_providers(self):
        assert recommend_providers([called("Gone", status=CallStatus.VOICEMAIL)]) == []


class TestSummary:
    def _rec(self, name, score):
        return Recommendation(provider_id=name, provider_name=name, score=score, reasoning="")

    def test_single(self):
        assert "only provider" in summarize([self._rec("Ace", 60)])

    def test_clear_winner(self):
        assert summarize([self._rec("Ace", 80), self._rec("Bolt", 50)]).startswith(
            "We strongly recommend Ace"
        )

    def test_close_alternatives(self):
        text = summarize([self._rec("Ace", 80), self._rec("Bolt", 75), self._rec("Crest", 70)])
        assert text == "We recommend Ace (Score: 80/100), with 2 close alternative(s)."

    def test_empty(self):
        assert summarize([]).startswith("Unfortunately")
