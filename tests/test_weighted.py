"""Tests for weighted combination of strategies."""

from __future__ import annotations

from typing import Sequence

import pytest

from selfconsistency.consensus import (
    NOT_APPLICABLE,
    AggregationOutcome,
    BaseAggregator,
    BestOfNAggregator,
    Candidate,
    FailureReason,
    MajorityVoteAggregator,
    WeightedAggregator,
    WeightedOptions,
    normalize_weights,
)


class AlwaysFailingAggregator(BaseAggregator):
    """Strategy stub that never selects anything."""

    name = "always_failing"

    @classmethod
    def default_options(cls) -> None:
        return None

    def aggregate(self, candidates: Sequence[Candidate], options=None) -> AggregationOutcome:
        return self._failure(FailureReason.NO_SCORES, "stub")

    def distribution(self, candidates: Sequence[Candidate]) -> dict:
        return {}


class LastCandidateAggregator(BaseAggregator):
    """Strategy stub that always picks the last candidate."""

    name = "last"

    @classmethod
    def default_options(cls) -> None:
        return None

    def aggregate(self, candidates: Sequence[Candidate], options=None) -> AggregationOutcome:
        return self._result(candidates[-1], 1.0, {})

    def distribution(self, candidates: Sequence[Candidate]) -> dict:
        return {}


def _candidates() -> list[Candidate]:
    return [
        Candidate(content="Answer: 42", score=0.9),
        Candidate(content="Answer: 42", score=0.8),
        Candidate(content="Answer: 41", score=0.95),
    ]


def test_weights_normalize_to_one() -> None:
    """Weights 2 and 1 become two thirds and one third."""
    normalized = normalize_weights(((MajorityVoteAggregator(), 2), (BestOfNAggregator(), 1)))
    weights = [weight for _, weight in normalized]
    assert weights[0] == pytest.approx(0.667, abs=1e-3)
    assert weights[1] == pytest.approx(0.333, abs=1e-3)
    assert sum(weights) == pytest.approx(1.0)


def test_zero_weights_become_equal() -> None:
    """All-zero weights fall back to equal weights."""
    normalized = normalize_weights(((MajorityVoteAggregator(), 0), (BestOfNAggregator(), 0)))
    assert [weight for _, weight in normalized] == [0.5, 0.5]


def test_negative_weight_rejected() -> None:
    """Negative weights are a configuration error."""
    with pytest.raises(ValueError):
        WeightedOptions(strategies=((MajorityVoteAggregator(), -1.0),))


def test_default_strategies_split_on_disagreement() -> None:
    """Majority vote and best-of-N each contribute half to their own pick."""
    candidates = _candidates()
    result = WeightedAggregator().aggregate(candidates)
    assert result.ok
    # Majority vote picks candidate 0, best-of-N picks candidate 2; tie goes to input order.
    assert result.winner is candidates[0]
    assert result.confidence == pytest.approx(0.5)
    assert result.metadata["weighted_scores"][candidates[2].id] == pytest.approx(0.5)
    assert result.metadata["total_strategies"] == 2


def test_heavier_strategy_wins() -> None:
    """A 2:1 weighting favours the heavier strategy's choice."""
    candidates = _candidates()
    options = WeightedOptions(strategies=((BestOfNAggregator(), 2), (MajorityVoteAggregator(), 1)))
    result = WeightedAggregator(options).aggregate(candidates)
    assert result.winner is candidates[2]
    assert result.confidence == pytest.approx(2 / 3)


def test_agreeing_strategies_reach_full_confidence() -> None:
    """When every strategy picks the same candidate its score is 1.0."""
    candidates = [
        Candidate(content="Answer: 1", score=0.9),
        Candidate(content="Answer: 1", score=0.5),
        Candidate(content="Answer: 2", score=0.1),
    ]
    result = WeightedAggregator().aggregate(candidates)
    assert result.winner is candidates[0]
    assert result.confidence == pytest.approx(1.0)


def test_failing_strategy_contributes_zero() -> None:
    """A failing strategy is tolerated; majority vote drives the result."""
    candidates = _candidates()
    options = WeightedOptions(strategies=((AlwaysFailingAggregator(), 0.5), (MajorityVoteAggregator(), 0.5)))
    result = WeightedAggregator(options).aggregate(candidates)
    assert result.ok
    assert result.winner is candidates[0]
    assert result.confidence == pytest.approx(0.5)
    failed = result.metadata["strategy_results"][0]
    assert failed["selected_id"] is None
    assert failed["failure"] == "no_scores"


def test_all_strategies_failing_is_fatal() -> None:
    """If no sub-strategy selects anything the combination fails."""
    options = WeightedOptions(strategies=((AlwaysFailingAggregator(), 1.0),))
    outcome = WeightedAggregator(options).aggregate(_candidates())
    assert not outcome.ok
    assert outcome.reason is FailureReason.ALL_STRATEGIES_FAILED


def test_empty_strategy_list_fails() -> None:
    """No configured strategies yields no_strategies."""
    outcome = WeightedAggregator(WeightedOptions(strategies=())).aggregate(_candidates())
    assert outcome.reason is FailureReason.NO_STRATEGIES


def test_identity_not_content_drives_scores() -> None:
    """Selection is credited to the exact candidate object, not equal content."""
    candidates = [Candidate(content="Answer: 9"), Candidate(content="Answer: 9")]
    options = WeightedOptions(strategies=((LastCandidateAggregator(), 1.0),))
    result = WeightedAggregator(options).aggregate(candidates)
    assert result.winner is candidates[1]
    assert result.metadata["weighted_scores"][candidates[0].id] == 0.0


def test_singleton_and_empty() -> None:
    """Singleton wins outright; empty input fails."""
    only = Candidate(content="x")
    assert WeightedAggregator().aggregate([only]).confidence == 1.0
    assert WeightedAggregator().aggregate([]).reason is FailureReason.NO_CANDIDATES


def test_distribution_not_applicable() -> None:
    """distribution() is explicitly not applicable, not an empty histogram."""
    assert WeightedAggregator().distribution(_candidates()) is NOT_APPLICABLE
