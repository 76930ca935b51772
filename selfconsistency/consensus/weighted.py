"""Weighted combination of other consensus strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from .base import (
    NOT_APPLICABLE,
    AggregationFailure,
    AggregationOutcome,
    BaseAggregator,
    Candidate,
    FailureReason,
    _NotApplicable,
)
from .best_of_n import BestOfNAggregator
from .majority_vote import MajorityVoteAggregator

StrategyWeights = tuple[tuple[BaseAggregator, float], ...]


def default_weighted_strategies() -> StrategyWeights:
    """Majority vote and best-of-N, weighted equally."""
    return ((MajorityVoteAggregator(), 0.5), (BestOfNAggregator(), 0.5))


@dataclass(frozen=True, slots=True)
class WeightedOptions:
    """Ordered ``(aggregator, weight)`` pairs to combine."""

    strategies: StrategyWeights = field(default_factory=default_weighted_strategies)

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategies", tuple((agg, weight) for agg, weight in self.strategies))
        for aggregator, weight in self.strategies:
            if not isinstance(aggregator, BaseAggregator):
                raise ValueError(f"Weighted strategy must be an aggregator, got {aggregator!r}")
            if weight < 0:
                raise ValueError(f"Strategy weight must be non-negative, got {weight!r} for {aggregator.name}")


def normalize_weights(strategies: StrategyWeights) -> list[tuple[BaseAggregator, float]]:
    """Scale weights to sum to 1.0; all-zero weights become equal weights."""
    if not strategies:
        return []
    total = float(sum(weight for _, weight in strategies))
    if total == 0:
        equal = 1.0 / len(strategies)
        return [(aggregator, equal) for aggregator, _ in strategies]
    return [(aggregator, weight / total) for aggregator, weight in strategies]


class WeightedAggregator(BaseAggregator):
    """Each sub-strategy votes for its own winner with its normalized weight.

    A candidate's weighted score is the sum of the weights of the strategies that
    selected it. Strategies that fail contribute nothing.
    """

    name = "weighted"

    @classmethod
    def default_options(cls) -> WeightedOptions:
        return WeightedOptions()

    def aggregate(self, candidates: Sequence[Candidate], options: WeightedOptions | None = None) -> AggregationOutcome:
        opts = options or self.options
        if not candidates:
            return self._failure(FailureReason.NO_CANDIDATES)

        if len(candidates) == 1:
            return self._result(candidates[0], 1.0, {"strategy_weights": []})

        if not opts.strategies:
            return self._failure(FailureReason.NO_STRATEGIES, "weighted aggregation configured without strategies")

        normalized = normalize_weights(opts.strategies)
        strategy_results: list[dict[str, Any]] = []
        for aggregator, weight in normalized:
            outcome = self._apply(aggregator, candidates)
            strategy_results.append(
                {
                    "strategy": aggregator.name,
                    "weight": weight,
                    "selected_id": outcome.winner.id if outcome.ok else None,
                    "failure": None if outcome.ok else outcome.reason.value,
                }
            )

        if all(result["selected_id"] is None for result in strategy_results):
            return self._failure(FailureReason.ALL_STRATEGIES_FAILED, "every weighted sub-strategy failed")

        weighted_scores: dict[str, float] = {}
        for candidate in candidates:
            weighted_scores[candidate.id] = sum(
                (result["weight"] for result in strategy_results if result["selected_id"] == candidate.id),
                0.0,
            )

        max_score = max(weighted_scores.values())
        winner = next(c for c in candidates if weighted_scores[c.id] == max_score)

        return self._result(
            winner,
            max_score,
            {
                "weighted_scores": weighted_scores,
                "strategy_weights": [{"strategy": agg.name, "weight": weight} for agg, weight in normalized],
                "strategy_results": strategy_results,
                "total_strategies": len(strategy_results),
            },
        )

    def distribution(self, candidates: Sequence[Candidate]) -> _NotApplicable:
        return NOT_APPLICABLE

    def _apply(self, aggregator: BaseAggregator, candidates: Sequence[Candidate]) -> AggregationOutcome:
        try:
            return aggregator.aggregate(candidates)
        except NotImplementedError as exc:
            return AggregationFailure(reason=FailureReason.NO_STRATEGIES, method=aggregator.name, detail=str(exc))
