"""Consensus implementations."""

from .base import (
    NOT_APPLICABLE,
    AggregationError,
    AggregationFailure,
    AggregationOutcome,
    AggregationResult,
    BaseAggregator,
    Candidate,
    FailureReason,
)
from .best_of_n import BestOfNAggregator, BestOfNOptions
from .majority_vote import MajorityVoteAggregator, MajorityVoteOptions
from .registry import Strategy, build_aggregator
from .weighted import WeightedAggregator, WeightedOptions, default_weighted_strategies, normalize_weights

__all__ = [
    "NOT_APPLICABLE",
    "AggregationError",
    "AggregationFailure",
    "AggregationOutcome",
    "AggregationResult",
    "BaseAggregator",
    "Candidate",
    "FailureReason",
    "BestOfNAggregator",
    "BestOfNOptions",
    "MajorityVoteAggregator",
    "MajorityVoteOptions",
    "WeightedAggregator",
    "WeightedOptions",
    "default_weighted_strategies",
    "normalize_weights",
    "Strategy",
    "build_aggregator",
]
