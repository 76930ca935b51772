"""Self-consistency consensus engine package."""

from .consensus import Candidate, FailureReason, Strategy, build_aggregator
from .runner import RunFailure, RunnerConfig, RunResult, SelfConsistencyRunner

__all__ = [
    "Candidate",
    "FailureReason",
    "Strategy",
    "build_aggregator",
    "RunFailure",
    "RunnerConfig",
    "RunResult",
    "SelfConsistencyRunner",
]
