"""Consensus data model and aggregator abstraction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import math
from typing import TYPE_CHECKING, Any, Sequence
import uuid

if TYPE_CHECKING:
    from selfconsistency.models.base import ModelResponse


def _new_candidate_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True, slots=True, eq=False)
class Candidate:
    """One independently generated answer plus its metadata.

    Candidates compare by identity, never by content. ``id`` exists so that a
    candidate selected by one aggregator can be recognised by another.
    """

    content: str
    score: float | None = None
    tokens_used: int | None = None
    model: str | None = None
    timestamp: datetime | None = field(default_factory=_utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_candidate_id)

    def __post_init__(self) -> None:
        if not isinstance(self.content, str) or not self.content.strip():
            raise ValueError("Candidate content must be a non-empty string")

        if self.score is not None:
            if isinstance(self.score, bool) or not isinstance(self.score, (int, float)):
                raise ValueError(f"Candidate score must be a number, got {self.score!r}")
            if not math.isfinite(self.score):
                raise ValueError(f"Candidate score must be finite, got {self.score!r}")
            object.__setattr__(self, "score", float(self.score))

        if self.tokens_used is not None:
            if isinstance(self.tokens_used, bool) or not isinstance(self.tokens_used, int):
                raise ValueError(f"Candidate tokens_used must be an integer, got {self.tokens_used!r}")
            if self.tokens_used < 0:
                raise ValueError("Candidate tokens_used must be non-negative")

        if self.timestamp is not None:
            if not isinstance(self.timestamp, datetime):
                raise ValueError(f"Candidate timestamp must be a datetime, got {self.timestamp!r}")
            if self.timestamp.tzinfo is None:
                # Naive timestamps are read as UTC so they order against the default.
                object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))

        if self.metadata is None:
            object.__setattr__(self, "metadata", {})

    @classmethod
    def from_response(
        cls,
        response: "ModelResponse",
        *,
        attempt: int,
        temperature: float,
    ) -> "Candidate":
        """Build a candidate from one generator response."""
        return cls(
            content=response.text,
            tokens_used=response.tokens_used,
            model=response.model_name,
            metadata={
                **response.metadata,
                "attempt": attempt,
                "temperature": temperature,
                "latency_ms": response.latency_ms,
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view used in run traces."""
        return {
            "id": self.id,
            "content": self.content,
            "score": self.score,
            "tokens_used": self.tokens_used,
            "model": self.model,
            "timestamp": self.timestamp.isoformat() if self.timestamp is not None else None,
            "metadata": dict(self.metadata),
        }


class FailureReason(str, Enum):
    """Reason codes carried by typed failures."""

    NO_CANDIDATES = "no_candidates"
    NO_SCORES = "no_scores"
    NO_STRATEGIES = "no_strategies"
    ALL_STRATEGIES_FAILED = "all_strategies_failed"
    ALL_GENERATIONS_FAILED = "all_generations_failed"


class AggregationError(Exception):
    """Raised by ``unwrap()`` when a caller asks for a result that failed."""

    def __init__(self, reason: FailureReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


@dataclass(slots=True)
class AggregationResult:
    """Winner selected by an aggregator."""

    winner: Candidate
    confidence: float
    method: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> "AggregationResult":
        return self


@dataclass(slots=True)
class AggregationFailure:
    """Typed aggregation failure. Returned, never raised."""

    reason: FailureReason
    method: str
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> AggregationResult:
        raise AggregationError(self.reason, self.detail)


AggregationOutcome = AggregationResult | AggregationFailure


class _NotApplicable:
    """Sentinel for distributions that have no meaning for a strategy."""

    _instance: "_NotApplicable | None" = None

    def __new__(cls) -> "_NotApplicable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_APPLICABLE"

    def __bool__(self) -> bool:
        return False


NOT_APPLICABLE = _NotApplicable()


class BaseAggregator(ABC):
    """Abstract base class for consensus strategies.

    Aggregators are synchronous and pure: the same candidates and options always
    produce the same winner and confidence.
    """

    name: str

    def __init__(self, options: Any = None) -> None:
        self.options = options if options is not None else self.default_options()

    @classmethod
    @abstractmethod
    def default_options(cls) -> Any:
        """Options used when none are passed."""

    @abstractmethod
    def aggregate(self, candidates: Sequence[Candidate], options: Any = None) -> AggregationOutcome:
        """Reduce candidates to one winner plus metadata."""

    @abstractmethod
    def distribution(self, candidates: Sequence[Candidate]) -> dict[Any, int] | _NotApplicable:
        """Histogram the strategy ranks candidates by."""

    def _failure(self, reason: FailureReason, detail: str = "") -> AggregationFailure:
        return AggregationFailure(reason=reason, method=self.name, detail=detail)

    def _result(self, winner: Candidate, confidence: float, metadata: dict[str, Any]) -> AggregationResult:
        return AggregationResult(
            winner=winner,
            confidence=confidence,
            method=self.name,
            metadata={"confidence": confidence, **metadata},
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.options!r})"
