"""Score-based best-of-N selection."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Sequence

from .base import AggregationOutcome, BaseAggregator, Candidate, FailureReason


@dataclass(frozen=True, slots=True)
class BestOfNOptions:
    """Options for best-of-N selection.

    ``min_score`` is echoed in metadata only; candidates are not filtered by it.
    """

    min_score: float = 0.0
    prefer_early: bool = True
    fallback_on_no_scores: bool = True


def _compare_tokens(a: Candidate, b: Candidate) -> int:
    # No recorded usage ranks ahead of any recorded usage.
    if a.tokens_used is None and b.tokens_used is None:
        return 0
    if a.tokens_used is None:
        return -1
    if b.tokens_used is None:
        return 1
    return (a.tokens_used > b.tokens_used) - (a.tokens_used < b.tokens_used)


def _compare_timestamps(a: Candidate, b: Candidate, prefer_early: bool) -> int:
    # An untimestamped candidate ranks first against a timestamped one, whatever
    # prefer_early says.
    if a.timestamp is None and b.timestamp is None:
        return 0
    if a.timestamp is None:
        return -1
    if b.timestamp is None:
        return 1
    order = (a.timestamp > b.timestamp) - (a.timestamp < b.timestamp)
    return order if prefer_early else -order


def rank_key(prefer_early: bool):
    """Sort key placing the best candidate first; ``sorted`` keeps input order on ties."""

    def compare(a: Candidate, b: Candidate) -> int:
        if a.score != b.score:
            return -1 if a.score > b.score else 1
        by_tokens = _compare_tokens(a, b)
        if by_tokens:
            return by_tokens
        return _compare_timestamps(a, b, prefer_early)

    return cmp_to_key(compare)


def score_distribution(candidates: Sequence[Candidate]) -> dict[float, int]:
    """Occurrences of each distinct score among scored candidates."""
    return dict(Counter(c.score for c in candidates if c.score is not None))


class BestOfNAggregator(BaseAggregator):
    """Pick the highest-scored candidate with a deterministic tie-break chain.

    Tie-break chain after score: fewer tokens, then timestamp (earlier under
    ``prefer_early``), then input order.
    """

    name = "best_of_n"

    @classmethod
    def default_options(cls) -> BestOfNOptions:
        return BestOfNOptions()

    def aggregate(self, candidates: Sequence[Candidate], options: BestOfNOptions | None = None) -> AggregationOutcome:
        opts = options or self.options
        if not candidates:
            return self._failure(FailureReason.NO_CANDIDATES)

        scored = [c for c in candidates if c.score is not None]
        base_metadata = {
            "total_candidates": len(candidates),
            "scored_candidates": len(scored),
            "min_score": opts.min_score,
        }

        if len(candidates) == 1:
            only = candidates[0]
            confidence = only.score if only.score is not None else 1.0
            return self._result(
                only,
                confidence,
                {**base_metadata, "score_distribution": score_distribution(candidates)},
            )

        if not scored:
            if not opts.fallback_on_no_scores:
                return self._failure(FailureReason.NO_SCORES, "no candidate carries a score")
            return self._result(
                candidates[0],
                0.0,
                {**base_metadata, "score_distribution": {}, "fallback": FailureReason.NO_SCORES.value},
            )

        best = sorted(scored, key=rank_key(opts.prefer_early))[0]
        return self._result(
            best,
            best.score,
            {**base_metadata, "score_distribution": score_distribution(scored)},
        )

    def distribution(self, candidates: Sequence[Candidate]) -> dict[float, int]:
        return score_distribution(candidates)
