"""Majority-vote consensus over extracted final answers (self-consistency)."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import random
from typing import Sequence

from .base import AggregationOutcome, BaseAggregator, Candidate, FailureReason
from selfconsistency.evaluation.answers import extract_answer, normalize_answer

TIE_BREAKERS = ("first", "random")


@dataclass(frozen=True, slots=True)
class MajorityVoteOptions:
    """Options for majority voting.

    ``strict`` is reserved for disabling fuzzy normalization; normalization is
    currently always applied. ``tie_breaker="random"`` draws among tied answers
    with ``random.Random(seed)``.
    """

    strict: bool = False
    tie_breaker: str = "first"
    seed: int = 0

    def __post_init__(self) -> None:
        if self.tie_breaker not in TIE_BREAKERS:
            raise ValueError(f"tie_breaker must be one of {TIE_BREAKERS}, got {self.tie_breaker!r}")


def candidate_answer(candidate: Candidate) -> str:
    """Normalized final answer a candidate votes for."""
    return normalize_answer(extract_answer(candidate.content))


class MajorityVoteAggregator(BaseAggregator):
    """Vote by normalized final answer; earliest candidate wins ties."""

    name = "majority_vote"

    @classmethod
    def default_options(cls) -> MajorityVoteOptions:
        return MajorityVoteOptions()

    def aggregate(
        self,
        candidates: Sequence[Candidate],
        options: MajorityVoteOptions | None = None,
    ) -> AggregationOutcome:
        opts = options or self.options
        if not candidates:
            return self._failure(FailureReason.NO_CANDIDATES)

        answers = [candidate_answer(c) for c in candidates]
        votes = Counter(answers)

        if len(candidates) == 1:
            return self._result(
                candidates[0],
                1.0,
                {
                    "vote_distribution": dict(votes),
                    "total_votes": 1,
                    "winning_votes": 1,
                    "winning_answer": answers[0],
                    "tie_breaker": opts.tie_breaker,
                },
            )

        max_votes = max(votes.values())
        # Counter preserves first-seen order, so tied[0] belongs to the earliest candidate.
        tied = [answer for answer, count in votes.items() if count == max_votes]
        if opts.tie_breaker == "random" and len(tied) > 1:
            winning_answer = random.Random(opts.seed).choice(sorted(tied))
        else:
            winning_answer = tied[0]

        winner = candidates[answers.index(winning_answer)]
        winning_votes = votes[winning_answer]
        return self._result(
            winner,
            winning_votes / len(candidates),
            {
                "vote_distribution": dict(votes),
                "total_votes": len(candidates),
                "winning_votes": winning_votes,
                "winning_answer": winning_answer,
                "tie_breaker": opts.tie_breaker,
            },
        )

    def distribution(self, candidates: Sequence[Candidate]) -> dict[str, int]:
        return dict(Counter(candidate_answer(c) for c in candidates))
