"""Agreement diagnostics over vote or score distributions.

Keys of ``agreement_summary``:
  - distinct_answers: number of distinct buckets
  - agreement: share of the largest bucket (1.0 when everyone agrees)
  - vote_entropy: normalized Shannon entropy in [0, 1] (0.0 when everyone agrees)
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np


def entropy_from_counts(counts: list[int] | np.ndarray) -> float:
    """Normalized Shannon entropy of a count vector."""
    arr = np.asarray(counts, dtype=float)
    arr = arr[arr > 0]
    if arr.size <= 1:
        return 0.0
    probs = arr / arr.sum()
    raw = float(-np.sum(probs * np.log(probs)))
    return raw / float(np.log(arr.size))


def agreement_summary(distribution: Mapping[Any, int] | None) -> dict[str, float]:
    """Summarise how concentrated a distribution is."""
    if not distribution:
        return {"distinct_answers": 0, "agreement": 0.0, "vote_entropy": 0.0}

    counts = np.fromiter(distribution.values(), dtype=float, count=len(distribution))
    total = float(counts.sum())
    agreement = float(counts.max() / total) if total > 0 else 0.0
    return {
        "distinct_answers": int(np.count_nonzero(counts)),
        "agreement": agreement,
        "vote_entropy": entropy_from_counts(counts),
    }
