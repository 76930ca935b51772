"""Answer extraction and agreement diagnostics."""

from .answers import ANSWER_LABELS, EXTRACTORS, extract_answer, last_non_blank_line, normalize_answer
from .disagreement import agreement_summary, entropy_from_counts

__all__ = [
    "ANSWER_LABELS",
    "EXTRACTORS",
    "extract_answer",
    "last_non_blank_line",
    "normalize_answer",
    "agreement_summary",
    "entropy_from_counts",
]
