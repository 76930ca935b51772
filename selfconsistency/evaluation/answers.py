"""Final-answer extraction and normalization for vote-based consensus.

Extraction is an ordered cascade of rules. The first rule that matches wins:

1. the first double-quoted substring;
2. for each label (``Answer:``, ``Therefore:``, ``Thus:``, ``So:``,
   ``The answer is:``, ``Result:``), three positional forms, label by label:
   after a blank line (exact case), after a single line break or at the start
   of the text (any case), anywhere in the text (any case);
3. the last non-blank line.

The order is behaviour: reordering rules changes which answers agree.
"""

from __future__ import annotations

import re
from typing import Callable

Extractor = Callable[[str], "str | None"]

ANSWER_LABELS: tuple[str, ...] = (
    "Answer:",
    "Therefore:",
    "Thus:",
    "So:",
    "The answer is:",
    "Result:",
)

_QUOTED = re.compile(r'"([^"]+)"')
_TRAILING_PUNCTUATION = re.compile(r"""[.,!?;:()\[\]{}"']+$""")


def _rest_of_line(text: str) -> str | None:
    answer = text.split("\n", 1)[0].strip()
    return answer or None


def _quoted(content: str) -> str | None:
    match = _QUOTED.search(content)
    if match is None:
        return None
    return match.group(1).strip()


def _after_blank_line(label: str) -> Extractor:
    marker = "\n\n" + label

    def extract(content: str) -> str | None:
        _, found, after = content.partition(marker)
        if not found:
            return None
        return _rest_of_line(after)

    extract.__name__ = f"after_blank_line[{label}]"
    return extract


def _after_line_start(label: str) -> Extractor:
    pattern = re.compile(r"(?:^|\n)" + re.escape(label) + r"[ \t]*", re.IGNORECASE)

    def extract(content: str) -> str | None:
        match = pattern.search(content)
        if match is None:
            return None
        return _rest_of_line(content[match.end():])

    extract.__name__ = f"after_line_start[{label}]"
    return extract


def _anywhere(label: str) -> Extractor:
    pattern = re.compile(re.escape(label) + r"[ \t]*", re.IGNORECASE)

    def extract(content: str) -> str | None:
        match = pattern.search(content)
        if match is None:
            return None
        return _rest_of_line(content[match.end():])

    extract.__name__ = f"anywhere[{label}]"
    return extract


def _build_extractors() -> tuple[Extractor, ...]:
    rules: list[Extractor] = [_quoted]
    for label in ANSWER_LABELS:
        rules.extend((_after_blank_line(label), _after_line_start(label), _anywhere(label)))
    return tuple(rules)


EXTRACTORS: tuple[Extractor, ...] = _build_extractors()


def last_non_blank_line(content: str) -> str:
    """Last line with visible characters, trimmed; empty string if none."""
    lines = [line for line in content.split("\n") if line.strip()]
    if not lines:
        return ""
    return lines[-1].strip()


def extract_answer(content: str) -> str:
    """Extract the short final answer from generated text."""
    for extractor in EXTRACTORS:
        answer = extractor(content)
        if answer is not None:
            return answer
    return last_non_blank_line(content)


def normalize_answer(answer: str) -> str:
    """Lower-case, trim and strip trailing punctuation for vote comparison."""
    normalized = answer.lower().strip()
    normalized = _TRAILING_PUNCTUATION.sub("", normalized)
    return normalized.strip()
