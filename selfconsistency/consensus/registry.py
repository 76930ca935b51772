"""Strategy selection by name.

The set of strategies is closed: adding one means adding a ``Strategy`` member
and a branch in ``build_aggregator``.
"""

from __future__ import annotations

from dataclasses import fields
from enum import Enum
from typing import Any, Mapping

from .base import BaseAggregator
from .best_of_n import BestOfNAggregator, BestOfNOptions
from .majority_vote import MajorityVoteAggregator, MajorityVoteOptions
from .weighted import WeightedAggregator, WeightedOptions


class Strategy(str, Enum):
    """Available consensus strategies."""

    BEST_OF_N = "best_of_n"
    MAJORITY_VOTE = "majority_vote"
    WEIGHTED = "weighted"


def _coerce_strategy(strategy: Strategy | str) -> Strategy:
    if isinstance(strategy, Strategy):
        return strategy
    try:
        return Strategy(str(strategy))
    except ValueError as exc:
        known = ", ".join(member.value for member in Strategy)
        raise ValueError(f"Unsupported consensus strategy '{strategy}' (expected one of: {known})") from exc


def _check_keys(raw: Mapping[str, Any], known: set[str], section: str) -> None:
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown {section} options: {unknown}")


def _options(options_cls: type, raw: Mapping[str, Any], section: str) -> Any:
    _check_keys(raw, {f.name for f in fields(options_cls)}, section)
    return options_cls(**raw)


def _weight(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"weighted strategy weight must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"weighted strategy weight must be a number, got {value!r}") from exc


def _weighted_options(raw: Mapping[str, Any]) -> WeightedOptions:
    _check_keys(raw, {"strategies"}, Strategy.WEIGHTED.value)
    if "strategies" not in raw:
        return WeightedOptions()

    entries = raw["strategies"]
    if isinstance(entries, (str, Mapping)) or not isinstance(entries, (list, tuple)):
        raise ValueError("weighted strategies must be a list of {strategy, weight, options} entries")

    pairs: list[tuple[BaseAggregator, float]] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            _check_keys(entry, {"strategy", "weight", "options"}, "weighted strategy entry")
            sub_name = entry.get("strategy")
            weight = entry.get("weight", 1.0)
            sub_options = entry.get("options")
        elif isinstance(entry, (list, tuple)) and len(entry) == 2:
            sub_name, weight = entry
            sub_options = None
        else:
            raise ValueError(f"weighted strategy entry must be a mapping or a (strategy, weight) pair, got {entry!r}")
        aggregator = sub_name if isinstance(sub_name, BaseAggregator) else build_aggregator(sub_name, sub_options)
        pairs.append((aggregator, _weight(weight)))
    return WeightedOptions(strategies=tuple(pairs))


def build_aggregator(strategy: Strategy | str, options: Any = None) -> BaseAggregator:
    """Construct an aggregator from a strategy name and options.

    ``options`` may be the strategy's options dataclass, a plain mapping (as read
    from YAML), or ``None`` for defaults. Unknown option keys raise ``ValueError``.
    """
    resolved = _coerce_strategy(strategy)
    raw = dict(options) if isinstance(options, Mapping) else None

    if resolved is Strategy.BEST_OF_N:
        return BestOfNAggregator(_options(BestOfNOptions, raw, resolved.value) if raw is not None else options)
    if resolved is Strategy.MAJORITY_VOTE:
        return MajorityVoteAggregator(_options(MajorityVoteOptions, raw, resolved.value) if raw is not None else options)
    if resolved is Strategy.WEIGHTED:
        return WeightedAggregator(_weighted_options(raw) if raw is not None else options)
    raise ValueError(f"Unsupported consensus strategy: {resolved}")
