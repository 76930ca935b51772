"""Settings loading and normalization.

A settings file is a mapping with two optional sections::

    runner:
      min_candidates: 3
      max_candidates: 7
      temperature_range: [0.3, 1.0]
    aggregator:
      strategy: weighted
      options:
        strategies:
          - {strategy: majority_vote, weight: 2}
          - {strategy: best_of_n, weight: 1}
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .consensus import BaseAggregator, Strategy, build_aggregator
from .runner import RunnerConfig

DEFAULT_CONFIG_PATH = Path("config/self_consistency.yaml")


@dataclass(slots=True)
class Settings:
    """Normalized runner bounds plus the aggregator to consult."""

    runner: RunnerConfig
    aggregator: BaseAggregator


def _runner_config(raw: dict[str, Any]) -> RunnerConfig:
    known = {f.name for f in fields(RunnerConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown runner settings: {unknown}")

    values = dict(raw)
    if "temperature_range" in values:
        bounds = values["temperature_range"]
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            raise ValueError(f"runner.temperature_range must be a [low, high] pair, got {bounds!r}")
        values["temperature_range"] = tuple(bounds)

    config = RunnerConfig(**values)
    config.validate()
    return config


def _aggregator(raw: dict[str, Any]) -> BaseAggregator:
    strategy = raw.get("strategy", Strategy.MAJORITY_VOTE.value)
    options = raw.get("options")
    if options is not None and not isinstance(options, dict):
        raise ValueError("aggregator.options must be a mapping")
    return build_aggregator(strategy, options)


def load_settings(*, config_path: Path | None = None, raw_config: dict[str, Any] | None = None) -> Settings:
    """Load and normalize settings from a YAML file or an in-memory mapping."""
    if raw_config is None:
        if config_path is None:
            raise ValueError("Either config_path or raw_config must be provided")
        raw_config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}

    if not isinstance(raw_config, dict):
        raise ValueError("Settings must be a mapping")

    unsupported = sorted(set(raw_config) - {"runner", "aggregator"})
    if unsupported:
        raise ValueError(f"Unsupported settings sections: {unsupported}")

    runner_raw = raw_config.get("runner") or {}
    aggregator_raw = raw_config.get("aggregator") or {}
    if not isinstance(runner_raw, dict) or not isinstance(aggregator_raw, dict):
        raise ValueError("runner and aggregator sections must be mappings")

    return Settings(runner=_runner_config(runner_raw), aggregator=_aggregator(aggregator_raw))
