"""Tests for the adaptive self-consistency runner using scripted generators."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from selfconsistency.consensus import BestOfNAggregator, FailureReason, MajorityVoteAggregator
from selfconsistency.models import GenerationError, ModelResponse, ScriptedGenerator
from selfconsistency.runner import RunnerConfig, SelfConsistencyRunner


def _config(**overrides) -> RunnerConfig:
    values = {
        "min_candidates": 3,
        "max_candidates": 7,
        "concurrency_limit": 3,
        "per_attempt_timeout_ms": 1_000,
        "early_stop_threshold": 0.8,
        "seed": 42,
    }
    values.update(overrides)
    return RunnerConfig(**values)


def test_agreeing_generator_stops_at_min_candidates() -> None:
    """Unanimous answers stop after exactly min_candidates attempts."""

    async def _run() -> None:
        generator = ScriptedGenerator(["The answer is: 42"])
        runner = SelfConsistencyRunner(config=_config(concurrency_limit=5))
        result = await runner.run("What is 6 * 7?", generator)
        assert result.ok
        assert generator.calls == 3
        assert result.metadata["attempts_issued"] == 3
        assert result.metadata["early_stopped"] is True
        assert result.confidence == 1.0
        assert "42" in result.winner.content
        assert result.metadata["total_tokens"] is None

    asyncio.run(_run())


def test_disagreeing_generator_runs_to_max_candidates() -> None:
    """Answers that never agree exhaust max_candidates."""

    async def _run() -> None:
        generator = ScriptedGenerator([f"Answer: {i}" for i in range(10)], repeat=False)
        runner = SelfConsistencyRunner(config=_config())
        result = await runner.run("Pick a number", generator)
        assert result.ok
        assert generator.calls == 7
        assert result.metadata["actual_n"] == 7
        assert result.metadata["early_stopped"] is False
        assert result.confidence == pytest.approx(1 / 7)
        assert result.metadata["consensus_checks"] >= 1

    asyncio.run(_run())


def test_all_failed_generator_returns_failure() -> None:
    """A generator that always fails yields all_generations_failed within budget."""

    async def _run() -> None:
        generator = ScriptedGenerator([GenerationError("provider down")])
        runner = SelfConsistencyRunner(config=_config())
        outcome = await runner.run("q", generator)
        assert not outcome.ok
        assert outcome.reason is FailureReason.ALL_GENERATIONS_FAILED
        assert generator.calls <= 7
        assert outcome.metadata["attempts_failed"] == generator.calls
        assert outcome.metadata["state"] == "failed"

    asyncio.run(_run())


def test_timed_out_attempts_are_dropped() -> None:
    """Attempts exceeding the per-attempt timeout contribute nothing."""

    async def _run() -> None:
        generator = ScriptedGenerator([(5.0, "Answer: slow")])
        runner = SelfConsistencyRunner(config=_config(per_attempt_timeout_ms=20, max_candidates=4))
        outcome = await runner.run("q", generator)
        assert outcome.reason is FailureReason.ALL_GENERATIONS_FAILED
        assert outcome.metadata["attempts_timed_out"] == 4
        assert generator.calls == 4

    asyncio.run(_run())


def test_failures_do_not_count_toward_min_candidates() -> None:
    """Failed attempts are replaced from the remaining budget."""

    async def _run() -> None:
        script = [GenerationError("flaky"), "Answer: 1", "Answer: 1", GenerationError("flaky"), "Answer: 1"]
        generator = ScriptedGenerator(script, repeat=False)
        runner = SelfConsistencyRunner(config=_config(concurrency_limit=1))
        result = await runner.run("q", generator)
        assert result.ok
        assert generator.calls == 5
        assert result.metadata["attempts_failed"] == 2
        assert result.metadata["actual_n"] == 3
        assert result.metadata["early_stopped"] is True

    asyncio.run(_run())


def test_candidates_are_ordered_by_issue_sequence() -> None:
    """Aggregation order follows attempt issue order, not completion order."""

    async def _run() -> None:
        script = [(0.05, "Answer: first"), "Answer: second", "Answer: third"]
        generator = ScriptedGenerator(script, repeat=False)
        runner = SelfConsistencyRunner(config=_config(max_candidates=3, early_stop_threshold=1.0))
        result = await runner.run("q", generator)
        attempts = [c.metadata["attempt"] for c in result.candidates]
        assert attempts == [0, 1, 2]
        # Three-way tie resolves to the earliest issued attempt, which finished last.
        assert result.winner.content == "Answer: first"

    asyncio.run(_run())


def test_concurrency_limit_is_respected() -> None:
    """No more than concurrency_limit attempts are in flight at once."""
    in_flight = 0
    peak = 0

    async def generate(query: str, temperature: float) -> str:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return f"Answer: {temperature:.6f}"

    runner = SelfConsistencyRunner(config=_config(concurrency_limit=2, max_candidates=6, min_candidates=4))
    result = runner.run_sync("q", generate)
    assert result.ok
    assert peak <= 2
    assert result.metadata["attempts_issued"] == 6


def test_sync_generator_runs_on_threads() -> None:
    """Blocking callables are accepted and may return plain text."""
    calls = []
    lock = threading.Lock()

    def generate(query: str, temperature: float) -> str:
        with lock:
            calls.append(temperature)
        return "Thinking\n\nAnswer: yes"

    runner = SelfConsistencyRunner(config=_config())
    result = runner.run_sync("q", generate)
    assert result.ok
    assert len(calls) == 3
    assert all(0.0 <= t <= 1.0 for t in calls)


def test_temperatures_are_jittered_within_band() -> None:
    """Each attempt samples its own temperature inside the configured band."""

    async def _run() -> None:
        generator = ScriptedGenerator([f"Answer: {i}" for i in range(5)], repeat=False)
        config = _config(max_candidates=5, temperature_range=(0.4, 0.9))
        await SelfConsistencyRunner(config=config).run("q", generator)
        assert len(generator.temperatures) == 5
        assert all(0.4 <= t <= 0.9 for t in generator.temperatures)
        assert len(set(generator.temperatures)) > 1

    asyncio.run(_run())


def test_best_of_n_runner_falls_back_without_scores() -> None:
    """Unscored generator output falls back to the first candidate under best-of-N."""

    async def _run() -> None:
        generator = ScriptedGenerator(
            [ModelResponse(text="Answer: a", tokens_used=5), ModelResponse(text="Answer: b", tokens_used=3)]
        )
        runner = SelfConsistencyRunner(
            config=_config(min_candidates=2, max_candidates=2, concurrency_limit=1),
            aggregator=BestOfNAggregator(),
        )
        result = await runner.run("q", generator)
        assert result.ok
        assert result.winner.content == "Answer: a"
        assert result.metadata["aggregation_metadata"]["fallback"] == "no_scores"

    asyncio.run(_run())


def test_trace_metadata() -> None:
    """The run trace reports bookkeeping and agreement diagnostics."""

    async def _run() -> None:
        generator = ScriptedGenerator(
            [
                ModelResponse(text="Answer: 1", tokens_used=10),
                "Answer: 1",
                ModelResponse(text="Answer: 2", tokens_used=5),
            ]
        )
        runner = SelfConsistencyRunner(
            config=_config(min_candidates=3, max_candidates=3, concurrency_limit=1),
            aggregator=MajorityVoteAggregator(),
        )
        result = await runner.run("q", generator)
        meta = result.metadata
        assert meta["state"] == "done"
        assert meta["aggregator"] == "majority_vote"
        assert meta["attempts_succeeded"] == 3
        assert meta["agreement"]["distinct_answers"] == 2
        assert meta["agreement"]["agreement"] == pytest.approx(2 / 3)
        assert meta["confidence_history"] == [pytest.approx(2 / 3)]
        assert meta["aggregation_metadata"]["vote_distribution"] == {"1": 2, "2": 1}
        assert meta["total_tokens"] == 15

    asyncio.run(_run())


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_candidates": 0},
        {"min_candidates": 5, "max_candidates": 4},
        {"concurrency_limit": 0},
        {"per_attempt_timeout_ms": 0},
        {"early_stop_threshold": 1.5},
        {"temperature_range": (0.9, 0.1)},
        {"requests_per_minute": -1},
    ],
)
def test_invalid_config_rejected(overrides) -> None:
    """Bounds outside their documented ranges raise ValueError."""
    with pytest.raises(ValueError):
        SelfConsistencyRunner(config=_config(**overrides))


def test_run_sync_returns_promptly_after_blocking_timeout() -> None:
    """A hung blocking generator does not hold run_sync past its timeout."""

    def generate(query: str, temperature: float) -> str:
        time.sleep(1.5)
        return "Answer: late"

    runner = SelfConsistencyRunner(
        config=_config(min_candidates=1, max_candidates=1, per_attempt_timeout_ms=50)
    )
    started = time.perf_counter()
    outcome = runner.run_sync("q", generate)
    elapsed = time.perf_counter() - started
    assert outcome.reason is FailureReason.ALL_GENERATIONS_FAILED
    assert outcome.metadata["attempts_timed_out"] == 1
    assert elapsed < 1.0


def test_generator_raising_timeout_counts_as_failure() -> None:
    """A TimeoutError raised by the generator itself is a failure, not a timeout."""

    async def _run() -> None:
        generator = ScriptedGenerator([TimeoutError("upstream timeout")])
        runner = SelfConsistencyRunner(config=_config(min_candidates=1, max_candidates=2))
        outcome = await runner.run("q", generator)
        assert outcome.reason is FailureReason.ALL_GENERATIONS_FAILED
        assert outcome.metadata["attempts_failed"] == 2
        assert outcome.metadata["attempts_timed_out"] == 0

    asyncio.run(_run())
