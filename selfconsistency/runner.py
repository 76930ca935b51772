"""Adaptive self-consistency runner: bounded-concurrency generation with early stopping."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
import functools
import inspect
import logging
import random
import time
from typing import Any

from .consensus import (
    AggregationOutcome,
    AggregationResult,
    BaseAggregator,
    Candidate,
    FailureReason,
    MajorityVoteAggregator,
)
from .evaluation.disagreement import agreement_summary
from .models.base import BaseGenerator, GenerationError, Generator, ModelResponse, coerce_response
from .utils.rate_limiter import AsyncRateLimiter


class AttemptTimeout(Exception):
    """An attempt exceeded the per-attempt timeout."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"attempt exceeded {timeout_ms}ms")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(slots=True)
class RunnerConfig:
    """Bounds for one self-consistency run."""

    min_candidates: int = 3
    max_candidates: int = 20
    concurrency_limit: int = 3
    per_attempt_timeout_ms: int = 30_000
    early_stop_threshold: float = 0.8
    batch_size: int = 3
    temperature_range: tuple[float, float] = (0.0, 1.0)
    requests_per_minute: int = 0
    seed: int | None = None

    def validate(self) -> None:
        """Raise ``ValueError`` naming the first invalid field."""
        for name in ("min_candidates", "max_candidates", "concurrency_limit", "batch_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.max_candidates < self.min_candidates:
            raise ValueError(
                f"max_candidates ({self.max_candidates}) must be >= min_candidates ({self.min_candidates})"
            )
        if not _is_number(self.per_attempt_timeout_ms) or not self.per_attempt_timeout_ms > 0:
            raise ValueError(f"per_attempt_timeout_ms must be > 0, got {self.per_attempt_timeout_ms!r}")
        if not _is_number(self.early_stop_threshold) or not 0.0 <= self.early_stop_threshold <= 1.0:
            raise ValueError(f"early_stop_threshold must be within [0, 1], got {self.early_stop_threshold!r}")
        if (
            not isinstance(self.temperature_range, (tuple, list))
            or len(self.temperature_range) != 2
            or not all(_is_number(bound) for bound in self.temperature_range)
        ):
            raise ValueError(f"temperature_range must be a (low, high) pair of numbers, got {self.temperature_range!r}")
        low, high = self.temperature_range
        if low < 0 or high < low:
            raise ValueError(f"temperature_range must satisfy 0 <= low <= high, got {self.temperature_range!r}")
        if isinstance(self.requests_per_minute, bool) or not isinstance(self.requests_per_minute, int):
            raise ValueError(f"requests_per_minute must be an integer, got {self.requests_per_minute!r}")
        if self.requests_per_minute < 0:
            raise ValueError(f"requests_per_minute must be >= 0, got {self.requests_per_minute!r}")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ValueError(f"seed must be an integer or None, got {self.seed!r}")


class RunPhase(str, Enum):
    """Lifecycle of one run."""

    IDLE = "idle"
    GENERATING = "generating"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class RunState:
    """Ephemeral bookkeeping owned by a single ``run()`` call."""

    query: str
    phase: RunPhase = RunPhase.IDLE
    candidates: dict[int, Candidate] = field(default_factory=dict)
    attempts_issued: int = 0
    attempts_failed: int = 0
    attempts_timed_out: int = 0
    consensus_checks: int = 0
    confidence_history: list[float] = field(default_factory=list)

    def ordered_candidates(self) -> list[Candidate]:
        """Candidates in attempt-issue order, independent of completion order."""
        return [self.candidates[seq] for seq in sorted(self.candidates)]


@dataclass(slots=True)
class RunResult:
    """Winning candidate of a run plus its trace."""

    winner: Candidate
    confidence: float
    candidates: list[Candidate]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "winner": self.winner.to_dict(),
            "confidence": self.confidence,
            "candidates": [c.to_dict() for c in self.candidates],
            "metadata": self.metadata,
        }


@dataclass(slots=True)
class RunFailure:
    """Typed run failure with the trace collected so far."""

    reason: FailureReason
    detail: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "failed",
            "reason": self.reason.value,
            "detail": self.detail,
            "metadata": self.metadata,
        }


class SelfConsistencyRunner:
    """Schedules generation attempts and reduces them to one answer.

    Attempts run concurrently (asyncio tasks, or worker threads for synchronous
    generators) and report to a single coordinating loop. Once at least
    ``min_candidates`` attempts have succeeded, the aggregator is consulted after
    every new success; a confidence at or above ``early_stop_threshold`` ends the
    run. Failed and timed-out attempts are dropped and never retried, but their
    slot may be refilled from the remaining attempt budget (``max_candidates``).
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        aggregator: BaseAggregator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or RunnerConfig()
        self.config.validate()
        self.aggregator = aggregator or MajorityVoteAggregator()
        self.logger = logger or logging.getLogger(__name__)

    async def run(self, query: str, generator: Generator) -> RunResult | RunFailure:
        """Generate candidates for ``query`` and return the consensus answer."""
        cfg = self.config
        started = time.perf_counter()
        state = RunState(query=query)
        rng = random.Random(cfg.seed)
        limiter = AsyncRateLimiter(cfg.requests_per_minute)
        executor = ThreadPoolExecutor(max_workers=cfg.concurrency_limit, thread_name_prefix="selfconsistency")
        pending: dict[asyncio.Task, tuple[int, float]] = {}
        target = cfg.min_candidates

        self.logger.info(
            "Self-consistency run started: aggregator=%s min=%d max=%d concurrency=%d threshold=%.2f",
            self.aggregator.name,
            cfg.min_candidates,
            cfg.max_candidates,
            cfg.concurrency_limit,
            cfg.early_stop_threshold,
        )
        state.phase = RunPhase.GENERATING

        try:
            while True:
                while (
                    len(pending) < cfg.concurrency_limit
                    and state.attempts_issued < cfg.max_candidates
                    and len(state.candidates) + len(pending) < target
                ):
                    seq = state.attempts_issued
                    temperature = rng.uniform(*cfg.temperature_range)
                    task = asyncio.create_task(self._attempt(generator, query, temperature, limiter, executor))
                    pending[task] = (seq, temperature)
                    state.attempts_issued += 1

                if not pending:
                    break

                done, _ = await asyncio.wait(pending.keys(), return_when=asyncio.FIRST_COMPLETED)
                added = False
                for task in done:
                    seq, temperature = pending.pop(task)
                    added = self._collect(task, seq, temperature, state) or added

                if not added or len(state.candidates) < cfg.min_candidates:
                    continue

                outcome = self._aggregate(state)
                confidence = outcome.confidence if outcome.ok else 0.0
                state.consensus_checks += 1
                state.confidence_history.append(confidence)
                self.logger.debug(
                    "Consensus check %d: n=%d confidence=%.3f",
                    state.consensus_checks,
                    len(state.candidates),
                    confidence,
                )

                if outcome.ok and confidence >= cfg.early_stop_threshold:
                    self.logger.info(
                        "Early stop after %d candidates (confidence=%.3f >= %.2f)",
                        len(state.candidates),
                        confidence,
                        cfg.early_stop_threshold,
                    )
                    return self._finish(state, outcome, early_stopped=True, started=started)

                if len(state.candidates) + len(pending) >= target:
                    target = min(cfg.max_candidates, target + cfg.batch_size)
        finally:
            for task in pending:
                task.cancel()
            # Threads stuck in a timed-out blocking generator are abandoned, not joined.
            executor.shutdown(wait=False, cancel_futures=True)

        if not state.candidates:
            state.phase = RunPhase.FAILED
            self.logger.error("All %d generation attempts failed", state.attempts_issued)
            return RunFailure(
                reason=FailureReason.ALL_GENERATIONS_FAILED,
                detail=f"{state.attempts_issued} attempts issued, none succeeded",
                metadata=self._trace(state, early_stopped=False, started=started),
            )

        return self._finish(state, self._aggregate(state), early_stopped=False, started=started)

    def run_sync(self, query: str, generator: Generator) -> RunResult | RunFailure:
        """Blocking wrapper around ``run``."""
        return asyncio.run(self.run(query, generator))

    async def _attempt(
        self,
        generator: Generator,
        query: str,
        temperature: float,
        limiter: AsyncRateLimiter,
        executor: ThreadPoolExecutor,
    ) -> ModelResponse:
        await limiter.acquire()
        try:
            return await asyncio.wait_for(
                self._call_generator(generator, query, temperature, executor),
                timeout=self.config.per_attempt_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise AttemptTimeout(self.config.per_attempt_timeout_ms) from None

    async def _call_generator(
        self,
        generator: Generator,
        query: str,
        temperature: float,
        executor: ThreadPoolExecutor,
    ) -> ModelResponse:
        try:
            if isinstance(generator, BaseGenerator):
                value = await generator.generate(query, temperature=temperature)
                return coerce_response(value, generator.model_alias)

            if inspect.iscoroutinefunction(generator) or inspect.iscoroutinefunction(
                getattr(generator, "__call__", None)
            ):
                value = await generator(query, temperature)
            else:
                # On timeout we stop waiting but cannot reclaim the thread.
                loop = asyncio.get_running_loop()
                value = await loop.run_in_executor(executor, functools.partial(generator, query, temperature))
                if inspect.isawaitable(value):
                    value = await value
            return coerce_response(value, getattr(generator, "model_alias", None))
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise GenerationError(f"generator raised {exc!r}") from exc

    def _collect(self, task: asyncio.Task, seq: int, temperature: float, state: RunState) -> bool:
        try:
            candidate = Candidate.from_response(task.result(), attempt=seq, temperature=temperature)
        except AttemptTimeout:
            state.attempts_timed_out += 1
            self.logger.warning(
                "Attempt %d timed out after %dms", seq, self.config.per_attempt_timeout_ms
            )
            return False
        except Exception as exc:
            state.attempts_failed += 1
            self.logger.warning("Attempt %d failed: %r", seq, exc)
            return False

        state.candidates[seq] = candidate
        return True

    def _aggregate(self, state: RunState) -> AggregationOutcome:
        state.phase = RunPhase.AGGREGATING
        outcome = self.aggregator.aggregate(state.ordered_candidates())
        state.phase = RunPhase.GENERATING
        return outcome

    def _finish(
        self,
        state: RunState,
        outcome: AggregationOutcome,
        *,
        early_stopped: bool,
        started: float,
    ) -> RunResult | RunFailure:
        if not isinstance(outcome, AggregationResult):
            state.phase = RunPhase.FAILED
            self.logger.error("Final aggregation failed: %s %s", outcome.reason.value, outcome.detail)
            return RunFailure(
                reason=outcome.reason,
                detail=outcome.detail,
                metadata=self._trace(state, early_stopped=early_stopped, started=started),
            )

        state.phase = RunPhase.DONE
        metadata = self._trace(state, early_stopped=early_stopped, started=started)
        metadata["aggregation_metadata"] = outcome.metadata
        self.logger.info(
            "Run finished: n=%d attempts=%d confidence=%.3f early_stopped=%s",
            len(state.candidates),
            state.attempts_issued,
            outcome.confidence,
            early_stopped,
        )
        return RunResult(
            winner=outcome.winner,
            confidence=outcome.confidence,
            candidates=state.ordered_candidates(),
            metadata=metadata,
        )

    def _trace(self, state: RunState, *, early_stopped: bool, started: float) -> dict[str, Any]:
        ordered = state.ordered_candidates()
        distribution = self.aggregator.distribution(ordered) if ordered else None
        usage = [c.tokens_used for c in ordered if c.tokens_used is not None]
        return {
            "state": state.phase.value,
            "aggregator": self.aggregator.name,
            "actual_n": len(ordered),
            "attempts_issued": state.attempts_issued,
            "attempts_succeeded": len(ordered),
            "attempts_failed": state.attempts_failed,
            "attempts_timed_out": state.attempts_timed_out,
            "early_stopped": early_stopped,
            "consensus_checks": state.consensus_checks,
            "confidence_history": list(state.confidence_history),
            "agreement": agreement_summary(distribution if isinstance(distribution, dict) else None),
            "total_tokens": sum(usage) if usage else None,
            "elapsed_seconds": time.perf_counter() - started,
        }
