"""Deterministic scripted generator for dry runs and tests."""

from __future__ import annotations

import asyncio
from itertools import cycle
import threading
import time
from typing import Iterable, Union

from .base import BaseGenerator, ModelResponse

# A step is the text to return, a ready response, an exception to raise, or a
# (delay_seconds, step) pair.
ScriptStep = Union[str, ModelResponse, BaseException, tuple]


class ScriptedGenerator(BaseGenerator):
    """Replays scripted outcomes in call order, cycling when exhausted."""

    def __init__(self, script: Iterable[ScriptStep], model_alias: str = "scripted", *, repeat: bool = True) -> None:
        super().__init__(model_alias=model_alias)
        steps = list(script)
        if not steps:
            raise ValueError("ScriptedGenerator requires at least one scripted step")
        self._steps = cycle(steps) if repeat else iter(steps)
        self._lock = threading.Lock()
        self.calls = 0
        self.temperatures: list[float] = []

    def _next_step(self, temperature: float) -> tuple[int, ScriptStep]:
        with self._lock:
            self.calls += 1
            self.temperatures.append(temperature)
            try:
                return self.calls, next(self._steps)
            except StopIteration:
                raise RuntimeError("ScriptedGenerator script exhausted") from None

    async def generate(self, query: str, *, temperature: float) -> ModelResponse:
        call_no, step = self._next_step(temperature)
        started = time.perf_counter()

        delay = 0.0
        if isinstance(step, tuple):
            delay, step = step
        if delay:
            await asyncio.sleep(delay)

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, ModelResponse):
            return step

        text = str(step)
        return ModelResponse(
            text=text,
            model_name=self.model_alias,
            tokens_used=max(1, len(text.split())),
            latency_ms=(time.perf_counter() - started) * 1000,
            metadata={"dry_run": True, "call": call_no},
        )
