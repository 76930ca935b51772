"""Generator capability interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union


@dataclass(slots=True)
class ModelResponse:
    """Normalized output of one generation attempt."""

    text: str
    model_name: str | None = None
    tokens_used: int | None = None
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class GenerationError(Exception):
    """A generator could not produce a candidate."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class BaseGenerator(ABC):
    """Base class for generators producing one candidate per call."""

    def __init__(self, model_alias: str | None = None) -> None:
        self.model_alias = model_alias

    @abstractmethod
    async def generate(self, query: str, *, temperature: float) -> ModelResponse:
        """Generate one answer for ``query`` at the given sampling temperature."""

    async def close(self) -> None:
        """Optional resource cleanup hook."""
        return None


GeneratorFn = Callable[[str, float], Union[ModelResponse, str, Awaitable[Union[ModelResponse, str]]]]
Generator = Union[BaseGenerator, GeneratorFn]


def coerce_response(value: ModelResponse | str, model_alias: str | None = None) -> ModelResponse:
    """Accept plain text from simple generator callables."""
    if isinstance(value, ModelResponse):
        return value
    if isinstance(value, str):
        return ModelResponse(text=value, model_name=model_alias)
    raise GenerationError(f"generator returned unsupported value of type {type(value).__name__}")
