"""Generator adapters."""

from .base import BaseGenerator, GenerationError, Generator, GeneratorFn, ModelResponse, coerce_response
from .scripted import ScriptedGenerator

__all__ = [
    "BaseGenerator",
    "GenerationError",
    "Generator",
    "GeneratorFn",
    "ModelResponse",
    "coerce_response",
    "ScriptedGenerator",
]
