"""Error taxonomy for the plan generation pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """How the fallback orchestrator should react to a failed attempt."""

    FATAL = "fatal"  # bad credentials: abort the whole cascade
    QUOTA = "quota"  # model exhausted: skip to the next model
    TRANSIENT = "transient"  # overloaded/timeout/5xx: retry with backoff
    PARSE = "parse"  # unusable output: retry like a transient failure


class GenerationError(Exception):
    """Base class for every failure raised by the generation pipeline."""


class FatalProviderError(GenerationError):
    """Authentication or authorization failure; no other model will help."""


class QuotaExceededError(GenerationError):
    """The current model is out of quota or rate limited."""


class TransientProviderError(GenerationError):
    """Overload, timeout or server-side failure worth retrying."""


class ResponseParseError(GenerationError):
    """Model output could not be turned into the expected structure."""


class CascadeExhaustedError(GenerationError):
    """Every model and attempt failed; carries the last concrete error."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


class DayGenerationError(GenerationError):
    """A single day of the parallel fan-out could not be produced."""

    def __init__(self, day: str, message: str):
        super().__init__(f"{day}: {message}")
        self.day = day


class PlanAssemblyError(GenerationError):
    """Assembly ended with zero valid days."""
