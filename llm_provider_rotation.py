"""Model fallback orchestration across an ordered list of cloud models.

One unit of work (a prompt plus the parser that validates its answer) is
tried on each model in turn. Per attempt:

- bad credentials abort the whole cascade immediately
- quota/rate-limit errors skip straight to the next model
- overloads, timeouts, 5xx and unparseable output retry the same model with
  exponential backoff until its attempts run out

The discovered model list is cached with an explicit TTL by ModelListCache.
"""

from __future__ import annotations

import asyncio
import sys
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Protocol, Sequence, TypeVar

from generation_errors import (
    CascadeExhaustedError,
    ErrorKind,
    FatalProviderError,
    TransientProviderError,
)
from llm_config import DEFAULT_CLOUD_MODELS, MODEL_CACHE_TTL_SECONDS, RETRY_BASE_DELAY_SECONDS
from observability import log_event, setup_structured_logger
from retry_utils import classify_error, exponential_backoff_delay

T = TypeVar("T")

logger = setup_structured_logger("planner.orchestrator")


class TextModelClient(Protocol):
    async def generate(self, model: str, prompt: str, image: Optional[bytes] = None) -> str:
        ...


class ModelListCache:
    """Caches the discovered model list for `ttl_seconds`.

    The clock is injectable so expiry can be tested without sleeping.
    Concurrent refreshes are harmless: the last writer wins.
    """

    def __init__(
        self,
        discover: Callable[[], Awaitable[List[str]]],
        ttl_seconds: float = MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        default_models: Sequence[str] = DEFAULT_CLOUD_MODELS,
    ):
        self._discover = discover
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._default_models = list(default_models)
        self._models: Optional[List[str]] = None
        self._fetched_at = 0.0

    def is_fresh(self) -> bool:
        return (
            self._models is not None
            and self._clock() - self._fetched_at < self._ttl_seconds
        )

    def invalidate(self) -> None:
        self._models = None
        self._fetched_at = 0.0

    async def get_models(self) -> List[str]:
        """Return cached models, refreshing when stale.

        Discovery failures (or an empty answer) fall back to the hard-coded
        default list, which is cached like a real answer.
        """
        if self.is_fresh():
            return list(self._models or [])

        try:
            models = list(await self._discover())
        except Exception as e:  # pylint: disable=broad-except
            print(
                f"   ⚠️  Model discovery failed ({e}), using default model list",
                file=sys.stderr,
            )
            models = []

        if not models:
            models = list(self._default_models)

        self._models = models
        self._fetched_at = self._clock()
        return list(models)


@dataclass
class UnitOfWork(Generic[T]):
    """One prompt and the parser that turns the raw answer into T.

    The parser raises ResponseParseError (or any other exception) when the
    answer is unusable; that counts as a retryable failure.
    """

    prompt: str
    parse: Callable[[str], T]
    context: str = "cloud"
    timeout_seconds: float = 20.0
    max_attempts: Optional[int] = None
    image: Optional[bytes] = None


@dataclass
class GenerationOutcome(Generic[T]):
    value: T
    model: str
    attempts: int


class ModelFallbackOrchestrator:
    """Run units of work against a cascade of models with retry and fallback."""

    def __init__(
        self,
        client: TextModelClient,
        model_cache: ModelListCache,
        max_models: Optional[int] = None,
        max_attempts: int = 3,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._model_cache = model_cache
        self._max_models = max_models
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep

    async def run(self, work: UnitOfWork[T]) -> GenerationOutcome[T]:
        """Execute one unit of work.

        Returns:
            GenerationOutcome with the parsed value and the model that produced it

        Raises:
            FatalProviderError: on authentication/authorization failure
            CascadeExhaustedError: when every model and attempt failed
        """
        models = await self._model_cache.get_models()
        if self._max_models:
            models = models[: self._max_models]
        max_attempts = max(1, work.max_attempts or self._max_attempts)

        last_error: Optional[BaseException] = None
        total_attempts = 0

        for model_index, model in enumerate(models):
            for attempt in range(max_attempts):
                total_attempts += 1
                try:
                    text = await asyncio.wait_for(
                        self._client.generate(model, work.prompt, image=work.image),
                        timeout=work.timeout_seconds,
                    )
                    value = work.parse(text)
                except asyncio.TimeoutError:
                    last_error = TransientProviderError(
                        f"[{work.context}] {model} timed out after {work.timeout_seconds:g}s"
                    )
                    kind = ErrorKind.TRANSIENT
                except Exception as e:  # pylint: disable=broad-except
                    last_error = e
                    kind = classify_error(e)
                else:
                    print(
                        f"   ✅ [{work.context}] {model} succeeded (attempt {attempt + 1})",
                        file=sys.stderr,
                    )
                    log_event(
                        logger,
                        "Unit of work succeeded",
                        context=work.context,
                        model=model,
                        attempt=attempt + 1,
                        total_attempts=total_attempts,
                    )
                    return GenerationOutcome(value=value, model=model, attempts=total_attempts)

                log_event(
                    logger,
                    "Unit of work attempt failed",
                    level="warning",
                    context=work.context,
                    model=model,
                    attempt=attempt + 1,
                    error_kind=kind.value,
                    error=str(last_error),
                )

                if kind is ErrorKind.FATAL:
                    print(
                        f"   ❌ [{work.context}] {model} rejected credentials: {last_error}",
                        file=sys.stderr,
                    )
                    raise FatalProviderError(str(last_error)) from last_error

                if kind is ErrorKind.QUOTA:
                    print(
                        f"   ⚠️  [{work.context}] Quota hit on {model}, trying next model",
                        file=sys.stderr,
                    )
                    break

                if attempt < max_attempts - 1:
                    delay = exponential_backoff_delay(
                        attempt, base_delay=self._base_delay, jitter_factor=0.0
                    )
                    print(
                        f"   ⚠️  [{work.context}] {model} attempt {attempt + 1} failed "
                        f"({kind.value}): {last_error}. Retrying in {delay:.1f}s",
                        file=sys.stderr,
                    )
                    await self._sleep(delay)

            if model_index < len(models) - 1:
                print(f"   🔄 [{work.context}] {model} exhausted, trying next model", file=sys.stderr)

        message = str(last_error) if last_error else f"[{work.context}] no models available"
        raise CascadeExhaustedError(message, last_error=last_error)
