"""Per-day generation fan-out and the parsers for day and week answers.

Instead of one large week prompt, every active date gets its own compact
prompt and runs as an independent unit of work through the fallback
orchestrator. All days run concurrently; a failing day never cancels its
siblings.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from generation_errors import DayGenerationError, ResponseParseError
from json_extraction import extract_json, extract_json_object
from llm_provider_rotation import GenerationOutcome, ModelFallbackOrchestrator, UnitOfWork
from prompt_builder import build_day_prompt
from schedule import ScheduleWindow, normalize_day_name, parse_date_key
from schemas import NutritionTargets, RawDayCandidate, UserProfile, validate_day_payload


def parse_day_candidate(text: str) -> RawDayCandidate:
    """Parser for one day's raw answer; invalid shape is a retryable failure."""
    payload = extract_json_object(text)
    candidate, reason = validate_day_payload(payload)
    if candidate is None:
        raise ResponseParseError(reason or "invalid day payload")
    return candidate


def _week_entries(payload: Any) -> List[Tuple[Optional[str], Any]]:
    """(mapping key or None, raw day) pairs from the shapes week answers take."""
    if isinstance(payload, dict):
        for wrapper in ("mealPlan", "plan"):
            if isinstance(payload.get(wrapper), dict):
                payload = payload[wrapper]
                break
        if "weeklyPlan" in payload:
            payload = payload["weeklyPlan"]
        elif isinstance(payload.get("meals"), dict):
            payload = [payload]

    if isinstance(payload, dict):
        return [(str(key), value) for key, value in payload.items()]
    if isinstance(payload, list):
        return [(None, value) for value in payload]
    return []


def parse_week_candidates(text: str) -> List[RawDayCandidate]:
    """Parser for a whole-week answer.

    Accepts `weeklyPlan` as a date-keyed object or as a list (optionally
    wrapped in `mealPlan`), or a bare list of days. A date-keyed entry
    without its own date takes the key; a weekday-keyed one takes it as day.
    Entries without a meals object are skipped.
    """
    entries = _week_entries(extract_json(text))
    candidates: List[RawDayCandidate] = []
    for key, raw in entries:
        if not isinstance(raw, dict) or not isinstance(raw.get("meals"), dict):
            continue
        payload = dict(raw)
        if key is not None:
            if not payload.get("date") and parse_date_key(key) is not None:
                payload["date"] = key
            elif not payload.get("day") and normalize_day_name(key) is not None:
                payload["day"] = key
        if not payload.get("date") and not payload.get("day"):
            continue
        try:
            candidates.append(RawDayCandidate.model_validate(payload))
        except ValidationError:
            continue

    if not candidates:
        raise ResponseParseError("week response contains no usable day")
    return candidates


@dataclass
class DayGenerationResult:
    candidates: List[RawDayCandidate] = field(default_factory=list)
    models: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def primary_model(self) -> Optional[str]:
        """Model that produced the most days."""
        if not self.models:
            return None
        counts: Dict[str, int] = {}
        for model in self.models.values():
            counts[model] = counts.get(model, 0) + 1
        return max(counts, key=lambda model: counts[model])


class ParallelDayGenerator:
    """Fan out one unit of work per active date and join the results."""

    def __init__(
        self,
        orchestrator: ModelFallbackOrchestrator,
        timeout_seconds: float,
        max_attempts: int,
        best_effort: bool = False,
    ):
        self._orchestrator = orchestrator
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max_attempts
        self._best_effort = best_effort

    async def generate(
        self,
        window: ScheduleWindow,
        profile: UserProfile,
        targets: NutritionTargets,
        style: str = "",
        language: str = "en",
    ) -> DayGenerationResult:
        """Generate every active day of the window concurrently.

        Strict mode (default) raises DayGenerationError for the first failed
        day in date order once every task has settled. Best-effort mode
        returns the days that succeeded and records the failures.
        """
        active_days = [day for day in window.days if day.is_active]
        print(
            f"\n🚀 Launching {len(active_days)} parallel day-generation requests...",
            file=sys.stderr,
        )

        works = [
            UnitOfWork(
                prompt=build_day_prompt(profile, day, index, targets, style, language),
                parse=parse_day_candidate,
                context=f"cloud-{day.day_name}",
                timeout_seconds=self._timeout_seconds,
                max_attempts=self._max_attempts,
            )
            for index, day in enumerate(active_days)
        ]
        outcomes = await asyncio.gather(
            *(self._orchestrator.run(work) for work in works),
            return_exceptions=True,
        )

        result = DayGenerationResult()
        errors: Dict[str, BaseException] = {}
        for day, outcome in zip(active_days, outcomes):
            if isinstance(outcome, GenerationOutcome):
                result.candidates.append(outcome.value)
                result.models[day.key] = outcome.model
            elif isinstance(outcome, Exception):
                result.failures[day.key] = str(outcome)
                errors[day.key] = outcome
                print(f"   ❌ {day.key} ({day.day_name}) failed: {outcome}", file=sys.stderr)
            else:
                # CancelledError and friends are not ours to swallow
                raise outcome

        if result.failures and not self._best_effort:
            day_key, message = next(iter(result.failures.items()))
            raise DayGenerationError(day_key, message) from errors[day_key]

        if not result.candidates:
            day_key, message = next(iter(result.failures.items()), ("window", "no days requested"))
            raise DayGenerationError(day_key, message)

        print(
            f"   ✅ {len(result.candidates)}/{len(active_days)} days generated",
            file=sys.stderr,
        )
        return result
