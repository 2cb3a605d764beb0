"""Weekly nutrition and workout plan generation.

Pipeline for one request:

    targets -> schedule window -> candidates (mock | cloud | local)
        -> assembly -> macro correction -> favorite-meal enrichment

Cloud generation runs one unit of work per day in parallel (or one week
prompt when PLAN_PARALLEL_DAYS=false) through the model fallback
orchestrator. When the cloud path fails, or no cloud key is configured, the
local runtime gets the whole-week prompt.

Run as a command: a PlanGenerationRequest JSON on stdin, the
PlanGenerationResult JSON on stdout, progress on stderr.
"""

from __future__ import annotations

import asyncio
import json
import random
import sys
import traceback
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from day_generator import ParallelDayGenerator, parse_week_candidates
from favorite_meals import enrich_plan_with_favorite_meals
from generation_errors import CascadeExhaustedError, GenerationError
from llm_clients import CloudModelClient, LocalModelClient
from llm_config import GenerationSettings
from llm_provider_rotation import ModelFallbackOrchestrator, ModelListCache, UnitOfWork
from macro_calculator import correct_plan_macros, meal_targets_from
from mock_plan import mock_day_candidates
from nutrition_targets import GoalAdjustments, calculate_targets
from observability import log_event, log_model_output, plan_run, setup_structured_logger
from plan_assembler import assemble_plan, find_invariant_violations
from prompt_builder import build_week_prompt, style_context
from schedule import ScheduleWindow, date_key, plan_schedule, today_in_timezone
from schemas import (
    DroppedDay,
    NutritionTargets,
    PlanGenerationRequest,
    PlanGenerationResult,
    RawDayCandidate,
)
from validation_config import FavoriteMealRules

logger = setup_structured_logger("planner.generator")


class MealPlanGenerator:
    """Generate weekly plans; every collaborator can be injected for tests."""

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        cloud_client: Optional[CloudModelClient] = None,
        local_client: Optional[LocalModelClient] = None,
        model_cache: Optional[ModelListCache] = None,
        today_provider: Optional[Callable[[], date]] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or GenerationSettings.from_env()

        if cloud_client is None and self.settings.has_cloud_credentials:
            cloud_client = CloudModelClient(
                api_key=self.settings.cloud_api_key or "",
                api_base=self.settings.cloud_api_base,
                model_prefix=self.settings.cloud_model_prefix,
            )
        self.cloud_client = cloud_client

        if local_client is None and self.settings.local_fallback_enabled:
            local_client = LocalModelClient(
                base_url=self.settings.local_base_url,
                model=self.settings.local_model,
            )
        self.local_client = local_client

        if model_cache is None and cloud_client is not None:
            model_cache = ModelListCache(
                cloud_client.list_models,
                ttl_seconds=self.settings.model_cache_ttl_seconds,
            )
        self.model_cache = model_cache

        self._today_provider = today_provider or (
            lambda: today_in_timezone(self.settings.timezone)
        )
        self._rng = rng or random.Random()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Candidate sources
    # ------------------------------------------------------------------

    def _orchestrator(
        self, max_models: Optional[int], max_attempts: int, base_delay: float
    ) -> ModelFallbackOrchestrator:
        return ModelFallbackOrchestrator(
            client=self.cloud_client,
            model_cache=self.model_cache,
            max_models=max_models,
            max_attempts=max_attempts,
            base_delay=base_delay,
            sleep=self._sleep,
        )

    async def _generate_cloud(
        self,
        request: PlanGenerationRequest,
        window: ScheduleWindow,
        targets: NutritionTargets,
        adjustments: GoalAdjustments,
    ) -> Tuple[List[RawDayCandidate], str, List[DroppedDay]]:
        settings = self.settings
        if settings.parallel_days:
            generator = ParallelDayGenerator(
                self._orchestrator(
                    settings.day_max_models,
                    settings.day_max_attempts,
                    settings.retry_base_delay_seconds,
                ),
                timeout_seconds=settings.day_timeout_seconds,
                max_attempts=settings.day_max_attempts,
                best_effort=settings.best_effort,
            )
            result = await generator.generate(
                window,
                request.profile,
                targets,
                style=style_context(request.plan_template, adjustments),
                language=request.language,
            )
            failed = [
                DroppedDay(key=key, reason=f"generation failed: {message}")
                for key, message in result.failures.items()
            ]
            return result.candidates, result.primary_model or "unknown", failed

        orchestrator = self._orchestrator(
            None, settings.week_max_attempts, settings.week_retry_base_delay_seconds
        )
        outcome = await orchestrator.run(
            UnitOfWork(
                prompt=self._week_prompt(request, window, targets, adjustments),
                parse=parse_week_candidates,
                context="cloud-week",
                timeout_seconds=settings.week_timeout_seconds,
                max_attempts=settings.week_max_attempts,
            )
        )
        return outcome.value, outcome.model, []

    async def _generate_local(
        self,
        request: PlanGenerationRequest,
        window: ScheduleWindow,
        targets: NutritionTargets,
        adjustments: GoalAdjustments,
        cloud_error: Optional[GenerationError],
    ) -> Tuple[List[RawDayCandidate], str]:
        local = self.local_client
        if local is None:
            raise cloud_error or CascadeExhaustedError(
                "no cloud API key configured and local fallback is disabled"
            )

        print(f"\n🏠 Trying local model {local.model} at {local.base_url}...", file=sys.stderr)
        if not await local.health_check():
            message = f"local model runtime at {local.base_url} is unavailable"
            if cloud_error is not None:
                raise CascadeExhaustedError(
                    f"{cloud_error} (and {message})", last_error=cloud_error
                ) from cloud_error
            raise CascadeExhaustedError(f"no cloud API key configured and {message}")

        text = await local.generate(
            self._week_prompt(request, window, targets, adjustments), weekly=True
        )
        log_model_output(logger, "local_week_response", text)
        candidates = parse_week_candidates(text)
        print(f"   ✅ Local model produced {len(candidates)} days", file=sys.stderr)
        return candidates, local.model

    @staticmethod
    def _week_prompt(
        request: PlanGenerationRequest,
        window: ScheduleWindow,
        targets: NutritionTargets,
        adjustments: GoalAdjustments,
    ) -> str:
        return build_week_prompt(
            request.profile,
            window,
            targets,
            adjustments,
            plan_type=request.plan_type,
            language=request.language,
            plan_template=request.plan_template,
        )

    async def _generate_candidates(
        self,
        request: PlanGenerationRequest,
        window: ScheduleWindow,
        targets: NutritionTargets,
        adjustments: GoalAdjustments,
    ) -> Tuple[List[RawDayCandidate], str, str, List[DroppedDay]]:
        """Returns (candidates, provider, model, days that failed to generate)."""
        cloud_error: Optional[GenerationError] = None

        if self.cloud_client is not None and self.model_cache is not None:
            print("\n☁️  Generating with cloud models...", file=sys.stderr)
            try:
                candidates, model, failed = await self._generate_cloud(
                    request, window, targets, adjustments
                )
                return candidates, "cloud", model, failed
            except GenerationError as e:
                cloud_error = e
                print(f"\n⚠️  Cloud generation failed: {e}", file=sys.stderr)
                log_event(
                    logger,
                    "Cloud generation failed",
                    level="warning",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if not self.settings.local_fallback_enabled:
                    raise
        else:
            print("\n⚠️  No cloud API key configured, going straight to the local model", file=sys.stderr)

        candidates, model = await self._generate_local(
            request, window, targets, adjustments, cloud_error
        )
        return candidates, "local", model, []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, request: PlanGenerationRequest) -> PlanGenerationResult:
        """Generate, assemble and post-process one plan.

        Args:
            request: Profile, start date, language and options

        Returns:
            PlanGenerationResult with the date-keyed plan and run metadata

        Raises:
            GenerationError: when no provider produced a usable plan
        """
        today = request.start_date or self._today_provider()
        targets, adjustments = calculate_targets(request.profile, request.plan_template)
        window = plan_schedule(today, targets.effective_workout_frequency)

        print(
            f"\n🚀 Starting {request.plan_type} plan for {date_key(today)} "
            f"({len(window.days)} days, workouts on {', '.join(window.workout_keys) or 'none'})",
            file=sys.stderr,
        )
        print(
            f"   🎯 Targets: {targets.calories} kcal | P:{targets.macros.protein}g "
            f"C:{targets.macros.carbs}g F:{targets.macros.fat}g",
            file=sys.stderr,
        )

        with plan_run(
            logger,
            "plan_generation",
            start_date=date_key(today),
            plan_type=request.plan_type,
            language=request.language,
            use_mock=request.use_mock,
        ):
            failed: List[DroppedDay] = []
            if request.use_mock:
                print(
                    f"\n🧪 Using mock data (delay {self.settings.mock_delay_seconds:g}s)",
                    file=sys.stderr,
                )
                await self._sleep(self.settings.mock_delay_seconds)
                candidates, provider, model = mock_day_candidates(window), "mock", "mock"
            else:
                candidates, provider, model, failed = await self._generate_candidates(
                    request, window, targets, adjustments
                )

            report = assemble_plan(candidates, window)
            violations = find_invariant_violations(report.plan, window)
            if violations:
                log_event(
                    logger,
                    "Assembled plan violates invariants",
                    level="warning",
                    violations=violations,
                )

            meal_targets = (
                meal_targets_from(targets) if self.settings.macro_correction_use_targets else None
            )
            plan = correct_plan_macros(report.plan, meal_targets)

            if request.favorite_meals:
                plan = enrich_plan_with_favorite_meals(
                    plan,
                    request.favorite_meals,
                    rng=self._rng,
                    rules=FavoriteMealRules(replacement_ratio=self.settings.favorite_meal_ratio),
                    meal_targets=meal_targets,
                )

        print(f"\n✅ Plan ready: {len(plan)} days via {provider} ({model})\n", file=sys.stderr)
        return PlanGenerationResult(
            weekly_plan=plan,
            plan_type=request.plan_type,
            language=request.language,
            generated_at=datetime.now(timezone.utc).isoformat(),
            provider=provider,
            fallback_model=model,
            dropped_days=failed + report.dropped,
            targets=targets,
        )

    def generate_sync(self, request: PlanGenerationRequest) -> PlanGenerationResult:
        return asyncio.run(self.generate(request))


class RedirectStdoutToStderr:
    """Context manager to redirect stdout to stderr."""

    def __enter__(self):
        self._original_stdout = sys.stdout
        sys.stdout = sys.stderr
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        sys.stdout = self._original_stdout


def _load_request(raw: str) -> PlanGenerationRequest:
    data: Any = json.loads(raw)
    # Workflow tools send a one-element array
    if isinstance(data, list) and data:
        data = data[0]
    return PlanGenerationRequest.model_validate(data)


def main() -> None:
    """Command-line entry point: request JSON on stdin, result JSON on stdout."""
    input_data = sys.stdin.read()

    try:
        request = _load_request(input_data)
        # Keep stdout clean for the final JSON
        with RedirectStdoutToStderr():
            result = MealPlanGenerator().generate_sync(request)
        print(result.model_dump_json(indent=2))
    except Exception as e:  # pylint: disable=broad-except
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        error_result = {
            "error": str(e),
            "error_type": type(e).__name__,
            "weekly_plan": {},
        }
        print(json.dumps(error_result, indent=2))
        sys.exit(1)


if __name__ == "__main__":
    main()
