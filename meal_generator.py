"""Single-meal generation: replace one meal slot or suggest alternatives.

Each request is one unit of work on the same model cascade as the plan
days, with its own timeout and attempt budget:

    prompt -> orchestrator -> extract JSON -> clean_meal -> macro correction

Run as a command: a MealChangeRequest JSON on stdin, the
MealSuggestionsResult JSON on stdout, progress on stderr.
"""

from __future__ import annotations

import asyncio
import json
import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from generation_errors import CascadeExhaustedError, ResponseParseError
from json_extraction import extract_json
from llm_clients import CloudModelClient
from llm_config import GenerationSettings
from llm_provider_rotation import ModelFallbackOrchestrator, ModelListCache, UnitOfWork
from macro_calculator import correct_meal_macros
from meal_plan_generator import RedirectStdoutToStderr
from observability import log_event, log_model_output, plan_run, setup_structured_logger
from plan_assembler import clean_meal
from prompt_builder import build_meal_prompt, build_meal_suggestions_prompt
from schemas import Meal, MealChangeRequest, MealSuggestionsResult
from validation_config import PREPARATION_WORDS, UNNAMED_MEAL_NAME

logger = setup_structured_logger("planner.meals")

_PREPARATION = re.compile(
    r"\b(?:" + "|".join(re.escape(word) for word in PREPARATION_WORDS) + r")\b"
)


def normalize_meal_name(name: Any) -> str:
    """'grilled_chicken salad' -> 'Grilled Chicken Salad'."""
    words = str(name or "").replace("_", " ").split()
    if not words:
        return UNNAMED_MEAL_NAME
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def clean_ingredient_name(name: str) -> str:
    """Drop preparation words: 'minced_fresh_garlic' -> 'garlic'.

    A name made only of preparation words is kept as it was.
    """
    spaced = name.replace("_", " ").lower()
    words = _PREPARATION.sub(" ", spaced).split()
    return "_".join(words) if words else name


def finalize_meal(raw: Dict[str, Any], category: str, target_calories: int) -> Meal:
    """Turn one raw meal answer into a corrected Meal in the requested slot.

    Raises:
        ResponseParseError: when the answer carries no meal name
    """
    if not isinstance(raw, dict):
        raise ResponseParseError(f"meal answer is a {type(raw).__name__}, not an object")
    raw = dict(raw)
    if not str(raw.get("name") or "").strip():
        raise ResponseParseError("meal answer has no name")
    raw["name"] = normalize_meal_name(raw["name"])
    # Missing or zero calories fall back to the requested target
    if not raw.get("calories"):
        raw["calories"] = target_calories

    meal = clean_meal(raw, category)
    if meal is None:
        raise ResponseParseError("meal answer could not be cleaned")
    meal.ingredients = [
        ingredient.model_copy(update={"name": clean_ingredient_name(ingredient.name)})
        for ingredient in meal.ingredients
    ]
    return correct_meal_macros(meal)


def _meal_objects(value: Any) -> List[Any]:
    if isinstance(value, dict):
        meals = value.get("meals")
        if isinstance(meals, list):
            return meals
        if isinstance(meals, dict):
            return [meals]
        return [value]
    if isinstance(value, list):
        return value
    return []


def parse_meal_answer(text: str, category: str, target_calories: int) -> Meal:
    """Parser for a single-meal answer; the first usable meal wins."""
    for raw in _meal_objects(extract_json(text)):
        if isinstance(raw, dict) and str(raw.get("name") or "").strip():
            return finalize_meal(raw, category, target_calories)
    raise ResponseParseError("meal answer contains no named meal")


def parse_meal_suggestions(
    text: str, category: str, target_calories: int, count: int
) -> List[Meal]:
    """Parser for a suggestions answer.

    Unnamed entries are skipped and at most `count` meals are kept; an answer
    without a single usable meal is a retryable failure.
    """
    meals: List[Meal] = []
    for raw in _meal_objects(extract_json(text)):
        if len(meals) >= count:
            break
        if isinstance(raw, dict) and str(raw.get("name") or "").strip():
            meals.append(finalize_meal(raw, category, target_calories))
    if not meals:
        raise ResponseParseError("suggestions answer contains no named meal")
    return meals


class MealGenerator:
    """Generate replacement meals through the cloud model cascade."""

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        cloud_client: Optional[CloudModelClient] = None,
        model_cache: Optional[ModelListCache] = None,
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

        if model_cache is None and cloud_client is not None:
            model_cache = ModelListCache(
                cloud_client.list_models,
                ttl_seconds=self.settings.model_cache_ttl_seconds,
            )
        self.model_cache = model_cache
        self._sleep = sleep

    def _orchestrator(self) -> ModelFallbackOrchestrator:
        if self.cloud_client is None or self.model_cache is None:
            raise CascadeExhaustedError("no cloud API key configured for meal generation")
        return ModelFallbackOrchestrator(
            client=self.cloud_client,
            model_cache=self.model_cache,
            max_attempts=self.settings.meal_max_attempts,
            base_delay=self.settings.retry_base_delay_seconds,
            sleep=self._sleep,
        )

    async def generate_meal(self, request: MealChangeRequest) -> Meal:
        """Generate one meal for the requested slot.

        Args:
            request: Slot category, optional dish name, calorie target and constraints

        Returns:
            A new Meal with reconciled calories and macros

        Raises:
            GenerationError: when every model failed (or no cloud key is configured)
        """
        target = request.resolved_target_calories
        orchestrator = self._orchestrator()
        label = f'"{request.meal_name}"' if request.meal_name else "meal"
        print(f"\n🍽️  Generating {request.category} {label} (~{target} kcal)", file=sys.stderr)
        with plan_run(
            logger,
            "meal_generation",
            category=request.category,
            meal_name=request.meal_name,
            target_calories=target,
        ):
            outcome = await orchestrator.run(
                UnitOfWork(
                    prompt=build_meal_prompt(request),
                    parse=lambda text: parse_meal_answer(text, request.category, target),
                    context="meal",
                    timeout_seconds=self.settings.meal_timeout_seconds,
                    max_attempts=self.settings.meal_max_attempts,
                )
            )
            log_model_output(logger, "generated_meal", outcome.value.model_dump())
        print(f"   ✅ {outcome.value.name} via {outcome.model}", file=sys.stderr)
        return outcome.value

    async def suggest_meals(self, request: MealChangeRequest) -> MealSuggestionsResult:
        """Generate up to `number_of_suggestions` alternatives for a slot.

        Raises:
            GenerationError: when every model failed (or no cloud key is configured)
        """
        target = request.resolved_target_calories
        count = request.number_of_suggestions
        orchestrator = self._orchestrator()
        print(
            f"\n🍽️  Generating {count} {request.category} suggestions (~{target} kcal)",
            file=sys.stderr,
        )
        with plan_run(
            logger,
            "meal_suggestions",
            category=request.category,
            meal_name=request.meal_name,
            count=count,
        ):
            outcome = await orchestrator.run(
                UnitOfWork(
                    prompt=build_meal_suggestions_prompt(request),
                    parse=lambda text: parse_meal_suggestions(text, request.category, target, count),
                    context="meal-suggestions",
                    timeout_seconds=self.settings.meal_timeout_seconds,
                    max_attempts=self.settings.meal_max_attempts,
                )
            )
            if len(outcome.value) < count:
                log_event(
                    logger,
                    "Fewer suggestions than requested",
                    level="warning",
                    requested=count,
                    received=len(outcome.value),
                )

        print(
            f"   ✅ {len(outcome.value)} suggestions via {outcome.model}",
            file=sys.stderr,
        )
        return MealSuggestionsResult(
            meals=outcome.value,
            category=request.category,
            language=request.language,
            generated_at=datetime.now(timezone.utc).isoformat(),
            fallback_model=outcome.model,
        )


def main() -> None:
    """Command-line entry point: MealChangeRequest JSON on stdin, suggestions on stdout."""
    input_data = sys.stdin.read()

    try:
        data: Any = json.loads(input_data)
        if isinstance(data, list) and data:
            data = data[0]
        request = MealChangeRequest.model_validate(data)
        with RedirectStdoutToStderr():
            result = asyncio.run(MealGenerator().suggest_meals(request))
        print(result.model_dump_json(indent=2))
    except Exception as e:  # pylint: disable=broad-except
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        print(json.dumps({"error": str(e), "error_type": type(e).__name__, "meals": []}, indent=2))
        sys.exit(1)


if __name__ == "__main__":
    main()
