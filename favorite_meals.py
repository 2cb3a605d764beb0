"""Swap a share of generated main meals for the user's favorite meals."""

from __future__ import annotations

import math
import random
import sys
from typing import Dict, List, Optional, Sequence, Set, Tuple

from macro_calculator import MealTarget, correct_meal_macros
from observability import log_event, setup_structured_logger
from schemas import DayPlan, Meal
from validation_config import DEFAULT_FAVORITE_RULES, MAIN_MEAL_CATEGORIES, FavoriteMealRules

logger = setup_structured_logger("planner.favorites")

Slot = Tuple[str, str]  # (date key, meal category)


def eligible_slots(plan: Dict[str, DayPlan]) -> List[Slot]:
    """Breakfast/lunch/dinner slots holding a real (non-placeholder) meal."""
    slots: List[Slot] = []
    for key in sorted(plan):
        meals = plan[key].meals
        for category in MAIN_MEAL_CATEGORIES:
            if not getattr(meals, category).is_placeholder:
                slots.append((key, category))
    return slots


def _pick_favorite(
    current: Meal,
    favorites: Sequence[Meal],
    used: Set[int],
    rng: random.Random,
    calorie_window: int,
) -> Optional[int]:
    matches = [
        index
        for index, favorite in enumerate(favorites)
        if index not in used
        and favorite.category == current.category
        and abs(favorite.calories - current.calories) <= calorie_window
    ]
    if not matches:
        return None
    return rng.choice(matches)


def enrich_plan_with_favorite_meals(
    plan: Dict[str, DayPlan],
    favorites: Sequence[Meal],
    rng: Optional[random.Random] = None,
    rules: FavoriteMealRules = DEFAULT_FAVORITE_RULES,
    meal_targets: Optional[Dict[str, MealTarget]] = None,
) -> Dict[str, DayPlan]:
    """Replace about a quarter of the main meals with calorie-compatible favorites.

    Slots are picked at random; each picked slot takes a random favorite of
    the same category within the calorie window, or stays as generated when
    none matches. Snacks are never touched and each favorite is used at most
    once. Substitutes go through the same calorie/macro reconciliation as
    generated meals. Any failure leaves the plan as it was.

    Args:
        plan: Date-keyed plan after macro correction
        favorites: The user's favorite meals
        rng: Source of randomness (seed it for reproducible picks)
        rules: Replacement ratio and calorie window
        meal_targets: Per-category targets used when reconciling substitutes

    Returns:
        A new plan mapping; the input is not modified
    """
    if not favorites or not plan:
        return plan

    rng = rng or random.Random()
    try:
        slots = eligible_slots(plan)
        count = min(len(slots), math.ceil(len(slots) * rules.replacement_ratio))
        selected = rng.sample(slots, count) if count else []

        enriched: Dict[str, DayPlan] = {key: day.model_copy(deep=True) for key, day in plan.items()}
        used: Set[int] = set()
        replaced = 0
        for key, category in selected:
            day = enriched[key]
            current: Meal = getattr(day.meals, category)
            choice = _pick_favorite(current, favorites, used, rng, rules.calorie_window_kcal)
            if choice is None:
                continue
            used.add(choice)
            substitute = favorites[choice].model_copy(
                update={"category": category, "done": False}, deep=True
            )
            substitute = correct_meal_macros(substitute, (meal_targets or {}).get(category))
            setattr(day.meals, category, substitute)
            replaced += 1

        for day in enriched.values():
            day.recompute_totals()
    except Exception as e:  # pylint: disable=broad-except
        print(f"   ⚠️  Favorite-meal enrichment skipped: {e}", file=sys.stderr)
        log_event(
            logger,
            "Favorite-meal enrichment failed",
            level="warning",
            error=str(e),
            error_type=type(e).__name__,
        )
        return plan

    print(
        f"   ⭐ Favorite meals: {replaced}/{len(selected)} selected slots replaced",
        file=sys.stderr,
    )
    return enriched
