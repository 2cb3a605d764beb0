"""
Reconcile meal calories with their macros in Python.

Models routinely state calories that do not match 4/4/9 kcal per gram of
protein/carbs/fat. Rather than asking the model again, every meal is
checked here:

- calories off by more than the tolerance: macros are rescaled to the
  reconciled calorie figure, keeping their ratio
- optional per-meal targets: a macro more than 15% away from its target is
  blended 70/30 toward it and calories follow the blended macros

All outputs are non-negative integers and satisfy the calorie tolerance.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from nutrition_targets import meal_calorie_targets, meal_macro_framework, round_half_up
from schemas import DayPlan, MacroBreakdown, Meal, NutritionTargets
from validation_config import (
    CALORIES_PER_GRAM,
    DEFAULT_CORRECTION_THRESHOLDS,
    MacroCorrectionThresholds,
)


@dataclass(frozen=True)
class MealTarget:
    calories: int
    macros: MacroBreakdown


def macro_calories(protein: float, carbs: float, fat: float) -> float:
    """Calories implied by macro grams."""
    return (
        protein * CALORIES_PER_GRAM["protein"]
        + carbs * CALORIES_PER_GRAM["carbs"]
        + fat * CALORIES_PER_GRAM["fat"]
    )


def meal_targets_from(targets: NutritionTargets) -> Dict[str, MealTarget]:
    """Per-category meal targets from the daily targets."""
    calories = meal_calorie_targets(targets.calories)
    macros = meal_macro_framework(targets.macros)
    return {
        category: MealTarget(calories=calories[category], macros=macros[category])
        for category in calories
    }


def _default_split(
    calories: float, thresholds: MacroCorrectionThresholds
) -> Tuple[float, float, float]:
    protein_share, carbs_share, fat_share = thresholds.default_split
    return (
        calories * protein_share / CALORIES_PER_GRAM["protein"],
        calories * carbs_share / CALORIES_PER_GRAM["carbs"],
        calories * fat_share / CALORIES_PER_GRAM["fat"],
    )


def _deviates(current: float, target: float, max_deviation: float) -> bool:
    if target <= 0:
        return False
    return abs(current - target) / target > max_deviation


def correct_meal_macros(
    meal: Meal,
    target: Optional[MealTarget] = None,
    thresholds: MacroCorrectionThresholds = DEFAULT_CORRECTION_THRESHOLDS,
) -> Meal:
    """Return a copy of meal whose calories agree with its macros.

    Args:
        meal: Meal as assembled from model output
        target: Optional per-meal calorie and macro target
        thresholds: Correction tolerances

    Returns:
        Corrected copy (placeholders are returned unchanged)
    """
    if meal.is_placeholder:
        return meal

    protein = float(meal.macros.protein)
    carbs = float(meal.macros.carbs)
    fat = float(meal.macros.fat)
    stated = float(meal.calories)
    computed = macro_calories(protein, carbs, fat)
    calories = stated

    if abs(stated - computed) > thresholds.calorie_tolerance_kcal:
        if target is not None and target.calories > 0:
            calories = float(target.calories)
        elif stated > 0:
            calories = stated
        else:
            calories = computed

        if computed > 0:
            scale = calories / computed
            protein, carbs, fat = protein * scale, carbs * scale, fat * scale
        elif calories > 0:
            protein, carbs, fat = _default_split(calories, thresholds)

    if target is not None:
        wanted = target.macros
        if any(
            _deviates(current, goal, thresholds.macro_deviation_pct)
            for current, goal in ((protein, wanted.protein), (carbs, wanted.carbs), (fat, wanted.fat))
        ):
            weight = thresholds.target_blend_weight
            protein = weight * wanted.protein + (1 - weight) * protein
            carbs = weight * wanted.carbs + (1 - weight) * carbs
            fat = weight * wanted.fat + (1 - weight) * fat
            calories = macro_calories(protein, carbs, fat)

    macros = MacroBreakdown(
        protein=max(0, round_half_up(protein)),
        carbs=max(0, round_half_up(carbs)),
        fat=max(0, round_half_up(fat)),
    )
    final_calories = max(0, round_half_up(calories))
    # Rounding can reopen the gap; the macros win
    if abs(final_calories - macros.calories) > thresholds.calorie_tolerance_kcal:
        final_calories = macros.calories

    return meal.model_copy(update={"calories": final_calories, "macros": macros})


def correct_day_macros(
    day: DayPlan,
    meal_targets: Optional[Dict[str, MealTarget]] = None,
    thresholds: MacroCorrectionThresholds = DEFAULT_CORRECTION_THRESHOLDS,
) -> DayPlan:
    def fix(meal: Meal) -> Meal:
        target = (meal_targets or {}).get(meal.category)
        return correct_meal_macros(meal, target, thresholds)

    meals = day.meals.model_copy(
        update={
            "breakfast": fix(day.meals.breakfast),
            "lunch": fix(day.meals.lunch),
            "dinner": fix(day.meals.dinner),
            "snacks": [fix(snack) for snack in day.meals.snacks],
        }
    )
    corrected = day.model_copy(update={"meals": meals})
    corrected.recompute_totals()
    return corrected


def correct_plan_macros(
    plan: Dict[str, DayPlan],
    meal_targets: Optional[Dict[str, MealTarget]] = None,
    thresholds: MacroCorrectionThresholds = DEFAULT_CORRECTION_THRESHOLDS,
) -> Dict[str, DayPlan]:
    """Correct every meal of the plan and recompute the day totals."""
    corrected: Dict[str, DayPlan] = {}
    changed = 0
    for key, day in plan.items():
        fixed = correct_day_macros(day, meal_targets, thresholds)
        changed += sum(
            1
            for before, after in zip(day.meals.all_meals(), fixed.meals.all_meals())
            if before.calories != after.calories or before.macros != after.macros
        )
        corrected[key] = fixed

    print(f"   🧮 Macro correction adjusted {changed} meals", file=sys.stderr)
    return corrected
