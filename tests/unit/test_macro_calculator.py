"""Unit tests for meal calorie/macro reconciliation."""
import pytest

from macro_calculator import (
    MealTarget,
    correct_meal_macros,
    correct_plan_macros,
    meal_targets_from,
)
from schemas import DayMeals, DayPlan, MacroBreakdown, Meal


def meal(calories, protein, carbs, fat, category="lunch", name="Test Meal"):
    return Meal(
        name=name,
        category=category,
        calories=calories,
        macros=MacroBreakdown(protein=protein, carbs=carbs, fat=fat),
    )


@pytest.mark.priority_high
@pytest.mark.unit
class TestCorrectMealMacros:
    """Per-meal correction rules."""

    def test_consistent_meal_is_unchanged(self):
        original = meal(535, 40, 60, 15)
        corrected = correct_meal_macros(original)

        assert corrected.calories == 535
        assert corrected.macros == original.macros

    def test_mismatch_rescales_macros_to_stated_calories(self):
        """600 kcal stated vs 535 from macros: macros scale up, ratio kept."""
        corrected = correct_meal_macros(meal(600, 40, 60, 15))

        assert corrected.calories == 600
        assert corrected.macros == MacroBreakdown(protein=45, carbs=67, fat=17)
        assert abs(corrected.calories - corrected.macros.calories) <= 10

    def test_calories_without_macros_use_default_split(self):
        corrected = correct_meal_macros(meal(500, 0, 0, 0))

        assert corrected.macros == MacroBreakdown(protein=38, carbs=50, fat=17)
        assert corrected.calories == 500

    def test_macros_without_calories(self):
        corrected = correct_meal_macros(meal(0, 20, 30, 10))

        assert corrected.calories == 290
        assert corrected.macros == MacroBreakdown(protein=20, carbs=30, fat=10)

    def test_mismatch_with_target_uses_target_calories(self):
        target = MealTarget(calories=920, macros=MacroBreakdown(protein=49, carbs=118, fat=26))
        corrected = correct_meal_macros(meal(300, 40, 60, 15), target)

        assert abs(corrected.calories - corrected.macros.calories) <= 10
        assert corrected.calories > 800, "calories should move to the lunch target"

    def test_deviating_macros_blend_toward_target(self):
        target = MealTarget(calories=657, macros=MacroBreakdown(protein=33, carbs=148, fat=26))
        corrected = correct_meal_macros(meal(388, 20, 50, 12, category="breakfast"), target)

        assert corrected.macros == MacroBreakdown(protein=29, carbs=119, fat=22)
        assert abs(corrected.calories - 787) <= 1
        assert abs(corrected.calories - corrected.macros.calories) <= 10

    def test_macros_close_to_target_are_not_blended(self):
        target = MealTarget(calories=535, macros=MacroBreakdown(protein=42, carbs=58, fat=16))
        corrected = correct_meal_macros(meal(535, 40, 60, 15), target)

        assert corrected.macros == MacroBreakdown(protein=40, carbs=60, fat=15)

    def test_placeholder_is_returned_as_is(self):
        placeholder = Meal.placeholder("dinner")
        assert correct_meal_macros(placeholder) is placeholder

    def test_placeholder_name_with_macros_is_corrected(self):
        """Only a true placeholder skips correction; macros must also be empty."""
        named_like_placeholder = meal(0, 10, 10, 10, name="No meal planned")
        corrected = correct_meal_macros(named_like_placeholder)

        assert not named_like_placeholder.is_placeholder
        assert corrected.calories == 170
        assert abs(corrected.calories - corrected.macros.calories) <= 10

    def test_original_meal_is_not_modified(self):
        original = meal(600, 40, 60, 15)
        correct_meal_macros(original)
        assert original.calories == 600
        assert original.macros.protein == 40


@pytest.mark.priority_medium
@pytest.mark.unit
class TestCorrectPlanMacros:
    """Plan-level correction and meal targets."""

    def test_plan_totals_are_recomputed(self):
        day = DayPlan(
            day="wednesday",
            date="2026-10-14",
            meals=DayMeals(
                breakfast=meal(400, 20, 55, 12, category="breakfast"),
                lunch=meal(600, 40, 60, 15),
                dinner=Meal.placeholder("dinner"),
                snacks=[meal(192, 10, 20, 8, category="snack")],
            ),
        )
        day.recompute_totals()
        plan = {"2026-10-14": day}

        corrected = correct_plan_macros(plan)

        assert corrected is not plan
        fixed = corrected["2026-10-14"]
        assert fixed.total_calories == sum(m.calories for m in fixed.meals.all_meals())
        assert fixed.total_protein == sum(m.macros.protein for m in fixed.meals.all_meals())
        assert fixed.meals.dinner.is_placeholder
        assert plan["2026-10-14"].meals.lunch.macros.protein == 40, "input plan untouched"

    def test_meal_targets_from_daily_targets(self, targets):
        meal_targets = meal_targets_from(targets)

        assert meal_targets["breakfast"] == MealTarget(
            calories=657, macros=MacroBreakdown(protein=33, carbs=148, fat=26)
        )
        assert meal_targets["snack"].calories == 263
