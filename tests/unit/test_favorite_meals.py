"""Unit tests for favorite-meal enrichment."""
import random

import pytest

from favorite_meals import eligible_slots, enrich_plan_with_favorite_meals
from macro_calculator import MealTarget
from schemas import DayMeals, DayPlan, MacroBreakdown, Meal
from validation_config import FavoriteMealRules

REPLACE_ALL = FavoriteMealRules(replacement_ratio=1.0)


def meal(name, category, calories):
    return Meal(name=name, category=category, calories=calories, macros=MacroBreakdown(protein=20))


def day(date_key, day_name):
    plan_day = DayPlan(
        day=day_name,
        date=date_key,
        meals=DayMeals(
            breakfast=meal(f"Oats {date_key}", "breakfast", 400),
            lunch=meal(f"Bowl {date_key}", "lunch", 550),
            dinner=meal(f"Salmon {date_key}", "dinner", 600),
            snacks=[meal(f"Apple {date_key}", "snack", 150)],
        ),
    )
    plan_day.recompute_totals()
    return plan_day


@pytest.fixture
def plan():
    return {
        "2026-10-14": day("2026-10-14", "wednesday"),
        "2026-10-15": day("2026-10-15", "thursday"),
    }


@pytest.fixture
def favorites():
    return [
        meal("Favorite Pancakes", "breakfast", 450),
        meal("Favorite Curry", "lunch", 650),
        meal("Favorite Lasagna", "dinner", 700),
    ]


@pytest.mark.priority_high
@pytest.mark.unit
class TestFavoriteEnrichment:
    """Swapping generated main meals for favorites."""

    def test_each_favorite_used_once(self, plan, favorites):
        """With every slot selected each favorite lands exactly once."""
        enriched = enrich_plan_with_favorite_meals(plan, favorites, random.Random(1), REPLACE_ALL)

        names = [m.name for d in enriched.values() for m in d.meals.main_meals()]
        for favorite in favorites:
            assert names.count(favorite.name) == 1, f"{favorite.name} should appear once"

    def test_replacement_keeps_slot_category(self, plan, favorites):
        enriched = enrich_plan_with_favorite_meals(plan, favorites, random.Random(2), REPLACE_ALL)

        for plan_day in enriched.values():
            for category in ("breakfast", "lunch", "dinner"):
                assert getattr(plan_day.meals, category).category == category

    def test_default_ratio_replaces_at_most_a_quarter(self, plan, favorites):
        """6 eligible slots -> ceil(1.5) = 2 selected."""
        enriched = enrich_plan_with_favorite_meals(plan, favorites, random.Random(3))

        replaced = [
            m for d in enriched.values() for m in d.meals.main_meals() if m.name.startswith("Favorite")
        ]
        assert len(replaced) <= 2

    def test_calorie_window_is_respected(self, plan):
        far_off = [meal("Favorite Feast", "dinner", 1200)]
        enriched = enrich_plan_with_favorite_meals(plan, far_off, random.Random(4), REPLACE_ALL)

        assert all(d.meals.dinner.name != "Favorite Feast" for d in enriched.values())

    def test_snacks_untouched_and_totals_recomputed(self, plan, favorites):
        enriched = enrich_plan_with_favorite_meals(plan, favorites, random.Random(5), REPLACE_ALL)

        for key, plan_day in enriched.items():
            assert plan_day.meals.snacks[0].name == f"Apple {key}"
            assert plan_day.total_calories == sum(m.calories for m in plan_day.meals.all_meals())

    def test_input_plan_is_not_modified(self, plan, favorites):
        before = {key: d.model_dump() for key, d in plan.items()}
        enrich_plan_with_favorite_meals(plan, favorites, random.Random(6), REPLACE_ALL)
        assert {key: d.model_dump() for key, d in plan.items()} == before

    def test_substitute_is_not_marked_done(self, plan):
        done_favorite = meal("Favorite Pancakes", "breakfast", 420).model_copy(update={"done": True})
        enriched = enrich_plan_with_favorite_meals(plan, [done_favorite], random.Random(7), REPLACE_ALL)

        swapped = [d.meals.breakfast for d in enriched.values() if d.meals.breakfast.name == "Favorite Pancakes"]
        assert len(swapped) == 1
        assert swapped[0].done is False

    def test_substitute_macros_are_reconciled(self, plan):
        """A favorite whose macros imply 170 kcal is rescaled to its stated 700."""
        inconsistent = Meal(
            name="Favorite Lasagna",
            category="dinner",
            calories=700,
            macros=MacroBreakdown(protein=10, carbs=10, fat=10),
        )
        enriched = enrich_plan_with_favorite_meals(plan, [inconsistent], random.Random(0), REPLACE_ALL)

        swapped = [d.meals.dinner for d in enriched.values() if d.meals.dinner.name == "Favorite Lasagna"]
        assert len(swapped) == 1
        assert swapped[0].calories == 700
        assert swapped[0].macros == MacroBreakdown(protein=41, carbs=41, fat=41)
        assert abs(swapped[0].calories - swapped[0].macros.calories) <= 10
        assert inconsistent.macros.protein == 10, "the caller's favorite is not modified"

    def test_substitute_is_blended_toward_meal_targets(self, plan):
        target = MealTarget(calories=600, macros=MacroBreakdown(protein=45, carbs=60, fat=20))
        favorite = Meal(
            name="Favorite Lasagna",
            category="dinner",
            calories=700,
            macros=MacroBreakdown(protein=10, carbs=10, fat=10),
        )
        enriched = enrich_plan_with_favorite_meals(
            plan, [favorite], random.Random(0), REPLACE_ALL, meal_targets={"dinner": target}
        )

        swapped = [d.meals.dinner for d in enriched.values() if d.meals.dinner.name == "Favorite Lasagna"]
        assert len(swapped) == 1
        assert abs(swapped[0].calories - swapped[0].macros.calories) <= 10
        assert abs(swapped[0].macros.protein - 45) < abs(10 - 45), "protein moves toward the target"

    def test_seeded_runs_are_reproducible(self, plan, favorites):
        first = enrich_plan_with_favorite_meals(plan, favorites, random.Random(42))
        second = enrich_plan_with_favorite_meals(plan, favorites, random.Random(42))

        def names(result):
            return [m.name for d in result.values() for m in d.meals.main_meals()]

        assert names(first) == names(second)


@pytest.mark.priority_medium
@pytest.mark.robustness
class TestFavoriteEnrichmentEdgeCases:
    def test_no_favorites_returns_plan(self, plan):
        assert enrich_plan_with_favorite_meals(plan, []) is plan

    def test_placeholders_are_not_eligible(self):
        empty = {"2026-10-14": DayPlan.empty("2026-10-14", "wednesday")}
        assert eligible_slots(empty) == []

    def test_failure_leaves_plan_unchanged(self, plan):
        """A malformed favorite list is logged and ignored."""
        broken = [{"name": "not a meal"}]
        assert enrich_plan_with_favorite_meals(plan, broken, random.Random(0), REPLACE_ALL) is plan
