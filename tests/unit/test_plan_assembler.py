"""Unit tests for weekly plan assembly."""
from datetime import date

import pytest

from generation_errors import PlanAssemblyError
from plan_assembler import (
    assemble_plan,
    base_water_glasses,
    clean_day_meals,
    clean_workout,
    daily_water_glasses,
    distribute_workouts,
    expand_mixed_vegetables,
    find_invariant_violations,
    parse_ingredients,
    parse_numeric_value,
    resolve_day_date,
    workout_water_glasses,
)
from schemas import DayPlan, Ingredient, RawDayCandidate, Workout, infer_ingredient_category
from tests.fixtures.model_responses import day_payload


def candidate(date_key=None, day=None, with_workout=False, **overrides):
    payload = day_payload(date_key, day, with_workout=with_workout)
    payload.update(overrides)
    return RawDayCandidate.model_validate(payload)


@pytest.mark.priority_medium
@pytest.mark.unit
class TestFieldParsing:
    """Lenient parsing of model-written values."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("10 minutes", 10),
            ("300 kcal", 300),
            (10.5, 11),
            (42, 42),
            ("abc", 0),
            (None, 0),
            (True, 0),
            (-5, 0),
            (float("nan"), 0),
        ],
    )
    def test_parse_numeric_value(self, raw, expected):
        assert parse_numeric_value(raw) == expected

    def test_ingredient_formats(self):
        parsed = parse_ingredients(
            [
                "chicken breast|150|g|Proteins",
                "tomato (diced)|100|g|Vegetables",
                "rice|200g",
                "Rice Noodles (1 cup)",
                ["eggs", "2", "Proteins"],
                {"name": "oats", "amount": 50, "unit": "g", "category": "Grains"},
                "salt|1|pinch|Condiments",
                "basil",
                "",
            ]
        )

        assert parsed == [
            Ingredient(name="chicken_breast", amount="150 g", category="Proteins"),
            Ingredient(name="tomato", amount="100 g", category="Vegetables"),
            Ingredient(name="rice", amount="200g", category="Grains"),
            Ingredient(name="rice_noodles", amount="1 cup", category="Grains"),
            Ingredient(name="eggs", amount="2", category="Proteins"),
            Ingredient(name="oats", amount="50 g", category="Grains"),
            Ingredient(name="salt", amount="1 pinch", category="Pantry"),
            Ingredient(name="basil", amount="", category="Spices"),
        ]

    def test_non_list_ingredients(self):
        assert parse_ingredients("chicken, rice") == []

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("chicken_breast", "Proteins"),
            ("Eggs", "Proteins"),
            ("bell_pepper", "Vegetables"),
            ("black_pepper", "Pantry"),
            ("cherry_tomatoes", "Vegetables"),
            ("blueberries", "Fruits"),
            ("greek_yogurt", "Dairy"),
            ("peanut_butter", "Pantry"),
            ("olive_oil", "Pantry"),
            ("ground-cinnamon", "Spices"),
            ("pineapple", "Fruits"),
            ("eggplant", None),
            ("", None),
        ],
    )
    def test_infer_ingredient_category(self, name, expected):
        assert infer_ingredient_category(name) == expected

    def test_model_category_wins_over_inference(self):
        parsed = parse_ingredients([["chicken_breast", "150 g", "Dairy"], ["mystery_mix", "1 cup"]])
        assert [item.category for item in parsed] == ["Dairy", None], (
            "a known category is kept and an unmatched name stays uncategorised"
        )

    def test_mixed_vegetables_cooked(self):
        expanded = expand_mixed_vegetables("mixed vegetables", "200 g", "Tofu Stir-Fry")
        assert [name for name, _ in expanded] == [
            "carrot",
            "broccoli",
            "cauliflower",
            "bell_pepper",
            "zucchini",
        ]
        assert all(amount == "40.0 g" for _, amount in expanded)

    def test_mixed_vegetables_salad(self):
        expanded = expand_mixed_vegetables("mixed_vegetables", "100 g", "Green Goddess Salad")
        assert expanded[0] == ("cucumber", "20.0 g")
        assert ("lettuce", "20.0 g") in expanded

    def test_mixed_vegetables_without_amount(self):
        expanded = expand_mixed_vegetables("mixed vegetables", "a handful")
        assert len(expanded) == 5
        assert all(amount == "a handful" for _, amount in expanded)

    def test_mixed_vegetables_inside_ingredients(self):
        parsed = parse_ingredients(["mixed vegetables|100|g|Vegetables"], "Shrimp Fried Rice")
        assert len(parsed) == 5
        assert all(item.category == "Vegetables" and item.amount == "20.0 g" for item in parsed)

    def test_other_ingredients_untouched(self):
        assert expand_mixed_vegetables("spinach", "50 g") == [("spinach", "50 g")]


@pytest.mark.priority_medium
@pytest.mark.unit
class TestMealsAndWorkouts:
    """Cleaning of meals and workouts."""

    def test_missing_main_meal_gets_placeholder(self):
        meals = clean_day_meals(
            {
                "breakfast": {"name": "Toast", "calories": 300},
                "dinner": {"name": ""},
                "snack": {"name": "Almonds", "calories": 160},
            }
        )

        assert meals.breakfast.name == "Toast"
        assert meals.lunch.is_placeholder
        assert meals.dinner.is_placeholder, "an unnamed dinner is treated as missing"
        assert [snack.name for snack in meals.snacks] == ["Almonds"]

    def test_top_level_macros_and_prep_time(self):
        meals = clean_day_meals(
            {
                "breakfast": {
                    "name": "Eggs",
                    "calories": "210 kcal",
                    "protein": "14g",
                    "carbs": 2,
                    "fat": 16,
                    "prep_time": "10 min",
                }
            }
        )
        breakfast = meals.breakfast
        assert (breakfast.calories, breakfast.macros.protein, breakfast.prep_time) == (210, 14, 10)

    def test_unnamed_snacks_are_skipped(self):
        meals = clean_day_meals({"snacks": [{"name": "Pear"}, {"calories": 100}, "nope"]})
        assert [snack.name for snack in meals.snacks] == ["Pear"]

    def test_clean_workout(self):
        workout = clean_workout(
            {"name": "Lift", "category": "Strength", "duration": "45 min", "caloriesBurned": "300 kcal", "time": "07:30"}
        )
        assert workout == Workout(name="Lift", category="strength", duration=45, calories_burned=300, time="07:30")

    def test_clean_workout_defaults(self):
        assert clean_workout("Yoga") == Workout(name="Yoga")
        assert clean_workout({"name": "Swim", "calories": 200}).duration == 30
        assert clean_workout({"duration": 30}) is None
        assert clean_workout(42) is None


@pytest.mark.priority_medium
@pytest.mark.unit
class TestHydration:
    """Glasses-of-water estimate."""

    @pytest.mark.parametrize(
        "target,expected",
        [
            (2000, 8),
            (2500, 8),
            (1000, 6),
            (7, 7),
            ("2000 ml", 8),
            ("lots", 8),
            (None, 8),
            (0, 8),
            (True, 8),
        ],
    )
    def test_base_glasses(self, target, expected):
        assert base_water_glasses(target) == expected

    def test_workout_bonus(self):
        assert workout_water_glasses([Workout(name="Run", calories_burned=320)]) == 2
        assert workout_water_glasses([Workout(name="Walk", calories_burned=100)]) == 1
        assert workout_water_glasses([Workout(name="Stretch", calories_burned=0)]) == 1
        assert workout_water_glasses([Workout(name="Ride", calories_burned=600)] * 3) == 4

    def test_daily_total_is_capped(self):
        workouts = [Workout(name="Ride", calories_burned=600)] * 3
        assert daily_water_glasses({"waterTarget": 2000}, workouts) == 12
        assert daily_water_glasses(None, []) == 8


@pytest.mark.priority_high
@pytest.mark.unit
class TestDateReconciliation:
    """Placing raw days onto dates of the current week."""

    @pytest.mark.parametrize(
        "date_key,day,expected",
        [
            ("2026-10-01", "Friday", date(2026, 10, 16)),
            ("2026-10-16", "Thursday", date(2026, 10, 15)),
            ("2026-10-15", None, date(2026, 10, 15)),
            ("2026-10-13", None, date(2026, 10, 13)),
            (None, "Monday", date(2026, 10, 19)),
            ("2026-11-02", None, date(2026, 10, 14)),
            ("nope", "banana", None),
        ],
    )
    def test_resolve_day_date(self, window, date_key, day, expected):
        assert resolve_day_date(RawDayCandidate(date=date_key, day=day), window) == expected

    def test_distribute_pool_evenly(self):
        pool = [Workout(name=f"W{i}") for i in range(5)]
        keys = ["a", "b", "c"]
        assigned = distribute_workouts(pool, keys, {"a": 0, "b": 1, "c": 2})

        assert [len(assigned[key]) for key in keys] == [2, 2, 1]
        assert [w.name for w in assigned["a"]] == ["W0", "W1"]

    def test_empty_days_get_templates(self):
        assigned = distribute_workouts([Workout(name="Solo")], ["a", "b", "c"], {"a": 0, "b": 1, "c": 2})

        assert [w.name for w in assigned["a"]] == ["Solo"]
        assert [w.name for w in assigned["b"]] == ["Strength Training"]
        assert [w.name for w in assigned["c"]] == ["HIIT Session"]


@pytest.mark.priority_high
@pytest.mark.unit
class TestAssemblePlan:
    """End-to-end assembly of raw candidates."""

    def test_workouts_piled_on_a_rest_day_are_redistributed(self, window):
        """All three workouts on Sunday end up one per workout day."""
        sunday = candidate(
            "2026-10-18",
            "sunday",
            workouts=[{"name": f"Session {i}", "caloriesBurned": 200} for i in range(3)],
        )
        others = [candidate(day.key, day.day_name) for day in window.days[:-1]]

        report = assemble_plan(others + [sunday], window)

        assert list(report.plan) == window.date_keys
        assert report.dropped == []
        for key in window.workout_keys:
            assert len(report.plan[key].workouts) == 1, f"{key} should get one workout"
        assert report.plan["2026-10-18"].workouts == []
        assert report.plan["2026-10-16"].workouts == []
        assert find_invariant_violations(report.plan, window) == []

    def test_wrong_dates_are_fixed_by_weekday(self, window):
        report = assemble_plan([candidate("2025-01-01", "Saturday")], window)

        assert list(report.plan) == ["2026-10-17"]
        day = report.plan["2026-10-17"]
        assert day.date == "2026-10-17"
        assert day.day == "saturday"
        assert [w.name for w in day.workouts] == ["HIIT Session"], "third workout day template"

    def test_drops_duplicates_malformed_and_out_of_week(self, window):
        report = assemble_plan(
            [
                candidate("2026-10-15", "Thursday"),
                candidate(None, "thursday"),
                candidate("garbage", "someday"),
                candidate(None, "Monday"),
            ],
            window,
        )

        assert list(report.plan) == ["2026-10-15"]
        reasons = {entry.key: entry.reason for entry in report.dropped}
        assert reasons["2026-10-15"] == "duplicate date"
        assert reasons["garbage"].startswith("malformed day")
        assert reasons["2026-10-19"] == "resolved date outside the current week"

    def test_caps_at_seven_candidates(self, window):
        candidates = [candidate(day.key, day.day_name) for day in window.days]
        candidates += [candidate(f"2026-10-0{i}", None) for i in range(1, 5)]

        report = assemble_plan(candidates, window)

        capped = [entry for entry in report.dropped if entry.reason == "more than 7 days generated"]
        assert len(capped) == 2
        assert len(report.plan) <= 7

    def test_earlier_day_of_week_is_kept_as_rest_day(self, window):
        report = assemble_plan([candidate("2026-10-13", None, with_workout=True)], window)

        assert list(report.plan) == ["2026-10-13"]
        assert report.plan["2026-10-13"].workouts == []
        assert find_invariant_violations(report.plan, window) == []

    def test_no_surviving_day_is_an_error(self, window):
        with pytest.raises(PlanAssemblyError, match="no valid plan produced"):
            assemble_plan([candidate(None, "Monday")], window)

    def test_totals_and_water(self, window):
        report = assemble_plan([candidate("2026-10-14", "wednesday", with_workout=True)], window)
        day = report.plan["2026-10-14"]

        meals = day.meals.all_meals()
        assert day.total_calories == sum(meal.calories for meal in meals) == 1695
        assert day.total_protein == 115
        assert day.water_intake == 8 + 2, "2000 ml base plus one 320 kcal workout"
        dinner_ingredients = [item.name for item in day.meals.dinner.ingredients]
        assert "mixed_vegetables" not in dinner_ingredients
        assert "broccoli" in dinner_ingredients


@pytest.mark.priority_medium
@pytest.mark.unit
class TestInvariantViolations:
    def test_reports_each_broken_rule(self, window):
        plan = {
            "2026-10-14": DayPlan.empty("2026-10-14", "wednesday"),
            "2026-10-16": DayPlan.empty("2026-10-15", "friday"),
            "2026-10-20": DayPlan.empty("2026-10-20", "tuesday"),
        }
        plan["2026-10-16"].workouts = [Workout(name="Extra")]

        violations = find_invariant_violations(plan, window)

        assert any("workout day without a workout" in v for v in violations)
        assert any("carries date 2026-10-15" in v for v in violations)
        assert any("rest day with 1 workouts" in v for v in violations)
        assert any(v.startswith("2026-10-20: outside the week") for v in violations)
