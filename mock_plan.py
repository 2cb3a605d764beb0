"""Canned week used when a request asks for mock data.

The days are written in the same raw shape the models return and are
re-dated onto the request's schedule window, so the mock path goes through
the regular assembly and keeps every weekly-plan invariant.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from schedule import ScheduleWindow
from schemas import RawDayCandidate

# (name, calories, protein, carbs, fat, prep minutes, ingredients)
MealRow = Tuple[str, int, int, int, int, int, Sequence[str]]

MOCK_BREAKFASTS: Tuple[MealRow, ...] = (
    ("Greek Yogurt Berry Parfait", 370, 25, 45, 10, 5,
     ("greek_yogurt|200|g|Dairy", "mixed_berries|100|g|Fruits", "granola|40|g|Grains")),
    ("Spinach Feta Omelette", 358, 28, 12, 22, 10,
     ("eggs|3|unit|Proteins", "spinach|50|g|Vegetables", "feta_cheese|30|g|Dairy")),
    ("Overnight Oats with Banana", 428, 18, 62, 12, 5,
     ("rolled_oats|60|g|Grains", "banana|1|unit|Fruits", "milk|200|ml|Dairy")),
    ("Avocado Toast with Eggs", 400, 20, 35, 20, 10,
     ("whole_grain_bread|2|slice|Grains", "avocado|0.5|unit|Fruits", "eggs|2|unit|Proteins")),
    ("Cottage Cheese Pancakes", 370, 30, 40, 10, 15,
     ("cottage_cheese|150|g|Dairy", "oat_flour|50|g|Grains", "eggs|1|unit|Proteins")),
    ("Berry Smoothie Bowl", 401, 22, 58, 9, 5,
     ("frozen_berries|150|g|Fruits", "protein_powder|30|g|Pantry", "chia_seeds|10|g|Pantry")),
    ("Veggie Breakfast Burrito", 424, 26, 44, 16, 15,
     ("whole_wheat_tortilla|1|unit|Grains", "eggs|2|unit|Proteins", "bell_pepper|50|g|Vegetables")),
)

MOCK_LUNCHES: Tuple[MealRow, ...] = (
    ("Grilled Chicken Quinoa Bowl", 523, 42, 55, 15, 20,
     ("chicken_breast|150|g|Proteins", "quinoa|80|g|Grains", "cucumber|100|g|Vegetables")),
    ("Turkey Hummus Wrap", 502, 35, 50, 18, 10,
     ("turkey_breast|120|g|Proteins", "hummus|40|g|Pantry", "whole_wheat_tortilla|1|unit|Grains")),
    ("Lentil Vegetable Soup", 426, 24, 60, 10, 30,
     ("red_lentils|80|g|Grains", "carrot|100|g|Vegetables", "celery|50|g|Vegetables")),
    ("Tuna Nicoise Salad", 470, 38, 30, 22, 15,
     ("tuna|120|g|Proteins", "green_beans|80|g|Vegetables", "olive_oil|10|ml|Pantry")),
    ("Beef Burrito Bowl", 562, 40, 60, 18, 20,
     ("lean_ground_beef|130|g|Proteins", "brown_rice|70|g|Grains", "black_beans|60|g|Pantry")),
    ("Chickpea Mediterranean Salad", 468, 20, 52, 20, 10,
     ("chickpeas|150|g|Pantry", "tomato|100|g|Vegetables", "olive_oil|10|ml|Pantry")),
    ("Shrimp Fried Rice", 502, 32, 62, 14, 20,
     ("shrimp|120|g|Proteins", "jasmine_rice|75|g|Grains", "mixed vegetables|100|g|Vegetables")),
)

MOCK_DINNERS: Tuple[MealRow, ...] = (
    ("Baked Salmon with Sweet Potato", 520, 40, 45, 20, 30,
     ("salmon_fillet|150|g|Proteins", "sweet_potato|200|g|Vegetables", "asparagus|100|g|Vegetables")),
    ("Tofu Vegetable Stir-Fry", 474, 28, 50, 18, 20,
     ("firm_tofu|180|g|Proteins", "mixed vegetables|200|g|Vegetables", "soy_sauce|15|ml|Pantry")),
    ("Lean Beef and Broccoli", 470, 42, 35, 18, 25,
     ("lean_beef_strips|150|g|Proteins", "broccoli|150|g|Vegetables", "brown_rice|50|g|Grains")),
    ("Chicken Fajitas", 496, 40, 48, 16, 25,
     ("chicken_breast|150|g|Proteins", "bell_pepper|120|g|Vegetables", "corn_tortilla|2|unit|Grains")),
    ("Turkey Meatballs with Zucchini Noodles", 432, 38, 25, 20, 30,
     ("ground_turkey|150|g|Proteins", "zucchini|250|g|Vegetables", "tomato_sauce|100|g|Pantry")),
    ("Cod with Roasted Vegetables", 412, 36, 40, 12, 30,
     ("cod_fillet|170|g|Proteins", "cauliflower|150|g|Vegetables", "baby_potatoes|150|g|Vegetables")),
    ("Chicken Curry with Brown Rice", 536, 40, 58, 16, 35,
     ("chicken_thigh|150|g|Proteins", "brown_rice|70|g|Grains", "curry_powder|5|g|Spices")),
)

MOCK_SNACKS: Tuple[MealRow, ...] = (
    ("Apple with Almond Butter", 201, 5, 25, 9, 2,
     ("apple|1|unit|Fruits", "almond_butter|15|g|Pantry")),
    ("Vanilla Protein Shake", 159, 25, 8, 3, 2,
     ("protein_powder|30|g|Pantry", "almond_milk|250|ml|Dairy")),
    ("Hummus with Carrot Sticks", 168, 6, 18, 8, 5,
     ("hummus|50|g|Pantry", "carrot|100|g|Vegetables")),
    ("Trail Mix", 196, 6, 16, 12, 1,
     ("mixed_nuts|25|g|Pantry", "raisins|15|g|Fruits")),
    ("Hard-Boiled Eggs", 142, 12, 1, 10, 12,
     ("eggs|2|unit|Proteins",)),
    ("Cottage Cheese with Pineapple", 143, 14, 15, 3, 3,
     ("cottage_cheese|100|g|Dairy", "pineapple|80|g|Fruits")),
    ("Rice Cakes with Peanut Butter", 180, 7, 20, 8, 3,
     ("rice_cakes|2|unit|Grains", "peanut_butter|15|g|Pantry")),
)

MOCK_WORKOUTS: Tuple[Dict[str, Any], ...] = (
    {"name": "Brisk Morning Walk", "category": "walking", "duration": "40 minutes", "caloriesBurned": "220 kcal"},
    {"name": "Upper Body Strength", "category": "strength", "duration": 45, "caloriesBurned": 300},
    {"name": "Interval Run", "category": "running", "duration": 30, "caloriesBurned": 380, "time": "07:30"},
)

MOCK_WATER_TARGET_ML = 2000


def _raw_meal(row: MealRow) -> Dict[str, Any]:
    name, calories, protein, carbs, fat, prep_time, ingredients = row
    return {
        "name": name,
        "calories": calories,
        "macros": {"protein": protein, "carbs": carbs, "fat": fat},
        "ingredients": list(ingredients),
        "prepTime": f"{prep_time} minutes",
    }


def mock_day_payload(position: int) -> Dict[str, Any]:
    """Raw day object for rotation slot `position` (without date)."""
    slot = position % len(MOCK_BREAKFASTS)
    return {
        "meals": {
            "breakfast": _raw_meal(MOCK_BREAKFASTS[slot]),
            "lunch": _raw_meal(MOCK_LUNCHES[slot]),
            "dinner": _raw_meal(MOCK_DINNERS[slot]),
            "snacks": [_raw_meal(MOCK_SNACKS[slot])],
        },
        "workouts": [dict(MOCK_WORKOUTS[slot])] if slot < len(MOCK_WORKOUTS) else [],
        "hydration": {"waterTarget": MOCK_WATER_TARGET_ML},
    }


def mock_day_candidates(window: ScheduleWindow) -> List[RawDayCandidate]:
    """One canned raw day per active date, rotating through the week by weekday."""
    candidates: List[RawDayCandidate] = []
    for day in window.days:
        if not day.is_active:
            continue
        payload = mock_day_payload(day.date.weekday())
        payload.update({"date": day.key, "day": day.day_name})
        candidates.append(RawDayCandidate.model_validate(payload))
    return candidates
