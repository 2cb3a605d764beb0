"""Centralized thresholds for plan validation and post-processing.

Single source of truth for the tolerance values used across:
- macro_calculator.py (per-meal calorie/macro consistency correction)
- plan_assembler.py (hydration estimate, meal placeholders)
- favorite_meals.py (favorite substitution)
"""

from dataclasses import dataclass
from typing import Dict, Tuple

CALORIES_PER_GRAM: Dict[str, int] = {"protein": 4, "carbs": 4, "fat": 9}


@dataclass(frozen=True)
class MacroCorrectionThresholds:
    """Tolerances for reconciling a meal's calories with its macros."""

    # |stated calories - (4p + 4c + 9f)| above this triggers a rescale
    calorie_tolerance_kcal: float = 10.0
    # Relative deviation from a per-meal macro target that triggers blending
    macro_deviation_pct: float = 0.15
    # Weight given to the target when blending (the rest stays with the model)
    target_blend_weight: float = 0.70
    # Split used when a meal carries calories but no macros at all
    default_split: Tuple[float, float, float] = (0.30, 0.40, 0.30)


DEFAULT_CORRECTION_THRESHOLDS = MacroCorrectionThresholds()


@dataclass(frozen=True)
class HydrationRules:
    """Glasses-of-water estimate (one glass = 250 ml)."""

    ml_per_glass: int = 250
    default_glasses: int = 8
    base_min_glasses: int = 6
    base_max_glasses: int = 8
    # Values up to this are read as glasses, larger ones as millilitres
    ambiguous_max_value: float = 100
    calories_per_bonus_glass: int = 250
    min_bonus_per_workout: int = 1
    max_bonus_per_workout: int = 2
    max_bonus_per_day: int = 4
    max_daily_glasses: int = 12


DEFAULT_HYDRATION_RULES = HydrationRules()


@dataclass(frozen=True)
class FavoriteMealRules:
    """Constraints for swapping generated meals with user favorites."""

    replacement_ratio: float = 0.25
    calorie_window_kcal: int = 150


DEFAULT_FAVORITE_RULES = FavoriteMealRules()

MAIN_MEAL_CATEGORIES: Tuple[str, ...] = ("breakfast", "lunch", "dinner")
MEAL_CATEGORIES: Tuple[str, ...] = MAIN_MEAL_CATEGORIES + ("snack",)
PLACEHOLDER_MEAL_NAME = "No meal planned"
MAX_PLAN_DAYS = 7
MIN_DAILY_CALORIES = 1200

# Calorie target for a meal request that names none
DEFAULT_MEAL_CALORIES = 500
DEFAULT_SNACK_CALORIES = 100
MAX_MEAL_SUGGESTIONS = 10
UNNAMED_MEAL_NAME = "Unnamed Meal"

# Stripped from ingredient names so shopping lists group raw ingredients
PREPARATION_WORDS: Tuple[str, ...] = (
    "chopped",
    "diced",
    "minced",
    "fresh",
    "dried",
    "sliced",
    "grated",
    "crushed",
    "whole",
    "ground",
    "cubed",
    "julienned",
)
