"""
Daily calorie and macro targets computed in Python before any prompt is built.

Revised Harris-Benedict BMR, an activity multiplier keyed by workout
frequency, a per-path calorie adjustment and goal-driven deltas. Everything
here is deterministic and never raises: out-of-range inputs are clamped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from schemas import Goal, MacroBreakdown, NutritionTargets, UserProfile
from validation_config import MIN_DAILY_CALORIES

# Aliases accepted from callers -> canonical path names
PATH_ALIASES: Dict[str, str] = {
    "maintenance": "healthy",
    "maintain": "healthy",
    "balanced": "healthy",
    "loss": "lose",
    "weight-loss": "lose",
    "lose-weight": "lose",
    "muscle-gain": "muscle",
    "gain-muscle": "muscle",
}

PATH_CALORIE_ADJUSTMENTS: Dict[str, int] = {
    "healthy": 0,
    "running": 0,
    "lose": -500,
    "muscle": 300,
    "keto": -200,
    "fasting": -300,
    "custom": 0,
}

# (protein, carbs, fat) share of calories
PATH_MACRO_RATIOS: Dict[str, Tuple[float, float, float]] = {
    "muscle": (0.30, 0.40, 0.30),
    "keto": (0.25, 0.05, 0.70),
    "lose": (0.35, 0.30, 0.35),
    "fasting": (0.30, 0.35, 0.35),
}
DEFAULT_MACRO_RATIO: Tuple[float, float, float] = (0.25, 0.45, 0.30)

PATH_WORKOUTS_PER_WEEK: Dict[str, int] = {
    "healthy": 3,
    "running": 3,
    "lose": 5,
    "muscle": 5,
    "keto": 4,
    "fasting": 3,
    "custom": 1,
}

PATH_WATER_GLASSES: Dict[str, int] = {
    "healthy": 8,
    "running": 8,
    "lose": 10,
    "muscle": 12,
    "keto": 12,
    "fasting": 10,
    "custom": 8,
}

ACTIVITY_MULTIPLIERS: Dict[int, float] = {1: 1.2, 2: 1.375, 3: 1.55, 4: 1.725, 5: 1.9}
DEFAULT_ACTIVITY_MULTIPLIER = 1.55

AGE_RANGE = (13.0, 100.0)
HEIGHT_RANGE_CM = (100.0, 250.0)
WEIGHT_RANGE_KG = (30.0, 300.0)
FREQUENCY_RANGE = (0, 7)

# Per-meal calorie split of the daily target
MEAL_CALORIE_SPLIT: Dict[str, float] = {
    "breakfast": 0.25,
    "lunch": 0.35,
    "dinner": 0.30,
    "snack": 0.10,
}

# Per-meal (protein, carbs, fat) share of the daily macro grams
MEAL_MACRO_FRAMEWORK: Dict[str, Tuple[float, float, float]] = {
    "breakfast": (0.20, 0.50, 0.30),
    "lunch": (0.30, 0.40, 0.30),
    "dinner": (0.35, 0.35, 0.30),
    "snack": (0.15, 0.50, 0.25),
}


@dataclass
class GoalAdjustments:
    """Aggregated effect of the user's goals on targets and workouts."""

    workout_types: List[str] = field(default_factory=list)
    calorie_adjustment: int = 0
    macro_adjustments: Optional[Dict[str, int]] = None
    workout_frequency: Optional[int] = None
    goal_description: str = ""


@dataclass(frozen=True)
class _GoalRule:
    keywords: Tuple[str, ...]
    units: Tuple[str, ...]
    calories: int
    macros: Dict[str, int]
    frequency: int
    workout_types: Tuple[str, ...]


GOAL_RULES: Tuple[_GoalRule, ...] = (
    _GoalRule(
        keywords=("marathon", "run"),
        units=("km", "mile"),
        calories=400,
        macros={"carbs": 15, "protein": 5},
        frequency=5,
        workout_types=("running", "endurance", "cardio"),
    ),
    _GoalRule(
        keywords=("muscle", "strength", "lift", "weight"),
        units=(),
        calories=500,
        macros={"protein": 20, "carbs": 10},
        frequency=4,
        workout_types=("strength", "weights", "bodyweight"),
    ),
    _GoalRule(
        keywords=("lose", "weight", "fat"),
        units=(),
        calories=-300,
        macros={"protein": 15},
        frequency=5,
        workout_types=("cardio", "hiit", "strength"),
    ),
    _GoalRule(
        keywords=("flexibility", "yoga", "stretch"),
        units=(),
        calories=0,
        macros={},
        frequency=3,
        workout_types=("yoga", "flexibility", "stretching"),
    ),
)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def normalize_path(path: Optional[str]) -> str:
    """Map caller-supplied path names onto the canonical set."""
    key = (path or "").strip().lower()
    key = PATH_ALIASES.get(key, key)
    return key or "healthy"


def calculate_bmr(weight: float, height: float, age: float, sex: str) -> float:
    """Basal metabolic rate (revised Harris-Benedict), inputs clamped."""
    weight = _clamp(weight, WEIGHT_RANGE_KG)
    height = _clamp(height, HEIGHT_RANGE_CM)
    age = _clamp(age, AGE_RANGE)
    if (sex or "").lower() == "male":
        return 88.362 + 13.397 * weight + 4.799 * height - 5.677 * age
    return 447.593 + 9.247 * weight + 3.098 * height - 4.33 * age


def activity_multiplier(workout_frequency: Optional[int]) -> float:
    """TDEE multiplier for a weekly workout count (missing/zero -> 1.55)."""
    if not workout_frequency or workout_frequency < 0:
        return DEFAULT_ACTIVITY_MULTIPLIER
    capped = min(int(workout_frequency), max(ACTIVITY_MULTIPLIERS))
    return ACTIVITY_MULTIPLIERS[capped]


def calculate_tdee(bmr: float, workout_frequency: Optional[int]) -> float:
    return bmr * activity_multiplier(workout_frequency)


def calculate_goal_adjustments(goals: Sequence[Goal]) -> GoalAdjustments:
    """Sum keyword-matched adjustments across every goal.

    A single goal may match several categories ("lose weight" is both a
    strength and a weight-loss goal); each match contributes its deltas and
    the workout-frequency floor is the highest of them.
    """
    adjustments = GoalAdjustments()
    if not goals:
        return adjustments

    macro_totals: Dict[str, int] = {}
    descriptions: List[str] = []

    for goal in goals:
        text = f"{goal.title} {goal.description}".lower()
        unit = (goal.unit or "").strip().lower()
        descriptions.append(goal.describe())

        for rule in GOAL_RULES:
            matched = any(keyword in text for keyword in rule.keywords) or (
                bool(unit) and any(u in unit for u in rule.units)
            )
            if not matched:
                continue
            adjustments.calorie_adjustment += rule.calories
            for macro, delta in rule.macros.items():
                macro_totals[macro] = macro_totals.get(macro, 0) + delta
            adjustments.workout_frequency = max(
                adjustments.workout_frequency or 0, rule.frequency
            )
            for workout_type in rule.workout_types:
                if workout_type not in adjustments.workout_types:
                    adjustments.workout_types.append(workout_type)

    if macro_totals:
        adjustments.macro_adjustments = macro_totals
    adjustments.goal_description = "; ".join(d for d in descriptions if d)
    return adjustments


def effective_workout_frequency(
    profile: UserProfile, adjustments: Optional[GoalAdjustments] = None
) -> int:
    """Weekly workout count after goals, falling back to the path default."""
    user_frequency = profile.workout_frequency
    goal_frequency = adjustments.workout_frequency if adjustments else None

    if user_frequency is not None and goal_frequency is not None:
        frequency = max(user_frequency, goal_frequency)
    elif user_frequency is not None:
        frequency = user_frequency
    elif goal_frequency is not None:
        frequency = goal_frequency
    else:
        frequency = PATH_WORKOUTS_PER_WEEK.get(normalize_path(profile.path), 3)

    low, high = FREQUENCY_RANGE
    return int(max(low, min(high, frequency)))


def calculate_macros(calories: int, path: str) -> MacroBreakdown:
    """Split calories into protein/carbs/fat grams for a dietary path."""
    protein_ratio, carbs_ratio, fat_ratio = PATH_MACRO_RATIOS.get(
        normalize_path(path), DEFAULT_MACRO_RATIO
    )
    return MacroBreakdown(
        protein=round_half_up(calories * protein_ratio / 4),
        carbs=round_half_up(calories * carbs_ratio / 4),
        fat=round_half_up(calories * fat_ratio / 9),
    )


def calculate_targets(
    profile: UserProfile,
    plan_template: Optional[str] = None,
) -> Tuple[NutritionTargets, GoalAdjustments]:
    """Compute daily targets for a profile.

    Args:
        profile: The user's physiological profile and goals
        plan_template: Named plan style; when set, goal adjustments are skipped

    Returns:
        (targets, goal adjustments actually applied)
    """
    path = normalize_path(profile.path)
    adjustments = (
        GoalAdjustments() if plan_template else calculate_goal_adjustments(profile.goals)
    )
    frequency = effective_workout_frequency(profile, adjustments)

    bmr = calculate_bmr(profile.weight, profile.height, profile.age, profile.sex)
    tdee = calculate_tdee(bmr, frequency)

    calories = round_half_up(tdee + PATH_CALORIE_ADJUSTMENTS.get(path, 0))
    calories = max(MIN_DAILY_CALORIES, calories + adjustments.calorie_adjustment)

    macros = calculate_macros(calories, path)
    if adjustments.macro_adjustments:
        macros = MacroBreakdown(
            protein=max(0, macros.protein + adjustments.macro_adjustments.get("protein", 0)),
            carbs=max(0, macros.carbs + adjustments.macro_adjustments.get("carbs", 0)),
            fat=max(0, macros.fat + adjustments.macro_adjustments.get("fat", 0)),
        )

    targets = NutritionTargets(
        calories=calories,
        macros=macros,
        path=path,
        effective_workout_frequency=frequency,
        bmr=round(bmr, 3),
        tdee=round(tdee, 3),
    )
    return targets, adjustments


def meal_calorie_targets(daily_calories: int) -> Dict[str, int]:
    """Per-meal calorie targets using the 25/35/30/10 split."""
    return {
        category: round_half_up(daily_calories * share)
        for category, share in MEAL_CALORIE_SPLIT.items()
    }


def meal_macro_framework(daily_macros: MacroBreakdown) -> Dict[str, MacroBreakdown]:
    """Per-meal macro targets in grams as shares of the daily macros."""
    return {
        category: MacroBreakdown(
            protein=round_half_up(daily_macros.protein * protein),
            carbs=round_half_up(daily_macros.carbs * carbs),
            fat=round_half_up(daily_macros.fat * fat),
        )
        for category, (protein, carbs, fat) in MEAL_MACRO_FRAMEWORK.items()
    }
