"""Assemble raw model-produced days into a canonical weekly plan.

Raw days arrive unordered, sometimes with wrong or missing dates, workouts
piled onto one day, meals missing and numbers written as "10 minutes".
Assembly runs in a fixed order:

1. cap to MAX_PLAN_DAYS candidates (excess recorded as dropped)
2. pool every workout mentioned anywhere
3. reconcile each candidate onto one date of the current Monday-Sunday week
4. clean meals (placeholders for missing ones, ingredient parsing)
5. redistribute the workout pool over the workout days that survived
6. compute day aggregates and the water estimate

A day that cannot be placed is dropped with a reason; only a plan with no
surviving day is an error.
"""

from __future__ import annotations

import math
import re
import sys
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from generation_errors import PlanAssemblyError
from nutrition_targets import round_half_up
from observability import log_event, setup_structured_logger
from schedule import (
    DAY_NAMES,
    ScheduleWindow,
    date_key,
    day_name_for,
    normalize_day_name,
    parse_date_key,
)
from schemas import (
    DayMeals,
    DayPlan,
    DroppedDay,
    Ingredient,
    MacroBreakdown,
    Meal,
    RawDayCandidate,
    Workout,
    infer_ingredient_category,
)
from validation_config import (
    DEFAULT_HYDRATION_RULES,
    MAIN_MEAL_CATEGORIES,
    MAX_PLAN_DAYS,
    HydrationRules,
)

logger = setup_structured_logger("planner.assembler")

# (name, category, duration minutes, calories burned); rotated by workout-day position
DEFAULT_WORKOUT_TEMPLATES: Tuple[Tuple[str, str, int, int], ...] = (
    ("Morning Cardio", "cardio", 30, 250),
    ("Strength Training", "strength", 45, 300),
    ("HIIT Session", "hiit", 25, 350),
    ("Yoga & Flexibility", "yoga", 40, 150),
    ("Core Workout", "core", 20, 150),
    ("Full Body Circuit", "bodyweight", 35, 280),
    ("Running Session", "running", 30, 300),
)

MIXED_VEGETABLE_MARKERS = ("mixed_vegetable", "mixed_veg")
SALAD_VEGETABLES = ("cucumber", "tomato", "carrot", "bell_pepper", "lettuce")
COOKED_VEGETABLES = ("carrot", "broccoli", "cauliflower", "bell_pepper", "zucchini")

_FIRST_INTEGER = re.compile(r"(\d+)")
_FIRST_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")
_AMOUNT_WITH_UNIT = re.compile(r"(\d+(?:\.\d+)?)\s*(.*)")
_PARENTHESISED = re.compile(r"\([^)]*\)")
_NAME_WITH_AMOUNT = re.compile(r"(.+?)\s*\(([^)]+)\)")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class AssemblyReport:
    plan: Dict[str, DayPlan] = field(default_factory=dict)
    dropped: List[DroppedDay] = field(default_factory=list)


# ============================================================================
# Field parsing
# ============================================================================


def parse_numeric_value(value: Any, default: int = 0) -> int:
    """Read 10, 10.4, "10 minutes" or "300 kcal" as an integer.

    Strings yield their first run of digits; anything else yields default.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return default
        return max(0, round_half_up(value))
    if isinstance(value, str):
        match = _FIRST_INTEGER.search(value)
        if match:
            return int(match.group(1))
    return default


def _snake_name(text: str) -> str:
    return _WHITESPACE.sub("_", text.strip().lower())


def expand_mixed_vegetables(
    name: str, amount: str, meal_name: str = ""
) -> List[Tuple[str, str]]:
    """Replace a vague "mixed vegetables" entry with concrete vegetables.

    The amount is split evenly; salads get raw vegetables, everything else
    cooked ones.
    """
    normalized = name.strip().lower()
    is_mixed = normalized == "mixed vegetables" or any(
        marker in normalized for marker in MIXED_VEGETABLE_MARKERS
    )
    if not is_mixed:
        return [(name, amount)]

    lowered_meal = (meal_name or "").lower()
    vegetables = (
        SALAD_VEGETABLES
        if "salad" in lowered_meal or "green" in lowered_meal
        else COOKED_VEGETABLES
    )

    match = _AMOUNT_WITH_UNIT.match(amount.strip())
    if not match:
        return [(vegetable, amount) for vegetable in vegetables]

    per_vegetable = float(match.group(1)) / len(vegetables)
    unit = match.group(2).strip()
    share = f"{per_vegetable:.1f} {unit}".strip()
    return [(vegetable, share) for vegetable in vegetables]


def _split_ingredient(raw: Any) -> Optional[Tuple[str, str, Optional[str]]]:
    """Normalize one raw ingredient into (name, amount, category)."""
    if isinstance(raw, (list, tuple)):
        if len(raw) < 2:
            return None
        category = raw[2] if len(raw) >= 3 else None
        return str(raw[0]).strip(), str(raw[1] or "").strip(), category

    if isinstance(raw, dict):
        name = str(raw.get("name") or "").strip()
        if not name:
            return None
        amount = raw.get("amount") or raw.get("quantity") or ""
        unit = raw.get("unit") or ""
        return name, f"{amount} {unit}".strip(), raw.get("category")

    text = str(raw or "").strip()
    if not text:
        return None

    parts = [part.strip() for part in _PARENTHESISED.sub("", text).strip().split("|")]
    if len(parts) >= 2:
        name = _snake_name(parts[0])
        if len(parts) >= 3:
            amount = f"{parts[1]} {parts[2]}".strip()
        else:
            amount = parts[1]
        category = parts[3] if len(parts) >= 4 else None
        return name, amount, category

    match = _NAME_WITH_AMOUNT.match(text)
    if match:
        return _snake_name(match.group(1)), match.group(2).strip(), None
    return _snake_name(text), "", None


def parse_ingredients(raw_ingredients: Any, meal_name: str = "") -> List[Ingredient]:
    """Parse the ingredient formats models emit into Ingredient triples.

    Accepted: "name|amount|unit|Category" strings, [name, amount, category]
    lists, "name (amount)" strings and plain names. A missing or unknown
    category is inferred from the ingredient name; "mixed vegetables" is
    expanded.
    """
    if not isinstance(raw_ingredients, list):
        return []

    parsed: List[Ingredient] = []
    for raw in raw_ingredients:
        split = _split_ingredient(raw)
        if split is None:
            continue
        name, amount, category = split
        if not name:
            continue
        for expanded_name, expanded_amount in expand_mixed_vegetables(name, amount, meal_name):
            ingredient = Ingredient(name=expanded_name, amount=expanded_amount, category=category)
            if ingredient.category is None:
                ingredient.category = infer_ingredient_category(expanded_name)
            parsed.append(ingredient)
    return parsed


def _macro_value(meal: Dict[str, Any], key: str) -> int:
    macros = meal.get("macros")
    if isinstance(macros, dict) and key in macros:
        return parse_numeric_value(macros.get(key))
    return parse_numeric_value(meal.get(key))


def clean_meal(raw: Any, category: str) -> Optional[Meal]:
    """Turn one raw meal object into a Meal; None when it has no name."""
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    if not name:
        return None

    prep_time = raw.get("prepTime", raw.get("prep_time"))
    return Meal(
        name=name,
        category=category,
        calories=parse_numeric_value(raw.get("calories")),
        macros=MacroBreakdown(
            protein=_macro_value(raw, "protein"),
            carbs=_macro_value(raw, "carbs"),
            fat=_macro_value(raw, "fat"),
        ),
        ingredients=parse_ingredients(raw.get("ingredients"), name),
        prep_time=parse_numeric_value(prep_time),
        done=False,
    )


def clean_day_meals(raw_meals: Dict[str, Any]) -> DayMeals:
    """Main meals fall back to the placeholder; unnamed snacks are skipped."""
    main = {}
    for category in MAIN_MEAL_CATEGORIES:
        main[category] = clean_meal(raw_meals.get(category), category) or Meal.placeholder(category)

    raw_snacks = raw_meals.get("snacks", raw_meals.get("snack"))
    if isinstance(raw_snacks, dict):
        raw_snacks = [raw_snacks]
    snacks = [
        meal
        for meal in (clean_meal(raw, "snack") for raw in (raw_snacks or []))
        if meal is not None
    ]
    return DayMeals(snacks=snacks, **main)


def clean_workout(raw: Any) -> Optional[Workout]:
    if isinstance(raw, str) and raw.strip():
        return Workout(name=raw.strip())
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    if not name:
        return None
    calories = raw.get("caloriesBurned", raw.get("calories_burned", raw.get("calories")))
    time_value = raw.get("time")
    return Workout(
        name=name,
        category=str(raw.get("category") or "cardio").strip().lower(),
        duration=parse_numeric_value(raw.get("duration"), default=30),
        calories_burned=parse_numeric_value(calories),
        time=str(time_value) if time_value else None,
    )


def template_workout(position: int) -> Workout:
    name, category, duration, calories = DEFAULT_WORKOUT_TEMPLATES[
        position % len(DEFAULT_WORKOUT_TEMPLATES)
    ]
    return Workout(name=name, category=category, duration=duration, calories_burned=calories)


# ============================================================================
# Hydration
# ============================================================================


def base_water_glasses(
    water_target: Any, rules: HydrationRules = DEFAULT_HYDRATION_RULES
) -> int:
    """Base glasses from the model's hydration target.

    Small values are glasses, values above the ambiguous range are
    millilitres; the result is clamped to the base range.
    """
    if isinstance(water_target, bool) or water_target is None:
        return rules.default_glasses
    if isinstance(water_target, (int, float)):
        value = float(water_target)
    else:
        match = _FIRST_NUMBER.search(str(water_target))
        if not match:
            return rules.default_glasses
        value = float(match.group(1))

    if not math.isfinite(value) or value <= 0:
        return rules.default_glasses

    if value <= rules.ambiguous_max_value:
        glasses = round_half_up(value)
    else:
        glasses = round_half_up(value / rules.ml_per_glass)
    return max(rules.base_min_glasses, min(rules.base_max_glasses, glasses))


def workout_water_glasses(
    workouts: Sequence[Workout], rules: HydrationRules = DEFAULT_HYDRATION_RULES
) -> int:
    """Bonus glasses for a day's workouts, capped per workout and per day."""
    bonus = 0
    for workout in workouts:
        glasses = math.ceil(workout.calories_burned / rules.calories_per_bonus_glass)
        bonus += max(rules.min_bonus_per_workout, min(rules.max_bonus_per_workout, glasses))
    return min(rules.max_bonus_per_day, bonus)


def daily_water_glasses(
    hydration: Optional[Dict[str, Any]],
    workouts: Sequence[Workout],
    rules: HydrationRules = DEFAULT_HYDRATION_RULES,
) -> int:
    target = (hydration or {}).get("waterTarget")
    return min(
        rules.max_daily_glasses,
        base_water_glasses(target, rules) + workout_water_glasses(workouts, rules),
    )


# ============================================================================
# Dates and workouts
# ============================================================================


def resolve_day_date(candidate: RawDayCandidate, window: ScheduleWindow) -> Optional[date]:
    """Pick the canonical date for one raw day, or None when it is malformed.

    Priority: the window date with the same weekday name, the candidate's
    own date when it lies in the current week, the first window date moved
    forward to the named weekday, and finally today.
    """
    name = normalize_day_name(candidate.day)
    own_date = parse_date_key(candidate.date)
    if name is None and own_date is None:
        return None

    if name is not None:
        scheduled = window.day_for_name(name)
        if scheduled is not None:
            return scheduled.date

    if own_date is not None and window.in_week(own_date):
        return own_date

    if name is not None and window.days:
        first = window.days[0].date
        offset = (DAY_NAMES.index(name) - first.weekday()) % 7
        return first + timedelta(days=offset)

    return window.today


def distribute_workouts(
    pool: Sequence[Workout], workout_keys: Sequence[str], template_positions: Dict[str, int]
) -> Dict[str, List[Workout]]:
    """Spread pooled workouts evenly over the given workout-day keys.

    Each day gets floor(total / days); the remainder goes one per day from
    the first workout day. Days left empty get their rotation template.
    """
    assigned: Dict[str, List[Workout]] = {key: [] for key in workout_keys}
    if not workout_keys:
        return assigned

    base, remainder = divmod(len(pool), len(workout_keys))
    cursor = 0
    for index, key in enumerate(workout_keys):
        count = base + (1 if index < remainder else 0)
        assigned[key] = [workout.model_copy() for workout in pool[cursor : cursor + count]]
        cursor += count

    for key in workout_keys:
        if not assigned[key]:
            assigned[key] = [template_workout(template_positions.get(key, 0))]
    return assigned


def _candidate_label(candidate: RawDayCandidate, index: int) -> str:
    return candidate.date or candidate.day or f"candidate-{index}"


def _drop(report: AssemblyReport, key: str, reason: str) -> None:
    report.dropped.append(DroppedDay(key=key, reason=reason))
    print(f"   ⚠️  Dropped day {key}: {reason}", file=sys.stderr)
    log_event(logger, "Day dropped during assembly", level="warning", key=key, reason=reason)


# ============================================================================
# Assembly
# ============================================================================


def assemble_plan(
    candidates: Sequence[RawDayCandidate],
    window: ScheduleWindow,
    rules: HydrationRules = DEFAULT_HYDRATION_RULES,
) -> AssemblyReport:
    """Build the date-keyed weekly plan from raw day candidates.

    Args:
        candidates: Raw days in the order they were generated
        window: Schedule window of the run (dates and workout flags)
        rules: Hydration estimate rules

    Returns:
        AssemblyReport with the plan (sorted by date) and the dropped days

    Raises:
        PlanAssemblyError: when no day survives reconciliation
    """
    report = AssemblyReport()
    candidates = list(candidates)

    if len(candidates) > MAX_PLAN_DAYS:
        for index, extra in enumerate(candidates[MAX_PLAN_DAYS:], start=MAX_PLAN_DAYS):
            _drop(report, _candidate_label(extra, index), f"more than {MAX_PLAN_DAYS} days generated")
        candidates = candidates[:MAX_PLAN_DAYS]

    pool: List[Workout] = []
    for candidate in candidates:
        pool.extend(
            workout
            for workout in (clean_workout(raw) for raw in candidate.workouts)
            if workout is not None
        )

    placed: Dict[str, Tuple[date, RawDayCandidate]] = {}
    for index, candidate in enumerate(candidates):
        label = _candidate_label(candidate, index)
        resolved = resolve_day_date(candidate, window)
        if resolved is None:
            _drop(report, label, "malformed day: no recognisable weekday or date")
            continue
        key = date_key(resolved)
        if not window.in_week(resolved):
            _drop(report, key, "resolved date outside the current week")
            continue
        if key in placed:
            _drop(report, key, "duplicate date")
            continue
        placed[key] = (resolved, candidate)

    if not placed:
        raise PlanAssemblyError("no valid plan produced")

    scheduled_workouts = set(window.workout_keys)
    surviving_workout_keys = [key for key in sorted(placed) if key in scheduled_workouts]
    positions = {key: index for index, key in enumerate(window.workout_keys)}
    workouts_by_key = distribute_workouts(pool, surviving_workout_keys, positions)

    print(
        f"   🏋️  {len(pool)} workouts redistributed over "
        f"{len(surviving_workout_keys)} workout days",
        file=sys.stderr,
    )

    for key in sorted(placed):
        resolved, candidate = placed[key]
        workouts = workouts_by_key.get(key, [])
        day = DayPlan(
            day=day_name_for(resolved),
            date=key,
            meals=clean_day_meals(candidate.meals),
            workouts=workouts,
            water_intake=daily_water_glasses(candidate.hydration, workouts, rules),
        )
        day.recompute_totals()
        report.plan[key] = day

    log_event(
        logger,
        "Plan assembled",
        days=list(report.plan),
        dropped=[entry.model_dump() for entry in report.dropped],
        workouts_pooled=len(pool),
    )
    return report


def find_invariant_violations(plan: Dict[str, DayPlan], window: ScheduleWindow) -> List[str]:
    """Human-readable list of weekly-plan invariant violations (empty when valid)."""
    violations: List[str] = []
    if len(plan) > MAX_PLAN_DAYS:
        violations.append(f"plan has {len(plan)} days (max {MAX_PLAN_DAYS})")

    workout_keys = set(window.workout_keys)
    seen_dates = set()
    for key, day in plan.items():
        parsed = parse_date_key(key)
        if parsed is None or not window.in_week(parsed):
            violations.append(f"{key}: outside the week {date_key(window.week_start)}..{date_key(window.week_end)}")
        if day.date != key:
            violations.append(f"{key}: day carries date {day.date}")
        if day.date in seen_dates:
            violations.append(f"{key}: duplicate date {day.date}")
        seen_dates.add(day.date)
        if key in workout_keys and not day.workouts:
            violations.append(f"{key}: workout day without a workout")
        if key not in workout_keys and day.workouts:
            violations.append(f"{key}: rest day with {len(day.workouts)} workouts")
    return violations
