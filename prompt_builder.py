"""Prompt construction for per-day and full-week plans and for single meals.

Pure functions: every number the model sees (targets, per-meal calories,
workout schedule) is computed in Python beforehand so the model only has to
fill in meals.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from nutrition_targets import (
    PATH_WATER_GLASSES,
    GoalAdjustments,
    meal_calorie_targets,
    meal_macro_framework,
    normalize_path,
)
from schedule import ScheduleDay, ScheduleWindow
from schemas import INGREDIENT_CATEGORIES, MealChangeRequest, NutritionTargets, UserProfile
from validation_config import PREPARATION_WORDS

CUISINE_ROTATION = [
    "Mediterranean",
    "Mexican",
    "Asian",
    "Italian",
    "Middle Eastern",
    "Indian",
    "Japanese",
]
PROTEIN_ROTATION = ["Chicken", "Beef", "Salmon", "Tofu", "Turkey", "Shrimp", "Eggs"]

STYLE_CONTEXT_MAX_CHARS = 200

PATH_GUIDELINES: Dict[str, str] = {
    "healthy": "Focus on balanced nutrition with whole foods, variety, and sustainable eating habits.",
    "running": (
        "Focus on balanced nutrition with whole foods, variety, and sustainable eating habits. "
        "Optimize for running performance."
    ),
    "lose": (
        "Create a caloric deficit while maintaining adequate protein and nutrients. "
        "Emphasize filling, low-calorie foods."
    ),
    "muscle": (
        "Prioritize high protein intake, include pre/post workout meals, and ensure "
        "adequate calories for muscle growth."
    ),
    "keto": (
        "Keep carbohydrates under 20-25g daily, focus on healthy fats, moderate protein, "
        "and ketogenic-friendly foods."
    ),
    "fasting": (
        "Design meals for intermittent fasting windows (16:8 or 14:10), with "
        "nutrient-dense, satisfying foods."
    ),
    "custom": "Create a flexible plan that can be customized based on user dietary restrictions.",
}

WORKOUT_CATEGORIES = [
    "cardio",
    "strength",
    "flexibility",
    "balance",
    "endurance",
    "yoga",
    "pilates",
    "hiit",
    "running",
    "cycling",
    "swimming",
    "walking",
    "bodyweight",
    "weights",
    "core",
    "stretching",
]

PLAN_TEMPLATE_STYLES: Dict[str, str] = {
    "red-carpet-balance": "\n".join(
        [
            "PLAN STYLE: Red Carpet Balance",
            "- Balanced whole foods with an 80/20 flexibility",
            "- Satisfying, feel-good meals that stay nutritious",
            "- Leave room for social or comfort meals",
            "- Even balance of carbs, protein and fats",
            "- Simple breakfasts, satisfying dinners",
            "- No extreme restrictions or rigid rules",
        ]
    ),
    "high-performance-fuel": "\n".join(
        [
            "PLAN STYLE: High-Performance Fuel",
            "- Higher protein in every meal",
            "- Complex carbs for sustained energy",
            "- Energy-focused snacks (pre/post workout style)",
            "- Recovery dinners: protein plus anti-inflammatory foods",
            "- Carb-heavier meals around active hours",
            "- Performance-driven ingredient choices",
        ]
    ),
    "plant-forward-glow": "\n".join(
        [
            "PLAN STYLE: Plant-Forward Glow",
            "- Meals built on vegetables, fruits, grains, legumes and plant proteins",
            "- Fiber-rich, colorful plates",
            "- Anti-inflammatory ingredients (turmeric, ginger, leafy greens, berries)",
            "- Light but filling recipes",
            "- Dairy and eggs allowed unless restricted",
            "- Minimal processed foods",
        ]
    ),
    "mindful-living": "\n".join(
        [
            "PLAN STYLE: Mindful Living",
            "- Gentle, nourishing, easy-to-digest foods",
            "- Comfort-focused meals with simple ingredients",
            "- Consistent, routine-friendly portions",
            "- No heavy or overly rich meals",
            "- Calming foods (warm soups, whole grains)",
            "- Support digestive health",
        ]
    ),
    "modern-comfort": "\n".join(
        [
            "PLAN STYLE: Modern Comfort",
            "- Familiar comfort meals with healthier swaps",
            "- No forbidden foods: lighter pizza, burgers and pasta are fine",
            "- Familiar flavors and accessible ingredients",
            "- Zero food guilt",
            "- Comfort food with better nutritional balance",
            "- Simple cooking methods, no exotic ingredients",
        ]
    ),
}

INGREDIENT_RULES = (
    'INGREDIENT FORMAT: "ingredient_name|amount|unit|category"\n'
    '- ingredient_name: RAW name only, no "chopped", "diced", "minced", "fresh", "dried", "sliced"\n'
    f"- category: one of {'/'.join(INGREDIENT_CATEGORIES)}\n"
    "- Math: protein*4 + carbs*4 + fat*9 must match meal calories"
)


def _join_or(values: List[str], fallback: str = "none") -> str:
    return ", ".join(values) if values else fallback


def plan_style_for(plan_template: Optional[str]) -> Optional[str]:
    """Return the style block for a known template name, else None."""
    if not plan_template:
        return None
    return PLAN_TEMPLATE_STYLES.get(plan_template.strip().lower())


def style_context(plan_template: Optional[str], adjustments: GoalAdjustments) -> str:
    """Short style/goal framing for the compact day prompt."""
    style = plan_style_for(plan_template)
    if style:
        return style
    if adjustments.goal_description:
        return f"Goal: {adjustments.goal_description}"
    return ""


def _meal_body(calories: int) -> str:
    return (
        f'{{"name":"...","calories":{calories},'
        '"macros":{"protein":0,"carbs":0,"fat":0},"ingredients":["..."],"prepTime":0}'
    )


def _meal_json(category: str, calories: int) -> str:
    return f'"{category}":{_meal_body(calories)}'


def build_day_prompt(
    profile: UserProfile,
    day: ScheduleDay,
    day_index: int,
    targets: NutritionTargets,
    style: str = "",
    language: str = "en",
) -> str:
    """Compact single-day prompt; one of these runs per active date.

    Args:
        profile: User profile (age/sex/size, food constraints)
        day: Schedule entry for the date being generated
        day_index: Offset of the date in the window; drives cuisine/protein rotation
        targets: Daily calorie and macro targets
        style: Plan-template or goal framing (truncated)
        language: Language for meal names

    Returns:
        Prompt text ending in the exact JSON skeleton to fill in
    """
    meal_calories = meal_calorie_targets(targets.calories)
    cuisine = CUISINE_ROTATION[day_index % len(CUISINE_ROTATION)]
    protein = PROTEIN_ROTATION[day_index % len(PROTEIN_ROTATION)]
    macros = targets.macros

    if day.is_workout:
        workout_line = "WORKOUT: Include 1 workout today."
        workouts_json = (
            '"workouts":[{"name":"<name>","category":"<cat>","duration":<min>,'
            '"caloriesBurned":<cal>}]'
        )
    else:
        workout_line = "REST DAY: No workout."
        workouts_json = '"workouts":[]'

    lines = [
        "Generate a single-day meal plan as JSON.",
        f"PERSON: {profile.age:g}y {profile.sex} {profile.height:g}cm {profile.weight:g}kg "
        f"path={normalize_path(profile.path)}",
        f"DAILY TARGETS: {targets.calories} kcal | P:{macros.protein}g C:{macros.carbs}g F:{macros.fat}g",
        f"AVOID: {_join_or(profile.avoid_list)}",
        f"PREFER: {_join_or(profile.food_preferences)}",
    ]
    if style:
        lines.append(f"STYLE: {style[:STYLE_CONTEXT_MAX_CHARS]}")
    lines += [
        f"DAY: {day.key} ({day.day_name}) | Cuisine: {cuisine} | Primary protein: {protein}",
        workout_line,
        "MEAL CALORIE TARGETS:",
        f"- breakfast: ~{meal_calories['breakfast']} kcal",
        f"- lunch: ~{meal_calories['lunch']} kcal",
        f"- dinner: ~{meal_calories['dinner']} kcal",
        f"- snacks[0]: ~{meal_calories['snack']} kcal",
        INGREDIENT_RULES,
    ]
    if language and language.lower() != "en":
        lines.append(f"LANGUAGE: write meal names in '{language}', keep JSON keys in English.")

    skeleton = (
        f'{{"date":"{day.key}","day":"{day.day_name}","meals":{{'
        f"{_meal_json('breakfast', meal_calories['breakfast'])},"
        f"{_meal_json('lunch', meal_calories['lunch'])},"
        f"{_meal_json('dinner', meal_calories['dinner'])},"
        f'"snacks":[{_meal_body(meal_calories["snack"])}]}},'
        f"{workouts_json}}}"
    )
    lines += ["RETURN ONLY THIS JSON (no markdown, no extra text):", skeleton, "Return ONLY JSON."]
    return "\n".join(lines)


def schedule_manifest(window: ScheduleWindow) -> str:
    """One line per date stating whether a workout is mandatory."""
    return "\n".join(
        f"- {day.key} ({day.day_name}): "
        f"{'MUST INCLUDE WORKOUT' if day.is_workout else 'Rest Day (No Workout)'}"
        for day in window.days
    )


def build_week_prompt(
    profile: UserProfile,
    window: ScheduleWindow,
    targets: NutritionTargets,
    adjustments: GoalAdjustments,
    plan_type: str = "weekly",
    language: str = "en",
    plan_template: Optional[str] = None,
) -> str:
    """Full multi-day prompt for the non-parallel path (local runtime)."""
    path = normalize_path(profile.path)
    macros = targets.macros
    meal_calories = meal_calorie_targets(targets.calories)
    frameworks = meal_macro_framework(macros)

    style = plan_style_for(plan_template)
    if style:
        goal_context = style
    elif adjustments.goal_description:
        goal_context = (
            f"ACTIVE GOAL: {adjustments.goal_description}\n"
            "  (Adjust meals/macros/workouts to achieve this)"
        )
    else:
        goal_context = "GOAL: Maintain healthy lifestyle"

    focus = adjustments.workout_types or WORKOUT_CATEGORIES
    preference_rule = ""
    if profile.food_preferences:
        preference_rule = (
            "  At least half of the meals must feature these preferred foods or cuisines."
        )

    framework_lines = []
    for label, category in (
        ("Breakfast", "breakfast"),
        ("Lunch", "lunch"),
        ("Dinner", "dinner"),
        ("Snacks", "snack"),
    ):
        split = frameworks[category]
        framework_lines.append(
            f"- {label}: ~{meal_calories[category]} kcal "
            f"(P:{split.protein}g, C:{split.carbs}g, F:{split.fat}g)"
        )

    meal_count = len(window.days)
    sections = [
        f"You are a precision nutritionist and structured data generator. Create a highly varied "
        f"{plan_type} plan for a {profile.age:g}y {profile.sex} "
        f"({profile.height:g}cm/{profile.weight:g}kg).",
        "",
        "====== VARIETY RULES ======",
        f"1. NO REPEATS: {meal_count * 3} distinct meals ({meal_count} breakfasts, "
        f"{meal_count} lunches, {meal_count} dinners).",
        "2. PROTEIN ROTATION: a different primary protein for every lunch and dinner.",
        "3. CUISINE ROTATION: a different flavor profile every day.",
        "",
        "====== USER PROFILE & CONSTRAINTS ======",
        "TARGETS:",
        f"- Daily Calories: {targets.calories} kcal (±5%)",
        f"- Macros: P:{macros.protein}g, C:{macros.carbs}g, F:{macros.fat}g (±10%)",
        f"- Goal: {goal_context}",
        f"- Path: {path}. {PATH_GUIDELINES.get(path, PATH_GUIDELINES['custom'])}",
        f"- Hydration: about {PATH_WATER_GLASSES.get(path, 8)} glasses of water per day",
        "",
        "DIETARY RULES (STRICTLY ENFORCE):",
        f"- Allergies: {_join_or(profile.allergies, 'None')}",
        f"- Restrictions: {_join_or(profile.dietary_restrictions, 'None')}",
        f"- Dislikes: {_join_or(profile.dislikes, 'None')}",
        f"- Food Preferences: {_join_or(profile.food_preferences, 'None')}",
    ]
    if preference_rule:
        sections.append(preference_rule)
    sections += [
        "",
        "MEAL FRAMEWORKS (Approximate):",
        *framework_lines,
        "",
        "WORKOUTS:",
        f"- FOCUS: {', '.join(focus)}",
        "",
        "====== DATA STRUCTURE RULES ======",
        "1. Return ONLY valid JSON. No markdown, no variable assignments, no explanations.",
        "2. Follow these schedule keys exactly:",
        schedule_manifest(window),
        "3. " + INGREDIENT_RULES,
    ]
    if language and language.lower() != "en":
        sections.append(f"4. LANGUAGE: write meal names in '{language}', keep JSON keys in English.")
    sections += [
        "",
        "====== OUTPUT SCHEMA ======",
        "{",
        '  "weeklyPlan": {',
        '    "YYYY-MM-DD": {',
        '      "day": "string",',
        '      "date": "YYYY-MM-DD",',
        '      "variety_check": "short cuisine/protein summary",',
        '      "meals": {',
        '        "breakfast": {"name": "string", "calories": number, '
        '"macros": {"protein": number, "carbs": number, "fat": number}, '
        '"ingredients": ["string"], "prepTime": number},',
        '        "lunch": { ...same structure },',
        '        "dinner": { ...same structure },',
        '        "snacks": [{ ...same structure }]',
        "      },",
        '      "hydration": {"waterTarget": number, "recommendations": ["string"]},',
        '      "workouts": [{"name": "string", "category": "string", "duration": number, '
        '"caloriesBurned": number}]',
        "    }",
        "  }",
        "}",
    ]
    return "\n".join(sections)


MEAL_INGREDIENT_RULES = "\n".join(
    [
        "## Ingredient Rules:",
        '- "ingredients" is an array of [name, amount] pairs, e.g. ["chicken_breast", "150 g"]',
        "- name: RAW ingredient only, lowercase with underscores (chicken_breast, olive_oil, ginger)",
        f"- DO NOT use preparation words: {', '.join(PREPARATION_WORDS)}",
        '- amount: number followed by a unit ("200 g", "50 ml", "2 pieces")',
        "- Math: protein*4 + carbs*4 + fat*9 must match calories",
    ]
)


def _meal_requirements(request: MealChangeRequest, target_calories: int) -> List[str]:
    lines = [
        "## Requirements:",
        f"- Category: {request.category}",
        f"- Target calories: approximately {target_calories} kcal (±10%)",
        f"- Language for meal names: {request.language}",
    ]
    if request.all_restrictions:
        lines.append(f"- Dietary restrictions (MUST follow): {', '.join(request.all_restrictions)}")
    if request.all_preferences:
        lines.append(f"- Preferences (try to include): {', '.join(request.all_preferences)}")
    if request.all_dislikes:
        lines.append(f"- Dislikes (MUST avoid): {', '.join(request.all_dislikes)}")
    if request.ai_rules:
        lines.append(f"- Additional rules: {request.ai_rules}")
    return lines


def _meal_schema(category: str, calories: int) -> str:
    return (
        f'{{"name":"Meal Name","calories":{calories},'
        '"macros":{"protein":30,"carbs":50,"fat":15},'
        f'"category":"{category}","ingredients":[["ingredient_name","100 g"]],"prepTime":20}}'
    )


def build_meal_prompt(request: MealChangeRequest) -> str:
    """Prompt for one replacement meal in the requested slot.

    Returns:
        Prompt text ending in the JSON shape of a single meal
    """
    target = request.resolved_target_calories
    if request.meal_name:
        header = f'Generate a {request.category} meal "{request.meal_name}" in {request.language}.'
    else:
        header = f"Generate one {request.category} meal in {request.language}."

    lines = [header, ""]
    lines += _meal_requirements(request, target)
    lines += [
        "",
        "## Response Format:",
        "Return ONLY valid JSON matching this structure:",
        _meal_schema(request.category, target),
        "",
        MEAL_INGREDIENT_RULES,
        '- "name": descriptive meal name with spaces and Title Case, no underscores',
    ]
    return "\n".join(lines)


def build_meal_suggestions_prompt(request: MealChangeRequest) -> str:
    """Prompt for `number_of_suggestions` alternative meals.

    When the request names a dish, every suggestion must be a variation of
    it (the dish name appears in each meal name).
    """
    target = request.resolved_target_calories
    count = request.number_of_suggestions
    if request.meal_name:
        header = (
            f'You are a professional nutritionist. Generate exactly {count} different variations '
            f'of "{request.meal_name}" as {request.category} meals.'
        )
    else:
        header = (
            f"You are a professional nutritionist. Generate exactly {count} unique "
            f"{request.category} meal suggestions."
        )

    lines = [header, ""]
    lines += _meal_requirements(request, target)
    lines += [
        "",
        "## Response Format:",
        f'Return a JSON object with a "meals" array of exactly {count} meals:',
        f'{{"meals":[{_meal_schema(request.category, target)}]}}',
        "",
        MEAL_INGREDIENT_RULES,
        '- "name": descriptive meal name with spaces and Title Case, no underscores',
    ]
    if request.meal_name:
        lines.append(f'- Every "name" MUST include "{request.meal_name}"')
    return "\n".join(lines)
