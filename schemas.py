"""Pydantic models for plan generation inputs, outputs and intermediates."""

from __future__ import annotations

import re
import uuid
from datetime import date as Date
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_serializer,
    model_validator,
)

from validation_config import (
    DEFAULT_MEAL_CALORIES,
    DEFAULT_SNACK_CALORIES,
    MAX_MEAL_SUGGESTIONS,
    PLACEHOLDER_MEAL_NAME,
)

MealCategory = Literal["breakfast", "lunch", "dinner", "snack"]
INGREDIENT_CATEGORIES: Tuple[str, ...] = (
    "Proteins",
    "Vegetables",
    "Fruits",
    "Grains",
    "Dairy",
    "Pantry",
    "Spices",
)

# Shopping-list category guessed from the ingredient name when the model gave none
INGREDIENT_CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Proteins": (
        "chicken", "beef", "pork", "turkey", "fish", "shrimp", "salmon", "tuna",
        "cod", "egg", "tofu", "tempeh", "bean", "lentil", "chickpea",
    ),
    "Vegetables": (
        "vegetable", "onion", "garlic", "tomato", "lettuce", "spinach", "kale",
        "carrot", "broccoli", "cauliflower", "bell pepper", "cucumber", "zucchini",
        "potato", "sweet potato", "mushroom", "peas",
    ),
    "Fruits": (
        "apple", "banana", "orange", "berry", "berries", "strawberry", "strawberries",
        "blueberry", "blueberries", "raspberry", "raspberries", "grape", "pineapple",
        "mango", "lemon", "avocado",
    ),
    "Grains": (
        "rice", "pasta", "noodle", "bread", "quinoa", "oats", "oat", "flour",
        "tortilla", "wrap", "couscous",
    ),
    "Dairy": ("milk", "cheese", "yogurt", "butter", "cream", "sour cream"),
    "Pantry": (
        "oil", "salt", "pepper", "black pepper", "sugar", "honey", "vinegar",
        "soy sauce", "ketchup", "mustard", "peanut butter",
    ),
    "Spices": (
        "cumin", "paprika", "oregano", "basil", "thyme", "rosemary", "cinnamon",
        "nutmeg",
    ),
}
_CATEGORY_PATTERNS: List[Tuple[int, str, "re.Pattern[str]"]] = sorted(
    (
        (len(keyword), category, re.compile(rf"\b{re.escape(keyword)}(?:e?s)?\b"))
        for category, keywords in INGREDIENT_CATEGORY_KEYWORDS.items()
        for keyword in keywords
    ),
    key=lambda entry: -entry[0],
)


def infer_ingredient_category(name: str) -> Optional[str]:
    """Guess the shopping category of an ingredient from its name.

    Whole words only, longest keyword first, so "bell_pepper" is a vegetable
    and "black_pepper" a pantry item.

    Returns:
        One of INGREDIENT_CATEGORIES, or None when no keyword matches
    """
    text = " ".join(str(name or "").replace("_", " ").replace("-", " ").lower().split())
    if not text:
        return None
    for _, category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(text):
            return category
    return None


def _clean_string_list(values: Any) -> List[str]:
    """Strip, drop blanks and deduplicate (case-insensitive) keeping order."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [part for part in values.split(",")]
    seen = set()
    cleaned: List[str] = []
    for value in values:
        text = str(value).strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        cleaned.append(text)
    return cleaned


# ============================================================================
# Inbound profile
# ============================================================================


class Goal(BaseModel):
    """A user goal such as 'Run a marathon' or 'Build muscle'."""

    title: str = Field(default="", description="Short goal title")
    description: str = Field(default="", description="Free-text goal description")
    target: Optional[Union[float, str]] = Field(
        default=None, description="Numeric or textual target (e.g. 42.2)"
    )
    unit: Optional[str] = Field(default=None, description="Unit of the target (km, kg...)")

    def describe(self) -> str:
        """Render as 'title: description (Target: target unit)'."""
        text = f"{self.title}: {self.description}" if self.description else self.title
        text = text.strip()
        if self.target not in (None, ""):
            unit = f" {self.unit}" if self.unit else ""
            text += f" (Target: {self.target}{unit})"
        return text


class UserProfile(BaseModel):
    """Physiological profile and food preferences; immutable during a run."""

    model_config = {"frozen": True}

    age: float = Field(default=30, description="Age in years")
    sex: str = Field(default="female", description="'male' selects the male BMR formula")
    height: float = Field(default=170, description="Height in centimetres")
    weight: float = Field(default=70, description="Weight in kilograms")
    workout_frequency: Optional[int] = Field(
        default=None, description="Desired workouts per week (0-7)"
    )
    path: str = Field(default="healthy", description="Dietary path (healthy, lose, keto...)")
    allergies: List[str] = Field(default_factory=list)
    dietary_restrictions: List[str] = Field(default_factory=list)
    food_preferences: List[str] = Field(default_factory=list)
    dislikes: List[str] = Field(default_factory=list)
    goals: List[Goal] = Field(default_factory=list)

    @field_validator("allergies", "dietary_restrictions", "food_preferences", "dislikes", mode="before")
    @classmethod
    def _dedupe_lists(cls, value: Any) -> List[str]:
        return _clean_string_list(value)

    @field_validator("sex", "path", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> str:
        return str(value or "").strip().lower()

    @property
    def avoid_list(self) -> List[str]:
        """Allergies, restrictions and dislikes merged without duplicates."""
        return _clean_string_list(self.allergies + self.dietary_restrictions + self.dislikes)


# ============================================================================
# Targets
# ============================================================================


class MacroBreakdown(BaseModel):
    """Macronutrients in grams."""

    protein: int = Field(default=0, ge=0)
    carbs: int = Field(default=0, ge=0)
    fat: int = Field(default=0, ge=0)

    @property
    def calories(self) -> int:
        """Calories implied by the macros (4/4/9 kcal per gram)."""
        return self.protein * 4 + self.carbs * 4 + self.fat * 9


class NutritionTargets(BaseModel):
    """Daily calorie and macro targets for the run."""

    calories: int = Field(..., ge=0, description="Daily calorie target")
    macros: MacroBreakdown
    path: str = Field(default="healthy", description="Normalised dietary path")
    effective_workout_frequency: int = Field(default=0, ge=0)
    bmr: float = 0.0
    tdee: float = 0.0


# ============================================================================
# Plan content
# ============================================================================


class Ingredient(BaseModel):
    """One ingredient, serialised as [name, amount, category]."""

    name: str
    amount: str = ""
    category: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_sequence(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            padded = list(value) + [None, None, None]
            return {
                "name": str(padded[0] or ""),
                "amount": str(padded[1] or ""),
                "category": padded[2] or None,
            }
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: Any) -> Optional[str]:
        if not value:
            return None
        text = str(value).strip()
        for category in INGREDIENT_CATEGORIES:
            if category.lower() == text.lower():
                return category
        return None

    @model_serializer
    def _as_list(self) -> List[Optional[str]]:
        return [self.name, self.amount, self.category]


class Meal(BaseModel):
    """A single meal in a day plan."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    category: MealCategory
    calories: int = Field(default=0, ge=0)
    macros: MacroBreakdown = Field(default_factory=MacroBreakdown)
    ingredients: List[Ingredient] = Field(default_factory=list)
    prep_time: int = Field(default=0, ge=0, description="Preparation time in minutes")
    done: bool = False

    @classmethod
    def placeholder(cls, category: str) -> "Meal":
        return cls(name=PLACEHOLDER_MEAL_NAME, category=category)

    @property
    def is_placeholder(self) -> bool:
        return (
            self.name == PLACEHOLDER_MEAL_NAME and self.calories == 0 and self.macros.calories == 0
        )


class Workout(BaseModel):
    """A workout session scheduled on a day."""

    name: str
    category: str = "cardio"
    duration: int = Field(default=30, ge=0, description="Minutes")
    calories_burned: int = Field(default=0, ge=0)
    time: Optional[str] = Field(default=None, description="Optional HH:MM start time")
    done: bool = False


class DayMeals(BaseModel):
    breakfast: Meal
    lunch: Meal
    dinner: Meal
    snacks: List[Meal] = Field(default_factory=list)

    def main_meals(self) -> List[Meal]:
        return [self.breakfast, self.lunch, self.dinner]

    def all_meals(self) -> List[Meal]:
        return self.main_meals() + list(self.snacks)


class DayPlan(BaseModel):
    """One day of the weekly plan, keyed by its date in the plan mapping."""

    day: str = Field(..., description="Lower-case weekday name")
    date: str = Field(..., description="YYYY-MM-DD date key")
    meals: DayMeals
    workouts: List[Workout] = Field(default_factory=list)
    water_intake: int = Field(default=0, ge=0, description="Glasses of 250 ml")
    total_calories: int = 0
    total_protein: int = 0
    total_carbs: int = 0
    total_fat: int = 0

    @classmethod
    def empty(cls, date_key: str, day: str) -> "DayPlan":
        meals = DayMeals(
            breakfast=Meal.placeholder("breakfast"),
            lunch=Meal.placeholder("lunch"),
            dinner=Meal.placeholder("dinner"),
        )
        return cls(day=day, date=date_key, meals=meals)

    def recompute_totals(self) -> None:
        """Re-derive the day aggregates from its meals."""
        meals = self.meals.all_meals()
        self.total_calories = sum(meal.calories for meal in meals)
        self.total_protein = sum(meal.macros.protein for meal in meals)
        self.total_carbs = sum(meal.macros.carbs for meal in meals)
        self.total_fat = sum(meal.macros.fat for meal in meals)


WeeklyPlan = Dict[str, DayPlan]


# ============================================================================
# Intermediate: one model-produced day before assembly
# ============================================================================


class RawDayCandidate(BaseModel):
    """A single day as the model produced it, shape-checked but not cleaned."""

    model_config = {"extra": "allow"}

    date: Optional[str] = None
    day: Optional[str] = None
    meals: Dict[str, Any] = Field(default_factory=dict)
    workouts: List[Any] = Field(default_factory=list)
    hydration: Optional[Dict[str, Any]] = None

    @field_validator("date", "day", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("workouts", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        if isinstance(value, list):
            return value
        return []

    @field_validator("hydration", mode="before")
    @classmethod
    def _hydration(cls, value: Any) -> Optional[Dict[str, Any]]:
        if isinstance(value, dict):
            return value
        if isinstance(value, (int, float, str)) and str(value).strip():
            return {"waterTarget": value}
        return None


def validate_day_payload(payload: Any) -> Tuple[Optional[RawDayCandidate], Optional[str]]:
    """Check a parsed day object without raising.

    Returns:
        (candidate, None) when the payload carries a date and a meals object,
        otherwise (None, reason).
    """
    if not isinstance(payload, dict):
        return None, f"day payload is a {type(payload).__name__}, not an object"
    if not isinstance(payload.get("meals"), dict):
        return None, "day payload has no meals object"
    if payload.get("date") in (None, ""):
        return None, "day payload has no date"
    try:
        return RawDayCandidate.model_validate(payload), None
    except ValidationError as e:
        return None, f"day payload failed validation: {e.errors()[0].get('msg', e)}"


# ============================================================================
# Request / result contracts
# ============================================================================


class PlanGenerationRequest(BaseModel):
    """Everything a caller supplies to generate one plan."""

    profile: UserProfile
    start_date: Optional[Date] = Field(
        default=None, description="Run date; defaults to today in the configured timezone"
    )
    language: str = "en"
    plan_type: Literal["daily", "weekly"] = "weekly"
    plan_template: Optional[str] = Field(
        default=None, description="Named plan style that overrides goal framing"
    )
    use_mock: bool = False
    favorite_meals: List[Meal] = Field(default_factory=list)


class DroppedDay(BaseModel):
    key: str
    reason: str


class PlanGenerationResult(BaseModel):
    """Assembled plan plus generation metadata."""

    weekly_plan: Dict[str, DayPlan]
    plan_type: str
    language: str
    generated_at: str
    provider: Literal["cloud", "local", "mock"]
    fallback_model: str
    dropped_days: List[DroppedDay] = Field(default_factory=list)
    targets: Optional[NutritionTargets] = None


class MealChangeRequest(BaseModel):
    """Ask for one replacement meal, or a few suggestions, for a meal slot.

    Restrictions, preferences and dislikes given here are merged with the
    profile's when a profile is attached.
    """

    category: MealCategory
    meal_name: Optional[str] = Field(
        default=None, description="Dish the user asked for; suggestions become variations of it"
    )
    target_calories: Optional[int] = Field(
        default=None, ge=0, description="Defaults to 100 kcal for snacks, 500 otherwise"
    )
    dietary_restrictions: List[str] = Field(default_factory=list)
    preferences: List[str] = Field(default_factory=list)
    dislikes: List[str] = Field(default_factory=list)
    number_of_suggestions: int = Field(default=3, ge=1, le=MAX_MEAL_SUGGESTIONS)
    ai_rules: Optional[str] = Field(default=None, description="Free-text extra instructions")
    language: str = "en"
    profile: Optional[UserProfile] = None

    @field_validator("dietary_restrictions", "preferences", "dislikes", mode="before")
    @classmethod
    def _dedupe_lists(cls, value: Any) -> List[str]:
        return _clean_string_list(value)

    @field_validator("meal_name", "ai_rules", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def resolved_target_calories(self) -> int:
        if self.target_calories:
            return self.target_calories
        return DEFAULT_SNACK_CALORIES if self.category == "snack" else DEFAULT_MEAL_CALORIES

    @property
    def all_restrictions(self) -> List[str]:
        profile = self.profile
        inherited = profile.allergies + profile.dietary_restrictions if profile else []
        return _clean_string_list(inherited + self.dietary_restrictions)

    @property
    def all_preferences(self) -> List[str]:
        inherited = self.profile.food_preferences if self.profile else []
        return _clean_string_list(inherited + self.preferences)

    @property
    def all_dislikes(self) -> List[str]:
        inherited = self.profile.dislikes if self.profile else []
        return _clean_string_list(inherited + self.dislikes)


class MealSuggestionsResult(BaseModel):
    meals: List[Meal]
    category: MealCategory
    language: str
    generated_at: str
    fallback_model: str
