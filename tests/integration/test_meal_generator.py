"""Single-meal generation and meal suggestions with fake providers."""
import asyncio
import io
import json

import pytest
from pydantic import ValidationError

from generation_errors import CascadeExhaustedError, FatalProviderError, ResponseParseError
from llm_config import GenerationSettings
from meal_generator import (
    MealGenerator,
    clean_ingredient_name,
    main,
    normalize_meal_name,
    parse_meal_answer,
    parse_meal_suggestions,
)
from schemas import Ingredient, MealChangeRequest, UserProfile
from tests.fixtures.fakes import FakeCloudClient, ProviderHTTPError


def raw_meal(name="grilled_chicken_salad", calories=600, protein=10, carbs=10, fat=10, ingredients=None):
    return {
        "name": name,
        "calories": calories,
        "macros": {"protein": protein, "carbs": carbs, "fat": fat},
        "category": "dinner",
        "ingredients": ingredients
        if ingredients is not None
        else [["Minced Fresh Garlic", "5 g"], ["chicken_breast", "150 g"]],
        "prepTime": "20 minutes",
    }


def meal_answer(**kwargs):
    return "Here is your meal:\n```json\n" + json.dumps(raw_meal(**kwargs)) + "\n```"


def suggestions_answer(names):
    return json.dumps({"meals": [raw_meal(name=name, calories=450, protein=30, carbs=45, fat=15) for name in names]})


@pytest.fixture
def lunch_request():
    return MealChangeRequest(
        category="lunch",
        meal_name="Chicken Salad",
        target_calories=600,
        dislikes=["olives"],
        profile=UserProfile(allergies=["peanuts"], dislikes=["mushrooms"], food_preferences=["Greek"]),
    )


def make_generator(settings, client, fake_sleep):
    return MealGenerator(settings=settings, cloud_client=client, sleep=fake_sleep)


@pytest.mark.priority_high
@pytest.mark.integration
class TestGenerateMeal:
    """One replacement meal through the model cascade."""

    @pytest.mark.timeout(30)
    def test_meal_is_cleaned_and_corrected(self, settings, lunch_request, fake_sleep):
        client = FakeCloudClient(default=meal_answer())

        meal = asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(lunch_request))

        assert meal.name == "Grilled Chicken Salad"
        assert meal.category == "lunch", "the requested slot wins over the model's category"
        assert meal.calories == 600
        assert abs(meal.calories - meal.macros.calories) <= 10, "macros are reconciled"
        assert meal.prep_time == 20
        assert meal.ingredients == [
            Ingredient(name="garlic", amount="5 g", category="Vegetables"),
            Ingredient(name="chicken_breast", amount="150 g", category="Proteins"),
        ]
        assert len(client.calls) == 1

    @pytest.mark.timeout(30)
    def test_prompt_carries_request_and_profile(self, settings, lunch_request, fake_sleep):
        client = FakeCloudClient(default=meal_answer())

        asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(lunch_request))
        prompt = client.calls[0][1]

        assert 'Generate a lunch meal "Chicken Salad" in en.' in prompt
        assert "approximately 600 kcal" in prompt
        assert "Dietary restrictions (MUST follow): peanuts" in prompt
        assert "Dislikes (MUST avoid): mushrooms, olives" in prompt
        assert "Preferences (try to include): Greek" in prompt

    @pytest.mark.timeout(30)
    def test_unparseable_answer_is_retried(self, settings, lunch_request, fake_sleep):
        client = FakeCloudClient(script={"model-a": ["Sorry, I cannot help with that.", meal_answer()]})

        meal = asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(lunch_request))

        assert meal.name == "Grilled Chicken Salad"
        assert client.models_called() == ["model-a", "model-a"]
        assert fake_sleep.delays == [1.0]

    @pytest.mark.timeout(30)
    def test_quota_moves_to_next_model(self, settings, lunch_request, fake_sleep):
        client = FakeCloudClient(
            script={"model-a": [ProviderHTTPError(429, "quota exceeded")], "model-b": [meal_answer()]}
        )

        meal = asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(lunch_request))

        assert meal.category == "lunch"
        assert client.models_called() == ["model-a", "model-b"]
        assert fake_sleep.delays == [], "quota errors do not back off on the same model"

    @pytest.mark.timeout(30)
    def test_truncated_answer_is_auto_closed(self, settings, fake_sleep):
        truncated = (
            '```json\n{"name": "Tofu Bowl", "calories": 400, '
            '"macros": {"protein": 25, "carbs": 45, "fat": 13}, "ingredients": [["tofu", "150 g"]]'
        )
        client = FakeCloudClient(default=truncated)
        request = MealChangeRequest(category="dinner")

        meal = asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(request))

        assert meal.name == "Tofu Bowl"
        assert meal.ingredients == [Ingredient(name="tofu", amount="150 g", category="Proteins")]
        assert len(client.calls) == 1, "no retry needed"


@pytest.mark.priority_high
@pytest.mark.robustness
class TestGenerateMealFailures:
    """Failure paths of single-meal generation."""

    @pytest.mark.timeout(30)
    def test_bad_credentials_abort(self, settings, lunch_request, fake_sleep):
        client = FakeCloudClient(default=ProviderHTTPError(401, "API key not valid"))

        with pytest.raises(FatalProviderError):
            asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(lunch_request))
        assert len(client.calls) == 1

    @pytest.mark.timeout(30)
    def test_nameless_answers_exhaust_the_cascade(self, settings, lunch_request, fake_sleep):
        client = FakeCloudClient(default='{"calories": 500}')

        with pytest.raises(CascadeExhaustedError, match="no named meal"):
            asyncio.run(make_generator(settings, client, fake_sleep).generate_meal(lunch_request))
        assert len(client.calls) == 3 * settings.meal_max_attempts, "every model, every attempt"

    def test_no_cloud_key(self, lunch_request, fake_sleep):
        generator = MealGenerator(settings=GenerationSettings(cloud_api_key=None), sleep=fake_sleep)

        with pytest.raises(CascadeExhaustedError, match="no cloud API key"):
            asyncio.run(generator.generate_meal(lunch_request))


@pytest.mark.priority_high
@pytest.mark.integration
class TestSuggestMeals:
    """Several alternatives for one slot."""

    @pytest.mark.timeout(30)
    def test_suggestions_are_capped_and_cleaned(self, settings, fake_sleep):
        client = FakeCloudClient(default=suggestions_answer(["miso_salmon", "salmon poke", "salmon tacos", "extra"]))
        request = MealChangeRequest(category="dinner", meal_name="Salmon", number_of_suggestions=3)

        result = asyncio.run(make_generator(settings, client, fake_sleep).suggest_meals(request))

        assert [meal.name for meal in result.meals] == ["Miso Salmon", "Salmon Poke", "Salmon Tacos"]
        assert all(meal.category == "dinner" for meal in result.meals)
        assert all(abs(m.calories - m.macros.calories) <= 10 for m in result.meals)
        assert len({meal.id for meal in result.meals}) == 3, "each suggestion gets its own id"
        assert result.fallback_model == "model-a"
        assert result.category == "dinner"

        prompt = client.calls[0][1]
        assert "exactly 3 different variations" in prompt
        assert 'Every "name" MUST include "Salmon"' in prompt

    @pytest.mark.timeout(30)
    def test_missing_calories_use_snack_default(self, settings, fake_sleep):
        answer = json.dumps({"meals": [{"name": "Apple Slices", "macros": {}, "ingredients": [["apple", "1 piece"]]}]})
        client = FakeCloudClient(default=answer)
        request = MealChangeRequest(category="snack", number_of_suggestions=2)

        result = asyncio.run(make_generator(settings, client, fake_sleep).suggest_meals(request))

        (snack,) = result.meals
        assert snack.calories == 100
        assert abs(snack.calories - snack.macros.calories) <= 10, "default split fills the macros"
        assert snack.ingredients[0].category == "Fruits"
        assert "approximately 100 kcal" in client.calls[0][1]


@pytest.mark.priority_medium
@pytest.mark.unit
class TestMealParsing:
    """Parsers and name cleanup used by the meal generator."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("grilled_chicken_salad", "Grilled Chicken Salad"),
            ("STUFFED bell peppers", "Stuffed Bell Peppers"),
            ("  ", "Unnamed Meal"),
            (None, "Unnamed Meal"),
        ],
    )
    def test_normalize_meal_name(self, raw, expected):
        assert normalize_meal_name(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("chopped_fresh_ginger", "ginger"),
            ("diced chicken breast", "chicken_breast"),
            ("ground_beef", "beef"),
            ("onion", "onion"),
            ("sliced", "sliced"),
        ],
    )
    def test_clean_ingredient_name(self, raw, expected):
        assert clean_ingredient_name(raw) == expected

    def test_single_meal_answer_wrapped_in_meals_array(self):
        text = json.dumps({"meals": [{"calories": 100}, raw_meal(name="Veggie Wrap")]})
        meal = parse_meal_answer(text, "lunch", 500)
        assert meal.name == "Veggie Wrap"

    def test_suggestions_without_named_meals_fail(self):
        with pytest.raises(ResponseParseError):
            parse_meal_suggestions('{"meals": [{"calories": 300}]}', "lunch", 500, 3)

    def test_request_defaults_and_bounds(self):
        assert MealChangeRequest(category="breakfast").resolved_target_calories == 500
        assert MealChangeRequest(category="snack").resolved_target_calories == 100
        assert MealChangeRequest(category="lunch", meal_name="  ").meal_name is None
        with pytest.raises(ValidationError):
            MealChangeRequest(category="lunch", number_of_suggestions=11)
        with pytest.raises(ValidationError):
            MealChangeRequest(category="brunch")


@pytest.mark.priority_medium
@pytest.mark.integration
class TestMealCommandLine:
    """stdin JSON in, suggestions JSON out."""

    def test_missing_key_prints_error_json(self, monkeypatch, capsys):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("DOTENV_FORCE_OVERRIDE", raising=False)
        monkeypatch.setattr("llm_config.load_dotenv", lambda *args, **kwargs: False)
        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps([{"category": "dinner"}])))

        with pytest.raises(SystemExit) as excinfo:
            main()

        assert excinfo.value.code == 1
        output = json.loads(capsys.readouterr().out)
        assert output["error_type"] == "CascadeExhaustedError"
        assert output["meals"] == []
