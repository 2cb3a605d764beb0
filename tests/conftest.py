"""Shared test fixtures for the weekly plan generator tests."""
import os
from datetime import date

import pytest

from llm_config import GenerationSettings
from nutrition_targets import calculate_targets
from schedule import plan_schedule
from schemas import UserProfile
from tests.fixtures.fakes import RecordingSleep


def pytest_collection_modifyitems(config, items):
    """Skip tests that call the real cloud provider when no key is configured."""
    if os.getenv("GEMINI_API_KEY"):
        return

    skip_live = pytest.mark.skip(reason="GEMINI_API_KEY not set")
    for item in items:
        if "live_provider" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def profile():
    """30-year-old male, 70 kg, 175 cm, three workouts a week."""
    return UserProfile(
        age=30,
        sex="male",
        height=175,
        weight=70,
        workout_frequency=3,
        path="maintenance",
    )


@pytest.fixture
def today():
    """A Wednesday: the window runs Wednesday 14th to Sunday 18th."""
    return date(2026, 10, 14)


@pytest.fixture
def window(today):
    """Schedule window with workouts on the 14th, 15th and 17th."""
    return plan_schedule(today, 3)


@pytest.fixture
def targets(profile):
    return calculate_targets(profile)[0]


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    """Generator settings with a cloud key, local fallback and no mock delay."""
    return GenerationSettings(
        cloud_api_key="test-key",
        local_fallback_enabled=True,
        mock_delay_seconds=0.0,
    )
