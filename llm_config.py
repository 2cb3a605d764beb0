"""Centralized generation configuration - single source of truth.

Model lists, timeouts, retry knobs and local-runtime settings for the plan
generator. Environment variables (optionally loaded from a .env file) override
the defaults below; see GenerationSettings.from_env().
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv


def load_env_with_optional_override() -> None:
    """Load .env without clobbering explicit environment overrides."""

    load_dotenv(override=False)
    if os.getenv("DOTENV_FORCE_OVERRIDE", "").strip().lower() in {"1", "true", "yes", "on"}:
        load_dotenv(override=True)


# Cloud provider (Gemini REST for discovery, litellm for generation)
DEFAULT_CLOUD_API_BASE = "https://generativelanguage.googleapis.com/v1"
DEFAULT_CLOUD_MODEL_PREFIX = "gemini/"

# Used whenever discovery fails or returns nothing usable
DEFAULT_CLOUD_MODELS: Tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-2.0-flash",
    "gemini-2.0-flash-001",
)

# Discovered models are sorted by this order; unknown models go last
MODEL_PRIORITY_ORDER: Tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-2.0-flash",
    "gemini-2.0-flash-001",
    "gemini-2.5-flash-lite",
)

MODEL_CACHE_TTL_SECONDS = 600.0
DISCOVERY_TIMEOUT_SECONDS = 10.0

# Per-day fan-out: short budget, few models
DAY_TIMEOUT_SECONDS = 20.0
DAY_MAX_ATTEMPTS = 2
DAY_MAX_MODELS = 3

# Full-week single prompt: longer budget, whole model list
WEEK_TIMEOUT_SECONDS = 60.0
WEEK_MAX_ATTEMPTS = 3

# Single-meal and meal-suggestion requests
MEAL_TIMEOUT_SECONDS = 60.0
MEAL_MAX_ATTEMPTS = 3

RETRY_BASE_DELAY_SECONDS = 1.0
WEEK_RETRY_BASE_DELAY_SECONDS = 2.0

# Local model runtime (Ollama-compatible)
DEFAULT_LOCAL_BASE_URL = "http://localhost:11434"
DEFAULT_LOCAL_MODEL = "phi"
LOCAL_HEALTH_TIMEOUT_SECONDS = 5.0
LOCAL_DAY_TIMEOUT_SECONDS = 300.0
LOCAL_WEEK_TIMEOUT_SECONDS = 600.0
LOCAL_DAY_MAX_TOKENS = 4000
LOCAL_WEEK_MAX_TOKENS = 8000
LOCAL_SAMPLING_OPTIONS = {"temperature": 0.7, "top_p": 0.9, "top_k": 40}

MOCK_DELAY_SECONDS = 3.0
DEFAULT_TIMEZONE = "UTC"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class GenerationSettings:
    """Runtime knobs for one generator instance."""

    cloud_api_key: Optional[str] = None
    cloud_api_base: str = DEFAULT_CLOUD_API_BASE
    cloud_model_prefix: str = DEFAULT_CLOUD_MODEL_PREFIX
    model_cache_ttl_seconds: float = MODEL_CACHE_TTL_SECONDS
    day_timeout_seconds: float = DAY_TIMEOUT_SECONDS
    day_max_attempts: int = DAY_MAX_ATTEMPTS
    day_max_models: int = DAY_MAX_MODELS
    week_timeout_seconds: float = WEEK_TIMEOUT_SECONDS
    week_max_attempts: int = WEEK_MAX_ATTEMPTS
    meal_timeout_seconds: float = MEAL_TIMEOUT_SECONDS
    meal_max_attempts: int = MEAL_MAX_ATTEMPTS
    retry_base_delay_seconds: float = RETRY_BASE_DELAY_SECONDS
    week_retry_base_delay_seconds: float = WEEK_RETRY_BASE_DELAY_SECONDS
    parallel_days: bool = True
    best_effort: bool = False
    local_fallback_enabled: bool = True
    local_base_url: str = DEFAULT_LOCAL_BASE_URL
    local_model: str = DEFAULT_LOCAL_MODEL
    mock_delay_seconds: float = MOCK_DELAY_SECONDS
    timezone: str = DEFAULT_TIMEZONE
    macro_correction_use_targets: bool = False
    favorite_meal_ratio: float = 0.25

    @property
    def has_cloud_credentials(self) -> bool:
        return bool(self.cloud_api_key)

    @classmethod
    def from_env(cls) -> "GenerationSettings":
        """Build settings from the process environment (after .env loading)."""
        load_env_with_optional_override()
        return cls(
            cloud_api_key=os.getenv("GEMINI_API_KEY") or None,
            cloud_api_base=os.getenv("GEMINI_API_BASE", DEFAULT_CLOUD_API_BASE),
            cloud_model_prefix=os.getenv("CLOUD_MODEL_PREFIX", DEFAULT_CLOUD_MODEL_PREFIX),
            model_cache_ttl_seconds=_env_float("MODEL_CACHE_TTL_SECONDS", MODEL_CACHE_TTL_SECONDS),
            day_timeout_seconds=_env_float("DAY_TIMEOUT_SECONDS", DAY_TIMEOUT_SECONDS),
            day_max_attempts=_env_int("DAY_MAX_ATTEMPTS", DAY_MAX_ATTEMPTS),
            day_max_models=_env_int("DAY_MAX_MODELS", DAY_MAX_MODELS),
            week_timeout_seconds=_env_float("WEEK_TIMEOUT_SECONDS", WEEK_TIMEOUT_SECONDS),
            week_max_attempts=_env_int("WEEK_MAX_ATTEMPTS", WEEK_MAX_ATTEMPTS),
            meal_timeout_seconds=_env_float("MEAL_TIMEOUT_SECONDS", MEAL_TIMEOUT_SECONDS),
            meal_max_attempts=_env_int("MEAL_MAX_ATTEMPTS", MEAL_MAX_ATTEMPTS),
            retry_base_delay_seconds=_env_float(
                "RETRY_BASE_DELAY_SECONDS", RETRY_BASE_DELAY_SECONDS
            ),
            week_retry_base_delay_seconds=_env_float(
                "WEEK_RETRY_BASE_DELAY_SECONDS", WEEK_RETRY_BASE_DELAY_SECONDS
            ),
            parallel_days=_env_bool("PLAN_PARALLEL_DAYS", True),
            best_effort=_env_bool("PLAN_BEST_EFFORT", False),
            local_fallback_enabled=_env_bool("LOCAL_FALLBACK_ENABLED", True),
            local_base_url=os.getenv("OLLAMA_BASE_URL", DEFAULT_LOCAL_BASE_URL),
            local_model=os.getenv("OLLAMA_MODEL", DEFAULT_LOCAL_MODEL),
            mock_delay_seconds=_env_float("MOCK_DELAY_SECONDS", MOCK_DELAY_SECONDS),
            timezone=os.getenv("PLAN_TIMEZONE", DEFAULT_TIMEZONE),
            macro_correction_use_targets=_env_bool("MACRO_CORRECTION_USE_TARGETS", False),
            favorite_meal_ratio=_env_float("FAVORITE_MEAL_RATIO", 0.25),
        )
