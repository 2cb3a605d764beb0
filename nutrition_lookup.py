"""Food nutrition lookup against USDA FoodData Central, with a persistent cache.

Nothing on the plan or single-meal generation path imports this module.
Callers that need ingredient-level nutrition (recipe detail views, shopping
lists) build a client with UsdaNutritionClient.from_env() and call lookup()
per ingredient; it never raises, so a slow or missing database only leaves
gaps. Search results are cached on disk keyed by the
normalized query: hits for CACHE_TTL_DAYS, "nothing found" answers for the
shorter NEGATIVE_CACHE_TTL_DAYS so they get retried sooner.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from llm_config import load_env_with_optional_override
from retry_utils import (
    DEFAULT_MAX_RETRIES,
    CircuitBreaker,
    CircuitBreakerOpen,
    exponential_backoff_delay,
    get_nutrition_circuit_breaker,
    is_retriable_error,
)

USDA_API_BASE = "https://api.nal.usda.gov/fdc/v1"
USDA_DATA_TYPES = ("Foundation", "SR Legacy", "Survey (FNDDS)")
USDA_TIMEOUT_SECONDS = 5.0
SEARCH_CACHE_FILE = Path(
    os.getenv("NUTRITION_CACHE_FILE", str(Path(__file__).parent / ".nutrition_search_cache.json"))
)
CACHE_TTL_DAYS = 30
NEGATIVE_CACHE_TTL_DAYS = 7

# FoodData Central nutrient ids
NUTRIENT_IDS: Dict[str, int] = {
    "calories": 1008,
    "protein": 1003,
    "carbs": 1005,
    "fat": 1004,
}
# Name fragments used when a result carries no nutrient ids
NUTRIENT_NAME_HINTS: Dict[str, tuple] = {
    "calories": ("energy",),
    "protein": ("protein",),
    "carbs": ("carbohydrate",),
    "fat": ("total lipid", "fat"),
}


class NutritionLookupError(Exception):
    """HTTP failure from the nutrition database."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FoodMatch(BaseModel):
    """One search hit with nutrients per 100 g."""

    fdc_id: Optional[int] = None
    description: str
    calories_per_100g: float = Field(default=0.0, ge=0)
    protein_per_100g: float = Field(default=0.0, ge=0)
    carbs_per_100g: float = Field(default=0.0, ge=0)
    fat_per_100g: float = Field(default=0.0, ge=0)

    def for_grams(self, grams: float) -> Dict[str, int]:
        """Calories and macros for a portion, rounded to whole units."""
        factor = max(0.0, grams) / 100.0
        return {
            "calories": round(self.calories_per_100g * factor),
            "protein": round(self.protein_per_100g * factor),
            "carbs": round(self.carbs_per_100g * factor),
            "fat": round(self.fat_per_100g * factor),
        }


def normalize_food_query(name: str) -> str:
    """'chicken_breast ' -> 'chicken breast'."""
    return " ".join(name.replace("_", " ").lower().split())


def _nutrient_value(nutrients: List[Dict[str, Any]], key: str) -> float:
    wanted_id = NUTRIENT_IDS[key]
    for nutrient in nutrients:
        if nutrient.get("nutrientId") == wanted_id:
            return float(nutrient.get("value") or 0)
    for nutrient in nutrients:
        name = str(nutrient.get("nutrientName") or "").lower()
        if any(hint in name for hint in NUTRIENT_NAME_HINTS[key]):
            if key == "calories" and str(nutrient.get("unitName", "KCAL")).upper() != "KCAL":
                continue
            return float(nutrient.get("value") or 0)
    return 0.0


def parse_food(food: Dict[str, Any]) -> FoodMatch:
    nutrients = food.get("foodNutrients") or []
    return FoodMatch(
        fdc_id=food.get("fdcId"),
        description=str(food.get("description") or ""),
        calories_per_100g=_nutrient_value(nutrients, "calories"),
        protein_per_100g=_nutrient_value(nutrients, "protein"),
        carbs_per_100g=_nutrient_value(nutrients, "carbs"),
        fat_per_100g=_nutrient_value(nutrients, "fat"),
    )


class NutritionSearchCache:
    """Persistent cache for nutrition search results.

    Caches normalized query -> best match to avoid redundant API calls.
    Common ingredients (chicken, rice, eggs, etc.) are searched repeatedly.
    """

    def __init__(
        self,
        cache_file: Path = SEARCH_CACHE_FILE,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_file = Path(cache_file)
        self._clock = clock
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._load_cache()

    def _normalize_query(self, query: str) -> str:
        return normalize_food_query(query)

    def _ttl_seconds(self, entry: Dict[str, Any]) -> float:
        days = entry.get("ttl_days", NEGATIVE_CACHE_TTL_DAYS if entry.get("negative") else CACHE_TTL_DAYS)
        return float(days) * 86400

    def _is_live(self, entry: Dict[str, Any]) -> bool:
        return self._clock() - entry.get("cached_at", 0) < self._ttl_seconds(entry)

    def _load_cache(self) -> None:
        """Load cache from disk, filtering expired entries."""
        if not self.cache_file.exists():
            return
        try:
            with open(self.cache_file, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            self._cache = {}
            return
        if isinstance(data, dict):
            self._cache = {
                key: entry
                for key, entry in data.items()
                if isinstance(entry, dict) and self._is_live(entry)
            }

    def _save_cache(self) -> None:
        try:
            with open(self.cache_file, "w") as f:
                json.dump(self._cache, f, indent=2)
        except OSError as e:
            print(f"   ⚠️  Could not save nutrition search cache: {e}", file=sys.stderr)

    def get(self, query: str) -> Optional[Dict[str, Any]]:
        """Cached entry for a query.

        Returns:
            {"negative": True, "reason": ...} for a remembered miss, the
            FoodMatch fields for a hit, or None when not cached (or expired)
        """
        entry = self._cache.get(self._normalize_query(query))
        if not entry or not self._is_live(entry):
            return None
        if entry.get("negative"):
            return {"negative": True, "reason": entry.get("reason", "no_data")}
        match = entry.get("match")
        return dict(match) if isinstance(match, dict) else None

    def set(self, query: str, match: FoodMatch) -> None:
        self._cache[self._normalize_query(query)] = {
            "match": match.model_dump(),
            "original_query": query,
            "cached_at": self._clock(),
        }
        self._save_cache()

    def set_negative(self, query: str, reason: str = "no_results") -> None:
        """Remember that a query found nothing, with the shorter TTL."""
        self._cache[self._normalize_query(query)] = {
            "negative": True,
            "reason": reason,
            "original_query": query,
            "cached_at": self._clock(),
            "ttl_days": NEGATIVE_CACHE_TTL_DAYS,
        }
        self._save_cache()

    def delete(self, query: str) -> None:
        key = self._normalize_query(query)
        if key in self._cache:
            del self._cache[key]
            self._save_cache()

    def stats(self) -> Dict[str, Any]:
        file_size = self.cache_file.stat().st_size if self.cache_file.exists() else 0
        return {
            "total_entries": len(self._cache),
            "negative_entries": sum(1 for entry in self._cache.values() if entry.get("negative")),
            "file_size_bytes": file_size,
            "cache_file": str(self.cache_file),
        }

    def clear(self) -> None:
        self._cache = {}
        self._save_cache()


class UsdaNutritionClient:
    """Search FoodData Central with retry, circuit breaker and caching."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = USDA_API_BASE,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[NutritionSearchCache] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._cache = cache
        self._circuit_breaker = circuit_breaker or get_nutrition_circuit_breaker()
        self._max_retries = max_retries
        self._sleep = sleep

    @classmethod
    def from_env(cls, **kwargs: Any) -> "UsdaNutritionClient":
        load_env_with_optional_override()
        return cls(api_key=os.getenv("USDA_API_KEY") or None, **kwargs)

    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._http_client is not None:
            return await self._http_client.get(url, params=params, timeout=USDA_TIMEOUT_SECONDS)
        async with httpx.AsyncClient(timeout=USDA_TIMEOUT_SECONDS) as client:
            return await client.get(url, params=params)

    async def search_foods(self, name: str, page_size: int = 5) -> List[FoodMatch]:
        """Search foods by name.

        Args:
            name: Ingredient name ("chicken_breast" and "Chicken Breast" are equivalent)
            page_size: Maximum number of matches requested

        Returns:
            Matches in relevance order (possibly empty)

        Raises:
            NutritionLookupError: after retries, or immediately for non-retriable errors
            CircuitBreakerOpen: while the breaker blocks requests
        """
        if not self.api_key:
            raise NutritionLookupError("USDA_API_KEY is not configured", status_code=401)

        params = {
            "api_key": self.api_key,
            "query": normalize_food_query(name),
            "pageSize": page_size,
            "dataType": ",".join(USDA_DATA_TYPES),
        }

        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries + 1):
            self._circuit_breaker.guard()
            try:
                response = await self._get("/foods/search", params)
                if response.status_code >= 400:
                    raise NutritionLookupError(
                        f"USDA search failed with HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                foods = response.json().get("foods") or []
            except (httpx.HTTPError, NutritionLookupError) as e:
                last_error = e
                self._circuit_breaker.record_failure()
                if attempt >= self._max_retries or not is_retriable_error(e):
                    break
                delay = exponential_backoff_delay(attempt)
                print(
                    f"   ⚠️  Nutrition search for '{name}' failed ({e}), retrying in {delay:.1f}s",
                    file=sys.stderr,
                )
                await self._sleep(delay)
                continue

            self._circuit_breaker.record_success()
            return [parse_food(food) for food in foods if isinstance(food, dict)]

        if isinstance(last_error, NutritionLookupError):
            raise last_error
        raise NutritionLookupError(f"USDA search failed: {last_error}") from last_error

    async def lookup(self, name: str) -> Optional[FoodMatch]:
        """Best match for an ingredient, served from the cache when possible.

        Lookup failures are logged and reported as None; they never raise.
        """
        if self._cache is not None:
            cached = self._cache.get(name)
            if cached is not None:
                if cached.get("negative"):
                    return None
                return FoodMatch.model_validate(cached)

        try:
            matches = await self.search_foods(name)
        except (NutritionLookupError, CircuitBreakerOpen) as e:
            print(f"   ⚠️  Nutrition lookup failed for '{name}': {e}", file=sys.stderr)
            return None

        if not matches:
            if self._cache is not None:
                self._cache.set_negative(name)
            return None

        best = matches[0]
        if self._cache is not None:
            self._cache.set(name, best)
        return best
