"""Model backends: the cloud provider (via litellm) and a local Ollama runtime.

Both expose a small async surface so the orchestrator and the generator can
be tested with in-process fakes:

- CloudModelClient.list_models() / generate(model, prompt, image=None)
- LocalModelClient.health_check() / generate(prompt, weekly=False)
"""

from __future__ import annotations

import base64
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from litellm import acompletion

from generation_errors import TransientProviderError
from llm_config import (
    DEFAULT_CLOUD_API_BASE,
    DEFAULT_CLOUD_MODEL_PREFIX,
    DEFAULT_LOCAL_BASE_URL,
    DEFAULT_LOCAL_MODEL,
    DISCOVERY_TIMEOUT_SECONDS,
    LOCAL_DAY_MAX_TOKENS,
    LOCAL_DAY_TIMEOUT_SECONDS,
    LOCAL_HEALTH_TIMEOUT_SECONDS,
    LOCAL_SAMPLING_OPTIONS,
    LOCAL_WEEK_MAX_TOKENS,
    LOCAL_WEEK_TIMEOUT_SECONDS,
    MODEL_PRIORITY_ORDER,
)

CompletionFn = Callable[..., Awaitable[Any]]


def rank_models(names: Sequence[str], priority: Sequence[str] = MODEL_PRIORITY_ORDER) -> List[str]:
    """Order model names by the priority list; unknown models keep their order after."""
    order = {name: index for index, name in enumerate(priority)}
    unique = list(dict.fromkeys(names))
    return sorted(unique, key=lambda name: order.get(name, len(order)))


def _message_text(response: Any) -> str:
    """Pull the assistant text out of a litellm ModelResponse (or a plain dict)."""
    try:
        choice = response.choices[0]
        message = choice.message
        content = message.content if hasattr(message, "content") else message.get("content")
    except (AttributeError, IndexError, KeyError, TypeError):
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
    return content or ""


def _sniff_image_mime(image: bytes) -> str:
    if image.startswith(b"\x89PNG"):
        return "image/png"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


class CloudModelClient:
    """Gemini-family cloud models: REST discovery plus litellm generation."""

    def __init__(
        self,
        api_key: str,
        api_base: str = DEFAULT_CLOUD_API_BASE,
        model_prefix: str = DEFAULT_CLOUD_MODEL_PREFIX,
        http_client: Optional[httpx.AsyncClient] = None,
        completion: Optional[CompletionFn] = None,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.model_prefix = model_prefix
        self._http_client = http_client
        self._completion = completion or acompletion

    async def list_models(self) -> List[str]:
        """Discover models that support content generation, best first."""
        url = f"{self.api_base}/models"
        params = {"key": self.api_key}
        if self._http_client is not None:
            response = await self._http_client.get(
                url, params=params, timeout=DISCOVERY_TIMEOUT_SECONDS
            )
        else:
            async with httpx.AsyncClient(timeout=DISCOVERY_TIMEOUT_SECONDS) as client:
                response = await client.get(url, params=params)
        response.raise_for_status()

        names: List[str] = []
        for entry in response.json().get("models", []):
            methods = entry.get("supportedGenerationMethods") or []
            name = str(entry.get("name", "")).replace("models/", "", 1)
            if "generateContent" in methods and "gemini" in name.lower():
                names.append(name)
        return rank_models(names)

    async def generate(self, model: str, prompt: str, image: Optional[bytes] = None) -> str:
        """Run one completion and return the raw text.

        Raises:
            TransientProviderError: when the model answers with empty text
            Exception: whatever litellm raises; the orchestrator classifies it
        """
        content: Any = prompt
        if image:
            encoded = base64.b64encode(image).decode("ascii")
            content = [
                {"type": "text", "text": prompt},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{_sniff_image_mime(image)};base64,{encoded}"},
                },
            ]

        response = await self._completion(
            model=f"{self.model_prefix}{model}",
            messages=[{"role": "user", "content": content}],
            api_key=self.api_key,
        )
        text = _message_text(response)
        if not text.strip():
            raise TransientProviderError(f"Empty response from {model}")
        return text


class LocalModelClient:
    """Ollama-compatible local runtime used when the cloud path fails."""

    def __init__(
        self,
        base_url: str = DEFAULT_LOCAL_BASE_URL,
        model: str = DEFAULT_LOCAL_MODEL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._http_client = http_client

    async def _request(self, method: str, path: str, timeout: float, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._http_client is not None:
            return await self._http_client.request(method, url, timeout=timeout, **kwargs)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.request(method, url, **kwargs)

    async def health_check(self) -> bool:
        """True when the runtime answers /api/tags within the health timeout."""
        try:
            response = await self._request("GET", "/api/tags", LOCAL_HEALTH_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            print(f"   ⚠️  Local runtime unreachable at {self.base_url}: {e}", file=sys.stderr)
            return False
        return response.status_code == 200

    async def generate(self, prompt: str, weekly: bool = False) -> str:
        """Single non-streaming generation; longer budget for weekly prompts."""
        options: Dict[str, Any] = dict(LOCAL_SAMPLING_OPTIONS)
        options["num_predict"] = LOCAL_WEEK_MAX_TOKENS if weekly else LOCAL_DAY_MAX_TOKENS
        timeout = LOCAL_WEEK_TIMEOUT_SECONDS if weekly else LOCAL_DAY_TIMEOUT_SECONDS

        try:
            response = await self._request(
                "POST",
                "/api/generate",
                timeout,
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                    "options": options,
                },
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                f"Local model {self.model} timed out after {timeout:.0f}s"
            ) from e
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Local model {self.model} request failed: {e}") from e

        text = response.json().get("response") or ""
        if not text.strip():
            raise TransientProviderError(f"Empty response from local model {self.model}")
        return text
