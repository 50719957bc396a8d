"""
AI Provider Interface

Optional language-model backends for the workflow compiler. Every call is
wrapped in exponential backoff with jitter for transient failures.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import asyncio
import json
import logging
import random

from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

logger = logging.getLogger(__name__)

# ─── Retry Configuration ───────────────────────────────────────────

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0       # seconds
DEFAULT_MAX_DELAY = 30.0       # seconds
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_JITTER = 0.5           # ±50% jitter

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 529}

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o-mini",
}


def _is_retryable(exc: Exception) -> bool:
    """Return True if the exception is a transient failure worth retrying."""
    if getattr(exc, "status_code", None) in _RETRYABLE_STATUS_CODES:
        return True
    response = getattr(exc, "response", None)
    if getattr(response, "status_code", None) in _RETRYABLE_STATUS_CODES:
        return True
    err_name = type(exc).__name__.lower()
    return any(kw in err_name for kw in ("timeout", "connection", "overloaded", "ratelimit"))


async def _retry_with_backoff(
    fn,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    jitter: float = DEFAULT_JITTER,
):
    """
    Execute `fn` (an async callable returning a value) with exponential backoff.
    Retries only on transient / rate-limit errors.
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_retries or not _is_retryable(exc):
                raise
            delay = min(base_delay * (backoff_factor ** attempt), max_delay)
            delay *= 1.0 + random.uniform(-jitter, jitter)
            delay = max(0.1, delay)
            logger.warning(
                "Model call failed (attempt %d/%d): %s, retrying in %.1fs",
                attempt + 1, max_retries + 1, exc, delay,
            )
            await asyncio.sleep(delay)


def extract_json(response_text: str) -> Dict[str, Any]:
    """Parse a JSON object out of a model reply, tolerating markdown fences."""
    if "```json" in response_text:
        start = response_text.find("```json") + 7
        end = response_text.find("```", start)
        response_text = response_text[start:end].strip()
    elif "```" in response_text:
        start = response_text.find("```") + 3
        end = response_text.find("```", start)
        response_text = response_text[start:end].strip()

    parsed = json.loads(response_text)
    if not isinstance(parsed, dict):
        raise ValueError("model reply is not a JSON object")
    return parsed


class AIProvider(ABC):
    """Abstract base class for AI providers"""

    name: str = "abstract"

    @abstractmethod
    async def generate_with_json(
        self,
        user_prompt: str,
        *,
        system_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        """Generate a JSON object response."""


class OpenAIProvider(AIProvider):
    """OpenAI chat-completions provider"""

    name = "openai"

    def __init__(self, api_key: str, model: str = DEFAULT_MODELS["openai"]):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def generate_with_json(
        self,
        user_prompt: str,
        *,
        system_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": f"{system_prompt}\n\nRespond with valid JSON only."})
        messages.append({"role": "user", "content": user_prompt})

        async def _call():
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0,
            )
            return response.choices[0].message.content

        return extract_json(await _retry_with_backoff(_call))


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider. Caches the system prompt when provided."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = DEFAULT_MODELS["anthropic"]):
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate_with_json(
        self,
        user_prompt: str,
        *,
        system_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        create_kwargs: Dict[str, Any] = {}
        if system_prompt:
            create_kwargs["system"] = [
                {
                    "type": "text",
                    "text": f"{system_prompt}\n\nRespond with valid JSON only.",
                    "cache_control": {"type": "ephemeral"},
                }
            ]
        else:
            user_prompt = f"Respond with valid JSON only.\n\n{user_prompt}"

        async def _call():
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=4096,
                temperature=0,
                messages=[{"role": "user", "content": user_prompt}],
                **create_kwargs
            )
            return response.content[0].text

        return extract_json(await _retry_with_backoff(_call))


def get_provider(api_key: str, model: Optional[str] = None, provider: str = "anthropic") -> AIProvider:
    """Factory function to get AI provider

    Args:
        api_key: API key for the provider
        model: Model name (optional, uses default for provider)
        provider: Provider name ('openai' or 'anthropic')
    """
    provider = provider.lower()
    if provider == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model or DEFAULT_MODELS["anthropic"])
    if provider == "openai":
        return OpenAIProvider(api_key=api_key, model=model or DEFAULT_MODELS["openai"])
    raise ValueError(f"Invalid AI provider: {provider}. Must be 'openai' or 'anthropic'")
