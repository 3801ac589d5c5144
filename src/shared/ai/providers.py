"""
Language-model providers behind a single query(prompt, system_prompt) interface.

OpenAI, OpenRouter and Requesty share the OpenAI-compatible chat completions
API; Anthropic is called over its Messages API; Gemini uses google-genai.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import httpx
from google import genai
from google.genai import types
from loguru import logger
from openai import AsyncOpenAI

from shared.exceptions import AIProviderError, UnsupportedProviderError


@dataclass
class AIResponse:
    """Text returned by a provider, normalized across APIs."""

    content: str
    model: str = ""
    usage: Optional[dict[str, int]] = None


@dataclass
class ProviderConfig:
    """Connection settings for one provider/model pair."""

    api_key: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 4000
    base_url: Optional[str] = None
    timeout: float = 120.0


class AIProvider(Protocol):
    config: ProviderConfig

    async def query(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        ...

    async def close(self) -> None:
        ...


class OpenAIProvider:
    """OpenAI-compatible chat completions (OpenAI, OpenRouter, Requesty)."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    async def query(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

        if not response.choices:
            raise AIProviderError(f"Empty completion from {self.config.model}")

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return AIResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self.config.model,
            usage=usage,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class AnthropicProvider:
    """Anthropic Messages API over httpx."""

    API_VERSION = "2023-06-01"

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.base_url = (config.base_url or "https://api.anthropic.com").rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def query(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        client = await self._get_client()

        body: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt

        try:
            response = await client.post(
                f"{self.base_url}/v1/messages", headers=self.headers, json=body
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AIProviderError(
                f"Anthropic API error {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise AIProviderError(f"Anthropic request failed: {e}") from e

        data = response.json()
        blocks = data.get("content") or []
        if isinstance(blocks, str):
            content = blocks
        else:
            content = "".join(b.get("text", "") for b in blocks if isinstance(b, dict))

        usage = None
        if data.get("usage"):
            input_tokens = data["usage"].get("input_tokens", 0)
            output_tokens = data["usage"].get("output_tokens", 0)
            usage = {
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }
        return AIResponse(content=content, model=data.get("model", self.config.model), usage=usage)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


class GeminiProvider:
    """Google Gemini via the google-genai async client."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.config.api_key)
        return self._client

    async def query(self, prompt: str, system_prompt: Optional[str] = None) -> AIResponse:
        response = await self.client.aio.models.generate_content(
            model=self.config.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt or None,
                temperature=self.config.temperature,
                max_output_tokens=self.config.max_tokens,
            ),
        )

        usage = None
        meta = response.usage_metadata
        if meta is not None:
            usage = {
                "prompt_tokens": meta.prompt_token_count or 0,
                "completion_tokens": meta.candidates_token_count or 0,
                "total_tokens": meta.total_token_count or 0,
            }
        return AIResponse(content=response.text or "", model=self.config.model, usage=usage)

    async def close(self) -> None:
        self._client = None


PROVIDERS: dict[str, Callable[[ProviderConfig], AIProvider]] = {
    "openai": OpenAIProvider,
    "openrouter": OpenAIProvider,
    "requesty": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


def create_provider(provider_type: str, config: ProviderConfig) -> AIProvider:
    """Instantiate the provider registered for provider_type."""
    factory = PROVIDERS.get(provider_type)
    if factory is None:
        raise UnsupportedProviderError(f"Unsupported AI provider: {provider_type}")
    logger.debug(f"Creating {provider_type} provider for model {config.model}")
    return factory(config)
