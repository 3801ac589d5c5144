"""
AI service: provider selection, caching and fallback.
"""

from typing import Any, Optional

from loguru import logger

from shared.config import Settings, get_settings
from shared.exceptions import MissingAPIKeyError
from shared.models import AISettings

from .parsing import parse_json_response
from .providers import AIProvider, AIResponse, ProviderConfig, create_provider

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Respond ONLY with valid JSON. No explanations, no markdown, just the JSON."
)


class AIService:
    """
    Routes prompts to the configured provider.

    Providers are cached per (provider, model) pair, so a user switching
    models gets a fresh client while repeated calls reuse the existing one.
    When the primary provider raises, the query is retried once against the
    OpenRouter fallback model before the original error is re-raised.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._providers: dict[tuple[str, str], AIProvider] = {}

    @property
    def default_settings(self) -> AISettings:
        return AISettings(ai_provider=self.settings.ai_provider, ai_model=self.settings.ai_model)

    def _base_url(self, provider: str) -> Optional[str]:
        return {
            "openrouter": self.settings.openrouter_base_url,
            "requesty": self.settings.requesty_base_url,
            "anthropic": self.settings.anthropic_base_url,
        }.get(provider)

    def get_provider(self, ai_settings: Optional[AISettings] = None) -> AIProvider:
        """Get or create the provider for the given settings."""
        ai_settings = ai_settings or self.default_settings
        key = (ai_settings.ai_provider, ai_settings.ai_model)

        if key not in self._providers:
            api_key = self.settings.api_key_for(ai_settings.ai_provider)
            if not api_key:
                raise MissingAPIKeyError(
                    f"No API key found for provider: {ai_settings.ai_provider}"
                )
            self._providers[key] = create_provider(
                ai_settings.ai_provider,
                ProviderConfig(
                    api_key=api_key,
                    model=ai_settings.ai_model,
                    temperature=self.settings.ai_temperature,
                    max_tokens=self.settings.ai_max_tokens,
                    base_url=self._base_url(ai_settings.ai_provider),
                    timeout=self.settings.ai_request_timeout,
                ),
            )
        return self._providers[key]

    async def query(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        ai_settings: Optional[AISettings] = None,
    ) -> AIResponse:
        """Send a prompt to the provider, falling back on failure."""
        ai_settings = ai_settings or self.default_settings
        provider = self.get_provider(ai_settings)

        try:
            response = await provider.query(prompt, system_prompt)
        except Exception as e:
            logger.error(f"AI query error ({ai_settings.label}): {e}")
            return await self._query_with_fallback(prompt, system_prompt, ai_settings, e)

        if response.usage:
            logger.debug(
                f"AI usage - model: {response.model}, tokens: {response.usage.get('total_tokens')}"
            )
        return response

    async def _query_with_fallback(
        self,
        prompt: str,
        system_prompt: Optional[str],
        failed: AISettings,
        original_error: Exception,
    ) -> AIResponse:
        fallback_model = self.settings.ai_fallback_model
        fallback = AISettings(ai_provider="openrouter", ai_model=fallback_model or "")

        if not fallback_model or (failed.ai_provider, failed.ai_model) == (
            fallback.ai_provider,
            fallback.ai_model,
        ):
            raise original_error
        if not self.settings.api_key_for("openrouter"):
            logger.error("No OpenRouter API key available for fallback")
            raise original_error

        logger.info(f"Attempting fallback to {fallback.label}")
        try:
            response = await self.get_provider(fallback).query(prompt, system_prompt)
        except Exception as fallback_error:
            logger.error(f"Fallback to {fallback.label} also failed: {fallback_error}")
            raise original_error from fallback_error

        logger.info(f"Fallback successful - {fallback.label}")
        return response

    async def query_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        ai_settings: Optional[AISettings] = None,
    ) -> Any:
        """Query and parse the response as JSON."""
        json_system_prompt = f"{system_prompt or ''}\n\n{JSON_ONLY_INSTRUCTION}".strip()
        response = await self.query(prompt, json_system_prompt, ai_settings)
        return parse_json_response(response.content)

    async def close(self) -> None:
        """Close all cached provider clients."""
        for provider in self._providers.values():
            await provider.close()
        self._providers.clear()
