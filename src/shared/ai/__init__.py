# AI provider layer: provider implementations, JSON parsing and the service facade
from .parsing import parse_json_response
from .providers import (
    AIProvider,
    AIResponse,
    AnthropicProvider,
    GeminiProvider,
    OpenAIProvider,
    ProviderConfig,
    create_provider,
)
from .service import AIService

__all__ = [
    "AIProvider",
    "AIResponse",
    "AIService",
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "ProviderConfig",
    "create_provider",
    "parse_json_response",
]
