from .anthropic_client import AnthropicProvider
from .base import Provider
from .gemini_client import GeminiProvider
from .openai_client import OpenAIProvider

PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}

__all__ = [
    "PROVIDERS",
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "Provider",
]
