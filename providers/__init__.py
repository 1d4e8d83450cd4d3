"""Vision model provider clients."""

from providers.base_provider import VisionProvider, ProviderResult, FailureKind
from providers.huggingface_provider import HuggingFaceProvider
from providers.anthropic_provider import AnthropicProvider
from providers.gemini_provider import GeminiProvider

__all__ = [
    'VisionProvider',
    'ProviderResult',
    'FailureKind',
    'HuggingFaceProvider',
    'AnthropicProvider',
    'GeminiProvider',
    'build_default_providers',
]


def build_default_providers(settings):
    """Providers in priority order, built from AuditSettings."""
    return [
        HuggingFaceProvider(settings.hf_token, settings.hf_model,
                            timeout=settings.provider_timeout, endpoint=settings.hf_endpoint),
        AnthropicProvider(settings.anthropic_api_key, settings.anthropic_model,
                          timeout=settings.provider_timeout),
        GeminiProvider(settings.gemini_api_key, settings.gemini_model,
                       timeout=settings.provider_timeout),
    ]
