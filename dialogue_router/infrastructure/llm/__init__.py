from dialogue_router.domain.entities.provider import ProviderSettings

from .base import BaseProviderClient
from .fake import FakeProviderClient
from .ollama import OllamaClient
from .openai_compatible import OpenAICompatibleClient


def create_provider_client(settings: ProviderSettings) -> BaseProviderClient:
    """Выбрать клиент по виду провайдера."""
    if settings.kind == "ollama":
        return OllamaClient(settings)
    if settings.kind == "fake":
        return FakeProviderClient(provider_id=settings.id)
    return OpenAICompatibleClient(settings)


__all__ = [
    "BaseProviderClient",
    "FakeProviderClient",
    "OllamaClient",
    "OpenAICompatibleClient",
    "create_provider_client",
]
