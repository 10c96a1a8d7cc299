"""
Кастомные исключения для Dialogue Router.

Этот модуль содержит иерархию исключений для различных
ошибочных ситуаций в системе.
"""

from .base import (
    DialogueRouterError,
    DomainError,
    InfrastructureError
)

from .domain_errors import (
    ProvidersExhaustedError,
    AugmentationError,
    ToolPermissionError,
    UnknownToolError
)

from .infrastructure_errors import (
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderRateLimitError,
    ProviderAuthError,
    ProviderResponseError
)

__all__ = [
    # Базовые исключения
    "DialogueRouterError",
    "DomainError",
    "InfrastructureError",

    # Доменные исключения
    "ProvidersExhaustedError",
    "AugmentationError",
    "ToolPermissionError",
    "UnknownToolError",

    # Инфраструктурные исключения
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderRateLimitError",
    "ProviderAuthError",
    "ProviderResponseError",
]
