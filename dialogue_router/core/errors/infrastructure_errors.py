"""
Инфраструктурные исключения.

Ошибки вызова провайдеров. Каждая ошибка знает, к какому провайдеру относится
и является ли она временной (retryable) или фатальной для провайдера.
"""

from typing import Optional, Dict, Any

from .base import InfrastructureError


class ProviderError(InfrastructureError):
    """
    Исключение: вызов провайдера завершился ошибкой.

    Атрибуты:
        provider_id: Идентификатор провайдера
        retryable: True для временных ошибок (таймаут, сеть, 429, 5xx)

    Пример:
        >>> raise ProviderError("groq", "API 502: bad gateway")
    """

    def __init__(
        self,
        provider_id: str,
        message: str,
        retryable: bool = True,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.provider_id = provider_id
        self.retryable = retryable
        super().__init__(
            message=f"{provider_id}: {message}",
            details={"provider_id": provider_id, **(details or {})},
            error_code=error_code or "PROVIDER_ERROR"
        )


class ProviderTimeoutError(ProviderError):
    """Попытка превысила таймаут вызова."""

    def __init__(self, provider_id: str, timeout: float):
        super().__init__(
            provider_id,
            f"timed out after {timeout:g}s",
            retryable=True,
            details={"timeout": timeout},
            error_code="PROVIDER_TIMEOUT"
        )


class ProviderUnavailableError(ProviderError):
    """Транспортная ошибка: соединение отклонено, сброшено и т.д."""

    def __init__(self, provider_id: str, message: str):
        super().__init__(provider_id, message, retryable=True, error_code="PROVIDER_UNAVAILABLE")


class ProviderRateLimitError(ProviderError):
    """Провайдер вернул 429."""

    def __init__(self, provider_id: str, message: str = "rate limited"):
        super().__init__(provider_id, message, retryable=True, error_code="PROVIDER_RATE_LIMITED")


class ProviderAuthError(ProviderError):
    """Ошибка аутентификации/биллинга (401, 402, 403). Фатальна для провайдера."""

    def __init__(self, provider_id: str, status_code: int, message: str = "auth failed"):
        super().__init__(
            provider_id,
            message,
            retryable=False,
            details={"status_code": status_code},
            error_code="PROVIDER_AUTH_FAILED"
        )


class ProviderResponseError(ProviderError):
    """Некорректный или пустой ответ провайдера."""

    def __init__(self, provider_id: str, message: str, retryable: bool = True):
        super().__init__(provider_id, message, retryable=retryable, error_code="PROVIDER_BAD_RESPONSE")
