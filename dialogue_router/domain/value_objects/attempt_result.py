"""
Value Object для результата одной попытки вызова провайдера.

Вместо исключений как управляющего потока цепочка ротации получает
явный вариант: Success(payload) | Retryable(reason) | Fatal(reason).
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from dialogue_router.core.errors import ProviderError
from dialogue_router.models.schemas import ProviderResponse, ToolInvocation


class AttemptStatus(str, Enum):
    """Исход попытки."""

    SUCCESS = "success"  # Провайдер дал непустой ответ
    RETRYABLE = "retryable"  # Временная ошибка, счётчик ошибок +1
    FATAL = "fatal"  # Провайдер непригоден до повторной проверки


class AttemptResult(BaseModel):
    """
    Результат одной попытки.

    Examples:
        >>> AttemptResult.retryable("kimi", "timed out after 60s").is_success
        False
    """

    provider_id: str
    status: AttemptStatus
    response: Optional[ProviderResponse] = None
    tool_invocations: List[ToolInvocation] = []
    rounds: int = 0
    reason: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def success(
        cls,
        provider_id: str,
        response: ProviderResponse,
        rounds: int = 1,
        tool_invocations: Optional[List[ToolInvocation]] = None,
    ) -> "AttemptResult":
        return cls(
            provider_id=provider_id,
            status=AttemptStatus.SUCCESS,
            response=response,
            rounds=rounds,
            tool_invocations=tool_invocations or [],
        )

    @classmethod
    def retryable(cls, provider_id: str, reason: str) -> "AttemptResult":
        return cls(provider_id=provider_id, status=AttemptStatus.RETRYABLE, reason=reason)

    @classmethod
    def fatal(cls, provider_id: str, reason: str) -> "AttemptResult":
        return cls(provider_id=provider_id, status=AttemptStatus.FATAL, reason=reason)

    @classmethod
    def from_error(cls, provider_id: str, error: Exception) -> "AttemptResult":
        """
        Преобразовать исключение попытки в вариант.

        ProviderError с retryable=False -> FATAL, всё остальное -> RETRYABLE.
        """
        if isinstance(error, ProviderError) and not error.retryable:
            return cls.fatal(provider_id, error.message)
        reason = error.message if isinstance(error, ProviderError) else f"{type(error).__name__}: {error}"
        return cls.retryable(provider_id, reason)

    @property
    def is_success(self) -> bool:
        return self.status == AttemptStatus.SUCCESS
