"""
Доменные исключения.

Исключения для ошибок бизнес-логики маршрутизации.
"""

from typing import Optional, Dict, Any, List

from .base import DomainError


class ProvidersExhaustedError(DomainError):
    """
    Исключение: все провайдеры во всех tier'ах недоступны.

    Выбрасывается ProviderRegistry.execute() и преобразуется оркестратором
    в Emergency Response; вызывающему коду не пробрасывается.

    Атрибуты:
        attempts: Список (provider_id, причина) по каждой попытке

    Пример:
        >>> raise ProvidersExhaustedError([("kimi", "timeout"), ("ollama", "skipped: dead")])
    """

    def __init__(self, attempts: List[tuple], details: Optional[Dict[str, Any]] = None):
        self.attempts = list(attempts)
        message = f"All providers exhausted ({len(self.attempts)} candidates)"
        super().__init__(
            message=message,
            details={"attempts": [f"{pid}: {reason}" for pid, reason in self.attempts], **(details or {})},
            error_code="PROVIDERS_EXHAUSTED"
        )


class AugmentationError(DomainError):
    """
    Исключение: коллаборатор контекста не смог построить свой сегмент.

    Обрабатывается локально: промпт деградирует до минимального.
    """

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Context source '{source}' failed: {reason}",
            details={"source": source},
            error_code="AUGMENTATION_FAILED"
        )


class ToolPermissionError(DomainError):
    """Инструмент доступен только привилегированным пользователям."""

    def __init__(self, tool_name: str):
        super().__init__(
            message=f"{tool_name} is only available to admin users.",
            details={"tool_name": tool_name},
            error_code="TOOL_PERMISSION_DENIED"
        )


class UnknownToolError(DomainError):
    """Запрошенный инструмент не зарегистрирован."""

    def __init__(self, tool_name: str):
        super().__init__(
            message=f"Unknown tool: {tool_name}",
            details={"tool_name": tool_name},
            error_code="UNKNOWN_TOOL"
        )
