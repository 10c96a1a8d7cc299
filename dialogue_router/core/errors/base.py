"""
Базовые исключения для Dialogue Router.

Определяет иерархию исключений для различных слоев приложения.
"""

from typing import Optional, Dict, Any


class DialogueRouterError(Exception):
    """
    Базовое исключение для всех ошибок Dialogue Router.

    Атрибуты:
        message: Сообщение об ошибке
        details: Дополнительные детали ошибки
        error_code: Код ошибки для идентификации

    Пример:
        >>> try:
        ...     raise DialogueRouterError("Something went wrong")
        ... except DialogueRouterError as e:
        ...     print(f"Error: {e}")
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.details = details or {}
        self.error_code = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Преобразовать исключение в словарь.

        Returns:
            Словарь с информацией об ошибке
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class DomainError(DialogueRouterError):
    """Ошибки бизнес-логики: исчерпание провайдеров, отказ инструмента и т.д."""
    pass


class InfrastructureError(DialogueRouterError):
    """Ошибки работы с внешними системами: провайдеры, сеть."""
    pass
