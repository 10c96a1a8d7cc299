import abc
from typing import List, Optional

from dialogue_router.models.schemas import ProviderResponse


class BaseProviderClient(abc.ABC):
    """
    Базовый класс для всех клиентов провайдеров.
    Определяет примитив вызова и проверку доступности.
    """

    provider_id: str = "provider"

    @abc.abstractmethod
    async def call(
        self,
        messages: List[dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[dict]] = None,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        """
        Выполняет один chat completion запрос.

        Args:
            messages: Сообщения диалога в формате OpenAI (без system)
            system_prompt: Системный промпт, отправляется первым сообщением
            tools: Определения инструментов (OpenAI function format) или None
            max_tokens: Лимит токенов ответа

        Returns:
            ProviderResponse с текстом и/или запросами инструментов

        Raises:
            ProviderError: таймаут, транспорт, rate limit, auth, некорректный ответ
        """
        pass

    @abc.abstractmethod
    async def probe(self) -> bool:
        """
        Лёгкая проверка доступности (список моделей).

        Returns:
            True если провайдер отвечает
        """
        pass

    async def aclose(self) -> None:
        """Освободить сетевые ресурсы."""
        return None

    @staticmethod
    def with_system_prompt(messages: List[dict], system_prompt: Optional[str]) -> List[dict]:
        full_messages = []
        if system_prompt:
            full_messages.append({"role": "system", "content": system_prompt})
        full_messages.extend(messages)
        return full_messages
