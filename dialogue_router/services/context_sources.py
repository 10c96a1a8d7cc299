"""
Коллабораторы контекста для системного промпта.

Каждый источник возвращает строку; пустая строка означает "нечего добавить".
Ошибка любого источника оборачивается в AugmentationError, а оркестратор
деградирует до минимального промпта.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from dialogue_router.core.errors import AugmentationError

logger = logging.getLogger("dialogue-router.context_sources")

ContextBuilder = Callable[..., Union[str, Awaitable[str]]]


class ContextSource(Protocol):
    name: str

    async def build(self, is_admin: bool = False) -> str:
        ...


class StaticContextSource:
    """Источник с фиксированным текстом (например, политики из конфигурации)."""

    def __init__(self, name: str, text: str = ""):
        self.name = name
        self.text = text

    async def build(self, is_admin: bool = False) -> str:
        return self.text


class CallableContextSource:
    """
    Источник поверх функции приложения.

    Функция может быть синхронной или async; если она объявляет параметр
    is_admin, флаг привилегий передаётся ей.
    """

    def __init__(self, name: str, builder: ContextBuilder):
        self.name = name
        self._builder = builder
        self._wants_admin = "is_admin" in inspect.signature(builder).parameters

    async def build(self, is_admin: bool = False) -> str:
        result = self._builder(is_admin=is_admin) if self._wants_admin else self._builder()
        if inspect.isawaitable(result):
            result = await result
        return result or ""


class ContextBundle:
    """Собранный контекст одного запроса."""

    def __init__(self, live: str = "", policy: str = "", dynamic: Sequence[str] = ()):
        self.live = live
        self.policy = policy
        self.dynamic = list(dynamic)


class ContextSources:
    """
    Набор источников: live state, политики и произвольные динамические блоки.

    Пример:
        >>> sources = ContextSources(
        ...     live=CallableContextSource("fleet", build_fleet_summary),
        ...     policy=StaticContextSource("policy", AppConfig.POLICY_TEXT),
        ... )
        >>> bundle = await sources.gather(is_admin=False)
    """

    def __init__(
        self,
        live: Optional[ContextSource] = None,
        policy: Optional[ContextSource] = None,
        dynamic: Optional[List[ContextSource]] = None,
    ):
        self.live = live
        self.policy = policy
        self.dynamic = list(dynamic or [])

    async def gather(self, is_admin: bool = False) -> ContextBundle:
        """
        Построить все сегменты параллельно.

        Raises:
            AugmentationError: любой источник завершился ошибкой
        """
        live, policy, *dynamic = await asyncio.gather(
            self._build(self.live, is_admin),
            self._build(self.policy, is_admin),
            *(self._build(source, is_admin) for source in self.dynamic),
        )
        return ContextBundle(live=live, policy=policy, dynamic=dynamic)

    @staticmethod
    async def _build(source: Optional[ContextSource], is_admin: bool) -> str:
        if source is None:
            return ""
        try:
            text = await source.build(is_admin=is_admin)
        except Exception as e:
            raise AugmentationError(source.name, str(e)) from e
        if text is not None and not isinstance(text, str):
            raise AugmentationError(source.name, f"expected str, got {type(text).__name__}")
        return text or ""
