"""
Реестр инструментов: эталонная реализация исполнителя инструментов.

Конкретные инструменты (поиск, бронирования, память) регистрируются приложением.
Отказы по бизнес-правилам (нет прав, неизвестный инструмент) возвращаются
структурированным значением {"error": ...}; исключение выбрасывается только
при непредвиденной ошибке обработчика.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from dialogue_router.core.errors import ToolPermissionError, UnknownToolError

logger = logging.getLogger("dialogue-router.tool_registry")

ToolHandler = Callable[..., Union[Any, Awaitable[Any]]]


class ToolExecutor(Protocol):
    async def execute_tool(self, name: str, args: Dict[str, Any], is_admin: bool = False) -> Any:
        ...


def tool_spec(name: str, description: str, parameters: Optional[dict] = None) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": parameters or {"type": "object", "properties": {}},
        },
    }


class _RegisteredTool:
    __slots__ = ("name", "handler", "spec", "admin_only")

    def __init__(self, name: str, handler: ToolHandler, spec: dict, admin_only: bool):
        self.name = name
        self.handler = handler
        self.spec = spec
        self.admin_only = admin_only


class ToolRegistry:
    """
    Регистрирует обработчики инструментов и исполняет их по имени.

    Обработчик получает аргументы как keyword-параметры; если он объявляет
    параметр is_admin, флаг привилегий передаётся ему тоже.

    Пример:
        >>> registry = ToolRegistry()
        >>> registry.register("get_pricing", get_pricing, "Get rental pricing")
        >>> await registry.execute_tool("get_pricing", {})
    """

    def __init__(self):
        self._tools: Dict[str, _RegisteredTool] = {}

    def register(
        self,
        name: str,
        handler: ToolHandler,
        description: str,
        parameters: Optional[dict] = None,
        admin_only: bool = False,
    ) -> None:
        if name in self._tools:
            logger.warning(f"Tool '{name}' is already registered, replacing")
        self._tools[name] = _RegisteredTool(
            name, handler, tool_spec(name, description, parameters), admin_only
        )
        logger.info(f"Registered tool: {name}{' (admin only)' if admin_only else ''}")

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_specs(self, is_admin: bool = False) -> List[dict]:
        """Определения инструментов в формате OpenAI functions."""
        return [t.spec for t in self._tools.values() if is_admin or not t.admin_only]

    async def execute_tool(self, name: str, args: Dict[str, Any], is_admin: bool = False) -> Any:
        tool = self._tools.get(name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {name}")
            return {"error": UnknownToolError(name).message}

        if tool.admin_only and not is_admin:
            logger.info(f"Tool '{name}' denied for non-admin caller")
            return {"error": ToolPermissionError(name).message}

        signature = inspect.signature(tool.handler)
        kwargs = dict(args or {})
        if "is_admin" in signature.parameters:
            kwargs["is_admin"] = is_admin

        try:
            signature.bind(**kwargs)
        except TypeError as e:
            # Аргументы не подходят под сигнатуру: ошибка запроса модели
            logger.warning(f"Bad arguments for tool '{name}': {e}")
            return {"error": f"Invalid arguments for {name}: {e}"}

        result = tool.handler(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __len__(self) -> int:
        return len(self._tools)
