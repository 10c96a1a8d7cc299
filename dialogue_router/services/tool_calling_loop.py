"""
Tool-Calling Loop.

Ограниченное число раундов запрос/ответ с одним провайдером. Если провайдер
просит вызвать инструменты, они исполняются через внешний исполнитель, результаты
добавляются в диалог в порядке запроса, и начинается следующий раунд.

Отказ инструмента (нет прав, таймаут, непредвиденная ошибка) возвращается провайдеру
как структурированный контент и не считается ошибкой провайдера.

После того как инструменты исполнены, попытка не отдаёт ход следующему провайдеру:
сбой в последующем раунде завершается текстовым вызовом того же провайдера.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from dialogue_router.core.errors import ProviderResponseError, ProviderTimeoutError
from dialogue_router.domain.entities.provider import ProviderDescriptor
from dialogue_router.domain.value_objects.attempt_result import AttemptResult
from dialogue_router.infrastructure.tools.tool_registry import ToolExecutor
from dialogue_router.models.schemas import ProviderResponse, ToolCall, ToolInvocation, UsageInfo

logger = logging.getLogger("dialogue-router.tool_calling_loop")

INCOMPLETE_CONTENT = "I couldn't complete that request. Please try a simpler question."


class ToolCallingLoop:
    """
    Исполнитель одной попытки против конкретного провайдера.

    Атрибуты:
        max_rounds: Максимум раундов (вызовов провайдера) на попытку
        call_timeout: Таймаут одного вызова провайдера (секунды)
        tool_timeout: Таймаут одного вызова инструмента (секунды)
        tool_concurrency: Сколько инструментов одного раунда исполняется одновременно
        max_tokens: Лимит токенов ответа
    """

    def __init__(
        self,
        max_rounds: int = 3,
        call_timeout: float = 60.0,
        tool_timeout: float = 45.0,
        tool_concurrency: int = 4,
        max_tokens: int = 4096,
    ):
        self.max_rounds = max(1, max_rounds)
        self.call_timeout = call_timeout
        self.tool_timeout = tool_timeout
        self.tool_concurrency = max(1, tool_concurrency)
        self.max_tokens = max_tokens

    async def call_provider(
        self,
        provider: ProviderDescriptor,
        messages: List[dict],
        system_prompt: Optional[str],
        tools: Optional[List[dict]] = None,
    ) -> ProviderResponse:
        """Один вызов провайдера, ограниченный таймаутом."""
        timeout = provider.settings.timeout or self.call_timeout
        try:
            return await asyncio.wait_for(
                provider.client.call(
                    messages,
                    system_prompt=system_prompt,
                    tools=tools,
                    max_tokens=self.max_tokens,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(provider.id, timeout) from e

    async def run_single(
        self,
        provider: ProviderDescriptor,
        messages: List[dict],
        system_prompt: Optional[str],
    ) -> AttemptResult:
        """Один вызов без инструментов. Пустой ответ считается ошибкой провайдера."""
        response = await self.call_provider(provider, messages, system_prompt)
        if not (response.content or "").strip():
            raise ProviderResponseError(provider.id, "returned empty content")
        return AttemptResult.success(provider.id, response, rounds=1)

    async def run(
        self,
        provider: ProviderDescriptor,
        messages: List[dict],
        tools: List[dict],
        tool_executor: ToolExecutor,
        system_prompt: Optional[str] = None,
        is_admin: bool = False,
        max_rounds: Optional[int] = None,
    ) -> AttemptResult:
        """
        Прогнать цикл вызова инструментов.

        Args:
            provider: Провайдер текущей попытки
            messages: Диалог в формате OpenAI (без system)
            tools: Определения инструментов
            tool_executor: Внешний исполнитель инструментов
            system_prompt: Системный промпт (отправляется каждый раунд)
            is_admin: Флаг привилегий, передаётся исполнителю
            max_rounds: Переопределение лимита раундов

        Returns:
            AttemptResult.success с финальным текстом

        Raises:
            ProviderError: ошибка провайдера до исполнения инструментов (передаёт ход цепочке)
        """
        rounds_limit = max(1, max_rounds or self.max_rounds)
        current = list(messages)
        usage = UsageInfo()
        invocations: List[ToolInvocation] = []
        last_text: Optional[str] = None
        model: Optional[str] = None

        for round_no in range(1, rounds_limit + 1):
            try:
                response = await self.call_provider(provider, current, system_prompt, tools)
            except Exception as e:
                # Инструменты уже исполнены: смена провайдера повторила бы их побочные эффекты
                if not invocations:
                    raise
                return await self._recover(
                    provider, current, system_prompt, usage, model, last_text, invocations, round_no, str(e)
                )

            if response.usage:
                usage = usage + response.usage
            model = response.model or model
            text = (response.content or "").strip()
            if text:
                last_text = response.content

            if not response.has_tool_calls:
                if not text and last_text is None:
                    if not invocations:
                        raise ProviderResponseError(provider.id, f"returned empty content in round {round_no}")
                    return await self._recover(
                        provider, current, system_prompt, usage, model, last_text, invocations, round_no,
                        f"empty content in round {round_no}",
                    )
                return AttemptResult.success(
                    provider.id,
                    ProviderResponse(content=last_text, usage=usage, model=model),
                    rounds=round_no,
                    tool_invocations=invocations,
                )

            if round_no == rounds_limit:
                logger.warning(
                    f"[{provider.id}] Tool loop hit max rounds ({rounds_limit}), "
                    f"dropping {len(response.tool_calls)} pending tool calls"
                )
                break

            tool_calls = self._normalize_ids(response.tool_calls, round_no)
            current.append({
                "role": "assistant",
                "content": response.content or None,
                "tool_calls": [tc.model_dump() for tc in tool_calls],
            })

            results = await self._execute_round(tool_calls, tool_executor, is_admin)
            invocations.extend(results)
            for invocation in results:
                current.append({
                    "role": "tool",
                    "tool_call_id": invocation.call_id,
                    "content": self._serialize(invocation),
                })

        return AttemptResult.success(
            provider.id,
            ProviderResponse(content=last_text or INCOMPLETE_CONTENT, usage=usage, model=model),
            rounds=rounds_limit,
            tool_invocations=invocations,
        )

    async def _recover(
        self,
        provider: ProviderDescriptor,
        messages: List[dict],
        system_prompt: Optional[str],
        usage: UsageInfo,
        model: Optional[str],
        last_text: Optional[str],
        invocations: List[ToolInvocation],
        round_no: int,
        reason: str,
    ) -> AttemptResult:
        """
        Завершить попытку на том же провайдере после сбоя в раунде с уже исполненными инструментами.

        Делается один вызов без tools. Если и он не дал текста, возвращается
        последний увиденный текст или INCOMPLETE_CONTENT.
        """
        logger.warning(
            f"[{provider.id}] Round {round_no} failed after {len(invocations)} tool calls ({reason}), "
            f"requesting a text-only answer"
        )
        content = last_text
        try:
            response = await self.call_provider(provider, messages, system_prompt)
        except Exception as e:
            logger.error(f"[{provider.id}] Text-only recovery call failed: {e}")
        else:
            if response.usage:
                usage = usage + response.usage
            model = response.model or model
            if (response.content or "").strip():
                content = response.content

        return AttemptResult.success(
            provider.id,
            ProviderResponse(content=content or INCOMPLETE_CONTENT, usage=usage, model=model),
            rounds=round_no,
            tool_invocations=invocations,
        )

    @staticmethod
    def _normalize_ids(tool_calls: List[ToolCall], round_no: int) -> List[ToolCall]:
        """Некоторые провайдеры не присылают id: генерируем стабильные."""
        normalized = []
        for index, tc in enumerate(tool_calls):
            if tc.id:
                normalized.append(tc)
            else:
                normalized.append(tc.model_copy(update={"id": f"call_{round_no}_{index}_{uuid.uuid4().hex[:8]}"}))
        return normalized

    async def _execute_round(
        self,
        tool_calls: List[ToolCall],
        tool_executor: ToolExecutor,
        is_admin: bool,
    ) -> List[ToolInvocation]:
        """Исполнить инструменты раунда параллельно; порядок результатов = порядок запроса."""
        semaphore = asyncio.Semaphore(self.tool_concurrency)

        async def execute(tc: ToolCall) -> ToolInvocation:
            async with semaphore:
                return await self._execute_one(tc, tool_executor, is_admin)

        return list(await asyncio.gather(*(execute(tc) for tc in tool_calls)))

    async def _execute_one(self, tc: ToolCall, tool_executor: ToolExecutor, is_admin: bool) -> ToolInvocation:
        name = tc.function.name
        args = self._parse_arguments(tc)
        invocation = ToolInvocation(call_id=tc.id, name=name, arguments=args)

        try:
            result = await asyncio.wait_for(
                tool_executor.execute_tool(name, args, is_admin=is_admin),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Tool '{name}' timed out after {self.tool_timeout:g}s")
            invocation.error = f"Tool {name} timed out after {self.tool_timeout:g}s"
            return invocation
        except Exception as e:
            logger.error(f"Tool '{name}' failed: {e}", exc_info=True)
            invocation.error = f"Tool {name} failed: {e}"
            return invocation

        if isinstance(result, dict) and result.get("error"):
            logger.info(f"Tool '{name}' rejected: {result['error']}")
            invocation.error = str(result["error"])
        invocation.result = result
        return invocation

    @staticmethod
    def _parse_arguments(tc: ToolCall) -> Dict[str, Any]:
        try:
            args = json.loads(tc.function.arguments or "{}")
        except (TypeError, ValueError):
            logger.warning(f"Bad tool args for {tc.function.name}: {tc.function.arguments!r}")
            return {}
        return args if isinstance(args, dict) else {}

    @staticmethod
    def _serialize(invocation: ToolInvocation) -> str:
        if invocation.error and not isinstance(invocation.result, dict):
            return json.dumps(
                {"error": invocation.error, "note": "Do NOT guess or invent data. Tell the user the tool failed."},
                ensure_ascii=False,
            )
        if isinstance(invocation.result, str):
            return invocation.result
        if invocation.result is None:
            return json.dumps({"error": "no result"})
        return json.dumps(invocation.result, ensure_ascii=False, default=str)
