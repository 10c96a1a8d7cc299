import logging
import pprint
from typing import Callable, List, Optional, Sequence, Union

from dialogue_router.models.schemas import ProviderResponse

from .base import BaseProviderClient

logger = logging.getLogger("dialogue-router.fake_client")

ScriptStep = Union[ProviderResponse, Exception, Callable[[List[dict]], ProviderResponse]]


class FakeProviderClient(BaseProviderClient):
    """
    Скриптуемый клиент для mock-режима и тестов.

    Каждый вызов берёт следующий шаг сценария: ProviderResponse возвращается,
    исключение выбрасывается, callable вызывается с сообщениями.
    Когда сценарий исчерпан, клиент отвечает детерминированным эхо.
    """

    def __init__(
        self,
        provider_id: str = "mock-llm",
        script: Optional[Sequence[ScriptStep]] = None,
        probe_result: Union[bool, Exception] = True,
    ):
        self.provider_id = provider_id
        self._script = list(script or [])
        self.probe_result = probe_result
        self.calls: List[dict] = []
        self.probe_count = 0

    async def call(
        self,
        messages: List[dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[dict]] = None,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        self.calls.append({"messages": list(messages), "system_prompt": system_prompt, "tools": tools})
        logger.debug(
            f"[FakeProviderClient] '{self.provider_id}' call #{len(self.calls)}:\n"
            + pprint.pformat(messages, indent=2, width=120)
        )

        if self._script:
            step = self._script.pop(0)
            if isinstance(step, Exception):
                raise step
            if callable(step):
                return step(messages)
            return step

        last_user = next((m.get("content") for m in reversed(messages) if m.get("role") == "user"), "")
        return ProviderResponse(content=f"Mock response: {last_user}", model=self.provider_id)

    async def probe(self) -> bool:
        self.probe_count += 1
        if isinstance(self.probe_result, Exception):
            raise self.probe_result
        return self.probe_result
