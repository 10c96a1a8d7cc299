import logging
import pprint
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from dialogue_router.core.config import AppConfig
from dialogue_router.core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from dialogue_router.domain.entities.provider import ProviderSettings
from dialogue_router.infrastructure.resilience.retry import call_with_connect_retry
from dialogue_router.models.schemas import FunctionCall, ProviderResponse, ToolCall, UsageInfo

from .base import BaseProviderClient

logger = logging.getLogger("dialogue-router.openai_compatible_client")


class OpenAICompatibleClient(BaseProviderClient):
    """
    Клиент для облачных провайдеров с OpenAI-совместимым API (Kimi, Groq и т.п.).
    Используем OpenAI клиент с base_url провайдера; собственные повторы SDK отключены,
    повтор и failover решает цепочка провайдеров.
    """

    def __init__(self, settings: ProviderSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.provider_id = settings.id
        self.model = settings.model
        self.timeout = settings.timeout or AppConfig.PROVIDER_TIMEOUT_SECONDS
        self.client = client or AsyncOpenAI(
            api_key=settings.api_key or "dummy-key",
            base_url=settings.base_url.rstrip("/"),
            timeout=self.timeout,
            max_retries=0,
        )

        logger.info(
            f"[OpenAICompatibleClient] Initialized '{self.provider_id}' with "
            f"base_url={settings.base_url}, model={self.model}"
        )

    async def call(
        self,
        messages: List[dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[dict]] = None,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        create_params = {
            "model": self.model,
            "messages": self.with_system_prompt(messages, system_prompt),
            "temperature": AppConfig.TEMPERATURE,
            "max_tokens": max_tokens,
        }
        if tools:
            create_params["tools"] = tools
            create_params["tool_choice"] = "auto"

        logger.debug(
            f"[TRACE][{self.provider_id}] Full request payload:\n"
            + pprint.pformat(create_params, indent=2, width=120)
        )

        response = await call_with_connect_retry(
            self._create, create_params, retries=AppConfig.CONNECT_RETRIES
        )

        logger.debug(
            f"[TRACE][{self.provider_id}] Full response:\n"
            + pprint.pformat(response, indent=2, width=120)
        )
        return self._parse_response(response)

    async def _create(self, create_params: dict):
        try:
            return await self.client.chat.completions.create(**create_params)
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(self.provider_id, self.timeout) from e
        except openai.APIConnectionError as e:
            raise ProviderUnavailableError(self.provider_id, f"connection failed: {e}") from e
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(self.provider_id, f"429: {str(e)[:150]}") from e
        except openai.APIStatusError as e:
            if e.status_code in (401, 402, 403):
                raise ProviderAuthError(self.provider_id, e.status_code, f"API {e.status_code}: auth/billing failed") from e
            raise ProviderError(self.provider_id, f"API {e.status_code}: {str(e)[:200]}") from e

    def _parse_response(self, response) -> ProviderResponse:
        choices = getattr(response, "choices", None)
        if not choices:
            raise ProviderResponseError(self.provider_id, "No choices in response")

        message = choices[0].message
        if message is None:
            raise ProviderResponseError(self.provider_id, "Choice has no message")

        tool_calls = []
        for index, tc in enumerate(message.tool_calls or []):
            tool_calls.append(
                ToolCall(
                    id=tc.id or f"call_{index}",
                    function=FunctionCall(
                        name=tc.function.name or "unknown",
                        arguments=tc.function.arguments or "{}",
                    ),
                )
            )

        usage = None
        if response.usage is not None:
            usage = UsageInfo(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        return ProviderResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            usage=usage,
            model=getattr(response, "model", None) or self.model,
        )

    async def probe(self) -> bool:
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.warning(f"[OpenAICompatibleClient] Probe of '{self.provider_id}' failed: {e}")
            return False

    async def aclose(self) -> None:
        await self.client.close()
