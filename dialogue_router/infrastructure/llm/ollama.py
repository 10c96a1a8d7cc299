import logging
import pprint
from typing import List, Optional

import httpx

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
from dialogue_router.models.schemas import ProviderResponse, UsageInfo

from .base import BaseProviderClient

logger = logging.getLogger("dialogue-router.ollama_client")


class OllamaClient(BaseProviderClient):
    """
    Локальный клиент Ollama (/api/chat).
    Без инструментов: простые диалоги, FAQ, приветствия.
    """

    def __init__(self, settings: ProviderSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.provider_id = settings.id
        self.model = settings.model
        self.timeout = settings.timeout or AppConfig.PROVIDER_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            timeout=self.timeout,
            transport=transport,
        )

    async def call(
        self,
        messages: List[dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[dict]] = None,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        if tools:
            logger.debug(f"[OllamaClient] '{self.provider_id}' ignores {len(tools)} tool definitions")

        payload = {
            "model": self.model,
            "messages": [
                {"role": m["role"], "content": m.get("content") or ""}
                for m in self.with_system_prompt(messages, system_prompt)
            ],
            "stream": False,
            "options": {"temperature": AppConfig.TEMPERATURE, "num_predict": max_tokens},
        }
        logger.debug("[OllamaClient] Payload:\n" + pprint.pformat(payload, indent=2, width=120))

        data = await call_with_connect_retry(self._post_chat, payload, retries=AppConfig.CONNECT_RETRIES)

        message = data.get("message") if isinstance(data, dict) else None
        if not message or "content" not in message:
            raise ProviderResponseError(self.provider_id, "Response has no message")

        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        return ProviderResponse(
            content=message.get("content") or "",
            usage=UsageInfo(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=data.get("model") or self.model,
        )

    async def _post_chat(self, payload: dict) -> dict:
        try:
            response = await self._client.post("/api/chat", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.provider_id, self.timeout) from e
        except httpx.ConnectError as e:
            raise ProviderUnavailableError(self.provider_id, f"connection failed: {e}") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                raise ProviderRateLimitError(self.provider_id) from e
            if status_code in (401, 403):
                raise ProviderAuthError(self.provider_id, status_code) from e
            raise ProviderError(self.provider_id, f"Local AI error {status_code}: {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(self.provider_id, str(e)) from e

        logger.debug(f"[OllamaClient] Response {response.status_code}, head: {response.text[:256]}")
        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider_id, f"Response not valid JSON: {e}") from e

    async def probe(self) -> bool:
        try:
            response = await self._client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"[OllamaClient] Probe of '{self.provider_id}' failed: {e}")
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
