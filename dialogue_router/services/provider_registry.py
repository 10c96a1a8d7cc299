"""
Provider Registry & Rotation Engine.

Держит упорядоченную цепочку провайдеров, обходит её с автоматическим
переключением и ведёт счётчики здоровья.

Поток execute():
1. Построить цепочку по вердикту классификатора (cloud: primary, secondary, local;
   local: local, затем облачные tier'ы)
2. Пропустить провайдеров в состоянии DEAD
3. Попытка = Tool-Calling Loop (если есть инструменты и провайдер их поддерживает)
   или одиночный вызов
4. Обновить здоровье по варианту AttemptResult и перейти к следующему при неудаче
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from dialogue_router.core.errors import ProvidersExhaustedError
from dialogue_router.domain.entities.provider import ProviderDescriptor, ProviderSettings, ProviderTier
from dialogue_router.domain.value_objects.attempt_result import AttemptResult, AttemptStatus
from dialogue_router.infrastructure.llm import BaseProviderClient, create_provider_client
from dialogue_router.infrastructure.resilience import ProviderHealth
from dialogue_router.infrastructure.tools.tool_registry import ToolExecutor
from dialogue_router.models.schemas import ExecutionResult, OutcomeTier, RouteTier

from .tool_calling_loop import ToolCallingLoop

logger = logging.getLogger("dialogue-router.provider_registry")

_CLOUD_START_ORDER = (ProviderTier.PRIMARY_CLOUD, ProviderTier.SECONDARY_CLOUD, ProviderTier.LOCAL)
_LOCAL_START_ORDER = (ProviderTier.LOCAL, ProviderTier.PRIMARY_CLOUD, ProviderTier.SECONDARY_CLOUD)


class ProviderRegistry:
    """
    Реестр провайдеров и движок ротации.

    Атрибуты:
        providers: Провайдеры в порядке конфигурации
        tool_loop: Исполнитель попыток
        probe_timeout: Таймаут проверки доступности (секунды)
        last_used: Идентификатор последнего успешного провайдера
    """

    def __init__(
        self,
        providers: List[ProviderDescriptor],
        tool_loop: Optional[ToolCallingLoop] = None,
        probe_timeout: float = 5.0,
    ):
        ids = [p.id for p in providers]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate provider ids: {ids}")

        self.providers = list(providers)
        self.tool_loop = tool_loop or ToolCallingLoop()
        self.probe_timeout = probe_timeout
        self.last_used: Optional[str] = None
        self._stats = {"rotations": 0, "health_checks": 0, "recoveries": 0}

        logger.info(f"ProviderRegistry created with chain: {ids}")

    @classmethod
    def from_settings(
        cls,
        settings: List[ProviderSettings],
        tool_loop: Optional[ToolCallingLoop] = None,
        failure_threshold: int = 3,
        probe_timeout: float = 5.0,
        client_factory: Callable[[ProviderSettings], BaseProviderClient] = create_provider_client,
    ) -> "ProviderRegistry":
        providers = [
            ProviderDescriptor(
                settings=s,
                client=client_factory(s),
                health=ProviderHealth(s.id, failure_threshold=failure_threshold),
            )
            for s in settings
        ]
        return cls(providers, tool_loop=tool_loop, probe_timeout=probe_timeout)

    def get(self, provider_id: str) -> Optional[ProviderDescriptor]:
        return next((p for p in self.providers if p.id == provider_id), None)

    async def init(self) -> Dict[str, bool]:
        """
        Проверить всех провайдеров параллельно.

        Провайдер, не прошедший проверку, помечается DEAD, но остаётся в цепочке.

        Returns:
            {provider_id: прошёл проверку}
        """
        results = await asyncio.gather(*(self._probe(p) for p in self.providers))
        status = {}
        for provider, ok in zip(self.providers, results):
            status[provider.id] = ok
            if ok:
                provider.health.reset()
            else:
                provider.health.mark_dead("initial probe failed")

        alive = [pid for pid, ok in status.items() if ok]
        logger.info(f"Provider init complete: {len(alive)}/{len(self.providers)} available {alive}")
        return status

    async def _probe(self, provider: ProviderDescriptor) -> bool:
        try:
            return bool(await asyncio.wait_for(provider.client.probe(), timeout=self.probe_timeout))
        except asyncio.TimeoutError:
            logger.warning(f"Probe of '{provider.id}' timed out after {self.probe_timeout:g}s")
            return False
        except Exception as e:
            logger.warning(f"Probe of '{provider.id}' failed: {e}")
            return False

    def build_chain(self, route_tier: RouteTier) -> List[ProviderDescriptor]:
        """Порядок обхода, включая провайдеров в состоянии DEAD."""
        order = _LOCAL_START_ORDER if route_tier == RouteTier.LOCAL else _CLOUD_START_ORDER
        rank = {tier: i for i, tier in enumerate(order)}
        return sorted(self.providers, key=lambda p: rank[p.tier])

    async def execute(
        self,
        messages: List[dict],
        system_prompt: Optional[str],
        route_tier: RouteTier,
        tools: Optional[List[dict]] = None,
        tool_executor: Optional[ToolExecutor] = None,
        is_admin: bool = False,
    ) -> ExecutionResult:
        """
        Обойти цепочку до первого успешного провайдера.

        Результат помечается PRIMARY только если ответил первый провайдер цепочки
        (с учётом пропущенных), иначе FALLBACK.

        Raises:
            ProvidersExhaustedError: ни один провайдер не дал ответа
        """
        chain = self.build_chain(route_tier)
        attempts = []

        for index, provider in enumerate(chain):
            if provider.is_dead:
                logger.debug(f"Skipping dead provider '{provider.id}'")
                attempts.append((provider.id, "skipped: dead"))
                continue

            result = await self._attempt(provider, messages, system_prompt, tools, tool_executor, is_admin)
            self._apply(provider, result)

            if result.is_success:
                self.last_used = provider.id
                tier = OutcomeTier.PRIMARY if index == 0 else OutcomeTier.FALLBACK
                if tier == OutcomeTier.FALLBACK:
                    self._stats["rotations"] += 1
                    logger.info(f"Rotated to '{provider.id}' (chain position {index})")
                return ExecutionResult(
                    content=result.response.content,
                    provider_id=provider.id,
                    tier=tier,
                    usage=result.response.usage,
                    rounds=result.rounds,
                    tool_invocations=result.tool_invocations,
                )

            logger.warning(f"Provider '{provider.id}' attempt {result.status.value}: {result.reason}")
            attempts.append((provider.id, result.reason))

        logger.error(f"All providers exhausted for {route_tier.value} request: {attempts}")
        raise ProvidersExhaustedError(attempts)

    async def _attempt(
        self,
        provider: ProviderDescriptor,
        messages: List[dict],
        system_prompt: Optional[str],
        tools: Optional[List[dict]],
        tool_executor: Optional[ToolExecutor],
        is_admin: bool,
    ) -> AttemptResult:
        try:
            if tools and tool_executor is not None and provider.supports_tools:
                return await self.tool_loop.run(
                    provider,
                    messages,
                    tools,
                    tool_executor,
                    system_prompt=system_prompt,
                    is_admin=is_admin,
                )
            return await self.tool_loop.run_single(provider, messages, system_prompt)
        except Exception as e:
            return AttemptResult.from_error(provider.id, e)

    @staticmethod
    def _apply(provider: ProviderDescriptor, result: AttemptResult) -> None:
        if result.status == AttemptStatus.SUCCESS:
            provider.health.record_success()
        elif result.status == AttemptStatus.FATAL:
            provider.health.mark_dead(result.reason or "fatal error")
        else:
            provider.health.record_failure(result.reason or "")

    async def recheck_all(self) -> Dict[str, bool]:
        """
        Повторно проверить провайдеров в состоянии DEAD.

        Returns:
            {provider_id: восстановлен} только для проверенных провайдеров
        """
        dead = [p for p in self.providers if p.is_dead]
        self._stats["health_checks"] += 1
        if not dead:
            return {}

        results = await asyncio.gather(*(self._probe(p) for p in dead))
        status = {}
        for provider, ok in zip(dead, results):
            status[provider.id] = ok
            if ok:
                provider.health.reset()
                self._stats["recoveries"] += 1
                logger.info(f"Provider '{provider.id}' recovered after recheck")
        return status

    def get_status(self) -> dict:
        return {
            "providers": [p.get_status() for p in self.providers],
            "last_used": self.last_used,
            **self._stats,
        }

    async def aclose(self) -> None:
        for provider in self.providers:
            try:
                await provider.client.aclose()
            except Exception as e:
                logger.warning(f"Error closing client '{provider.id}': {e}")
