"""
Router Orchestrator.

Конвейер одного вызова route():
    RECEIVED -> (CACHE_HIT -> DONE)
             -> CLASSIFIED -> AUGMENTED -> CALLING -> (SUCCESS -> DONE)
                                                   -> (EXHAUSTED -> EMERGENCY -> DONE)

route() никогда не выбрасывает исключение: вызывающий всегда получает
непустой content.
"""

import logging
from typing import List, Optional, Sequence

from dialogue_router.core.errors import AugmentationError, ProvidersExhaustedError
from dialogue_router.domain.services.message_classifier import MessageClassifier
from dialogue_router.domain.services.prompt_composer import PromptComposer
from dialogue_router.infrastructure.cache.response_cache import ResponseCache
from dialogue_router.infrastructure.health.health_monitor import ProviderHealthMonitor
from dialogue_router.infrastructure.tools.tool_registry import ToolExecutor, ToolRegistry
from dialogue_router.models.schemas import ChatMessage, OutcomeTier, RouteOptions, RouteOutcome, RouteTier

from .context_sources import ContextSources
from .provider_registry import ProviderRegistry

logger = logging.getLogger("dialogue-router.dialogue_router")

CUSTOMER_EMERGENCY_TEMPLATE = "Thank you! Please contact us at {contact} for further assistance."


class DialogueRouter:
    """
    Точка входа маршрутизатора диалога.

    Создаётся один раз кодом сборки приложения (см. core.dependencies),
    владеет кэшем, реестром провайдеров и составителем промпта.

    Атрибуты:
        registry: Реестр провайдеров и движок ротации
        cache: Кэш ответов
        composer: Составитель системного промпта
        classifier: Классификатор сообщений
        context_sources: Коллабораторы контекста
        tool_executor: Исполнитель инструментов (для облачного tier'а)
        health_monitor: Фоновая повторная проверка провайдеров
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: Optional[ResponseCache] = None,
        composer: Optional[PromptComposer] = None,
        classifier: Optional[MessageClassifier] = None,
        context_sources: Optional[ContextSources] = None,
        tool_executor: Optional[ToolExecutor] = None,
        tools: Optional[List[dict]] = None,
        health_monitor: Optional[ProviderHealthMonitor] = None,
        identity: str = "",
        privilege_extension: Optional[str] = None,
        support_contact: str = "",
        history_window: int = 10,
    ):
        self.registry = registry
        self.cache = cache or ResponseCache()
        self.composer = composer or PromptComposer()
        self.classifier = classifier or MessageClassifier()
        self.context_sources = context_sources or ContextSources()
        self.tool_executor = tool_executor
        self.tools = list(tools or [])
        self.health_monitor = health_monitor
        self.identity = identity
        self.privilege_extension = privilege_extension
        self.support_contact = support_contact
        self.history_window = max(0, history_window)

        self._stats = {
            "requests": 0,
            "primary": 0,
            "local": 0,
            "cloud": 0,
            "fallback": 0,
            "emergency": 0,
            "tool_calls": 0,
            "cache_hits": 0,
            "augmentation_failures": 0,
        }

    async def init(self) -> dict:
        """Проверить провайдеров и запустить фоновую повторную проверку."""
        status = await self.registry.init()
        if self.health_monitor is not None:
            await self.health_monitor.start()
        return status

    async def shutdown(self) -> None:
        if self.health_monitor is not None:
            await self.health_monitor.stop()
        await self.registry.aclose()
        logger.info("DialogueRouter shut down")

    async def route(
        self,
        message: str,
        history: Optional[Sequence[ChatMessage]] = None,
        options: Optional[RouteOptions] = None,
    ) -> RouteOutcome:
        """
        Обработать одно сообщение пользователя.

        Args:
            message: Текст пользователя
            history: Предыдущие ходы диалога (используются последние history_window)
            options: force_tier, is_admin, custom_system_prompt, intent

        Returns:
            RouteOutcome; при полном отказе провайдеров tier=EMERGENCY
        """
        options = options or RouteOptions()
        try:
            return await self._route(message, list(history or []), options)
        except ProvidersExhaustedError as e:
            return self._emergency(options.is_admin, e)
        except Exception as e:
            logger.error(f"Unexpected error while routing: {e}", exc_info=True)
            return self._emergency(options.is_admin, e)

    async def _route(self, message: str, history: List[ChatMessage], options: RouteOptions) -> RouteOutcome:
        self._stats["requests"] += 1

        # Receive
        policy = self.cache.should_cache(options.intent)
        use_cache = policy.cache and not options.is_admin and options.force_tier != RouteTier.CLOUD
        if use_cache:
            cached = self.cache.get(message)
            if cached is not None:
                self._stats["cache_hits"] += 1
                logger.debug(f"Cache hit for intent={options.intent}")
                return cached.model_copy(update={"tier": OutcomeTier.CACHE, "cached": True})

        # Route
        route_tier = options.force_tier or self.classifier.classify(message)
        if options.is_admin and route_tier == RouteTier.LOCAL:
            logger.debug("Escalating privileged caller to cloud tier")
            route_tier = RouteTier.CLOUD
        self._stats[route_tier.value] += 1

        # Augment
        system_prompt = await self._augment(options)

        # Call
        tools = self._tools_for(options.is_admin) if route_tier == RouteTier.CLOUD else []
        result = await self.registry.execute(
            self._build_messages(history, message),
            system_prompt,
            route_tier,
            tools=tools or None,
            tool_executor=self.tool_executor if tools else None,
            is_admin=options.is_admin,
        )

        # Respond
        self._stats[result.tier.value] += 1
        self._stats["tool_calls"] += len(result.tool_invocations)

        outcome = RouteOutcome(
            content=result.content,
            tier=result.tier,
            provider=result.provider_id,
            usage=result.usage,
            route_tier=route_tier,
            tool_calls=len(result.tool_invocations),
        )
        if use_cache and outcome.content:
            self.cache.set(message, outcome, policy.ttl)
        return outcome

    async def _augment(self, options: RouteOptions) -> str:
        try:
            bundle = await self.context_sources.gather(is_admin=options.is_admin)
        except AugmentationError as e:
            self._stats["augmentation_failures"] += 1
            logger.warning(f"Degrading to minimal prompt: {e.message}")
            return self.composer.compose_minimal(self.identity, custom_prompt=options.custom_system_prompt)

        return self.composer.compose(
            self.identity,
            live_context=bundle.live,
            policy_context=bundle.policy,
            dynamic_context=bundle.dynamic,
            privilege_extension=self.privilege_extension,
            custom_prompt=options.custom_system_prompt,
            is_admin=options.is_admin,
        )

    def _tools_for(self, is_admin: bool) -> List[dict]:
        if self.tool_executor is None:
            return []
        if isinstance(self.tool_executor, ToolRegistry):
            return self.tool_executor.get_specs(is_admin=is_admin)
        return self.tools

    def _build_messages(self, history: List[ChatMessage], message: str) -> List[dict]:
        window = history[-self.history_window:] if self.history_window else []
        messages = [turn.to_provider_dict() for turn in window if turn.role != "system"]
        # Ответы инструментов без assistant-хода с tool_calls провайдеры отклоняют
        while messages and messages[0]["role"] == "tool":
            messages.pop(0)
        messages.append({"role": "user", "content": message})
        return messages

    def _emergency(self, is_admin: bool, error: Exception) -> RouteOutcome:
        self._stats["emergency"] += 1
        if is_admin:
            if isinstance(error, ProvidersExhaustedError):
                tried = "; ".join(f"{pid} ({reason})" for pid, reason in error.attempts) or "none configured"
                content = f"All AI providers are exhausted. Tried: {tried}. Check API keys and run a provider recheck."
            else:
                content = f"AI routing failed: {type(error).__name__}: {error}"
        else:
            content = CUSTOMER_EMERGENCY_TEMPLATE.format(contact=self.support_contact or "our support line")
        logger.error(f"Returning emergency response: {error}")
        return RouteOutcome(content=content, tier=OutcomeTier.EMERGENCY)

    async def recheck_providers(self) -> dict:
        return await self.registry.recheck_all()

    def get_stats(self) -> dict:
        return {
            **self._stats,
            "cache": self.cache.get_stats(),
            "providers": self.registry.get_status(),
            "health_monitor_running": bool(self.health_monitor and self.health_monitor.is_running),
        }
