"""
Сборка приложения и FastAPI dependency providers.

DialogueRouter создаётся один раз при старте (lifespan в main.py) и хранится
в app.state; эндпоинты получают его через get_dialogue_router.
"""
from typing import Optional

from fastapi import Request

from dialogue_router.core.config import AppConfig, load_provider_settings, logger
from dialogue_router.domain.services.message_classifier import MessageClassifier
from dialogue_router.domain.services.prompt_composer import PromptComposer
from dialogue_router.infrastructure.cache.response_cache import ResponseCache
from dialogue_router.infrastructure.health.health_monitor import ProviderHealthMonitor
from dialogue_router.infrastructure.tools.tool_registry import ToolRegistry
from dialogue_router.services.context_sources import ContextSources, StaticContextSource
from dialogue_router.services.dialogue_router import DialogueRouter
from dialogue_router.services.provider_registry import ProviderRegistry
from dialogue_router.services.tool_calling_loop import ToolCallingLoop


def build_dialogue_router(
    tool_registry: Optional[ToolRegistry] = None,
    context_sources: Optional[ContextSources] = None,
) -> DialogueRouter:
    """
    Собрать DialogueRouter из AppConfig.

    Args:
        tool_registry: Инструменты приложения (по умолчанию пустой реестр)
        context_sources: Коллабораторы контекста (по умолчанию только POLICY_TEXT)
    """
    tool_loop = ToolCallingLoop(
        max_rounds=AppConfig.MAX_TOOL_ROUNDS,
        call_timeout=AppConfig.PROVIDER_TIMEOUT_SECONDS,
        tool_timeout=AppConfig.TOOL_TIMEOUT_SECONDS,
        tool_concurrency=AppConfig.TOOL_CONCURRENCY,
        max_tokens=AppConfig.MAX_TOKENS,
    )
    registry = ProviderRegistry.from_settings(
        load_provider_settings(),
        tool_loop=tool_loop,
        failure_threshold=AppConfig.FAILURE_THRESHOLD,
        probe_timeout=AppConfig.PROBE_TIMEOUT_SECONDS,
    )
    monitor = ProviderHealthMonitor(
        registry.recheck_all,
        interval_seconds=AppConfig.HEALTH_CHECK_INTERVAL_SECONDS,
    )
    if context_sources is None:
        context_sources = ContextSources(policy=StaticContextSource("policy", AppConfig.POLICY_TEXT))

    logger.info(
        f"[Dependencies] Building DialogueRouter: mode={AppConfig.LLM_MODE}, "
        f"providers={[p.id for p in registry.providers]}"
    )
    return DialogueRouter(
        registry=registry,
        cache=ResponseCache(max_size=AppConfig.CACHE_MAX_SIZE),
        composer=PromptComposer(),
        classifier=MessageClassifier(length_threshold=AppConfig.CLASSIFIER_LENGTH_THRESHOLD),
        context_sources=context_sources,
        tool_executor=tool_registry if tool_registry is not None else ToolRegistry(),
        health_monitor=monitor,
        identity=AppConfig.ASSISTANT_IDENTITY,
        privilege_extension=AppConfig.ADMIN_PROMPT_EXTENSION,
        support_contact=AppConfig.SUPPORT_CONTACT,
        history_window=AppConfig.HISTORY_WINDOW,
    )


def get_dialogue_router(request: Request) -> DialogueRouter:
    """Get the router instance created at startup"""
    return request.app.state.dialogue_router
