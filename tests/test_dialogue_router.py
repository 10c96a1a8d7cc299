"""
Тесты для Router Orchestrator.
"""

import pytest
from unittest.mock import AsyncMock

from dialogue_router.core.errors import ProviderUnavailableError
from dialogue_router.domain.entities.provider import ProviderTier
from dialogue_router.domain.services.prompt_composer import PromptComposer
from dialogue_router.infrastructure.cache.response_cache import ResponseCache
from dialogue_router.infrastructure.tools.tool_registry import ToolRegistry
from dialogue_router.models.schemas import (
    ChatMessage,
    FunctionCall,
    OutcomeTier,
    ProviderResponse,
    RouteOptions,
    RouteTier,
    ToolCall,
)
from dialogue_router.services.context_sources import (
    CallableContextSource,
    ContextSources,
    StaticContextSource,
)
from dialogue_router.services.dialogue_router import DialogueRouter
from dialogue_router.services.provider_registry import ProviderRegistry

IDENTITY = "You are JARVIS."
CONTACT = "+60126565477"


@pytest.fixture
def cloud(make_provider):
    return make_provider("kimi", ProviderTier.PRIMARY_CLOUD, supports_tools=True)


@pytest.fixture
def local(make_provider):
    return make_provider("ollama", ProviderTier.LOCAL)


@pytest.fixture
def build_router(cloud, local):
    def build(providers=None, **kwargs):
        kwargs.setdefault("identity", IDENTITY)
        kwargs.setdefault("support_contact", CONTACT)
        registry = ProviderRegistry(providers if providers is not None else [cloud, local])
        return DialogueRouter(registry=registry, **kwargs)
    return build


class TestRouting:
    """Тесты выбора tier'а"""

    @pytest.mark.asyncio
    async def test_simple_message_goes_local(self, build_router, local):
        """Тест: простое сообщение обслуживает локальный провайдер"""
        router = build_router()

        outcome = await router.route("hello")

        assert outcome.route_tier == RouteTier.LOCAL
        assert outcome.provider == "ollama"
        assert outcome.tier == OutcomeTier.PRIMARY
        assert outcome.content == "Mock response: hello"

    @pytest.mark.asyncio
    async def test_admin_escalated_to_cloud(self, build_router, cloud, local):
        """Тест: привилегированный пользователь всегда получает cloud"""
        router = build_router()

        outcome = await router.route("hello", options=RouteOptions(is_admin=True))

        assert outcome.route_tier == RouteTier.CLOUD
        assert outcome.provider == "kimi"
        assert local.client.calls == []

    @pytest.mark.asyncio
    async def test_force_tier(self, build_router):
        """Тест: force_tier переопределяет классификатор"""
        router = build_router()

        outcome = await router.route("hello", options=RouteOptions(force_tier=RouteTier.CLOUD))

        assert outcome.provider == "kimi"

    @pytest.mark.asyncio
    async def test_history_window(self, build_router, local):
        """Тест: отправляются только последние history_window ходов"""
        router = build_router(history_window=10)
        history = [
            ChatMessage(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
            for i in range(15)
        ]

        await router.route("hello", history)

        sent = local.client.calls[0]["messages"]
        assert len(sent) == 11
        assert sent[0]["content"] == "turn 5"
        assert sent[-1] == {"role": "user", "content": "hello"}

    @pytest.mark.asyncio
    async def test_history_window_drops_orphan_tool_turns(self, build_router, local):
        """Тест: ответы инструментов, чей assistant-ход отрезан окном, не отправляются"""
        router = build_router(history_window=3)
        history = [
            ChatMessage(role="user", content="price of axia?"),
            ChatMessage(
                role="assistant",
                tool_calls=[ToolCall(id="c1", function=FunctionCall(name="get_pricing", arguments="{}"))],
            ),
            ChatMessage(role="tool", tool_call_id="c1", content='{"daily": 100}'),
            ChatMessage(role="assistant", content="RM100/day"),
            ChatMessage(role="user", content="thanks"),
        ]

        await router.route("hello", history)

        sent = local.client.calls[0]["messages"]
        assert [m["role"] for m in sent] == ["assistant", "user", "user"]
        assert sent[0]["content"] == "RM100/day"


class TestEmergency:
    """Тесты гарантии ответа"""

    @pytest.mark.asyncio
    async def test_exhausted_customer_gets_contact_message(self, make_provider, build_router):
        """Тест: все провайдеры недоступны -> emergency для клиента"""
        providers = [
            make_provider("kimi", script=[ProviderUnavailableError("kimi", "refused")]),
            make_provider("ollama", ProviderTier.LOCAL, script=[ProviderUnavailableError("ollama", "refused")]),
        ]
        router = build_router(providers)

        outcome = await router.route("hello")

        assert outcome.tier == OutcomeTier.EMERGENCY
        assert CONTACT in outcome.content
        assert outcome.provider is None
        assert router.get_stats()["emergency"] == 1

    @pytest.mark.asyncio
    async def test_exhausted_admin_gets_diagnostic(self, make_provider, build_router):
        """Тест: администратор получает диагностику"""
        providers = [
            make_provider("kimi", script=[ProviderUnavailableError("kimi", "refused")]),
            make_provider("ollama", ProviderTier.LOCAL, probe_result=False),
        ]
        providers[1].health.mark_dead("probe failed")
        router = build_router(providers)

        outcome = await router.route("status report", options=RouteOptions(is_admin=True))

        assert outcome.tier == OutcomeTier.EMERGENCY
        assert "exhausted" in outcome.content
        assert "kimi" in outcome.content
        assert "skipped: dead" in outcome.content

    @pytest.mark.asyncio
    async def test_empty_chain_still_answers(self, build_router):
        """Тест: пустая цепочка -> emergency, не исключение"""
        router = build_router(providers=[])

        outcome = await router.route("hello")

        assert outcome.tier == OutcomeTier.EMERGENCY
        assert outcome.content

    @pytest.mark.asyncio
    async def test_unexpected_fault_never_raises(self, build_router):
        """Тест: непредвиденная ошибка превращается в emergency"""
        router = build_router()
        router.registry.execute = AsyncMock(side_effect=RuntimeError("bug"))

        outcome = await router.route("hello")

        assert outcome.tier == OutcomeTier.EMERGENCY
        assert CONTACT in outcome.content


class TestCaching:
    """Тесты взаимодействия с кэшем"""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_providers(self, build_router, local):
        """Тест: повторный запрос обслуживается из кэша"""
        router = build_router(cache=ResponseCache())
        options = RouteOptions(intent="pricing_inquiry")

        first = await router.route("hello", options=options)
        second = await router.route("Hello!", options=options)

        assert first.cached is False
        assert second.cached is True
        assert second.tier == OutcomeTier.CACHE
        assert second.content == first.content
        assert len(local.client.calls) == 1
        assert router.get_stats()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_admin_bypasses_cache(self, build_router, cloud):
        """Тест: администратор не читает и не пишет кэш"""
        router = build_router()
        options = RouteOptions(is_admin=True, intent="pricing_inquiry")

        await router.route("hello", options=options)
        await router.route("hello", options=options)

        assert len(cloud.client.calls) == 2
        assert len(router.cache) == 0

    @pytest.mark.asyncio
    async def test_sensitive_intent_not_cached(self, build_router, local):
        """Тест: чувствительный интент не кэшируется"""
        router = build_router()
        options = RouteOptions(intent="payment")

        await router.route("hello", options=options)
        await router.route("hello", options=options)

        assert len(local.client.calls) == 2

    @pytest.mark.asyncio
    async def test_emergency_not_cached(self, make_provider, build_router):
        """Тест: emergency-ответ не попадает в кэш"""
        router = build_router([make_provider("ollama", ProviderTier.LOCAL, script=[RuntimeError("x")])])

        await router.route("hello", options=RouteOptions(intent="general"))

        assert len(router.cache) == 0


class TestAugmentation:
    """Тесты сборки промпта"""

    @pytest.mark.asyncio
    async def test_context_segments_in_prompt(self, build_router, local):
        """Тест: контекст коллабораторов попадает в промпт"""
        sources = ContextSources(
            live=CallableContextSource("fleet", lambda: "3 cars available"),
            policy=StaticContextSource("policy", "Deposit RM50"),
            dynamic=[StaticContextSource("memory", "")],
        )
        router = build_router(context_sources=sources)

        await router.route("hello")

        prompt = local.client.calls[0]["system_prompt"]
        assert prompt.startswith(IDENTITY)
        assert "3 cars available" in prompt
        assert "Deposit RM50" in prompt

    @pytest.mark.asyncio
    async def test_failing_collaborator_degrades_to_minimal(self, build_router, local):
        """Тест: ошибка коллаборатора -> минимальный промпт, запрос продолжается"""
        async def broken_live():
            raise ConnectionError("db down")

        router = build_router(context_sources=ContextSources(live=CallableContextSource("fleet", broken_live)))

        outcome = await router.route("hello")

        assert outcome.tier == OutcomeTier.PRIMARY
        assert local.client.calls[0]["system_prompt"] == PromptComposer().compose_minimal(IDENTITY)
        assert router.get_stats()["augmentation_failures"] == 1

    @pytest.mark.asyncio
    async def test_privilege_extension_for_admin_only(self, build_router, cloud):
        """Тест: блок привилегий только для администратора"""
        router = build_router(privilege_extension="ADMIN MODE")

        await router.route("report please")
        await router.route("report please", options=RouteOptions(is_admin=True))

        assert "ADMIN MODE" not in cloud.client.calls[0]["system_prompt"]
        assert "ADMIN MODE" in cloud.client.calls[1]["system_prompt"]

    @pytest.mark.asyncio
    async def test_policy_builder_receives_admin_flag(self, build_router):
        """Тест: is_admin передаётся коллаборатору"""
        seen = []

        def build_policy(is_admin: bool = False):
            seen.append(is_admin)
            return "policy"

        router = build_router(context_sources=ContextSources(policy=CallableContextSource("policy", build_policy)))

        await router.route("hello", options=RouteOptions(is_admin=True))

        assert seen == [True]


class TestTools:
    """Тесты подключения инструментов"""

    @pytest.mark.asyncio
    async def test_cloud_route_attaches_tools(self, make_provider, build_router):
        """Тест: облачный запрос получает инструменты и считает вызовы"""
        tools = ToolRegistry()
        tools.register("count_cars", lambda: {"available": 3}, "Count available cars")
        cloud = make_provider("kimi", supports_tools=True, script=[
            ProviderResponse(tool_calls=[ToolCall(id="c1", function=FunctionCall(name="count_cars"))]),
            ProviderResponse(content="3 cars are available."),
        ])
        router = build_router([cloud], tool_executor=tools)

        outcome = await router.route("how many cars available?")

        assert outcome.content == "3 cars are available."
        assert outcome.tool_calls == 1
        assert cloud.client.calls[0]["tools"] == tools.get_specs()
        assert router.get_stats()["tool_calls"] == 1

    @pytest.mark.asyncio
    async def test_local_route_has_no_tools(self, build_router, local):
        """Тест: локальный запрос не получает инструменты"""
        tools = ToolRegistry()
        tools.register("count_cars", lambda: {"available": 3}, "Count available cars")
        router = build_router(tool_executor=tools)

        await router.route("hello")

        assert local.client.calls[0]["tools"] is None


class TestLifecycle:
    """Тесты init/shutdown/stats"""

    @pytest.mark.asyncio
    async def test_init_and_shutdown(self, build_router):
        """Тест: init проверяет провайдеров и запускает монитор"""
        monitor = AsyncMock()
        router = build_router(health_monitor=monitor)

        status = await router.init()
        await router.shutdown()

        assert status == {"kimi": True, "ollama": True}
        monitor.start.assert_awaited_once()
        monitor.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stats_shape(self, build_router):
        """Тест: статистика содержит счётчики, кэш и здоровье провайдеров"""
        router = build_router()
        await router.route("hello")

        stats = router.get_stats()

        assert stats["requests"] == 1
        assert stats["local"] == 1
        assert stats["primary"] == 1
        assert "hit_rate" in stats["cache"]
        assert [p["id"] for p in stats["providers"]["providers"]] == ["kimi", "ollama"]
        assert stats["providers"]["last_used"] == "ollama"

    @pytest.mark.asyncio
    async def test_recheck_providers(self, build_router, cloud):
        """Тест: ручная повторная проверка"""
        cloud.health.mark_dead("x")
        router = build_router()

        assert await router.recheck_providers() == {"kimi": True}
        assert not cloud.is_dead
