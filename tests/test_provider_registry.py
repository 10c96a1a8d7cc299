"""
Тесты для Provider Registry & Rotation Engine.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from dialogue_router.core.errors import (
    ProviderAuthError,
    ProvidersExhaustedError,
    ProviderUnavailableError,
)
from dialogue_router.domain.entities.provider import HealthState, ProviderSettings, ProviderTier
from dialogue_router.infrastructure.health.health_monitor import ProviderHealthMonitor
from dialogue_router.infrastructure.llm import FakeProviderClient
from dialogue_router.infrastructure.tools.tool_registry import ToolRegistry
from dialogue_router.models.schemas import FunctionCall, OutcomeTier, ProviderResponse, RouteTier, ToolCall
from dialogue_router.services.provider_registry import ProviderRegistry

MESSAGES = [{"role": "user", "content": "how many cars available?"}]


@pytest.fixture
def chain(make_provider):
    return [
        make_provider("A", ProviderTier.PRIMARY_CLOUD),
        make_provider("B", ProviderTier.SECONDARY_CLOUD),
        make_provider("C", ProviderTier.LOCAL),
    ]


class TestRegistryInit:
    """Тесты init()"""

    @pytest.mark.asyncio
    async def test_failed_probe_marks_dead_without_aborting(self, make_provider):
        """Тест: неудачный probe помечает провайдера DEAD, остальные инициализируются"""
        providers = [
            make_provider("A", probe_result=False),
            make_provider("B", probe_result=RuntimeError("dns")),
            make_provider("C", ProviderTier.LOCAL),
        ]
        registry = ProviderRegistry(providers)

        status = await registry.init()

        assert status == {"A": False, "B": False, "C": True}
        assert providers[0].is_dead
        assert providers[1].is_dead
        assert providers[2].health.state == HealthState.HEALTHY

    @pytest.mark.asyncio
    async def test_probe_bounded_by_timeout(self, make_provider):
        """Тест: зависший probe ограничен таймаутом"""
        provider = make_provider("A")

        async def hang():
            await asyncio.sleep(1)
            return True

        provider.client.probe = hang
        registry = ProviderRegistry([provider], probe_timeout=0.01)

        assert await registry.init() == {"A": False}
        assert provider.is_dead

    def test_duplicate_ids_rejected(self, make_provider):
        """Тест: идентификаторы провайдеров уникальны"""
        with pytest.raises(ValueError):
            ProviderRegistry([make_provider("A"), make_provider("A")])


class TestChainOrder:
    """Тесты порядка обхода цепочки"""

    def test_cloud_start(self, chain):
        """Тест: cloud -> primary, secondary, local"""
        registry = ProviderRegistry(list(reversed(chain)))

        assert [p.id for p in registry.build_chain(RouteTier.CLOUD)] == ["A", "B", "C"]

    def test_local_start(self, chain):
        """Тест: local -> local, затем облачные tier'ы по порядку"""
        registry = ProviderRegistry(chain)

        assert [p.id for p in registry.build_chain(RouteTier.LOCAL)] == ["C", "A", "B"]

    def test_order_within_tier_is_config_order(self, make_provider):
        """Тест: порядок внутри tier'а задан конфигурацией"""
        registry = ProviderRegistry([
            make_provider("B1", ProviderTier.SECONDARY_CLOUD),
            make_provider("A1", ProviderTier.PRIMARY_CLOUD),
            make_provider("B2", ProviderTier.SECONDARY_CLOUD),
            make_provider("A2", ProviderTier.PRIMARY_CLOUD),
        ])

        assert [p.id for p in registry.build_chain(RouteTier.CLOUD)] == ["A1", "A2", "B1", "B2"]


class TestExecute:
    """Тесты execute()"""

    @pytest.mark.asyncio
    async def test_first_provider_success_is_primary(self, chain):
        """Тест: ответ первого провайдера -> PRIMARY"""
        registry = ProviderRegistry(chain)

        result = await registry.execute(MESSAGES, "SYS", RouteTier.CLOUD)

        assert result.tier == OutcomeTier.PRIMARY
        assert result.provider_id == "A"
        assert registry.last_used == "A"

    @pytest.mark.asyncio
    async def test_dead_first_provider_skipped(self, chain):
        """Тест: цепочка [A(dead), B, C] -> B, FALLBACK"""
        chain[0].health.mark_dead("probe failed")
        registry = ProviderRegistry(chain)

        result = await registry.execute(MESSAGES, "SYS", RouteTier.CLOUD)

        assert result.tier == OutcomeTier.FALLBACK
        assert result.provider_id == "B"
        assert chain[0].client.calls == []
        assert registry.get_status()["rotations"] == 1

    @pytest.mark.asyncio
    async def test_failover_to_next_tier(self, make_provider):
        """Тест: исчерпание облачных tier'ов переходит в local"""
        providers = [
            make_provider("A", script=[ProviderUnavailableError("A", "refused")]),
            make_provider("B", ProviderTier.SECONDARY_CLOUD, script=[ProviderUnavailableError("B", "refused")]),
            make_provider("C", ProviderTier.LOCAL),
        ]
        registry = ProviderRegistry(providers)

        result = await registry.execute(MESSAGES, None, RouteTier.CLOUD)

        assert result.provider_id == "C"
        assert result.tier == OutcomeTier.FALLBACK
        assert providers[0].health.consecutive_failures == 1
        assert providers[1].health.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, make_provider):
        """Тест: успех сбрасывает счётчик ошибок"""
        provider = make_provider("A", script=[ProviderUnavailableError("A", "refused")])
        fallback = make_provider("C", ProviderTier.LOCAL)
        registry = ProviderRegistry([provider, fallback])

        await registry.execute(MESSAGES, None, RouteTier.CLOUD)
        assert provider.health.consecutive_failures == 1

        result = await registry.execute(MESSAGES, None, RouteTier.CLOUD)
        assert result.provider_id == "A"
        assert provider.health.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_repeated_failures_degrade_then_kill(self, make_provider):
        """Тест: HEALTHY -> DEGRADED -> DEAD, затем провайдер пропускается"""
        failing = make_provider("A", failure_threshold=2, script=[
            ProviderUnavailableError("A", "refused") for _ in range(10)
        ])
        backup = make_provider("C", ProviderTier.LOCAL)
        registry = ProviderRegistry([failing, backup])

        for _ in range(2):
            await registry.execute(MESSAGES, None, RouteTier.CLOUD)
        assert failing.health.state == HealthState.DEGRADED

        await registry.execute(MESSAGES, None, RouteTier.CLOUD)
        assert failing.health.state == HealthState.DEAD

        await registry.execute(MESSAGES, None, RouteTier.CLOUD)
        assert len(failing.client.calls) == 3

    @pytest.mark.asyncio
    async def test_auth_error_is_fatal(self, chain):
        """Тест: ошибка аутентификации сразу помечает провайдера DEAD"""
        chain[0].client = FakeProviderClient("A", script=[ProviderAuthError("A", 401)])
        registry = ProviderRegistry(chain)

        result = await registry.execute(MESSAGES, None, RouteTier.CLOUD)

        assert result.provider_id == "B"
        assert chain[0].is_dead

    @pytest.mark.asyncio
    async def test_empty_answer_advances_chain(self, chain):
        """Тест: пустой ответ считается ошибкой и передаёт ход дальше"""
        chain[0].client = FakeProviderClient("A", script=[ProviderResponse(content="")])
        registry = ProviderRegistry(chain)

        result = await registry.execute(MESSAGES, None, RouteTier.CLOUD)

        assert result.provider_id == "B"
        assert chain[0].health.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_all_fail_raises_exhausted(self, make_provider):
        """Тест: все провайдеры недоступны -> ProvidersExhaustedError"""
        providers = [
            make_provider("A", script=[RuntimeError("boom")]),
            make_provider("B", ProviderTier.SECONDARY_CLOUD, script=[ProviderUnavailableError("B", "refused")]),
            make_provider("C", ProviderTier.LOCAL),
        ]
        providers[2].health.mark_dead("probe failed")
        registry = ProviderRegistry(providers)

        with pytest.raises(ProvidersExhaustedError) as exc_info:
            await registry.execute(MESSAGES, None, RouteTier.CLOUD)

        attempts = dict(exc_info.value.attempts)
        assert set(attempts) == {"A", "B", "C"}
        assert attempts["C"] == "skipped: dead"
        assert "RuntimeError" in attempts["A"]

    @pytest.mark.asyncio
    async def test_tools_only_for_tool_capable_provider(self, make_provider):
        """Тест: провайдер без поддержки инструментов получает одиночный вызов без tools"""
        tools = ToolRegistry()
        tools.register("get_pricing", lambda: {"daily": 100}, "Pricing")
        cloud = make_provider("A", supports_tools=True, script=[RuntimeError("down")])
        local = make_provider("C", ProviderTier.LOCAL)
        registry = ProviderRegistry([cloud, local])

        result = await registry.execute(
            MESSAGES, "SYS", RouteTier.CLOUD, tools=tools.get_specs(), tool_executor=tools
        )

        assert cloud.client.calls[0]["tools"] == tools.get_specs()
        assert local.client.calls[0]["tools"] is None
        assert result.provider_id == "C"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("second_round", [
        ProviderUnavailableError("A", "read timeout"),
        ProviderResponse(content=""),
    ])
    async def test_no_rotation_after_tools_ran(self, make_provider, second_round):
        """Тест: сбой после исполнения инструментов не передаёт запрос следующему провайдеру"""
        bookings = []
        tools = ToolRegistry()
        tools.register("create_booking", lambda car: bookings.append(car) or {"ok": True}, "Book a car")
        first = make_provider("A", supports_tools=True, script=[
            ProviderResponse(
                content="Booking the Axia",
                tool_calls=[ToolCall(id="c1", function=FunctionCall(name="create_booking", arguments='{"car": "axia"}'))],
            ),
            second_round,
            ProviderUnavailableError("A", "read timeout"),
        ])
        second = make_provider("B", ProviderTier.SECONDARY_CLOUD, supports_tools=True)
        registry = ProviderRegistry([first, second])

        result = await registry.execute(
            MESSAGES, "SYS", RouteTier.CLOUD, tools=tools.get_specs(), tool_executor=tools
        )

        assert result.provider_id == "A"
        assert result.tier == OutcomeTier.PRIMARY
        assert result.content == "Booking the Axia"
        assert bookings == ["axia"]
        assert second.client.calls == []


class TestRecheck:
    """Тесты повторной проверки"""

    @pytest.mark.asyncio
    async def test_recovered_provider_used_again(self, chain):
        """Тест: восстановленный провайдер снова пробуется первым"""
        chain[0].client.probe_result = False
        registry = ProviderRegistry(chain)
        await registry.init()
        assert chain[0].is_dead

        chain[0].client.probe_result = True
        assert await registry.recheck_all() == {"A": True}

        assert chain[0].health.state == HealthState.HEALTHY
        result = await registry.execute(MESSAGES, None, RouteTier.CLOUD)
        assert result.provider_id == "A"
        assert result.tier == OutcomeTier.PRIMARY

        status = registry.get_status()
        assert status["recoveries"] == 1
        assert status["health_checks"] == 1

    @pytest.mark.asyncio
    async def test_recheck_only_probes_dead(self, chain):
        """Тест: recheck трогает только провайдеров в состоянии DEAD"""
        chain[1].health.mark_dead("x")
        chain[1].client.probe_result = False
        registry = ProviderRegistry(chain)

        assert await registry.recheck_all() == {"B": False}
        assert chain[0].client.probe_count == 0
        assert chain[1].is_dead

    @pytest.mark.asyncio
    async def test_from_settings_uses_factory(self):
        """Тест: сборка реестра из настроек"""
        settings = [ProviderSettings(id="mock", tier=ProviderTier.LOCAL, kind="fake")]

        registry = ProviderRegistry.from_settings(settings, failure_threshold=7)

        assert isinstance(registry.providers[0].client, FakeProviderClient)
        assert registry.providers[0].health.failure_threshold == 7
        await registry.aclose()


class TestHealthMonitor:
    """Тесты фоновой повторной проверки"""

    @pytest.mark.asyncio
    async def test_monitor_runs_recheck_periodically(self):
        """Тест: монитор вызывает recheck по интервалу"""
        recheck = AsyncMock(return_value={"A": True})
        monitor = ProviderHealthMonitor(recheck, interval_seconds=0.01)

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert recheck.await_count >= 1
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_monitor_survives_errors(self):
        """Тест: ошибка в recheck не останавливает цикл"""
        calls = []

        async def flaky_recheck():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return {}

        recheck = AsyncMock(side_effect=flaky_recheck)
        monitor = ProviderHealthMonitor(recheck, interval_seconds=0.005)

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert recheck.await_count >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Тест: stop без start безопасен"""
        monitor = ProviderHealthMonitor(AsyncMock(return_value={}))

        await monitor.stop()

        assert not monitor.is_running
