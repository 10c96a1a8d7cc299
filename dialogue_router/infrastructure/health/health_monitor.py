"""
Фоновая повторная проверка провайдеров.

Периодически вызывает recheck у реестра, чтобы провайдеры в состоянии DEAD
могли вернуться в цепочку без перезапуска процесса.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger("dialogue-router.infrastructure.health_monitor")


class ProviderHealthMonitor:
    """
    Периодическая задача повторной проверки.

    Атрибуты:
        _recheck: Async функция, возвращающая {provider_id: восстановлен}
        _interval: Интервал между проверками (секунды)
        _task: Фоновая задача

    Пример:
        >>> monitor = ProviderHealthMonitor(registry.recheck_all, interval_seconds=300)
        >>> await monitor.start()
    """

    def __init__(
        self,
        recheck: Callable[[], Awaitable[Dict[str, bool]]],
        interval_seconds: float = 300.0,
    ):
        self._recheck = recheck
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._running = False

        logger.info(f"ProviderHealthMonitor initialized (interval={interval_seconds:g}s)")

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        if self._running:
            logger.warning("ProviderHealthMonitor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._monitor_loop())
        logger.info("ProviderHealthMonitor started")

    async def stop(self):
        """Отменить фоновую задачу и дождаться её завершения."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("ProviderHealthMonitor stopped")

    async def _monitor_loop(self):
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                results = await self._recheck()
                recovered = [pid for pid, ok in results.items() if ok]
                if recovered:
                    logger.info(f"Health check recovered providers: {', '.join(recovered)}")
            except asyncio.CancelledError:
                logger.info("Health monitor loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in health monitor loop: {e}", exc_info=True)
