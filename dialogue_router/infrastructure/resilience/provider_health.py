"""
Счётчик здоровья провайдера.

Самовосстанавливающийся счётчик ошибок вместо постоянного чёрного списка:
провайдер в состоянии DEAD пропускается, но никогда не удаляется из цепочки.
"""

import logging
import time
from typing import Callable, Optional

from dialogue_router.domain.entities.provider import HealthState

logger = logging.getLogger("dialogue-router.infrastructure.provider_health")


class ProviderHealth:
    """
    Состояние здоровья одного провайдера.

    Переходы:
        HEALTHY -> DEGRADED: consecutive_failures достиг failure_threshold
        DEGRADED -> DEAD: следующая ошибка
        DEAD -> HEALTHY: только через успешную повторную проверку (probe)
        любая -> HEALTHY: успешный вызов (сброс счётчика)

    Атрибуты:
        provider_id: Идентификатор провайдера (для логов)
        failure_threshold: Количество ошибок подряд до DEGRADED
        state: Текущее состояние
        consecutive_failures: Ошибки подряд
        last_checked: Время последнего изменения (time.time())

    Пример:
        >>> health = ProviderHealth("kimi", failure_threshold=3)
        >>> health.record_failure("timeout")
        >>> health.state
        <HealthState.HEALTHY: 'healthy'>
    """

    def __init__(
        self,
        provider_id: str,
        failure_threshold: int = 3,
        clock: Callable[[], float] = time.time,
    ):
        self.provider_id = provider_id
        self.failure_threshold = max(1, failure_threshold)
        self._clock = clock

        self.state = HealthState.HEALTHY
        self.consecutive_failures = 0
        self.last_checked: Optional[float] = None
        self.last_error: Optional[str] = None

    def record_success(self) -> None:
        """Успешный вызов: сбросить счётчик и вернуть HEALTHY."""
        if self.state != HealthState.HEALTHY:
            logger.info(f"Provider '{self.provider_id}' recovered ({self.state.value} -> healthy)")
        self.consecutive_failures = 0
        self.state = HealthState.HEALTHY
        self.last_error = None
        self.last_checked = self._clock()

    def record_failure(self, reason: str = "") -> None:
        """
        Неудачный вызов.

        Увеличивает счётчик; DEGRADED при достижении порога, DEAD при ошибке в DEGRADED.
        """
        self.consecutive_failures += 1
        self.last_error = reason or None
        self.last_checked = self._clock()

        if self.state == HealthState.DEGRADED:
            self.state = HealthState.DEAD
            logger.error(
                f"Provider '{self.provider_id}' failed while degraded, marking DEAD: {reason}"
            )
        elif self.state == HealthState.HEALTHY and self.consecutive_failures >= self.failure_threshold:
            self.state = HealthState.DEGRADED
            logger.warning(
                f"Provider '{self.provider_id}' DEGRADED after "
                f"{self.consecutive_failures}/{self.failure_threshold} failures: {reason}"
            )
        else:
            logger.warning(
                f"Provider '{self.provider_id}' failure count: "
                f"{self.consecutive_failures}/{self.failure_threshold}"
            )

    def mark_dead(self, reason: str = "") -> None:
        """Перевести в DEAD немедленно (неудачный probe или фатальная ошибка)."""
        if self.state != HealthState.DEAD:
            logger.error(f"Provider '{self.provider_id}' marked DEAD: {reason}")
        self.state = HealthState.DEAD
        self.last_error = reason or None
        self.last_checked = self._clock()

    def reset(self) -> None:
        """Успешный probe: HEALTHY с нулевым счётчиком."""
        self.state = HealthState.HEALTHY
        self.consecutive_failures = 0
        self.last_error = None
        self.last_checked = self._clock()

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "last_checked": self.last_checked,
            "last_error": self.last_error,
        }
