"""
Доменные сущности провайдеров.

ProviderDescriptor описывает один backend (облачный или локальный),
его место в цепочке и текущее состояние здоровья.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from dialogue_router.infrastructure.llm.base import BaseProviderClient
    from dialogue_router.infrastructure.resilience.provider_health import ProviderHealth


class ProviderTier(str, Enum):
    """
    Приоритетный класс провайдера.

    Порядок объявления совпадает с порядком обхода цепочки.
    """
    PRIMARY_CLOUD = "primary-cloud"
    SECONDARY_CLOUD = "secondary-cloud"
    LOCAL = "local"

    @property
    def is_cloud(self) -> bool:
        return self is not ProviderTier.LOCAL


class HealthState(str, Enum):
    """
    Доступность провайдера.

    - HEALTHY: провайдер участвует в цепочке
    - DEGRADED: превышен порог ошибок, но провайдер всё ещё пробуется
    - DEAD: пропускается при обходе до успешной повторной проверки
    """
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DEAD = "dead"


class ProviderSettings(BaseModel):
    """Статическая конфигурация одного провайдера."""

    id: str = Field(..., description="Уникальный идентификатор провайдера")
    tier: ProviderTier
    kind: Literal["openai", "ollama", "fake"] = "openai"
    base_url: str = ""
    api_key: Optional[str] = None
    model: str = ""
    supports_tools: bool = False
    timeout: Optional[float] = Field(
        default=None,
        description="Таймаут одного вызова (секунды); None = глобальное значение",
    )


class ProviderDescriptor:
    """
    Один backend в цепочке ротации.

    Создаётся при старте из конфигурации и живёт до остановки процесса.
    Состояние здоровья изменяется при каждой попытке вызова и при повторных проверках.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        client: "BaseProviderClient",
        health: "ProviderHealth",
    ):
        self.settings = settings
        self.client = client
        self.health = health

    @property
    def id(self) -> str:
        return self.settings.id

    @property
    def tier(self) -> ProviderTier:
        return self.settings.tier

    @property
    def supports_tools(self) -> bool:
        return self.settings.supports_tools

    @property
    def is_dead(self) -> bool:
        return self.health.state == HealthState.DEAD

    def get_status(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tier": self.tier.value,
            "model": self.settings.model,
            "supports_tools": self.supports_tools,
            **self.health.get_stats(),
        }

    def __repr__(self) -> str:
        return f"ProviderDescriptor(id={self.id!r}, tier={self.tier.value}, state={self.health.state.value})"
