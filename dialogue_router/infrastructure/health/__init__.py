"""
Фоновые задачи проверки здоровья провайдеров.
"""

from .health_monitor import ProviderHealthMonitor

__all__ = ["ProviderHealthMonitor"]
