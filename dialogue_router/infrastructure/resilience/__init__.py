"""
Механизмы устойчивости (Resilience).

Счётчик здоровья провайдеров и повтор транспортных ошибок.
"""

from .provider_health import ProviderHealth
from .retry import call_with_connect_retry, create_retry

__all__ = [
    "ProviderHealth",
    "call_with_connect_retry",
    "create_retry",
]
