"""
Сервис классификации сообщений.

Определяет, какой класс провайдеров (local / cloud) нужен запросу.
Чистая функция: без состояния, без обучения, без внешних вызовов.
"""

import logging
from typing import Iterable, Optional, Tuple

from dialogue_router.models.schemas import RouteTier

logger = logging.getLogger("dialogue-router.message_classifier")


# Бизнес/аналитические/генеративные триггеры: любое совпадение -> cloud
CLOUD_TRIGGERS: Tuple[str, ...] = (
    "report", "analysis", "analytics", "earnings", "revenue", "financial",
    "forecast", "predict", "compare", "summary",
    "generate code", "create website", "design", "build", "html", "css",
    "fraud", "suspicious", "investigate", "audit",
    "why", "explain in detail", "recommend", "strategy", "optimize",
    "write email", "draft", "compose", "proposal", "marketing",
    "how many", "total", "count", "list all",
    "which car", "available", "booking", "customer",
    "remind", "schedule", "call", "generate", "site",
)

LENGTH_THRESHOLD = 300


class MessageClassifier:
    """
    Keyword-классификатор уровня возможностей.

    Правила:
    - регистронезависимое вхождение любого триггера -> cloud
    - длина текста больше length_threshold -> cloud
    - иначе -> local
    """

    def __init__(
        self,
        triggers: Optional[Iterable[str]] = None,
        length_threshold: int = LENGTH_THRESHOLD,
    ):
        self.triggers = tuple(t.lower() for t in (triggers if triggers is not None else CLOUD_TRIGGERS))
        self.length_threshold = length_threshold

    def classify(self, text: str) -> RouteTier:
        lower = (text or "").lower()
        for trigger in self.triggers:
            if trigger in lower:
                logger.debug(f"Classified as cloud (trigger={trigger!r})")
                return RouteTier.CLOUD
        if len(text or "") > self.length_threshold:
            logger.debug(f"Classified as cloud (length={len(text)})")
            return RouteTier.CLOUD
        return RouteTier.LOCAL


def classify(text: str) -> RouteTier:
    """Классификация с триггерами и порогом по умолчанию."""
    return _default_classifier.classify(text)


_default_classifier = MessageClassifier()
