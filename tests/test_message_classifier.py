"""
Тесты для классификатора сообщений.
"""

import pytest

from dialogue_router.domain.services.message_classifier import (
    CLOUD_TRIGGERS,
    LENGTH_THRESHOLD,
    MessageClassifier,
    classify,
)
from dialogue_router.models.schemas import RouteTier


class TestMessageClassifier:
    """Тесты для MessageClassifier"""

    def test_greeting_is_local(self):
        """Тест: короткое приветствие без триггеров -> local"""
        assert classify("hi") == RouteTier.LOCAL
        assert classify("Hello, good morning") == RouteTier.LOCAL

    def test_report_request_is_cloud(self):
        """Тест: бизнес-запрос с триггером -> cloud"""
        assert classify("Give me the monthly earnings report") == RouteTier.CLOUD

    def test_trigger_match_is_case_insensitive(self):
        """Тест: регистр триггера не важен"""
        assert classify("REVENUE please") == RouteTier.CLOUD
        assert classify("Which Car is free?") == RouteTier.CLOUD

    @pytest.mark.parametrize("trigger", ["analysis", "fraud", "write email", "how many", "booking"])
    def test_every_listed_trigger_routes_to_cloud(self, trigger):
        """Тест: любой триггер из списка даёт cloud"""
        assert trigger in CLOUD_TRIGGERS
        assert classify(f"ok {trigger} ok") == RouteTier.CLOUD

    def test_length_threshold(self):
        """Тест: порог длины 300 символов"""
        at_threshold = "a" * LENGTH_THRESHOLD
        assert classify(at_threshold) == RouteTier.LOCAL
        assert classify(at_threshold + "a") == RouteTier.CLOUD

    def test_empty_text_is_local(self):
        """Тест: пустой текст -> local"""
        assert classify("") == RouteTier.LOCAL

    def test_custom_triggers(self):
        """Тест: собственный список триггеров заменяет стандартный"""
        classifier = MessageClassifier(triggers=["Invoice"], length_threshold=10)

        assert classifier.classify("send invoice") == RouteTier.CLOUD
        assert classifier.classify("report") == RouteTier.LOCAL
        assert classifier.classify("x" * 11) == RouteTier.CLOUD

    def test_deterministic(self):
        """Тест: одинаковый ввод -> одинаковый результат"""
        text = "Tell me something nice"
        assert {classify(text) for _ in range(5)} == {RouteTier.LOCAL}
