import logging
import os
from typing import List

from dotenv import load_dotenv

from dialogue_router.domain.entities.provider import ProviderSettings, ProviderTier

load_dotenv()


def _env(name: str, default: str) -> str:
    return os.getenv(f"DIALOGUE_ROUTER__{name}", default)


class AppConfig:
    INTERNAL_API_KEY: str = _env("INTERNAL_API_KEY", "change-me-internal-key")
    LOG_LEVEL: str = _env("LOG_LEVEL", "INFO")
    VERSION: str = _env("VERSION", "0.1.0")

    # Идентичность ассистента (без упоминания конкретного провайдера)
    ASSISTANT_NAME: str = _env("ASSISTANT_NAME", "JARVIS")
    ASSISTANT_IDENTITY: str = _env(
        "ASSISTANT_IDENTITY",
        "You are JARVIS, the AI assistant for JRV Car Rental in Seremban, Malaysia. "
        "You are professional, friendly, and helpful. You speak the customer's language.",
    )
    SUPPORT_CONTACT: str = _env("SUPPORT_CONTACT", "+60126565477")
    POLICY_TEXT: str = _env("POLICY_TEXT", "")
    ADMIN_PROMPT_EXTENSION: str = _env(
        "ADMIN_PROMPT_EXTENSION",
        "ADMIN MODE:\n"
        "Show car plate numbers in reports and data.\n"
        "When asked to remember something, use the save_memory tool and confirm with its ID.",
    )

    HISTORY_WINDOW: int = int(_env("HISTORY_WINDOW", "10"))
    MAX_TOOL_ROUNDS: int = int(_env("MAX_TOOL_ROUNDS", "3"))
    MAX_TOKENS: int = int(_env("MAX_TOKENS", "4096"))
    TEMPERATURE: float = float(_env("TEMPERATURE", "0.6"))
    CLASSIFIER_LENGTH_THRESHOLD: int = int(_env("CLASSIFIER_LENGTH_THRESHOLD", "300"))

    # Таймауты и здоровье провайдеров
    PROVIDER_TIMEOUT_SECONDS: float = float(_env("PROVIDER_TIMEOUT_SECONDS", "60"))
    PROBE_TIMEOUT_SECONDS: float = float(_env("PROBE_TIMEOUT_SECONDS", "5"))
    TOOL_TIMEOUT_SECONDS: float = float(_env("TOOL_TIMEOUT_SECONDS", "45"))
    TOOL_CONCURRENCY: int = int(_env("TOOL_CONCURRENCY", "4"))
    FAILURE_THRESHOLD: int = int(_env("FAILURE_THRESHOLD", "3"))
    HEALTH_CHECK_INTERVAL_SECONDS: float = float(_env("HEALTH_CHECK_INTERVAL_SECONDS", "300"))
    CONNECT_RETRIES: int = int(_env("CONNECT_RETRIES", "1"))

    CACHE_MAX_SIZE: int = int(_env("CACHE_MAX_SIZE", "200"))

    # Режим работы: mock для тестов, live для продакшена
    LLM_MODE: str = _env("LLM_MODE", "live")  # mock | live

    # Primary cloud (OpenAI-совместимый API, по умолчанию Moonshot Kimi)
    PRIMARY_NAME: str = _env("PRIMARY_NAME", "kimi")
    PRIMARY_BASE_URL: str = _env("PRIMARY_BASE_URL", "https://api.moonshot.ai/v1")
    PRIMARY_API_KEY: str = _env("PRIMARY_API_KEY", "")
    PRIMARY_MODEL: str = _env("PRIMARY_MODEL", "kimi-k2.5")

    # Secondary cloud (по умолчанию Groq)
    SECONDARY_NAME: str = _env("SECONDARY_NAME", "groq")
    SECONDARY_BASE_URL: str = _env("SECONDARY_BASE_URL", "https://api.groq.com/openai/v1")
    SECONDARY_API_KEY: str = _env("SECONDARY_API_KEY", "")
    SECONDARY_MODEL: str = _env("SECONDARY_MODEL", "llama-3.3-70b-versatile")

    # Local (Ollama)
    LOCAL_NAME: str = _env("LOCAL_NAME", "ollama")
    LOCAL_BASE_URL: str = _env("LOCAL_BASE_URL", "http://localhost:11434")
    LOCAL_MODEL: str = _env("LOCAL_MODEL", "llama3.1:8b")


# Logging setup
logging.basicConfig(level=AppConfig.LOG_LEVEL)
logger = logging.getLogger("dialogue-router")


def load_provider_settings() -> List[ProviderSettings]:
    """
    Собрать цепочку провайдеров из AppConfig.

    Порядок фиксирован конфигурацией: primary cloud, secondary cloud, local.
    Облачный провайдер без API ключа считается не сконфигурированным и в цепочку
    не попадает. Локальный провайдер сконфигурирован всегда.

    В режиме mock вся цепочка состоит из FakeProviderClient.
    """
    llm_mode = (AppConfig.LLM_MODE or "live").lower()
    if llm_mode == "mock":
        logger.info("[Config] LLM_MODE=mock, using fake providers")
        return [
            ProviderSettings(id="mock-cloud", tier=ProviderTier.PRIMARY_CLOUD, kind="fake", supports_tools=True),
            ProviderSettings(id="mock-local", tier=ProviderTier.LOCAL, kind="fake"),
        ]

    candidates = [
        ProviderSettings(
            id=AppConfig.PRIMARY_NAME,
            tier=ProviderTier.PRIMARY_CLOUD,
            kind="openai",
            base_url=AppConfig.PRIMARY_BASE_URL,
            api_key=AppConfig.PRIMARY_API_KEY or None,
            model=AppConfig.PRIMARY_MODEL,
            supports_tools=True,
        ),
        ProviderSettings(
            id=AppConfig.SECONDARY_NAME,
            tier=ProviderTier.SECONDARY_CLOUD,
            kind="openai",
            base_url=AppConfig.SECONDARY_BASE_URL,
            api_key=AppConfig.SECONDARY_API_KEY or None,
            model=AppConfig.SECONDARY_MODEL,
            supports_tools=True,
        ),
        ProviderSettings(
            id=AppConfig.LOCAL_NAME,
            tier=ProviderTier.LOCAL,
            kind="ollama",
            base_url=AppConfig.LOCAL_BASE_URL,
            model=AppConfig.LOCAL_MODEL,
            supports_tools=False,
        ),
    ]

    configured = []
    for settings in candidates:
        if settings.kind == "openai" and not settings.api_key:
            logger.info(f"[Config] Provider '{settings.id}' not configured (no API key), skipping")
            continue
        configured.append(settings)
    return configured
