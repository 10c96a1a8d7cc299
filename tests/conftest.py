"""
Pytest configuration and fixtures.
"""
from typing import Optional, Sequence

import pytest
from unittest.mock import patch

from dialogue_router.domain.entities.provider import ProviderDescriptor, ProviderSettings, ProviderTier
from dialogue_router.infrastructure.llm.fake import FakeProviderClient
from dialogue_router.infrastructure.resilience.provider_health import ProviderHealth


@pytest.fixture(scope="session", autouse=True)
def mock_internal_api_key():
    """Mock INTERNAL_API_KEY for all tests"""
    with patch("dialogue_router.core.config.AppConfig.INTERNAL_API_KEY", "test-key"):
        yield


def _make_provider(
    provider_id: str,
    tier: ProviderTier = ProviderTier.PRIMARY_CLOUD,
    script: Optional[Sequence] = None,
    probe_result=True,
    supports_tools: bool = False,
    failure_threshold: int = 3,
    timeout: Optional[float] = None,
) -> ProviderDescriptor:
    settings = ProviderSettings(
        id=provider_id,
        tier=tier,
        kind="fake",
        supports_tools=supports_tools,
        timeout=timeout,
    )
    return ProviderDescriptor(
        settings=settings,
        client=FakeProviderClient(provider_id, script=script, probe_result=probe_result),
        health=ProviderHealth(provider_id, failure_threshold=failure_threshold),
    )


@pytest.fixture
def make_provider():
    """Factory for providers backed by FakeProviderClient"""
    return _make_provider
