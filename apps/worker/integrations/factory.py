"""
Build the configured integration client.
"""
from __future__ import annotations

from packages.shared import settings

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.integrations.http_client import HttpHealthcareIntegration
from apps.worker.integrations.mock import MockHealthcareIntegration


def build_integration_client(mode: str | None = None) -> HealthcareIntegrationClient:
    mode = (mode or settings.INTEGRATION_MODE).strip().lower()
    if mode == "mock":
        return MockHealthcareIntegration()
    if mode == "http":
        return HttpHealthcareIntegration(
            settings.INTEGRATION_BASE_URL,
            timeout=settings.INTEGRATION_TIMEOUT_SECONDS,
        )
    raise RuntimeError("INTEGRATION_MODE must be one of: mock, http.")
