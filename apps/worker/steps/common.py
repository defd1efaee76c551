from __future__ import annotations

import logging
from typing import Awaitable, Optional

from packages.shared.errors import SyncCancelled, error_text
from packages.shared.models import IntegrationResult, Warning

from apps.worker.sync.cancellation import CancellationToken

logger = logging.getLogger(__name__)


async def call_best_effort(
    token: CancellationToken,
    awaitable: Awaitable[IntegrationResult],
    *,
    code: str,
    label: str,
    system: str,
    warnings: list[Warning],
) -> Optional[IntegrationResult]:
    """
    Await an integration call whose failure must not stop the sync.
    Failures (result or exception) are appended to *warnings* and yield None.
    """
    try:
        result = await token.guard(awaitable)
    except SyncCancelled:
        raise
    except Exception as exc:
        warnings.append(Warning(code=code, message=f"{label} failed: {error_text(exc)}", system=system))
        logger.warning(f"{label} failed: {error_text(exc)}")
        return None
    if not result.success:
        warnings.append(Warning(code=code, message=f"{label} warning: {result.error_message}", system=system))
        logger.warning(f"{label} warning: {result.error_message}")
        return None
    return result


def as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value) -> list:
    return value if isinstance(value, list) else []
