"""
Step 03 - Multi-system sync.
Run the cross-system and comprehensive syncs concurrently and merge what
came back. The attempt fails only when neither call succeeded.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from packages.shared.errors import SyncCancelled, SyncFailure, error_text
from packages.shared.models import IntegrationResult

from apps.worker.integrations.base import HealthcareIntegrationClient
from apps.worker.steps.common import as_dict, as_list
from apps.worker.sync.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def merge_medical_history(*histories: dict[str, Any]) -> dict[str, list[str]]:
    allergies: list[str] = []
    conditions: list[str] = []
    for history in histories:
        for item in as_list(history.get("allergies")):
            if item not in allergies:
                allergies.append(item)
        for item in as_list(history.get("conditions")):
            if item not in conditions:
                conditions.append(item)
    return {"allergies": allergies, "conditions": conditions}


async def sync_all_systems(
    client: HealthcareIntegrationClient,
    patient_id: str,
    token: CancellationToken,
) -> tuple[dict[str, Any], list[str]]:
    """
    Return (merged_data, errors). Raises SyncFailure when both calls failed.
    """
    outcomes = await token.guard(asyncio.gather(
        client.sync_patient_across_all_systems(patient_id),
        client.sync_comprehensive_patient_data(patient_id),
        return_exceptions=True,
    ))

    errors: list[str] = []
    succeeded: dict[str, dict[str, Any]] = {}
    for label, outcome in zip(("all_systems", "comprehensive"), outcomes):
        if isinstance(outcome, SyncCancelled):
            raise outcome
        if isinstance(outcome, BaseException):
            errors.append(f"{label} sync failed: {error_text(outcome)}")
        elif isinstance(outcome, IntegrationResult) and outcome.success:
            succeeded[label] = as_dict(outcome.data)
        elif isinstance(outcome, IntegrationResult):
            errors.append(f"{label} sync failed: {outcome.error_message}")
        else:
            errors.append(f"{label} sync failed: Unknown error")

    for err in errors:
        logger.warning(err)

    if not succeeded:
        raise SyncFailure(f"Multi-system sync failed: {'; '.join(errors) or 'Unknown error'}")

    all_systems = succeeded.get("all_systems", {})
    comprehensive = succeeded.get("comprehensive", {})
    merged = {
        "systems": {k: bool(v) for k, v in as_dict(all_systems.get("systems")).items()},
        "medical_history": merge_medical_history(
            as_dict(all_systems.get("medical_history")),
            as_dict(comprehensive.get("medical_history")),
        ),
        "current_medications": as_list(comprehensive.get("current_medications")),
        "active_care_plans": as_list(comprehensive.get("active_care_plans")),
    }
    return merged, errors
