"""
Worker runner script.
Periodically sweeps active patients and auto-syncs any whose last
successful sync is stale.
"""
import asyncio
import logging
import os
import platform
import sys
import time
import uuid

# Add project root to path if needed (though usually handled by python -m)
sys.path.append(os.getcwd())

from packages.db.database import init_db
from packages.shared import settings
from packages.shared.models import SyncPhase
from apps.worker.integrations.factory import build_integration_client
from apps.worker.pipeline_persistence import list_auto_sync_candidates, record_sync_success
from apps.worker.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)

# Config
SWEEP_INTERVAL = settings.AUTO_SYNC_INTERVAL_SECONDS
BATCH_SIZE = int(os.getenv("AUTO_SYNC_BATCH_SIZE", "100"))
WORKER_ID = f"{platform.node()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


def build_coordinator() -> SyncCoordinator:
    return SyncCoordinator(
        build_integration_client(),
        config=settings.sync_config_from_env(),
        on_success=record_sync_success,
    )


async def sweep(coordinator: SyncCoordinator, limit: int = BATCH_SIZE) -> dict[str, int]:
    """Run one auto-sync pass. Fresh patients are skipped without external calls."""
    counts = {"synced": 0, "skipped": 0, "failed": 0}
    for record, last_synced_at in list_auto_sync_candidates(limit):
        session = await coordinator.auto_sync(record, last_synced_at=last_synced_at)
        if session is None:
            counts["skipped"] += 1
        elif session.status == SyncPhase.APPLIED:
            counts["synced"] += 1
        else:
            counts["failed"] += 1
            logger.warning(f"Auto-sync failed for patient {record.id}: {session.errors[-1] if session.errors else 'Unknown error'}")
    return counts


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    logger.info(f"Auto-sync worker started. ID: {WORKER_ID}")
    init_db()
    coordinator = build_coordinator()

    while True:
        try:
            started = time.monotonic()
            counts = asyncio.run(sweep(coordinator))
            logger.info(
                f"Sweep finished in {time.monotonic() - started:.1f}s: "
                f"synced={counts['synced']} skipped={counts['skipped']} failed={counts['failed']}"
            )
            time.sleep(SWEEP_INTERVAL)

        except KeyboardInterrupt:
            logger.info("Worker stopping by user request.")
            break
        except Exception as exc:
            logger.exception(f"Unexpected error in worker loop: {exc}")
            time.sleep(5)


if __name__ == "__main__":
    main()
