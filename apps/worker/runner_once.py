"""
Worker runner (one-shot mode for cron jobs).
Performs ONE auto-sync sweep and exits.
"""
import asyncio
import logging
import os
import sys
import time

# Add project root to path
sys.path.append(os.getcwd())

from packages.db.database import init_db
from apps.worker.runner import build_coordinator, sweep

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    """Run one auto-sync sweep and exit."""
    logger.info("Worker (one-shot) started. Sweeping stale patients...")
    init_db()

    start = time.monotonic()
    counts = asyncio.run(sweep(build_coordinator()))
    elapsed = time.monotonic() - start

    logger.info(
        f"Sweep completed in {elapsed:.1f}s: "
        f"synced={counts['synced']} skipped={counts['skipped']} failed={counts['failed']}"
    )
    sys.exit(1 if counts["failed"] and not counts["synced"] else 0)


if __name__ == "__main__":
    main()
