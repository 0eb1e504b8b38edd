"""Run orchestration: worker pool, per-site import and the CLI.

A sync can be run via:
    python -m stationsync.sync.run

Or scheduled via cron:
    # Every hour at :10
    10 * * * * python -m stationsync.sync.run
"""

from stationsync.sync.importer import SiteImporter, SiteImportResult
from stationsync.sync.run import SyncResult, get_sync_status, run_sync
from stationsync.sync.workers import (
    ClaimBoard,
    ClaimState,
    WorkerContext,
    WorkerPool,
    partition_sites,
)

__all__ = [
    "ClaimBoard",
    "ClaimState",
    "SiteImporter",
    "SiteImportResult",
    "SyncResult",
    "WorkerContext",
    "WorkerPool",
    "get_sync_status",
    "partition_sites",
    "run_sync",
]
