"""Sync entry point: import new hourly readings for every configured site.

Meant to be run on a schedule, e.g. hourly via cron:

    # Every hour at :10 (after the stations publish)
    10 * * * * python -m stationsync.sync.run

Only one sync may run at a time: the staging directory is shared and is
cleared when a run starts.

Usage:
    python -m stationsync.sync.run                      # Sync all sites
    python -m stationsync.sync.run --workers 5          # More workers
    python -m stationsync.sync.run --strategy shard     # Disjoint shards
    python -m stationsync.sync.run --status             # Show site status
    python -m stationsync.sync.run --add-site NAME URL  # Register a site
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field, replace
from typing import Optional

import duckdb
import pandas as pd

from stationsync.config import ClaimStrategy, SyncConfig, WatermarkPolicy
from stationsync.exceptions import CatalogUnavailableError, ConfigurationError
from stationsync.pipelines.downloader import Downloader
from stationsync.store.database import TelemetryDatabase
from stationsync.sync.importer import SiteImporter
from stationsync.sync.workers import ClaimState, WorkerPool
from stationsync.utils.io import clear_staging

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of one sync run."""

    total: int
    downloaded: int
    failed: int
    rows_inserted: int
    duration_ms: int
    sites_per_worker: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Percentage of sites imported without a site-level failure."""
        if self.total == 0:
            return 0.0
        return (self.downloaded / self.total) * 100

    def __str__(self) -> str:
        return (
            f"Sync complete: {self.downloaded}/{self.total} sites imported, "
            f"{self.failed} failed, {self.rows_inserted} rows inserted "
            f"({self.duration_ms}ms)"
        )


def _open_database(config: SyncConfig) -> TelemetryDatabase:
    try:
        return TelemetryDatabase(config.db_path)
    except duckdb.Error as e:
        raise CatalogUnavailableError(
            f"Could not open database: {e}", {"db_path": str(config.db_path)}
        ) from e


def run_sync(config: SyncConfig, db: Optional[TelemetryDatabase] = None) -> SyncResult:
    """Run one full sync over all configured sites.

    Args:
        config: Run configuration
        db: Open database to use. Opened (and closed) from config if None.

    Returns:
        SyncResult with per-run counts

    Raises:
        CatalogUnavailableError: If the site list cannot be enumerated
    """
    start_time = time.time()
    owns_db = db is None
    if owns_db:
        db = _open_database(config)

    try:
        clear_staging(config.staging_dir)
        sites = db.list_sites()

        logger.info("=" * 60)
        logger.info("Starting station sync...")
        logger.info(f"Database: {db.db_path}")
        logger.info(f"Sites: {len(sites)}")
        logger.info(
            f"Workers: {config.workers} ({config.claim_strategy.value}), "
            f"watermark policy: {config.watermark_policy.value}"
        )
        logger.info("=" * 60)

        downloader = Downloader(config.staging_dir, timeout=config.timeout)
        importer = SiteImporter(db, downloader, watermark_policy=config.watermark_policy)
        pool = WorkerPool(
            importer.import_site,
            workers=config.workers,
            strategy=config.claim_strategy,
        )
        reports = pool.run(sites)

        counts = pool.board.counts()
        rows_inserted = sum(
            getattr(r, "inserted", 0) for report in reports for r in report.results
        )

        result = SyncResult(
            total=len(sites),
            downloaded=counts[ClaimState.DOWNLOADED],
            failed=counts[ClaimState.FAILED],
            rows_inserted=rows_inserted,
            duration_ms=int((time.time() - start_time) * 1000),
            sites_per_worker={r.name: len(r.processed) for r in reports},
        )
        logger.info(str(result))
        return result

    finally:
        if owns_db:
            db.close()


def get_sync_status(config: SyncConfig) -> pd.DataFrame:
    """Per-site watermark status as a DataFrame."""
    db = _open_database(config)
    try:
        return db.site_summary()
    finally:
        db.close()


def print_status(status: pd.DataFrame) -> None:
    """Print site status in human-readable format."""
    print()
    print("=" * 60)
    print("Station Sync Status")
    print("=" * 60)
    print(f"Sites: {len(status)}")
    print(f"Total datapoints: {int(status['datapoints'].sum()) if len(status) else 0}")
    print()

    for row in status.itertuples(index=False):
        latest = row.latest_datapoint if pd.notna(row.latest_datapoint) else "never"
        updated = row.last_updated if pd.notna(row.last_updated) else "never"
        print(
            f"  {row.site_name:<25} points:{int(row.datapoints):<8} "
            f"latest:{latest}  updated:{updated}"
        )

    print("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import new hourly station readings for all configured sites",
        epilog="""
Examples:
  python -m stationsync.sync.run                    # Sync all sites
  python -m stationsync.sync.run --status           # Show status
  python -m stationsync.sync.run --add-site Laramie https://example.org/Laramie.csv

Cron setup (hourly):
  10 * * * * cd /path/to/stationsync && python -m stationsync.sync.run >> /var/log/stationsync.log 2>&1
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--db", type=str, default=None, help="Database path")
    parser.add_argument(
        "--staging-dir", type=str, default=None, help="Download staging directory"
    )
    parser.add_argument("--workers", type=int, default=None, help="Number of workers")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in ClaimStrategy],
        default=None,
        help="How sites are distributed across workers",
    )
    parser.add_argument(
        "--watermark-policy",
        choices=[p.value for p in WatermarkPolicy],
        default=None,
        help="Watermark recorded after each site import",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show per-site status and exit",
    )
    parser.add_argument(
        "--add-site",
        nargs=2,
        metavar=("NAME", "URL"),
        default=None,
        help="Register a site and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output except errors",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> SyncConfig:
    """Environment configuration with CLI overrides applied."""
    config = SyncConfig.from_env()
    overrides = {
        "db_path": args.db,
        "staging_dir": args.staging_dir,
        "workers": args.workers,
        "claim_strategy": args.strategy,
        "watermark_policy": args.watermark_policy,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for a sync run."""
    args = build_parser().parse_args(argv)

    # Configure logging
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = config_from_args(args)

        if args.status:
            print_status(get_sync_status(config))
            return 0

        if args.add_site:
            name, url = args.add_site
            db = _open_database(config)
            try:
                site = db.add_site(name, url)
            except duckdb.ConstraintException:
                logger.error(f"A site named '{name}' already exists")
                return 1
            finally:
                db.close()
            print(f"Added site {site.site_name} (id={site.site_id})")
            return 0

        run_sync(config)
        return 0

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except CatalogUnavailableError as e:
        logger.error(f"Error fetching site list: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
