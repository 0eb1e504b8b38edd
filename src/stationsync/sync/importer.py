"""Import one site: download, parse, resolve, gate, transform, insert.

Rows are handled sequentially in file order. A bad row or a failed insert
is logged and skipped; the rest of the file still goes in. The site's
watermark is written once, after every row has been handled. A worker
cancelled mid-file stops before its next row and leaves the watermark as is.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Sequence

import duckdb

from stationsync.config import WatermarkPolicy
from stationsync.context import WorkerContext
from stationsync.exceptions import (
    FetchError,
    InsertError,
    MalformedHeaderError,
    RowTransformError,
    StationSyncError,
    UnknownSiteError,
    WatermarkUpdateError,
)
from stationsync.pipelines.downloader import Downloader
from stationsync.pipelines.resolver import SiteResolver
from stationsync.pipelines.tabular import parse_file
from stationsync.pipelines.transform import row_timestamp, should_insert, transform_row
from stationsync.store.database import TelemetryDatabase
from stationsync.store.models import HeaderTriple, Site
from stationsync.sync.workers import ClaimState
from stationsync.utils.io import file_name_from_url

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SiteImportResult:
    """Result of importing one site's file."""

    site_id: Optional[int]
    site_name: str
    worker: str
    status: str  # ClaimState.DOWNLOADED / ClaimState.FAILED value
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    watermark: Optional[datetime] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def __str__(self) -> str:
        if self.status == ClaimState.FAILED.value:
            return f"{self.site_name}: failed - {self.error}"
        return (
            f"{self.site_name}: {self.inserted} inserted, "
            f"{self.skipped} skipped, {self.failed} failed rows"
        )


class SiteImporter:
    """Imports station files into the telemetry database.

    Example:
        >>> importer = SiteImporter(db, Downloader(staging_dir))
        >>> result = importer.import_site(site, WorkerContext("worker-1", 0))
        >>> result.inserted
        24
    """

    def __init__(
        self,
        db: TelemetryDatabase,
        downloader: Downloader,
        watermark_policy: WatermarkPolicy = WatermarkPolicy.RUN_TIME,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the importer.

        Args:
            db: Site catalog and datapoint store
            downloader: Fetches site files into staging
            watermark_policy: What to record as the site watermark after import
            clock: Source of "now" for the run-time watermark policy
        """
        self.db = db
        self.downloader = downloader
        self.watermark_policy = WatermarkPolicy(watermark_policy)
        self.clock = clock
        self.resolver = SiteResolver(db)

    def import_site(self, site: Site, ctx: WorkerContext) -> SiteImportResult:
        """Download and import one claimed site.

        Download, parse, site-resolution and storage failures mark the site
        failed for this run; they are not retried until the next run. Every
        call writes one import log entry.
        """
        start_time = time.time()
        logger.info(
            f"[{ctx.name}] Downloading {site.site_name}. "
            f"Id \"{site.site_id}\", URL \"{site.download_url}\""
        )

        try:
            path = self.downloader.fetch(site.download_url, site_id=site.site_id, ctx=ctx)
            result = self.import_file(
                path,
                ctx,
                claimed_site=site,
                source_name=file_name_from_url(site.download_url),
            )
        except (FetchError, MalformedHeaderError, UnknownSiteError) as e:
            logger.error(f"[{ctx.name}] Error processing site with id {site.site_id}: {e}")
            result = self._failed(site, ctx, str(e))
        except OSError as e:
            logger.error(f"[{ctx.name}] Could not read staged file for site {site.site_id}: {e}")
            result = self._failed(site, ctx, str(e))
        except (StationSyncError, duckdb.Error) as e:
            logger.error(f"[{ctx.name}] Import of site {site.site_id} aborted: {e}")
            result = self._failed(site, ctx, str(e))

        result.duration_ms = int((time.time() - start_time) * 1000)
        self._log_import(result)
        logger.info(f"[{ctx.name}] {result} ({result.duration_ms}ms)")
        return result

    def import_file(
        self,
        path: Path,
        ctx: WorkerContext,
        claimed_site: Optional[Site] = None,
        source_name: Optional[str] = None,
    ) -> SiteImportResult:
        """Import a staged file into whichever site it resolves to.

        Args:
            path: Staged file
            ctx: Calling worker
            claimed_site: Site the file was downloaded for, if any
            source_name: Remote file name, used for site resolution when the
                file has no ``site`` column

        Raises:
            MalformedHeaderError: If the file has no full header triple
            UnknownSiteError: If the file matches no configured site
        """
        parsed = parse_file(path, ctx)
        site = self.resolver.resolve(
            parsed.header.identifiers,
            parsed.sample_row,
            path,
            source_name=source_name,
            ctx=ctx,
        )

        if claimed_site is not None and site.site_id != claimed_site.site_id:
            logger.warning(
                f"[{ctx.name}] File for {claimed_site.site_name} is tagged as "
                f"{site.site_name}; importing into site {site.site_id}"
            )

        return self.insert_rows(site, parsed.header, parsed.rows, ctx)

    def insert_rows(
        self,
        site: Site,
        header: HeaderTriple,
        rows: Sequence[Sequence[str]],
        ctx: WorkerContext,
    ) -> SiteImportResult:
        """Insert the rows newer than the site's newest stored datapoint.

        Args:
            site: Resolved site
            header: Header triple of the file
            rows: Data rows in file order
            ctx: Calling worker

        Returns:
            SiteImportResult with row counts and the recorded watermark
        """
        watermark = self.db.get_most_recent_timestamp(site.site_id)
        if watermark is None:
            logger.info(f"[{ctx.name}] Fresh import for site {site.site_id}")

        inserted = skipped = failed = 0
        newest: Optional[datetime] = None

        for row in rows:
            if ctx.cancelled:
                # Rows already stored stay; the next run resumes after them
                logger.warning(
                    f"[{ctx.name}] Cancelled during site {site.site_id} after "
                    f"{inserted} inserted rows; watermark not updated"
                )
                return SiteImportResult(
                    site_id=site.site_id,
                    site_name=site.site_name,
                    worker=ctx.name,
                    status=ClaimState.FAILED.value,
                    inserted=inserted,
                    skipped=skipped,
                    failed=failed,
                    error="Cancelled before all rows were processed",
                )

            try:
                timestamp = row_timestamp(header.identifiers, row)
                if not should_insert(timestamp, watermark):
                    skipped += 1
                    continue
                datapoint = transform_row(site.site_id, header, row, timestamp=timestamp)
                self.db.insert_datapoint(
                    datapoint.site_id, datapoint.timestamp, datapoint.readings_dict()
                )
            except RowTransformError as e:
                logger.warning(
                    f"[{ctx.name}] Skipping row for site with id {site.site_id}: {e}. Row: {list(row)}"
                )
                failed += 1
                continue
            except InsertError as e:
                logger.error(f"[{ctx.name}] Error inserting row: {e}")
                failed += 1
                continue

            inserted += 1
            if newest is None or timestamp > newest:
                newest = timestamp
            logger.debug(
                f"[{ctx.name}] Inserted row. SiteId \"{site.site_id}\" "
                f"for time {timestamp.isoformat()}"
            )

        recorded = self._update_watermark(site, newest, ctx)

        return SiteImportResult(
            site_id=site.site_id,
            site_name=site.site_name,
            worker=ctx.name,
            status=ClaimState.DOWNLOADED.value,
            inserted=inserted,
            skipped=skipped,
            failed=failed,
            watermark=recorded,
        )

    def _update_watermark(
        self,
        site: Site,
        newest_inserted: Optional[datetime],
        ctx: WorkerContext,
    ) -> Optional[datetime]:
        """Record the site watermark according to the configured policy."""
        if self.watermark_policy == WatermarkPolicy.RUN_TIME:
            watermark = self.clock()
        else:
            watermark = newest_inserted
            if watermark is None:
                logger.debug(f"[{ctx.name}] Nothing inserted, watermark unchanged")
                return site.watermark

        try:
            self.db.record_last_updated(site.site_id, watermark)
        except WatermarkUpdateError as e:
            logger.error(f"[{ctx.name}] Error updating timestamp: {e}")
            return None
        return watermark

    def _failed(self, site: Site, ctx: WorkerContext, error: str) -> SiteImportResult:
        return SiteImportResult(
            site_id=site.site_id,
            site_name=site.site_name,
            worker=ctx.name,
            status=ClaimState.FAILED.value,
            error=error,
        )

    def _log_import(self, result: SiteImportResult) -> None:
        try:
            self.db.log_import(
                site_id=result.site_id,
                worker=result.worker,
                status=result.status,
                rows_inserted=result.inserted,
                rows_skipped=result.skipped,
                rows_failed=result.failed,
                duration_ms=result.duration_ms,
                error_message=result.error,
            )
        except Exception as e:
            logger.warning(f"Could not write import log for site {result.site_id}: {e}")
