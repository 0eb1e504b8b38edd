"""DuckDB telemetry database: site catalog and datapoint storage."""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import duckdb
import pandas as pd

from stationsync.exceptions import (
    CatalogUnavailableError,
    InsertError,
    WatermarkUpdateError,
)
from stationsync.store.models import Datapoint, ImportLog, Reading, Site
from stationsync.utils.io import get_project_root

logger = logging.getLogger(__name__)

# Default database path - use project root to ensure consistent path
DEFAULT_DB_PATH = get_project_root() / "data" / "db" / "stationsync.duckdb"

# SQL schema - DuckDB uses sequences for auto-increment.
# Table names are fixed; the database file is the only configured reference.
SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS seq_site_id START 1;
CREATE SEQUENCE IF NOT EXISTS seq_datapoint_id START 1;
CREATE SEQUENCE IF NOT EXISTS seq_import_log_id START 1;

-- Site catalog
CREATE TABLE IF NOT EXISTS sites (
    site_id INTEGER DEFAULT nextval('seq_site_id') PRIMARY KEY,
    site_name VARCHAR NOT NULL UNIQUE,
    download_url VARCHAR NOT NULL,
    last_updated TIMESTAMP
);

-- Hourly readings, one row per site and timestamp (UTC)
CREATE TABLE IF NOT EXISTS datapoints (
    id BIGINT DEFAULT nextval('seq_datapoint_id') PRIMARY KEY,
    site_id INTEGER NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    readings VARCHAR NOT NULL,
    UNIQUE(site_id, timestamp)
);

CREATE INDEX IF NOT EXISTS idx_datapoints_site_time ON datapoints(site_id, timestamp);

-- Import log for debugging/monitoring
CREATE TABLE IF NOT EXISTS import_log (
    id INTEGER DEFAULT nextval('seq_import_log_id') PRIMARY KEY,
    site_id INTEGER,
    worker VARCHAR NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    status VARCHAR NOT NULL,
    rows_inserted INTEGER,
    rows_skipped INTEGER,
    rows_failed INTEGER,
    duration_ms INTEGER,
    error_message VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_import_log_time ON import_log(timestamp);
"""


def _to_db_time(ts: datetime) -> datetime:
    """Convert an aware datetime to the naive UTC value stored in DuckDB."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(ts: Optional[datetime]) -> Optional[datetime]:
    """Stored naive UTC value back to an aware UTC datetime."""
    if ts is None:
        return None
    return ts.replace(tzinfo=timezone.utc)


class TelemetryDatabase:
    """DuckDB database for the site catalog and time-series datapoints.

    One connection is shared by all workers of a run; every statement runs
    under a lock because DuckDB connections are not safe for concurrent use.

    Example:
        >>> db = TelemetryDatabase()
        >>> site = db.find_site_by_name("Laramie")
        >>> db.get_most_recent_timestamp(site.site_id)
        datetime.datetime(2021, 6, 1, 6, 0, tzinfo=datetime.timezone.utc)
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection.

        Args:
            db_path: Path to DuckDB file. Creates if doesn't exist.
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.RLock()
        self._init_schema()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get database connection (lazy initialization with retry)."""
        if self._conn is None:
            self._conn = self._connect_with_retry()
        return self._conn

    def _connect_with_retry(self, max_retries: int = 3) -> duckdb.DuckDBPyConnection:
        """Connect to database with retry logic for lock handling."""
        last_error = None
        for attempt in range(max_retries):
            try:
                return duckdb.connect(str(self.db_path))
            except duckdb.IOException as e:
                last_error = e
                if "lock" in str(e).lower() and attempt < max_retries - 1:
                    wait_time = 0.5 * (2 ** attempt)  # Exponential backoff
                    logger.warning(f"Database locked, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise
        raise last_error

    def _execute(self, sql: str, params: Optional[list] = None):
        with self._lock:
            return self.conn.execute(sql, params or [])

    def _fetchone(self, sql: str, params: Optional[list] = None):
        with self._lock:
            return self.conn.execute(sql, params or []).fetchone()

    def _fetchall(self, sql: str, params: Optional[list] = None):
        with self._lock:
            return self.conn.execute(sql, params or []).fetchall()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        for statement in SCHEMA_SQL.split(";"):
            statement = statement.strip()
            if statement:
                self._execute(statement)
        logger.info(f"Telemetry database initialized at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # -------------------------------------------------------------------------
    # Site Catalog Operations
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_site(row) -> Site:
        return Site(
            site_id=row[0],
            site_name=row[1],
            download_url=row[2],
            watermark=_from_db_time(row[3]),
        )

    def list_sites(self) -> list[Site]:
        """Get all configured sites, ordered by id.

        Raises:
            CatalogUnavailableError: If the catalog cannot be read
        """
        try:
            rows = self._fetchall(
                "SELECT site_id, site_name, download_url, last_updated "
                "FROM sites ORDER BY site_id"
            )
        except duckdb.Error as e:
            raise CatalogUnavailableError(
                f"Could not list sites: {e}", {"db_path": str(self.db_path)}
            ) from e
        return [self._row_to_site(row) for row in rows]

    def find_site_by_name(self, name: str) -> Optional[Site]:
        """Get site by name, or None if no site has that name."""
        row = self._fetchone(
            "SELECT site_id, site_name, download_url, last_updated "
            "FROM sites WHERE site_name = ?",
            [name],
        )
        return self._row_to_site(row) if row else None

    def get_site(self, site_id: int) -> Optional[Site]:
        """Get site by id."""
        row = self._fetchone(
            "SELECT site_id, site_name, download_url, last_updated "
            "FROM sites WHERE site_id = ?",
            [site_id],
        )
        return self._row_to_site(row) if row else None

    def add_site(self, name: str, download_url: str) -> Site:
        """Register a new site.

        The watermark stays empty until the first import of the site.

        Args:
            name: Site name (must match the file's site column or base name)
            download_url: URL of the site's hourly data file

        Returns:
            The created Site
        """
        row = self._fetchone(
            """
            INSERT INTO sites (site_name, download_url)
            VALUES (?, ?)
            RETURNING site_id, site_name, download_url, last_updated
            """,
            [name, download_url],
        )
        logger.info(f"Added site '{name}' (id={row[0]})")
        return self._row_to_site(row)

    def record_last_updated(self, site_id: int, timestamp: datetime) -> None:
        """Set a site's last-updated watermark.

        Raises:
            WatermarkUpdateError: If the update fails
        """
        try:
            self._execute(
                "UPDATE sites SET last_updated = ? WHERE site_id = ?",
                [_to_db_time(timestamp), site_id],
            )
        except duckdb.Error as e:
            raise WatermarkUpdateError(
                f"Could not update watermark: {e}",
                {"site_id": site_id, "timestamp": timestamp.isoformat()},
            ) from e

    # -------------------------------------------------------------------------
    # Datapoint Operations
    # -------------------------------------------------------------------------

    def most_recent_datapoint(self, site_id: int) -> Optional[Datapoint]:
        """Get the newest stored datapoint for a site."""
        row = self._fetchone(
            """
            SELECT site_id, timestamp, readings
            FROM datapoints
            WHERE site_id = ?
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            [site_id],
        )
        if row is None:
            return None
        return Datapoint(
            site_id=row[0],
            timestamp=_from_db_time(row[1]),
            readings=json.loads(row[2]),
        )

    def get_most_recent_timestamp(self, site_id: int) -> Optional[datetime]:
        """Timestamp of the newest stored datapoint, None for a fresh site."""
        row = self._fetchone(
            "SELECT MAX(timestamp) FROM datapoints WHERE site_id = ?",
            [site_id],
        )
        return _from_db_time(row[0]) if row else None

    def insert_datapoint(self, site_id: int, timestamp: datetime, readings: Reading) -> None:
        """Store one datapoint.

        Args:
            site_id: Site the readings belong to
            timestamp: Reading time (aware, converted to UTC for storage)
            readings: Identifier -> measurement mapping

        Raises:
            InsertError: If the row cannot be stored, including a duplicate
                (site_id, timestamp)
        """
        try:
            self._execute(
                """
                INSERT INTO datapoints (site_id, timestamp, readings)
                VALUES (?, ?, ?)
                """,
                [site_id, _to_db_time(timestamp), json.dumps(readings)],
            )
        except duckdb.Error as e:
            raise InsertError(
                f"Could not insert datapoint: {e}",
                {"site_id": site_id, "timestamp": timestamp.isoformat()},
            ) from e

    def get_datapoints(self, site_id: int) -> list[Datapoint]:
        """Get all datapoints for a site, oldest first."""
        rows = self._fetchall(
            """
            SELECT site_id, timestamp, readings
            FROM datapoints
            WHERE site_id = ?
            ORDER BY timestamp
            """,
            [site_id],
        )
        return [
            Datapoint(
                site_id=row[0],
                timestamp=_from_db_time(row[1]),
                readings=json.loads(row[2]),
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Logging Operations
    # -------------------------------------------------------------------------

    def log_import(
        self,
        site_id: Optional[int],
        worker: str,
        status: str,
        rows_inserted: int,
        rows_skipped: int,
        rows_failed: int,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Log a site import."""
        self._execute(
            """
            INSERT INTO import_log
            (site_id, worker, timestamp, status, rows_inserted, rows_skipped,
             rows_failed, duration_ms, error_message)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                site_id,
                worker,
                _to_db_time(datetime.now(timezone.utc)),
                status,
                rows_inserted,
                rows_skipped,
                rows_failed,
                duration_ms,
                error_message,
            ],
        )

    def get_import_log(self, site_id: Optional[int] = None) -> list[ImportLog]:
        """Get import log entries, oldest first, optionally for one site."""
        sql = (
            "SELECT site_id, worker, timestamp, status, rows_inserted, rows_skipped, "
            "rows_failed, duration_ms, error_message FROM import_log"
        )
        params = []
        if site_id is not None:
            sql += " WHERE site_id = ?"
            params.append(site_id)
        sql += " ORDER BY id"

        return [
            ImportLog(
                site_id=row[0],
                worker=row[1],
                timestamp=_from_db_time(row[2]),
                status=row[3],
                rows_inserted=row[4],
                rows_skipped=row[5],
                rows_failed=row[6],
                duration_ms=row[7],
                error_message=row[8],
            )
            for row in self._fetchall(sql, params)
        ]

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def site_summary(self) -> pd.DataFrame:
        """Per-site watermark and datapoint counts as a DataFrame."""
        with self._lock:
            return self.conn.execute(
                """
                SELECT
                    s.site_id,
                    s.site_name,
                    s.last_updated,
                    MAX(d.timestamp) AS latest_datapoint,
                    COUNT(d.id) AS datapoints
                FROM sites s
                LEFT JOIN datapoints d ON d.site_id = s.site_id
                GROUP BY s.site_id, s.site_name, s.last_updated
                ORDER BY s.site_id
                """
            ).df()

    def get_stats(self) -> dict:
        """Get database statistics."""
        site_count = self._fetchone("SELECT COUNT(*) FROM sites")[0]
        datapoint_count = self._fetchone("SELECT COUNT(*) FROM datapoints")[0]
        latest = self._fetchone("SELECT MAX(timestamp) FROM datapoints")[0]

        return {
            "site_count": site_count,
            "datapoint_count": datapoint_count,
            "latest_timestamp": _from_db_time(latest),
            "db_path": str(self.db_path),
        }
