"""Row transformation and the watermark gate.

Station loggers record local standard time and ignore daylight saving, so
every TIMESTAMP cell is read as UTC-6 and converted to UTC.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd

from stationsync.exceptions import RowTransformError
from stationsync.pipelines.tabular import TIMESTAMP_IDENTIFIER
from stationsync.store.models import Datapoint, HeaderTriple, Reading

logger = logging.getLogger(__name__)

# Structural columns that are never stored as readings
DROP_COLUMNS = frozenset({"TIMESTAMP", "RECORD", "site", "year", "month", "day", "hour"})

# Fixed offset of the stations' clocks (no DST adjustment)
SOURCE_UTC_OFFSET = "-06:00"


def parse_source_timestamp(value: Optional[str]) -> datetime:
    """Parse a naive station timestamp as UTC-6 and convert it to UTC.

    Args:
        value: Timestamp cell, e.g. "2021-06-01 00:00:00"

    Returns:
        Timezone-aware UTC datetime

    Raises:
        RowTransformError: If the cell is empty or not a timestamp

    Example:
        >>> parse_source_timestamp("2021-06-01 00:00:00")
        datetime.datetime(2021, 6, 1, 6, 0, tzinfo=datetime.timezone.utc)
    """
    if value is None or not value.strip():
        raise RowTransformError("Missing TIMESTAMP value")

    text = f"{value.strip()}{SOURCE_UTC_OFFSET}"
    try:
        ts = pd.to_datetime(text, utc=True)
    except (ValueError, TypeError) as e:
        raise RowTransformError(
            f"Unparseable TIMESTAMP '{value}': {e}", {"timestamp": value}
        ) from e

    if pd.isna(ts):
        raise RowTransformError(f"Unparseable TIMESTAMP '{value}'", {"timestamp": value})

    return ts.to_pydatetime()


def row_timestamp(identifiers: Sequence[str], row: Sequence[str]) -> datetime:
    """UTC timestamp of a data row, read from its TIMESTAMP column."""
    try:
        index = list(identifiers).index(TIMESTAMP_IDENTIFIER)
    except ValueError:
        raise RowTransformError("File has no TIMESTAMP column") from None
    value = row[index] if index < len(row) else None
    return parse_source_timestamp(value)


def should_insert(candidate: datetime, watermark: Optional[datetime]) -> bool:
    """Watermark gate: is a row new relative to the site's watermark?

    With no watermark (fresh import) every row qualifies. Otherwise the row
    must be strictly newer, so re-importing the same file inserts nothing.
    """
    if watermark is None:
        return True
    return candidate > watermark


def build_reading(
    identifiers: Sequence[str],
    units: Sequence[str],
    measurement_types: Sequence[str],
    row: Sequence[str],
) -> Reading:
    """Turn one data row into a reading set.

    Empty cells and structural columns (DROP_COLUMNS) are left out; keys are
    lower-cased identifiers.

    Example:
        >>> build_reading(["TIMESTAMP", "AirTemp"], ["", "DegC"], ["", "Avg"],
        ...               ["2021-06-01 00:00:00", "21.4"])
        {'airtemp': {'value': '21.4', 'unit': 'DegC', 'measurementType': 'Avg'}}
    """
    reading: Reading = {}
    for index, identifier in enumerate(identifiers):
        value = row[index] if index < len(row) else ""
        if value == "" or identifier in DROP_COLUMNS:
            continue
        reading[identifier.lower()] = {
            "value": value,
            "unit": units[index] if index < len(units) else "",
            "measurementType": measurement_types[index] if index < len(measurement_types) else "",
        }
    return reading


def transform_row(
    site_id: int,
    header: HeaderTriple,
    row: Sequence[str],
    timestamp: Optional[datetime] = None,
) -> Datapoint:
    """Build the Datapoint for one data row.

    Args:
        site_id: Site the row belongs to
        header: Header triple of the file
        row: Data row aligned with the header
        timestamp: Already-parsed UTC timestamp; parsed from the row if None

    Returns:
        Immutable Datapoint

    Raises:
        RowTransformError: If the row's timestamp is missing or invalid
    """
    if timestamp is None:
        timestamp = row_timestamp(header.identifiers, row)

    reading = build_reading(
        header.identifiers, header.units, header.measurement_types, row
    )
    return Datapoint(site_id=site_id, timestamp=timestamp, readings=reading)
