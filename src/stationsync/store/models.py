"""Data models for the station sync pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

# One measurement: {"value": ..., "unit": ..., "measurementType": ...}
Measurement = dict[str, str]

# Lower-cased identifier -> measurement
Reading = dict[str, Measurement]


@dataclass
class Site:
    """A monitored weather station.

    Attributes:
        site_id: Stable catalog identifier
        site_name: Name used to match downloaded files to the site
        download_url: Remote URL of the site's hourly data file
        watermark: Last-updated timestamp (UTC), None before the first import
    """

    site_id: int
    site_name: str
    download_url: str
    watermark: Optional[datetime] = None


@dataclass(frozen=True)
class HeaderTriple:
    """The three aligned header rows describing a file's columns."""

    identifiers: tuple[str, ...]
    units: tuple[str, ...]
    measurement_types: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.identifiers)

    def index_of(self, identifier: str) -> Optional[int]:
        """Position of the first column with this identifier, or None."""
        try:
            return self.identifiers.index(identifier)
        except ValueError:
            return None


@dataclass(frozen=True)
class Datapoint:
    """One timestamped reading set for a site; the unit of insertion."""

    site_id: int
    timestamp: datetime  # timezone-aware, UTC
    readings: Mapping[str, Measurement] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the mapping so the datapoint is immutable end to end
        frozen = {k: MappingProxyType(dict(v)) for k, v in self.readings.items()}
        object.__setattr__(self, "readings", MappingProxyType(frozen))

    def __hash__(self) -> int:
        # mappingproxy is unhashable; (site_id, timestamp) is the storage key
        return hash((self.site_id, self.timestamp))

    def readings_dict(self) -> Reading:
        """Plain-dict copy of the readings (for serialization)."""
        return {k: dict(v) for k, v in self.readings.items()}


@dataclass
class ImportLog:
    """Log entry for one site import."""

    site_id: Optional[int]
    worker: str
    timestamp: datetime
    status: str  # 'downloaded', 'failed'
    rows_inserted: int
    rows_skipped: int
    rows_failed: int
    duration_ms: int
    error_message: Optional[str] = None
