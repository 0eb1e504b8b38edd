"""DuckDB storage for the site catalog, datapoints and import log."""

from stationsync.store.database import TelemetryDatabase
from stationsync.store.models import Datapoint, HeaderTriple, ImportLog, Site

__all__ = [
    "TelemetryDatabase",
    "Datapoint",
    "HeaderTriple",
    "ImportLog",
    "Site",
]
