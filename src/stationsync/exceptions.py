"""Exception hierarchy for stationsync.

Exception Hierarchy:
    StationSyncError (base)
    ├── ConfigurationError - Invalid or missing configuration
    ├── CatalogUnavailableError - Site list cannot be enumerated (fatal)
    ├── FetchError - Network or staging I/O failure for one site
    ├── MalformedHeaderError - File has fewer than three header rows
    ├── UnknownSiteError - No catalog site matches the file
    ├── RowTransformError - One data row could not be converted
    ├── InsertError - One datapoint could not be stored
    └── WatermarkUpdateError - Site watermark could not be written

Only CatalogUnavailableError and ConfigurationError end a run. Everything
else is caught at the unit of work it belongs to (row or site) and logged.
"""

from typing import Any, Optional


class StationSyncError(Exception):
    """Base exception for all stationsync errors.

    Attributes:
        message: Human-readable error description
        context: Additional context (site id, worker, row, ...)
    """

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ConfigurationError(StationSyncError):
    """Raised when configuration values are missing or invalid."""


class CatalogUnavailableError(StationSyncError):
    """Raised when the site catalog cannot be listed."""


class FetchError(StationSyncError):
    """Raised when a site's file cannot be downloaded into staging."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs: Any) -> None:
        self.url = url
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        super().__init__(message, context)


class MalformedHeaderError(StationSyncError):
    """Raised when a file has fewer than three header rows."""


class UnknownSiteError(StationSyncError):
    """Raised when no catalog site matches the name derived from a file."""

    def __init__(self, site_name: str, **kwargs: Any) -> None:
        self.site_name = site_name
        context = kwargs.pop("context", {})
        context["site_name"] = site_name
        super().__init__(f"No site configured with name '{site_name}'", context)


class RowTransformError(StationSyncError):
    """Raised when a data row has bad cell data (e.g. unparseable timestamp)."""


class InsertError(StationSyncError):
    """Raised when a datapoint cannot be inserted."""


class WatermarkUpdateError(StationSyncError):
    """Raised when a site's last-updated watermark cannot be written."""
