"""Per-site ingestion steps for station files.

Each step handles one stage of a site import:
1. Downloading the site's file into staging
2. Parsing the header triple and data rows
3. Resolving the file to a catalog site
4. Gating rows on the watermark and transforming them into datapoints

Modules:
- downloader: streamed HTTP download with bounded timeouts
- tabular: preamble/header-triple CSV parser
- resolver: site resolution by ``site`` column or file name
- transform: timestamp normalization, watermark gate, reading builder
"""

from .downloader import Downloader
from .resolver import SiteResolver
from .tabular import ParsedFile, parse_file, parse_text
from .transform import (
    DROP_COLUMNS,
    build_reading,
    parse_source_timestamp,
    should_insert,
    transform_row,
)

__all__ = [
    "Downloader",
    "SiteResolver",
    "ParsedFile",
    "parse_file",
    "parse_text",
    "DROP_COLUMNS",
    "build_reading",
    "parse_source_timestamp",
    "should_insert",
    "transform_row",
]
