"""Parser for the stations' header-encoded hourly CSV files.

File layout:
- Optional preamble row (logger/program info). It is recognised by the
  absence of a literal ``TIMESTAMP`` cell and discarded.
- Three header rows, in order: identifiers, units, measurement types.
- Data rows, one reading set per row, in file order.

Example (after the preamble):

    "TIMESTAMP","RECORD","AirTemp"
    "TS","RN","DegC"
    "","","Avg"
    "2021-06-01 00:00:00",5,21.4
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from stationsync.context import WorkerContext, log_prefix
from stationsync.exceptions import MalformedHeaderError
from stationsync.store.models import HeaderTriple

logger = logging.getLogger(__name__)

TIMESTAMP_IDENTIFIER = "TIMESTAMP"
HEADER_ROW_COUNT = 3


@dataclass
class ParsedFile:
    """A parsed station file.

    Attributes:
        header: Identifiers, units and measurement types by column
        rows: Data rows in file order, each padded/truncated to header width
        source_path: File the data came from, if parsed from disk
    """

    header: HeaderTriple
    rows: list[list[str]] = field(default_factory=list)
    source_path: Optional[Path] = None

    @property
    def sample_row(self) -> Optional[list[str]]:
        """First data row, used to resolve the site."""
        return self.rows[0] if self.rows else None


def _align(row: list[str], width: int) -> list[str]:
    """Pad a row with empty cells (or cut it) to exactly ``width`` cells."""
    if len(row) < width:
        return row + [""] * (width - len(row))
    return row[:width]


def has_preamble(first_row: list[str]) -> bool:
    """True when the first row is a preamble (no TIMESTAMP cell)."""
    return TIMESTAMP_IDENTIFIER not in first_row


def _read_rows(raw_text: str) -> list[tuple[int, list[str]]]:
    """Non-empty CSV rows with their 1-based line numbers."""
    reader = csv.reader(io.StringIO(raw_text))
    try:
        return [(reader.line_num, row) for row in reader if row]
    except csv.Error as e:
        raise MalformedHeaderError(
            f"Unreadable CSV: {e}", {"line": reader.line_num}
        ) from e


def parse_text(
    raw_text: str,
    ctx: Optional[WorkerContext] = None,
) -> tuple[HeaderTriple, list[list[str]]]:
    """Split raw file text into a header triple and data rows.

    Args:
        raw_text: Full contents of a station file
        ctx: Calling worker (log prefix)

    Returns:
        Tuple of (HeaderTriple, data rows in file order)

    Raises:
        MalformedHeaderError: If fewer than three rows remain after the
            optional preamble is dropped, or the text is not valid CSV
    """
    prefix = log_prefix(ctx)
    # utf-8-sig files decoded elsewhere can still carry the BOM
    raw_text = raw_text.lstrip("\ufeff")

    numbered = _read_rows(raw_text)
    line_numbers = [line for line, _ in numbered]
    rows = [row for _, row in numbered]

    if rows and has_preamble(rows[0]):
        logger.debug(f"{prefix}Dropping preamble row: {rows[0][:3]}...")
        rows = rows[1:]
        line_numbers = line_numbers[1:]

    if len(rows) < HEADER_ROW_COUNT:
        raise MalformedHeaderError(
            f"Expected {HEADER_ROW_COUNT} header rows, found {len(rows)}",
            {"rows": len(rows)},
        )

    identifiers = rows[0]
    width = len(identifiers)
    header = HeaderTriple(
        identifiers=tuple(identifiers),
        units=tuple(_align(rows[1], width)),
        measurement_types=tuple(_align(rows[2], width)),
    )

    data_rows = []
    for line, row in zip(line_numbers[HEADER_ROW_COUNT:], rows[HEADER_ROW_COUNT:]):
        if len(row) > width:
            logger.warning(
                f"{prefix}Line {line} has {len(row)} cells, header has {width}; "
                f"dropping extra cells {row[width:]}"
            )
        elif len(row) < width:
            logger.debug(f"{prefix}Line {line} has {len(row)} cells, header has {width}")
        data_rows.append(_align(row, width))

    return header, data_rows


def parse_file(path: Path, ctx: Optional[WorkerContext] = None) -> ParsedFile:
    """Read and parse a staged station file.

    Args:
        path: Path to the CSV file
        ctx: Calling worker (log prefix)

    Returns:
        ParsedFile with header, rows and source path

    Raises:
        MalformedHeaderError: If the file lacks a full header triple or is
            not valid CSV
        OSError: If the file cannot be read
    """
    with open(path, "r", encoding="utf-8-sig", errors="replace", newline="") as f:
        content = f.read()

    try:
        header, rows = parse_text(content, ctx)
    except MalformedHeaderError as e:
        e.context["path"] = str(path)
        raise

    logger.info(
        f"{log_prefix(ctx)}Parsed {path.name}: {len(header)} columns, {len(rows)} data rows"
    )
    return ParsedFile(header=header, rows=rows, source_path=path)
