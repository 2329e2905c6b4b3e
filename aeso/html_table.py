"""
CushionWatch — Tolerant HTML Table Extractor
Pulls hour-ending percentage grids out of AESO's legacy servlet HTML.

The ETS report pages are hand-rolled HTML from another decade: attributes on
every tag, multi-line cells, ``<br>`` inside labels, missing ``</tr>`` tags,
and fuel labels that appear only on the first row of each block (the rest of
the block relies on ``rowspan``).  A real DOM parser buys little here, so the
extraction is a handful of case-insensitive regular expressions plus some
positional bookkeeping.

Pipeline
--------
  1. ``select_table``        — first ``<table>`` whose text contains the marker,
                               falling back to the first table on the page
  2. ``split_rows``          — one fragment per ``<tr ...>``; closing tags optional
  3. ``extract_cells``       — ``<td>``/``<th>`` pairs, cleaned to plain text
  4. ``discover_header``     — the row carrying the literals "1".."24"
  5. ``extract_hourly_percentages`` — date / label / HE value triples

Nothing here raises: every failure ends up as a reason string on
``ExtractionDebug.error`` together with zero records.
"""

from __future__ import annotations

import html as html_lib
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from loguru import logger

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MARKER = "Hour Ending"
HEADER_LOOKAHEAD_ROWS = 3
HOURS_PER_DAY = 24

_TABLE_RE   = re.compile(r"<table\b[^>]*>(.*?)</table\s*>", re.I | re.S)
_ROW_SPLIT  = re.compile(r"<tr\b[^>]*>", re.I)
_CELL_RE    = re.compile(r"<t([dh])\b[^>]*>(.*?)</t\1\s*>", re.I | re.S)
_BR_RE      = re.compile(r"<br\s*/?>", re.I)
_TAG_RE     = re.compile(r"<[^>]+>")
_WS_RE      = re.compile(r"\s+")
_DATE_RE    = re.compile(r"^\d{1,2}-[A-Za-z]{3}-\d{2}$")
_NUMBER_RE  = re.compile(r"-?\d+(?:\.\d+)?")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class HeaderMap:
    """Location of the hour-ending header row and its column → HE map."""

    row_index: int
    columns: dict[int, int]

    @property
    def first_column(self) -> int:
        return min(self.columns)


@dataclass
class HourlyCell:
    """One labelled hour-ending value pulled from a grid."""

    date: str           # ISO YYYY-MM-DD
    he: int
    label: str
    value: float


@dataclass
class ExtractionDebug:
    table_count: int = 0
    table_found: bool = False
    row_count: int = 0
    cell_count: int = 0
    header_row_index: Optional[int] = None
    he_columns: list[int] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    fuels: list[str] = field(default_factory=list)
    record_count: int = 0
    skipped_cells: int = 0
    unlabelled_rows: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "table_count":      self.table_count,
            "table_found":      self.table_found,
            "row_count":        self.row_count,
            "cell_count":       self.cell_count,
            "header_row_index": self.header_row_index,
            "he_columns":       list(self.he_columns),
            "dates":            list(self.dates),
            "fuels":            list(self.fuels),
            "record_count":     self.record_count,
            "skipped_cells":    self.skipped_cells,
            "unlabelled_rows":  self.unlabelled_rows,
            "error":            self.error,
        }


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------


def clean_cell_text(raw: str) -> str:
    """Strip tags, turn <br> and non-breaking spaces into spaces, collapse whitespace."""
    text = _BR_RE.sub(" ", raw or "")
    text = _TAG_RE.sub("", text)
    text = text.replace("&nbsp;", " ").replace("&#160;", " ")
    text = html_lib.unescape(text).replace("\xa0", " ")
    return _WS_RE.sub(" ", text).strip()


def find_tables(html: str) -> list[str]:
    """Return the inner HTML of every ``<table>`` element, in document order."""
    return [m.group(1) for m in _TABLE_RE.finditer(html or "")]


def select_table(html: str, marker: str = DEFAULT_MARKER) -> Optional[str]:
    """First table containing *marker* (case-insensitive), else the first table."""
    tables = find_tables(html)
    if not tables:
        return None
    needle = marker.lower()
    for table in tables:
        if needle in clean_cell_text(table).lower():
            return table
    return tables[0]


def split_rows(table_html: str) -> list[str]:
    """Split a table body on ``<tr>`` openings; a missing ``</tr>`` is harmless."""
    return _ROW_SPLIT.split(table_html or "")[1:]


def extract_cells(row_html: str) -> list[str]:
    return [clean_cell_text(m.group(2)) for m in _CELL_RE.finditer(row_html or "")]


def parse_grid_date(text: str) -> Optional[str]:
    """'19-Nov-25' → '2025-11-19'; anything else → None."""
    if not _DATE_RE.match(text or ""):
        return None
    try:
        return datetime.strptime(text, "%d-%b-%y").date().isoformat()
    except ValueError:
        return None


def first_number(text: str) -> Optional[float]:
    match = _NUMBER_RE.search(text or "")
    return float(match.group(0)) if match else None


# ---------------------------------------------------------------------------
# Header discovery
# ---------------------------------------------------------------------------


def discover_header(
    rows: list[list[str]],
    marker: str = DEFAULT_MARKER,
    lookahead: int = HEADER_LOOKAHEAD_ROWS,
) -> Optional[HeaderMap]:
    """
    Locate the row whose cells hold the hour-ending literals "1".."24".

    Scans the row containing *marker* and up to *lookahead* rows after it.
    Returns None when the marker is missing or no candidate row carries all
    24 hour-ending columns.
    """
    needle = marker.lower()
    marker_idx = next(
        (i for i, cells in enumerate(rows) if any(needle in c.lower() for c in cells)),
        None,
    )
    if marker_idx is None:
        return None

    last = min(len(rows) - 1, marker_idx + lookahead)
    for idx in range(marker_idx, last + 1):
        columns: dict[int, int] = {}
        seen: set[int] = set()
        for col, text in enumerate(rows[idx]):
            if text.isdigit() and len(text) <= 2:
                he = int(text)
                if 1 <= he <= HOURS_PER_DAY and he not in seen:
                    columns[col] = he
                    seen.add(he)
        if len(seen) == HOURS_PER_DAY:
            return HeaderMap(row_index=idx, columns=columns)

    return None


# ---------------------------------------------------------------------------
# Grid extraction
# ---------------------------------------------------------------------------


def extract_hourly_percentages(
    html: str,
    marker: str = DEFAULT_MARKER,
    lookahead: int = HEADER_LOOKAHEAD_ROWS,
) -> tuple[list[HourlyCell], ExtractionDebug]:
    """
    Extract (date, HE, label, value) records from an hour-ending grid.

    Row handling
    ------------
    * The first cell shaped like ``DD-Mon-YY`` carries the row's date.
    * The cell immediately before the date, when present and not itself a
      date, becomes the current label.  Rows without such a cell inherit the
      label of the row above (rowspan blocks).  The carried label lives only
      for the duration of this call.
    * HE values sit after the date cell.  Their offsets mirror the header's
      hour-ending columns, shifted so that the first HE column lands on the
      cell right after the date.  This keeps alignment when leading cells are
      absent because of rowspan.
    * The first numeric token of a value cell is the percentage ("45%" → 45).
      Cells with no number are skipped and counted.
    """
    debug = ExtractionDebug()
    records: list[HourlyCell] = []

    try:
        tables = find_tables(html)
        debug.table_count = len(tables)
        if not tables:
            debug.error = "No <table> element found in HTML"
            return records, debug

        table_html = select_table(html, marker)
        debug.table_found = table_html is not None and marker.lower() in clean_cell_text(table_html).lower()

        rows = [extract_cells(r) for r in split_rows(table_html or "")]
        debug.row_count = len(rows)
        debug.cell_count = sum(len(r) for r in rows)

        header = discover_header(rows, marker, lookahead)
        if header is None:
            if not debug.table_found:
                debug.error = f"Marker '{marker}' not found in any table"
            else:
                debug.error = (
                    f"No header row with hour-ending columns 1..{HOURS_PER_DAY} "
                    f"within {lookahead} rows of '{marker}'"
                )
            return records, debug

        debug.header_row_index = header.row_index
        debug.he_columns = sorted(header.columns)

        current_label: Optional[str] = None
        dates: list[str] = []
        labels: list[str] = []

        for cells in rows[header.row_index + 1:]:
            date_idx = next((i for i, c in enumerate(cells) if _DATE_RE.match(c)), None)
            if date_idx is None:
                continue
            iso = parse_grid_date(cells[date_idx])
            if iso is None:
                debug.skipped_cells += 1
                continue

            if date_idx > 0:
                candidate = cells[date_idx - 1]
                if candidate and not _DATE_RE.match(candidate):
                    current_label = candidate
            if current_label is None:
                debug.unlabelled_rows += 1
                continue

            if iso not in dates:
                dates.append(iso)
            if current_label not in labels:
                labels.append(current_label)

            shift = date_idx + 1 - header.first_column
            for col, he in header.columns.items():
                value_idx = col + shift
                if value_idx < 0 or value_idx >= len(cells):
                    debug.skipped_cells += 1
                    continue
                value = first_number(cells[value_idx])
                if value is None:
                    debug.skipped_cells += 1
                    continue
                records.append(HourlyCell(date=iso, he=he, label=current_label, value=value))

        debug.dates = sorted(dates)
        debug.fuels = labels
        debug.record_count = len(records)
        if not records:
            debug.error = "Header found but no data rows with a DD-Mon-YY date cell produced values"

    except Exception as exc:
        logger.warning("HTML grid extraction failed: {}", exc)
        debug.error = f"Unexpected extraction failure: {exc}"
        records = []
        debug.record_count = 0

    return records, debug
