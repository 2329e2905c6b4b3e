"""
CushionWatch — AESO Actual / Forecast Report Parser
Turns the ActualForecastWMRQH servlet CSV into one row per hour ending.

Report shape
------------
  Source: http://ets.aeso.ca/ets_web/ip/Market/Reports/ActualForecastWMRQHReportServlet?contentType=csv

  A few preamble lines, an unquoted header, then fully-quoted data rows:

    Date (HE),Forecast Pool Price,Actual Posted Pool Price,Forecast AIL,Actual AIL,Forecast AIL & Actual AIL Difference
    "11/18/2025 05","$25.10","$22.00","9,500","9,400","100"

  The first field is ``M/D/YYYY HH`` where HH is the hour ending (1..24).
  Future hours carry "-" for the actual columns.  A single file may span
  more than one report date.

Column mapping
--------------
  When the header names all four value columns they are looked up through
  the ``actual_forecast`` column table; otherwise the values are taken
  positionally (fields 1..4).  The ``debug.column_source`` field records
  which path was used.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from loguru import logger

from aeso.csv_reader import (
    REPORT_COLUMNS,
    field_at,
    iter_lines,
    resolve_columns,
    split_line,
    to_number_or_null,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

AESO_ACTUAL_FORECAST_CSV_URL = (
    "http://ets.aeso.ca/ets_web/ip/Market/Reports/"
    "ActualForecastWMRQHReportServlet?contentType=csv"
)

VALUE_FIELDS: tuple[str, ...] = (
    "forecast_price",
    "actual_price",
    "forecast_load",
    "actual_load",
)

# Positional fallback: date/HE is field 0, the four values follow in order
POSITIONAL_COLUMNS: dict[str, int] = {name: idx + 1 for idx, name in enumerate(VALUE_FIELDS)}

SAMPLE_LINE_LIMIT = 12
SAMPLE_LINE_WIDTH = 200

_DATE_HE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2})(?::\d{2})?$")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ActualForecastRow:
    """One hour ending of the Actual/Forecast report."""

    date: date
    he: int
    forecast_price: Optional[float]
    actual_price: Optional[float]
    forecast_load: Optional[float]
    actual_load: Optional[float]

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in VALUE_FIELDS)

    def to_dict(self) -> dict:
        return {
            "date":           self.date.isoformat(),
            "he":             self.he,
            "forecast_price": self.forecast_price,
            "actual_price":   self.actual_price,
            "forecast_load":  self.forecast_load,
            "actual_load":    self.actual_load,
        }


@dataclass
class ActualForecastDebug:
    ok: bool = False
    http_status: Optional[int] = None
    line_count: int = 0
    parsed_row_count: int = 0
    report_dates: list[str] = field(default_factory=list)
    sample_lines: list[str] = field(default_factory=list)
    skipped_rows: int = 0
    duplicate_rows: int = 0
    column_source: str = "positional"
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok":               self.ok,
            "http_status":      self.http_status,
            "line_count":       self.line_count,
            "parsed_row_count": self.parsed_row_count,
            "report_dates":     list(self.report_dates),
            "sample_lines":     list(self.sample_lines),
            "skipped_rows":     self.skipped_rows,
            "duplicate_rows":   self.duplicate_rows,
            "column_source":    self.column_source,
            "error":            self.error,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_date_he(text: str) -> Optional[tuple[date, int]]:
    """
    "11/19/2025 01" → (date(2025, 11, 19), 1).

    Returns None when the text is not shaped like ``M/D/YYYY HH``, the
    calendar date is invalid, or the hour ending falls outside 1..24.
    """
    match = _DATE_HE_RE.match((text or "").strip())
    if not match:
        return None
    month, day, year, he = (int(g) for g in match.groups())
    if not 1 <= he <= 24:
        return None
    try:
        return date(year, month, day), he
    except ValueError:
        return None


def _looks_like_date_he(text: str) -> bool:
    return bool(_DATE_HE_RE.match((text or "").strip()))


def _coerce_date(value: Union[date, str, None]) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def parse_actual_forecast(
    text: str,
    report_date: Union[date, str, None] = None,
) -> tuple[dict[int, ActualForecastRow], ActualForecastDebug]:
    """
    Parse the Actual/Forecast CSV into ``{he: ActualForecastRow}``.

    Parameters
    ----------
    text:
        Raw report text.  Empty text is a normal input and yields no rows.
    report_date:
        When given, only rows for this calendar date are kept.  Rows for
        other dates still show up in ``debug.report_dates``.

    Rows whose four values are all missing are dropped.  A repeated HE keeps
    its first occurrence.  Never raises.
    """
    debug = ActualForecastDebug()
    rows: dict[int, ActualForecastRow] = {}

    if not text or not text.strip():
        debug.error = "Empty report text"
        return rows, debug

    try:
        target = _coerce_date(report_date)
        lines = list(iter_lines(text))
        debug.line_count = len(lines)
        debug.sample_lines = [ln[:SAMPLE_LINE_WIDTH] for ln in lines[:SAMPLE_LINE_LIMIT]]

        columns = POSITIONAL_COLUMNS
        dates: set[str] = set()

        for line in lines:
            fields = split_line(line)
            first = field_at(fields, 0)

            if not _looks_like_date_he(first):
                if debug.column_source == "positional":
                    resolved = resolve_columns(fields, REPORT_COLUMNS["actual_forecast"])
                    if all(name in resolved for name in VALUE_FIELDS):
                        columns = resolved
                        debug.column_source = "header"
                        logger.debug("Actual/Forecast header resolved: {}", resolved)
                continue

            parsed = parse_date_he(first)
            if parsed is None:
                debug.skipped_rows += 1
                logger.debug("Skipping Actual/Forecast row with bad date/HE: {!r}", first)
                continue

            row_date, he = parsed
            dates.add(row_date.isoformat())
            if target is not None and row_date != target:
                continue

            values = {name: to_number_or_null(field_at(fields, columns[name])) for name in VALUE_FIELDS}
            row = ActualForecastRow(date=row_date, he=he, **values)
            if row.is_empty:
                debug.skipped_rows += 1
                continue
            if he in rows:
                debug.duplicate_rows += 1
                continue
            rows[he] = row

        debug.report_dates = sorted(dates)
        debug.parsed_row_count = len(rows)
        debug.ok = bool(rows)
        if not rows:
            if not dates:
                debug.error = "No data rows shaped like 'M/D/YYYY HH' found"
            elif target is not None:
                debug.error = f"No rows with values for {target.isoformat()}"
            else:
                debug.error = "All data rows were empty"

    except Exception as exc:
        logger.warning("Actual/Forecast parse failed: {}", exc)
        rows = {}
        debug.ok = False
        debug.parsed_row_count = 0
        debug.error = f"Unexpected parse failure: {exc}"

    return rows, debug
