"""
CushionWatch — Short-Term Wind & Solar Report Parser
Buckets AESO's sub-hourly short-term renewable readings into hour-ending
averages.

Sources
-------
  http://ets.aeso.ca/Market/Reports/Manual/Operations/prodweb_reports/wind_solar_forecast/wind_rpt_shortterm.csv
  http://ets.aeso.ca/Market/Reports/Manual/Operations/prodweb_reports/wind_solar_forecast/solar_rpt_shortterm.csv

  Each file has a timestamp column (date + HH:MM), several forecast bands
  and an "Actual" column that is blank for hours not yet metered.

Hour mapping
------------
  A reading stamped hh:mm belongs to the interval ending at hh+1, so clock
  hour h → HE h+1.  The stamp is interpreted in ``source_tz`` and converted
  to ``target_tz`` before both the date filter and the hour mapping.  With
  the defaults (both America/Edmonton) no shift occurs.

Readings within a bucket are averaged arithmetically.  Hours without any
reading are absent from the result; they are not zero, because 0 MW is a
legitimate wind reading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

import pandas as pd
from loguru import logger

from aeso.csv_reader import (
    REPORT_COLUMNS,
    field_at,
    iter_lines,
    resolve_columns,
    split_line,
    strip_quotes,
    to_number_or_null,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_REPORT_BASE = (
    "http://ets.aeso.ca/Market/Reports/Manual/Operations/"
    "prodweb_reports/wind_solar_forecast"
)
AESO_WIND_SHORTTERM_URL  = f"{_REPORT_BASE}/wind_rpt_shortterm.csv"
AESO_SOLAR_SHORTTERM_URL = f"{_REPORT_BASE}/solar_rpt_shortterm.csv"

DEFAULT_TIMEZONE = os.getenv("AESO_TIMEZONE", "America/Edmonton")

_TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d-%b-%y %H:%M",
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ShorttermDebug:
    ok: bool = False
    line_count: int = 0
    header_found: bool = False
    reading_count: int = 0
    readings_on_date: int = 0
    missing_actual: int = 0
    skipped_rows: int = 0
    hours: list[int] = field(default_factory=list)
    source_tz: str = DEFAULT_TIMEZONE
    target_tz: str = DEFAULT_TIMEZONE
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok":               self.ok,
            "line_count":       self.line_count,
            "header_found":     self.header_found,
            "reading_count":    self.reading_count,
            "readings_on_date": self.readings_on_date,
            "missing_actual":   self.missing_actual,
            "skipped_rows":     self.skipped_rows,
            "hours":            list(self.hours),
            "source_tz":        self.source_tz,
            "target_tz":        self.target_tz,
            "error":            self.error,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_timestamp(text: str) -> Optional[datetime]:
    """Parse a report timestamp in any of the known formats; None if none fit."""
    cleaned = strip_quotes(text)
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    return None


def localize(ts: datetime, source_tz: str, target_tz: str) -> datetime:
    """Reinterpret a naive report timestamp from *source_tz* in *target_tz* (naive result)."""
    if source_tz == target_tz:
        return ts
    aware = ts.replace(tzinfo=ZoneInfo(source_tz))
    return aware.astimezone(ZoneInfo(target_tz)).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def parse_shortterm(
    text: str,
    target_date: Union[date, str],
    source_tz: str = DEFAULT_TIMEZONE,
    target_tz: str = DEFAULT_TIMEZONE,
) -> tuple[dict[int, float], ShorttermDebug]:
    """
    Average the "Actual" readings for *target_date* into ``{he: mean_mw}``.

    Parameters
    ----------
    text:
        Raw short-term CSV text (wind or solar; the shape is identical).
    target_date:
        Calendar date in ``target_tz`` to keep.
    source_tz, target_tz:
        IANA zone names.  Timestamps are read as ``source_tz`` wall-clock
        time and converted to ``target_tz`` before bucketing.

    Never raises.
    """
    debug = ShorttermDebug(source_tz=source_tz, target_tz=target_tz)
    result: dict[int, float] = {}

    if not text or not text.strip():
        debug.error = "Empty report text"
        return result, debug

    try:
        if isinstance(target_date, str):
            target_date = date.fromisoformat(target_date)

        lines = list(iter_lines(text))
        debug.line_count = len(lines)

        columns: dict[str, int] = {}
        header_idx = -1
        for idx, line in enumerate(lines):
            resolved = resolve_columns(split_line(line), REPORT_COLUMNS["shortterm"])
            if "timestamp" in resolved and "actual" in resolved:
                columns, header_idx = resolved, idx
                break

        if header_idx < 0:
            debug.error = "No header row with a timestamp column and an 'Actual' column"
            return result, debug
        debug.header_found = True

        readings: list[tuple[int, float]] = []
        for line in lines[header_idx + 1:]:
            fields = split_line(line)
            ts = parse_timestamp(field_at(fields, columns["timestamp"]))
            if ts is None:
                debug.skipped_rows += 1
                continue
            debug.reading_count += 1

            local = localize(ts, source_tz, target_tz)
            if local.date() != target_date:
                continue
            debug.readings_on_date += 1

            value = to_number_or_null(field_at(fields, columns["actual"]))
            if value is None:
                debug.missing_actual += 1
                continue
            readings.append((local.hour + 1, value))

        if readings:
            df = pd.DataFrame(readings, columns=["he", "value"])
            hourly = df.groupby("he")["value"].mean()
            result = {int(he): round(float(v), 3) for he, v in hourly.items()}

        debug.hours = sorted(result)
        debug.ok = bool(result)
        if not result:
            debug.error = f"No 'Actual' readings for {target_date.isoformat()}"

    except Exception as exc:
        logger.warning("Short-term renewable parse failed: {}", exc)
        result = {}
        debug.ok = False
        debug.hours = []
        debug.error = f"Unexpected parse failure: {exc}"

    return result, debug
