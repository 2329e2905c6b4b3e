"""
CushionWatch — Available Capability by Fuel
Parses AESO's "Seven Days Hourly Available Capability" HTML report and
builds the two views the capability page needs.

Source
------
  http://ets.aeso.ca/ets_web/ip/Market/Reports/SevenDaysHourlyAvailableCapabilityReportServlet?contentType=html

  One large grid: an "Hour Ending" banner, a row of the literals 1..24, and
  then one block per fuel type.  The fuel name is printed once per block
  (rowspan) and each row in the block is one calendar day ("19-Nov-25")
  followed by 24 availability percentages.

Views
-----
  current_hour_view  — one HE of one date, every fuel
  daily_average_view — one date, mean availability per fuel over the HEs
                       actually present (missing HEs do not count as zero)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pandas as pd
from loguru import logger

from aeso.html_table import DEFAULT_MARKER, ExtractionDebug, extract_hourly_percentages

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

AESO_CAPABILITY_HTML_URL = (
    "http://ets.aeso.ca/ets_web/ip/Market/Reports/"
    "SevenDaysHourlyAvailableCapabilityReportServlet?contentType=html"
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class CapabilityCell:
    """Availability percentage for one fuel, one date, one hour ending."""

    date: str           # ISO YYYY-MM-DD
    he: int
    fuel: str
    availability_pct: float

    def to_dict(self) -> dict:
        return {
            "date":             self.date,
            "he":               self.he,
            "fuel":             self.fuel,
            "availability_pct": self.availability_pct,
        }


@dataclass
class FuelAverage:
    fuel: str
    avg_availability_pct: float
    hours: int

    def to_dict(self) -> dict:
        return {
            "fuel":                 self.fuel,
            "avg_availability_pct": self.avg_availability_pct,
            "hours":                self.hours,
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_capability(html: str) -> tuple[list[CapabilityCell], ExtractionDebug]:
    """Parse the capability grid into ``CapabilityCell`` records.  Never raises."""
    if not html or not html.strip():
        debug = ExtractionDebug(error="Empty report HTML")
        return [], debug

    cells, debug = extract_hourly_percentages(html, marker=DEFAULT_MARKER)
    records = [
        CapabilityCell(date=c.date, he=c.he, fuel=c.label, availability_pct=c.value)
        for c in cells
    ]
    if records:
        logger.debug(
            "Capability: {} cells across {} dates and {} fuels.",
            len(records), len(debug.dates), len(debug.fuels),
        )
    else:
        logger.warning("Capability report produced no cells: {}", debug.error)
    return records, debug


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def available_dates(cells: list[CapabilityCell]) -> list[str]:
    return sorted({c.date for c in cells})


def choose_report_date(
    cells: list[CapabilityCell],
    requested: Optional[str] = None,
) -> Optional[str]:
    """The requested date when the report covers it, else the most recent date present."""
    dates = available_dates(cells)
    if not dates:
        return None
    if requested and requested in dates:
        return requested
    return dates[-1]


def current_hour_view(
    cells: list[CapabilityCell],
    report_date: str,
    he: int,
) -> list[CapabilityCell]:
    return [c for c in cells if c.date == report_date and c.he == he]


def daily_average_view(
    cells: list[CapabilityCell],
    report_date: str,
) -> list[FuelAverage]:
    """
    Mean availability per fuel for *report_date*.

    The mean is taken over the HEs present for each fuel, so a fuel with
    readings for only 20 hours is averaged over 20, not 24.  Fuels keep the
    order in which the report lists them.
    """
    rows = [c.to_dict() for c in cells if c.date == report_date]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    grouped = (
        df.groupby("fuel", sort=False)
          .agg(avg_availability_pct=("availability_pct", "mean"), hours=("he", "count"))
          .reset_index()
    )
    return [
        FuelAverage(
            fuel=str(r["fuel"]),
            avg_availability_pct=round(float(r["avg_availability_pct"]), 2),
            hours=int(r["hours"]),
        )
        for _, r in grouped.iterrows()
    ]
