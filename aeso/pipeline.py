"""
CushionWatch — Day Assembly Pipeline
The single join point between report texts and reconciled hourly records.

    texts ──► parsers ──► live rows ──► merge(synthetic baseline) ──► DayResult

``assemble_day`` is pure: it takes every report text up front, so the
caller decides how (and how concurrently) those texts were fetched.
``build_day`` is the synchronous convenience wrapper that fetches with
``AESOReportClient`` first.

Report texts that are missing or empty are normal input; the day then
simply carries more synthetic hours.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Optional, Union

from loguru import logger

from aeso.actual_forecast import parse_actual_forecast
from aeso.capability import CapabilityCell, parse_capability
from aeso.client import AESOReportClient, ReportFetch
from aeso.models import HourlyRecord
from aeso.reconcile import (
    NullPolicy,
    actual_forecast_live_rows,
    combine_live_rows,
    merge,
    renewable_live_rows,
)
from aeso.renewables import DEFAULT_TIMEZONE, parse_shortterm
from aeso.supply_demand import InterchangeSnapshot, parse_interchange
from aeso.synthetic import DayRole, build_synthetic_day

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class DayResult:
    """Everything the service layer needs for one date."""

    date: date
    records: list[HourlyRecord]
    capability: list[CapabilityCell] = field(default_factory=list)
    interchange: Optional[InterchangeSnapshot] = None
    debug: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def live_hours(self) -> int:
        return sum(1 for r in self.records if r.is_live)

    @property
    def data_quality(self) -> str:
        if self.live_hours == 0:
            return "SYNTHETIC"
        if self.live_hours == len(self.records):
            return "LIVE"
        return "PARTIAL"


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def assemble_day(
    day: Union[date, str],
    texts: Optional[Mapping[str, str]] = None,
    null_policy: Optional[Mapping[str, NullPolicy]] = None,
    source_tz: str = DEFAULT_TIMEZONE,
    target_tz: str = DEFAULT_TIMEZONE,
) -> DayResult:
    """
    Parse every available report text and reconcile it onto the synthetic day.

    Parameters
    ----------
    day:
        Calendar date to build.
    texts:
        Report name → raw text (names as in ``aeso.client.REPORT_URLS``).
        Missing names are treated as empty text.
    null_policy:
        Per-field null handling passed through to ``merge``.
    source_tz, target_tz:
        Timezone handling for the short-term renewable reports.
    """
    if isinstance(day, str):
        day = date.fromisoformat(day)
    texts = texts or {}

    baseline = build_synthetic_day(day, DayRole.PRIMARY)

    af_rows, af_debug = parse_actual_forecast(texts.get("actual_forecast", ""), report_date=day)
    wind, wind_debug = parse_shortterm(texts.get("wind_shortterm", ""), day, source_tz, target_tz)
    solar, solar_debug = parse_shortterm(texts.get("solar_shortterm", ""), day, source_tz, target_tz)

    live = combine_live_rows(
        actual_forecast_live_rows(af_rows),
        renewable_live_rows(wind, solar),
    )
    if live:
        records = merge(baseline, live, null_policy)
    else:
        logger.info("No usable live rows for {}, serving the synthetic day.", day.isoformat())
        records = baseline

    capability, capability_debug = parse_capability(texts.get("capability", ""))
    interchange, interchange_debug = parse_interchange(texts.get("supply_demand", ""))

    return DayResult(
        date=day,
        records=records,
        capability=capability,
        interchange=interchange,
        debug={
            "actual_forecast": af_debug.to_dict(),
            "wind_shortterm":  wind_debug.to_dict(),
            "solar_shortterm": solar_debug.to_dict(),
            "capability":      capability_debug.to_dict(),
            "supply_demand":   interchange_debug.to_dict(),
        },
    )


def attach_fetch_status(result: DayResult, fetches: Mapping[str, ReportFetch]) -> DayResult:
    """Fold transport status (HTTP code, error) into the per-report debug entries."""
    for name, fetch in fetches.items():
        entry = result.debug.setdefault(name, {})
        entry["http_status"] = fetch.http_status
        entry["fetch_ok"] = fetch.ok
        if fetch.error:
            entry["fetch_error"] = fetch.error
    return result


def build_day(
    day: Union[date, str],
    client: Optional[AESOReportClient] = None,
    null_policy: Optional[Mapping[str, NullPolicy]] = None,
) -> DayResult:
    """Fetch every report synchronously, then assemble the day."""
    client = client or AESOReportClient()
    fetches = client.fetch_all()
    texts = {name: f.text for name, f in fetches.items() if f.ok}
    return attach_fetch_status(assemble_day(day, texts, null_policy), fetches)


# ---------------------------------------------------------------------------
# Smoke test  (python -m aeso.pipeline)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import sys

    from aeso.summary import summarize_day, today_in

    logger.remove()
    logger.add(sys.stderr, level="INFO")

    result = build_day(today_in())
    summary = summarize_day(result.records)
    logger.success(
        "{} | {} | live hours {}/24 | peak load {} MW | min cushion {} MW",
        result.date, result.data_quality, result.live_hours,
        summary.peak_load, summary.min_cushion,
    )
