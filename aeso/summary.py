"""
CushionWatch — Daily Summaries
Roll-ups over a reconciled day: headline stats, which hours have actuals,
renewable forecast error, and capability averages by fuel.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

import pandas as pd

from aeso.models import HourlyRecord
from aeso.renewables import DEFAULT_TIMEZONE

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class DailySummary:
    date: Optional[str]
    current: Optional[HourlyRecord]
    peak_load: Optional[float]
    max_price: Optional[float]
    min_cushion: Optional[float]
    avg_cushion_pct: Optional[float]
    live_hours: int

    def to_dict(self) -> dict:
        return {
            "date":            self.date,
            "current":         self.current.to_dict() if self.current else None,
            "peak_load":       self.peak_load,
            "max_price":       self.max_price,
            "min_cushion":     self.min_cushion,
            "avg_cushion_pct": self.avg_cushion_pct,
            "live_hours":      self.live_hours,
        }


@dataclass
class RenewableHour:
    he: int
    wind_forecast: Optional[float]
    wind_actual: Optional[float]
    wind_delta: Optional[float]
    solar_forecast: Optional[float]
    solar_actual: Optional[float]
    solar_delta: Optional[float]

    def to_dict(self) -> dict:
        return {
            "he":             self.he,
            "wind_forecast":  self.wind_forecast,
            "wind_actual":    self.wind_actual,
            "wind_delta":     self.wind_delta,
            "solar_forecast": self.solar_forecast,
            "solar_actual":   self.solar_actual,
            "solar_delta":    self.solar_delta,
        }


@dataclass
class FuelCapabilityAverage:
    fuel: str
    avg_available_mw: float
    avg_outage_mw: float
    outage_pct: Optional[float]

    def to_dict(self) -> dict:
        return {
            "fuel":             self.fuel,
            "avg_available_mw": self.avg_available_mw,
            "avg_outage_mw":    self.avg_outage_mw,
            "outage_pct":       self.outage_pct,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def current_hour_ending(now: Optional[datetime] = None, tz: str = DEFAULT_TIMEZONE) -> int:
    """Hour ending in progress at *now* (default: wall clock) in zone *tz*."""
    zone = ZoneInfo(tz)
    now = now.astimezone(zone) if now and now.tzinfo else (now or datetime.now(zone))
    return now.hour + 1


def today_in(tz: str = DEFAULT_TIMEZONE) -> date:
    return datetime.now(ZoneInfo(tz)).date()


def _delta(actual: Optional[float], forecast: Optional[float]) -> Optional[float]:
    if actual is None or forecast is None:
        return None
    return actual - forecast


# ---------------------------------------------------------------------------
# Roll-ups
# ---------------------------------------------------------------------------


def summarize_day(records: list[HourlyRecord], current_he: Optional[int] = None) -> DailySummary:
    """
    Headline numbers for one day.

    Missing values are skipped rather than treated as zero; a stat with no
    contributing hour is None.
    """
    if not records:
        return DailySummary(None, None, None, None, None, None, 0)

    loads = [r.actual_load for r in records if r.actual_load is not None]
    prices = [r.actual_price for r in records if r.actual_price is not None]
    cushions = [r.cushion_mw for r in records if r.cushion_mw is not None]
    pcts = [r.cushion_percent for r in records if r.cushion_percent is not None]
    current = next((r for r in records if r.he == current_he), None) if current_he else None

    return DailySummary(
        date=records[0].date.isoformat(),
        current=current,
        peak_load=max(loads) if loads else None,
        max_price=max(prices) if prices else None,
        min_cushion=min(cushions) if cushions else None,
        avg_cushion_pct=sum(pcts) / len(pcts) if pcts else None,
        live_hours=sum(1 for r in records if r.is_live),
    )


def use_actual_flags(records: list[HourlyRecord], current_he: int) -> dict[int, bool]:
    """HE → whether the hour has closed (HE ≤ current HE) and actuals should be shown."""
    return {r.he: r.he <= current_he for r in records}


def renewable_deltas(records: list[HourlyRecord]) -> list[RenewableHour]:
    return [
        RenewableHour(
            he=r.he,
            wind_forecast=r.wind_forecast,
            wind_actual=r.wind_actual,
            wind_delta=_delta(r.wind_actual, r.wind_forecast),
            solar_forecast=r.solar_forecast,
            solar_actual=r.solar_actual,
            solar_delta=_delta(r.solar_actual, r.solar_forecast),
        )
        for r in records
    ]


def capability_averages(records: list[HourlyRecord]) -> list[FuelCapabilityAverage]:
    """Average available and outage MW per fuel across the day, with outage share."""
    rows = [
        {"fuel": c.fuel, "available_mw": c.available_mw, "outage_mw": c.outage_mw}
        for r in records for c in r.capability
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    grouped = df.groupby("fuel", sort=False)[["available_mw", "outage_mw"]].mean().reset_index()

    result: list[FuelCapabilityAverage] = []
    for _, row in grouped.iterrows():
        avail = float(row["available_mw"])
        out = float(row["outage_mw"])
        total = avail + out
        result.append(FuelCapabilityAverage(
            fuel=str(row["fuel"]),
            avg_available_mw=round(avail, 1),
            avg_outage_mw=round(out, 1),
            outage_pct=round(out / total * 100, 2) if total > 0 else None,
        ))
    return result
