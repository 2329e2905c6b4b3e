"""
CushionWatch — Hourly Record Model
The canonical per-hour state that every report parser ultimately feeds.

Cushion
-------
Supply cushion is available generation capability minus Alberta Internal
Load (AIL), in MW.  Its ratio to load drives a three-level flag:

    cushion_percent < 6 %   → tight
    cushion_percent < 12 %  → watch
    otherwise               → comfortable

Load that is missing or ≤ 0, and any non-finite or non-positive percent,
yields ``unknown``.  The flag is always recomputed from the percent and never
stored independently of it.

Intertie sign convention: positive MW = export out of Alberta, negative =
import into Alberta.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

# ---------------------------------------------------------------------------
# Enumerations & thresholds
# ---------------------------------------------------------------------------


class CushionFlag(str, Enum):
    TIGHT       = "tight"
    WATCH       = "watch"
    COMFORTABLE = "comfortable"
    UNKNOWN     = "unknown"


class Provenance(str, Enum):
    SYNTHETIC      = "synthetic"
    LIVE_AUGMENTED = "live-augmented"


TIGHT_THRESHOLD = 0.06
WATCH_THRESHOLD = 0.12


def cushion_percent(cushion_mw: Optional[float], load_mw: Optional[float]) -> Optional[float]:
    """cushion / load, or None when either side is missing or load ≤ 0."""
    if cushion_mw is None or load_mw is None or load_mw <= 0:
        return None
    pct = cushion_mw / load_mw
    return pct if math.isfinite(pct) else None


def classify_cushion(pct: Optional[float]) -> CushionFlag:
    if pct is None or not math.isfinite(pct) or pct <= 0:
        return CushionFlag.UNKNOWN
    if pct < TIGHT_THRESHOLD:
        return CushionFlag.TIGHT
    if pct < WATCH_THRESHOLD:
        return CushionFlag.WATCH
    return CushionFlag.COMFORTABLE


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class IntertieSnapshot:
    """Scheduled and actual flow on one intertie path for one hour."""

    path: str
    import_cap: float
    export_cap: float
    scheduled: Optional[float]
    actual_flow: Optional[float]

    def to_dict(self) -> dict:
        return {
            "path":        self.path,
            "import_cap":  self.import_cap,
            "export_cap":  self.export_cap,
            "scheduled":   self.scheduled,
            "actual_flow": self.actual_flow,
        }


@dataclass
class FuelCapability:
    fuel: str
    available_mw: int
    outage_mw: int

    def to_dict(self) -> dict:
        return {
            "fuel":         self.fuel,
            "available_mw": self.available_mw,
            "outage_mw":    self.outage_mw,
        }


@dataclass
class HourlyRecord:
    """Canonical market state for one hour ending (HE 1..24) of one date."""

    date: date
    he: int
    time: str                               # ISO hour-ending local timestamp

    forecast_price: Optional[float] = None
    actual_price: Optional[float] = None
    system_marginal_price: Optional[float] = None
    forecast_load: Optional[float] = None
    actual_load: Optional[float] = None

    reference_price: Optional[float] = None
    reference_load: Optional[float] = None

    cushion_mw: Optional[float] = None
    cushion_percent: Optional[float] = None
    cushion_flag: CushionFlag = CushionFlag.UNKNOWN

    wind_forecast: Optional[float] = None
    wind_actual: Optional[float] = None
    solar_forecast: Optional[float] = None
    solar_actual: Optional[float] = None

    interties: list[IntertieSnapshot] = field(default_factory=list)
    capability: list[FuelCapability] = field(default_factory=list)

    provenance: Provenance = Provenance.SYNTHETIC

    @property
    def is_live(self) -> bool:
        return self.provenance == Provenance.LIVE_AUGMENTED

    def to_dict(self) -> dict:
        return {
            "date":                  self.date.isoformat(),
            "he":                    self.he,
            "time":                  self.time,
            "forecast_price":        self.forecast_price,
            "actual_price":          self.actual_price,
            "system_marginal_price": self.system_marginal_price,
            "forecast_load":         self.forecast_load,
            "actual_load":           self.actual_load,
            "reference_price":       self.reference_price,
            "reference_load":        self.reference_load,
            "cushion_mw":            self.cushion_mw,
            "cushion_percent":       self.cushion_percent,
            "cushion_flag":          self.cushion_flag.value,
            "wind_forecast":         self.wind_forecast,
            "wind_actual":           self.wind_actual,
            "solar_forecast":        self.solar_forecast,
            "solar_actual":          self.solar_actual,
            "interties":             [t.to_dict() for t in self.interties],
            "capability":            [c.to_dict() for c in self.capability],
            "provenance":            self.provenance.value,
        }
