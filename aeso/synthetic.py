"""
CushionWatch — Synthetic Day Generator
Produces a deterministic 24-hour baseline of Alberta market state used
whenever live AESO data is missing, and to fill the fields live reports
never cover (interties by path, capability by fuel, SMP).

Model
-----
  1. **Diurnal load** — a single sinusoid: trough at HE 1, peak at HE 13,
     9 000 MW ± 1 800 MW.  The reference role runs 3 % lighter.

  2. **Renewables** — wind follows a phase-shifted sinusoid around 800 MW;
     solar is a clipped half-wave peaking at 600 MW mid-day.

  3. **Capability & cushion** — available capability is load × 1.12 + 500 MW,
     less a 4–6 % outage draw, plus renewables.  Cushion and its percent are
     computed from the rounded MW values, so cushion_mw / actual_load equals
     cushion_percent exactly.

  4. **Price** — a decreasing step function of cushion percent: hundreds of
     dollars when the cushion is thin, ~$50 when it is wide.

  5. **Interties** — BC, SK and MATL import more as the cushion tightens
     below 12 %.  Imports are negative (positive = export).

  6. **Capability by fuel** — total available and total outage are split
     across a fixed fuel list with deterministic shares; integer allocation
     with the last fuel absorbing the remainder keeps both partitions exact.

Determinism
-----------
Every random draw comes from an RNG seeded with
MD5(date | role | field seed | HE), so the same inputs always reproduce the
same day and no wall-clock randomness leaks in.  Not a forecast: shape and
contract matter, the numbers do not.
"""

from __future__ import annotations

import hashlib
import math
import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Union

from loguru import logger

from aeso.models import (
    FuelCapability,
    HourlyRecord,
    IntertieSnapshot,
    Provenance,
    classify_cushion,
    cushion_percent,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------


class DayRole(str, Enum):
    PRIMARY   = "primary"
    REFERENCE = "reference"


FUEL_TYPES: list[str] = ["SC", "CC", "COGEN", "HYDRO", "WIND", "SOLAR", "OTHER"]

BASE_LOAD_MW          = 9000.0
LOAD_SWING_MW         = 1800.0
REFERENCE_LOAD_FACTOR = 0.97

WIND_BASE_MW   = 800.0
WIND_SWING_MW  = 400.0
SOLAR_PEAK_MW  = 600.0

CAPABILITY_MARGIN     = 1.12
CAPABILITY_ADDER_MW   = 500.0

INTERTIE_TIGHTNESS_PCT = 0.12

# path → (import_cap, export_cap, base schedule MW, schedule MW per unit of tightness)
_INTERTIE_PROFILES: dict[str, tuple[float, float, float, float]] = {
    "AB-BC":   (800.0, 800.0, 200.0, 400.0),
    "AB-SK":   (250.0, 250.0,  50.0, 150.0),
    "AB-MATL": (300.0, 300.0,  80.0, 180.0),
}

# Draw seeds per field.  Fixed so that adding a field never shifts another's draws.
_SEED_FORECAST_LOAD  = 1
_SEED_ACTUAL_LOAD    = 2
_SEED_WIND           = 3
_SEED_SOLAR          = 4
_SEED_OUTAGE         = 5
_SEED_SMP            = 6
_SEED_FORECAST_PRICE = 7
_SEED_INTERTIE_BASE  = 8        # 8, 9, 10 in _INTERTIE_PROFILES order
_SEED_REF_PRICE      = 11
_SEED_REF_LOAD       = 12
_SEED_FUEL_SHARE     = 20       # 20..26 in FUEL_TYPES order


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class HourDrivers:
    """Unrounded physical drivers for one synthetic hour."""

    forecast_load: float
    actual_load: float
    wind_forecast: float
    wind_actual: float
    solar_forecast: float
    solar_actual: float
    outage_mw: float
    total_available: float


# ---------------------------------------------------------------------------
# Simulation internals
# ---------------------------------------------------------------------------


def _draw(day: date, role: DayRole, field_seed: int, he: int) -> float:
    """Deterministic uniform draw in [0, 1) for one field of one hour."""
    key = f"{day.isoformat()}|{role.value}|{field_seed}|{he}"
    seed = int(hashlib.md5(key.encode()).hexdigest(), 16) % (2 ** 32)
    return random.Random(seed).random()


def price_from_cushion(pct: float) -> float:
    """Rough pool price ($/MWh) as a decreasing step function of cushion percent."""
    if pct < 0.03:
        return 800 + (0.03 - pct) * 8000
    if pct < 0.06:
        return 400 + (0.06 - pct) * 4000
    if pct < 0.12:
        return 120 + (0.12 - pct) * 800
    return 50 + (0.2 - min(pct, 0.2)) * 150


def partition(total: int, weights: list[float]) -> list[int]:
    """
    Split integer *total* across *weights*.

    Each share is ``round(total × w / Σw)`` clamped to what is left; the last
    entry takes the remainder, so the parts always sum to *total*.
    """
    weight_sum = sum(weights)
    parts: list[int] = []
    remaining = total
    for w in weights[:-1]:
        share = int(round(total * w / weight_sum)) if weight_sum > 0 else 0
        share = max(0, min(share, remaining))
        parts.append(share)
        remaining -= share
    parts.append(remaining)
    return parts


def hour_ending_time(day: date, he: int) -> str:
    """ISO timestamp at which HE *he* ends; HE 24 ends at 00:00 the next day."""
    return (datetime.combine(day, time()) + timedelta(hours=he)).isoformat()


def hour_drivers(day: date, role: DayRole, he: int) -> HourDrivers:
    primary = role == DayRole.PRIMARY

    def r(seed: int) -> float:
        return _draw(day, role, seed, he)

    angle = (he - 1) / 24 * 2 * math.pi

    load_base = BASE_LOAD_MW + LOAD_SWING_MW * math.sin(angle - math.pi / 2)
    if not primary:
        load_base *= REFERENCE_LOAD_FACTOR

    forecast_load = load_base * (1 + (r(_SEED_FORECAST_LOAD) - 0.5) * 0.02)
    actual_load = (
        forecast_load * (1 + (r(_SEED_ACTUAL_LOAD) - 0.5) * 0.04) if primary else forecast_load
    )

    wind_forecast = WIND_BASE_MW + WIND_SWING_MW * math.sin(angle - math.pi / 3)
    wind_actual = wind_forecast * (1 + (r(_SEED_WIND) - 0.5) * 0.2) if primary else wind_forecast

    solar_forecast = SOLAR_PEAK_MW * max(0.0, math.sin(angle - math.pi / 2))
    solar_actual = (
        solar_forecast * (1 + (r(_SEED_SOLAR) - 0.5) * 0.15) if primary else solar_forecast
    )

    base_available = actual_load * CAPABILITY_MARGIN + CAPABILITY_ADDER_MW
    outage_mw = base_available * (0.04 + 0.02 * r(_SEED_OUTAGE))
    total_available = base_available - outage_mw + wind_actual + solar_actual

    return HourDrivers(
        forecast_load=forecast_load,
        actual_load=actual_load,
        wind_forecast=wind_forecast,
        wind_actual=wind_actual,
        solar_forecast=solar_forecast,
        solar_actual=solar_actual,
        outage_mw=outage_mw,
        total_available=total_available,
    )


def _interties(day: date, role: DayRole, he: int, pct: float) -> list[IntertieSnapshot]:
    tightness = max(0.0, INTERTIE_TIGHTNESS_PCT - pct)
    snapshots: list[IntertieSnapshot] = []
    for offset, (path, (import_cap, export_cap, base, per_tight)) in enumerate(_INTERTIE_PROFILES.items()):
        scheduled = -(base + tightness * per_tight)
        actual = scheduled * (0.95 + 0.1 * _draw(day, role, _SEED_INTERTIE_BASE + offset, he))
        snapshots.append(IntertieSnapshot(
            path=path,
            import_cap=import_cap,
            export_cap=export_cap,
            scheduled=round(scheduled),
            actual_flow=round(actual),
        ))
    return snapshots


def _capability(day: date, role: DayRole, he: int, drivers: HourDrivers) -> list[FuelCapability]:
    weights = [
        0.1 + 0.15 * _draw(day, role, _SEED_FUEL_SHARE + idx, he)
        for idx in range(len(FUEL_TYPES))
    ]
    available = partition(int(round(drivers.total_available)), weights)
    outages = partition(int(round(drivers.outage_mw)), weights)
    return [
        FuelCapability(fuel=fuel, available_mw=avail, outage_mw=out)
        for fuel, avail, out in zip(FUEL_TYPES, available, outages)
    ]


def _build_hour(day: date, role: DayRole, he: int) -> HourlyRecord:
    primary = role == DayRole.PRIMARY

    def r(seed: int) -> float:
        return _draw(day, role, seed, he)

    d = hour_drivers(day, role, he)

    actual_load = round(d.actual_load)
    total_available = round(d.total_available)
    cushion_mw = total_available - actual_load
    pct = cushion_percent(cushion_mw, actual_load)
    flag = classify_cushion(pct)

    price = price_from_cushion(pct if pct is not None else 0.0)
    smp = price * (0.9 + 0.2 * r(_SEED_SMP))
    forecast_price = price * ((0.95 if primary else 0.9) + 0.1 * r(_SEED_FORECAST_PRICE))

    if primary:
        reference_price = round(price * (0.9 + 0.1 * r(_SEED_REF_PRICE)))
        reference_load = round(d.actual_load * (0.96 + 0.03 * r(_SEED_REF_LOAD)))
    else:
        reference_price = round(price)
        reference_load = actual_load

    return HourlyRecord(
        date=day,
        he=he,
        time=hour_ending_time(day, he),
        forecast_price=round(forecast_price),
        actual_price=round(price),
        system_marginal_price=round(smp),
        forecast_load=round(d.forecast_load),
        actual_load=actual_load,
        reference_price=reference_price,
        reference_load=reference_load,
        cushion_mw=cushion_mw,
        cushion_percent=pct,
        cushion_flag=flag,
        wind_forecast=round(d.wind_forecast),
        wind_actual=round(d.wind_actual),
        solar_forecast=round(d.solar_forecast),
        solar_actual=round(d.solar_actual),
        interties=_interties(day, role, he, pct if pct is not None else 0.0),
        capability=_capability(day, role, he, d),
        provenance=Provenance.SYNTHETIC,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_synthetic_day(
    day: Union[date, str],
    role: Union[DayRole, str] = DayRole.PRIMARY,
) -> list[HourlyRecord]:
    """
    Build the 24 synthetic ``HourlyRecord`` objects for *day*.

    Repeated calls with the same ``(day, role)`` return equal records.
    """
    if isinstance(day, str):
        day = date.fromisoformat(day)
    role = DayRole(role)

    records = [_build_hour(day, role, he) for he in range(1, 25)]
    logger.debug("Synthetic {} day built for {}.", role.value, day.isoformat())
    return records


def build_reference_day(day: Union[date, str], lookback_days: int = 14) -> list[HourlyRecord]:
    """Synthetic reference day *lookback_days* before *day*."""
    if isinstance(day, str):
        day = date.fromisoformat(day)
    return build_synthetic_day(day - timedelta(days=lookback_days), DayRole.REFERENCE)
