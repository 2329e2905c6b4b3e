"""
CushionWatch — Hourly Reconciliation
Overlays parsed live rows onto the synthetic baseline, one hour ending at a
time, and keeps the cushion metrics consistent with whatever load ends up
authoritative.

Live rows
---------
A live row set is ``{he: {field: value}}`` where *field* is an
``HourlyRecord`` attribute.  The helpers at the bottom turn each parser's
output into that shape through explicit field tables.

Merge rules
-----------
* A non-null live value overwrites the baseline field.
* A null live value follows the per-field null policy:
  ``KEEP_BASELINE`` (default) leaves the baseline value alone,
  ``BLANK`` clears the field.
* When ``actual_load`` changes, the cushion absorbs the load delta
  (cushion_new = cushion_old − Δload) and percent and flag are recomputed
  with the same thresholds the synthetic model uses.  A cleared or
  non-positive load leaves the cushion percent unknown.
* Provenance flips to live-augmented only when at least one field was
  applied.  HEs without a live row pass through untouched.
* An empty live row set returns the baseline unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Any, Mapping, Optional

from loguru import logger

from aeso.actual_forecast import ActualForecastRow
from aeso.models import HourlyRecord, Provenance, classify_cushion, cushion_percent

LiveRow = dict[str, Optional[float]]
LiveRows = dict[int, LiveRow]

# ---------------------------------------------------------------------------
# Null policy
# ---------------------------------------------------------------------------


class NullPolicy(str, Enum):
    KEEP_BASELINE = "keep_baseline"
    BLANK         = "blank"


# Fields a live source is allowed to write
MERGEABLE_FIELDS: tuple[str, ...] = (
    "forecast_price",
    "actual_price",
    "system_marginal_price",
    "forecast_load",
    "actual_load",
    "reference_price",
    "reference_load",
    "wind_forecast",
    "wind_actual",
    "solar_forecast",
    "solar_actual",
)

DEFAULT_NULL_POLICY: dict[str, NullPolicy] = {
    name: NullPolicy.KEEP_BASELINE for name in MERGEABLE_FIELDS
}

# ActualForecastRow attribute → HourlyRecord field
ACTUAL_FORECAST_FIELDS: dict[str, str] = {
    "forecast_price": "forecast_price",
    "actual_price":   "actual_price",
    "forecast_load":  "forecast_load",
    "actual_load":    "actual_load",
}

# short-term report → HourlyRecord field
RENEWABLE_FIELDS: dict[str, str] = {
    "wind":  "wind_actual",
    "solar": "solar_actual",
}


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _recompute_cushion(record: HourlyRecord, new_load: Optional[float]) -> dict[str, Any]:
    if new_load is None or record.actual_load is None or record.cushion_mw is None:
        return {"cushion_percent": None, "cushion_flag": classify_cushion(None)}

    cushion_mw = record.cushion_mw - (new_load - record.actual_load)
    pct = cushion_percent(cushion_mw, new_load)
    return {
        "cushion_mw":      cushion_mw,
        "cushion_percent": pct,
        "cushion_flag":    classify_cushion(pct),
    }


def apply_live_row(
    record: HourlyRecord,
    live: Mapping[str, Optional[float]],
    null_policy: Mapping[str, NullPolicy],
) -> HourlyRecord:
    """Return a new record with *live* applied; the input record is not modified."""
    updates: dict[str, Any] = {}

    for name, value in live.items():
        if name not in MERGEABLE_FIELDS:
            logger.debug("HE {}: ignoring non-mergeable live field {!r}", record.he, name)
            continue
        if value is None:
            blank = null_policy.get(name, NullPolicy.KEEP_BASELINE) == NullPolicy.BLANK
            if blank and getattr(record, name) is not None:
                updates[name] = None
            continue
        updates[name] = float(value)

    if not updates:
        return record

    if "actual_load" in updates and updates["actual_load"] != record.actual_load:
        updates.update(_recompute_cushion(record, updates["actual_load"]))

    updates["provenance"] = Provenance.LIVE_AUGMENTED
    return replace(record, **updates)


def merge(
    baseline: list[HourlyRecord],
    live_rows_by_he: Optional[Mapping[int, Mapping[str, Optional[float]]]],
    null_policy: Optional[Mapping[str, NullPolicy]] = None,
) -> list[HourlyRecord]:
    """
    Merge live rows onto *baseline* by hour ending.

    Parameters
    ----------
    baseline:
        The synthetic records for one date (one per HE).
    live_rows_by_he:
        ``{he: {field: value}}``.  Empty or None skips reconciliation.
    null_policy:
        Per-field overrides of ``DEFAULT_NULL_POLICY``.
    """
    if not live_rows_by_he:
        logger.info("No live rows, returning synthetic baseline unchanged.")
        return list(baseline)

    policy = {**DEFAULT_NULL_POLICY, **(null_policy or {})}
    merged: list[HourlyRecord] = []
    augmented = 0

    for record in baseline:
        live = live_rows_by_he.get(record.he)
        if not live:
            merged.append(record)
            continue
        updated = apply_live_row(record, live, policy)
        if updated is not record:
            augmented += 1
        merged.append(updated)

    logger.info(
        "Reconciled {} live HE rows onto {} baseline hours ({} augmented).",
        len(live_rows_by_he), len(baseline), augmented,
    )
    return merged


# ---------------------------------------------------------------------------
# Live-row builders
# ---------------------------------------------------------------------------


def actual_forecast_live_rows(rows: Mapping[int, ActualForecastRow]) -> LiveRows:
    return {
        he: {target: getattr(row, attr) for attr, target in ACTUAL_FORECAST_FIELDS.items()}
        for he, row in rows.items()
    }


def renewable_live_rows(
    wind: Optional[Mapping[int, float]] = None,
    solar: Optional[Mapping[int, float]] = None,
) -> LiveRows:
    """Hourly wind/solar means → live rows.  Absent HEs stay absent."""
    sources = {"wind": wind or {}, "solar": solar or {}}
    live: LiveRows = {}
    for source, values in sources.items():
        target = RENEWABLE_FIELDS[source]
        for he, value in values.items():
            live.setdefault(int(he), {})[target] = value
    return live


def combine_live_rows(*row_sets: Optional[Mapping[int, Mapping[str, Optional[float]]]]) -> LiveRows:
    """
    Union several live row sets.

    When two sets carry the same field for the same HE, the first non-null
    value wins.
    """
    combined: LiveRows = {}
    for row_set in row_sets:
        for he, fields in (row_set or {}).items():
            slot = combined.setdefault(int(he), {})
            for name, value in fields.items():
                if slot.get(name) is None:
                    slot[name] = value
    return combined
