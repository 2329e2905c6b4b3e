"""
CushionWatch — Historical Reference Days
Reads the static historical CSV used for reference-day lookups and
nearest-neighbour analogue ranking.

File shape
----------
One row per (date, HE) with load and price columns plus any number of
per-path flow columns whose names contain "export" or "import":

    date,he,ail_mw,pool_price,bc_export_mw,bc_import_mw,sk_export_mw,sk_import_mw
    2025-11-05,1,8612,41.20,120,,0,35

Flow columns default to zero when blank, so the net reference flow for an
hour is Σ exports − Σ imports with blanks counted as 0.  That zero default
applies to flow aggregation only; load and price stay missing when blank.

Nearest neighbour
-----------------
``rank_neighbours`` compares today's best-known curve (actual where AESO
has published it, forecast otherwise) against every historical day.  Only
the HEs both curves carry are compared, and each curve is divided by its
mean over exactly those HEs, so the score measures shape rather than level:

    score = w · RMSE(load shape) + (1 − w) · RMSE(price shape)

Lower scores are closer analogues.
"""

from __future__ import annotations

import io
import math
import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional, Union

import pandas as pd
from loguru import logger

from aeso.csv_reader import REPORT_COLUMNS, matching_columns, resolve_columns
from aeso.models import HourlyRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HISTORY_CSV_ENV = "AESO_HISTORY_CSV"

DEFAULT_TOP_N = 10
DEFAULT_LOAD_WEIGHT = 0.5
MIN_OVERLAP_HOURS = 6

HISTORY_SCHEMA = ["date", "he", "load", "price", "exports_mw", "imports_mw", "net_flow_mw"]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class NeighbourRow:
    he: int
    today_price: Optional[float]
    today_price_source: Optional[str]       # "actual" | "forecast" | None
    reference_price: Optional[float]
    delta_price: Optional[float]
    today_load: Optional[float]
    reference_load: Optional[float]
    delta_load: Optional[float]

    def to_dict(self) -> dict:
        return {
            "he":                 self.he,
            "today_price":        self.today_price,
            "today_price_source": self.today_price_source,
            "reference_price":    self.reference_price,
            "delta_price":        self.delta_price,
            "today_load":         self.today_load,
            "reference_load":     self.reference_load,
            "delta_load":         self.delta_load,
        }


@dataclass
class NeighbourCandidate:
    reference_date: str
    score: float
    rows: list[NeighbourRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "reference_date": self.reference_date,
            "score":          round(self.score, 6),
            "rows":           [r.to_dict() for r in self.rows],
        }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_raw(source: Union[str, Path]) -> pd.DataFrame:
    if isinstance(source, Path) or ("\n" not in source and Path(source).exists()):
        return pd.read_csv(source, dtype=str, keep_default_na=False, skipinitialspace=True)
    return pd.read_csv(io.StringIO(source), dtype=str, keep_default_na=False, skipinitialspace=True)


def _to_number(series: pd.Series) -> pd.Series:
    cleaned = series.astype(str).str.replace(r"[$,\s]", "", regex=True)
    return pd.to_numeric(cleaned, errors="coerce")


def load_history(source: Union[str, Path]) -> pd.DataFrame:
    """
    Load the history CSV from a path or from CSV text.

    Returns a frame with columns ``HISTORY_SCHEMA``: ISO date strings, integer
    HE, float load/price (NaN when blank) and float flow aggregates (blank
    cells counted as 0).  Rows without a valid date or HE 1..24 are dropped.
    Raises ``ValueError`` when the date or HE column cannot be identified.
    """
    raw = _read_raw(source)
    header = [str(c) for c in raw.columns]
    cols = resolve_columns(header, REPORT_COLUMNS["history"])
    if "date" not in cols or "he" not in cols:
        raise ValueError(f"History CSV needs date and HE columns; found {header}")

    export_cols = [header[i] for i in matching_columns(header, r"export")]
    import_cols = [header[i] for i in matching_columns(header, r"import")]

    df = pd.DataFrame()
    dates = pd.to_datetime(raw[header[cols["date"]]].str.strip(), errors="coerce", format="mixed")
    df["date"] = dates.dt.strftime("%Y-%m-%d")
    df["he"] = _to_number(raw[header[cols["he"]]])
    df["load"] = _to_number(raw[header[cols["load"]]]) if "load" in cols else float("nan")
    df["price"] = _to_number(raw[header[cols["price"]]]) if "price" in cols else float("nan")

    def _flow_sum(names: list[str]) -> pd.Series:
        if not names:
            return pd.Series(0.0, index=raw.index)
        return sum(_to_number(raw[n]).fillna(0.0) for n in names)

    df["exports_mw"] = _flow_sum(export_cols)
    df["imports_mw"] = _flow_sum(import_cols)
    df["net_flow_mw"] = df["exports_mw"] - df["imports_mw"]

    before = len(df)
    df = df.dropna(subset=["date", "he"])
    df = df[(df["he"] >= 1) & (df["he"] <= 24) & (df["he"] % 1 == 0)].copy()
    df["he"] = df["he"].astype(int)
    if len(df) < before:
        logger.debug("History: dropped {} rows without a usable date/HE.", before - len(df))

    logger.info(
        "History loaded: {} rows, {} days, {} export / {} import columns.",
        len(df), df["date"].nunique(), len(export_cols), len(import_cols),
    )
    return df[HISTORY_SCHEMA].reset_index(drop=True)


def load_history_from_env() -> Optional[pd.DataFrame]:
    """Load the file named by ``AESO_HISTORY_CSV``; None when unset or unreadable."""
    path = os.getenv(HISTORY_CSV_ENV, "").strip()
    if not path:
        return None
    try:
        return load_history(Path(path))
    except (OSError, ValueError) as exc:
        logger.warning("Could not load history CSV {}: {}", path, exc)
        return None


# ---------------------------------------------------------------------------
# Reference flows
# ---------------------------------------------------------------------------


def reference_flows(history: pd.DataFrame, iso_date: Union[str, date]) -> dict[int, float]:
    """Net reference flow (Σ exports − Σ imports) per HE for an exact date; {} if unknown."""
    if isinstance(iso_date, date):
        iso_date = iso_date.isoformat()
    day = history[history["date"] == iso_date]
    if day.empty:
        return {}
    day = day.drop_duplicates(subset="he", keep="first")
    return {int(r.he): float(r.net_flow_mw) for r in day.itertuples(index=False)}


# ---------------------------------------------------------------------------
# Nearest neighbour
# ---------------------------------------------------------------------------


def best_known_price(record: HourlyRecord) -> tuple[Optional[float], Optional[str]]:
    if record.actual_price is not None:
        return record.actual_price, "actual"
    if record.forecast_price is not None:
        return record.forecast_price, "forecast"
    return None, None


def best_known_load(record: HourlyRecord) -> Optional[float]:
    return record.actual_load if record.actual_load is not None else record.forecast_load


def _shape(values: dict[int, float]) -> dict[int, float]:
    mean = sum(values.values()) / len(values) if values else 0.0
    if not mean:
        return {}
    return {he: v / mean for he, v in values.items()}


def _shape_rmse(a: dict[int, float], b: dict[int, float]) -> Optional[float]:
    """RMSE between the two curves after normalising each over the HEs both carry."""
    common = sorted(set(a) & set(b))
    a_shape = _shape({h: a[h] for h in common})
    b_shape = _shape({h: b[h] for h in common})
    if not a_shape or not b_shape:
        return None
    return math.sqrt(sum((a_shape[h] - b_shape[h]) ** 2 for h in common) / len(common))


def _delta(today: Optional[float], reference: Optional[float]) -> Optional[float]:
    if today is None or reference is None:
        return None
    return round(today - reference, 2)


def rank_neighbours(
    records: list[HourlyRecord],
    history: pd.DataFrame,
    top_n: int = DEFAULT_TOP_N,
    load_weight: float = DEFAULT_LOAD_WEIGHT,
) -> list[NeighbourCandidate]:
    """
    Rank historical days by similarity to *records*.

    Only HEs where both today and the candidate have a value are compared;
    candidates sharing fewer than ``MIN_OVERLAP_HOURS`` hours on either
    curve are skipped.  Today's own date is never its own neighbour.
    """
    if not records or history is None or history.empty:
        return []

    today_iso = records[0].date.isoformat()
    today_price: dict[int, float] = {}
    price_source: dict[int, Optional[str]] = {}
    today_load: dict[int, float] = {}
    for rec in records:
        price, source = best_known_price(rec)
        price_source[rec.he] = source
        if price is not None:
            today_price[rec.he] = price
        load = best_known_load(rec)
        if load is not None:
            today_load[rec.he] = load

    candidates: list[NeighbourCandidate] = []
    for ref_date, day in history.groupby("date", sort=True):
        if ref_date == today_iso:
            continue
        day = day.drop_duplicates(subset="he", keep="first")
        ref_price = {int(r.he): float(r.price) for r in day.itertuples(index=False) if pd.notna(r.price)}
        ref_load = {int(r.he): float(r.load) for r in day.itertuples(index=False) if pd.notna(r.load)}

        if (len(set(ref_price) & set(today_price)) < MIN_OVERLAP_HOURS
                or len(set(ref_load) & set(today_load)) < MIN_OVERLAP_HOURS):
            continue

        load_err = _shape_rmse(today_load, ref_load)
        price_err = _shape_rmse(today_price, ref_price)
        if load_err is None or price_err is None:
            continue
        score = load_weight * load_err + (1 - load_weight) * price_err

        rows = [
            NeighbourRow(
                he=he,
                today_price=today_price.get(he),
                today_price_source=price_source.get(he),
                reference_price=ref_price.get(he),
                delta_price=_delta(today_price.get(he), ref_price.get(he)),
                today_load=today_load.get(he),
                reference_load=ref_load.get(he),
                delta_load=_delta(today_load.get(he), ref_load.get(he)),
            )
            for he in range(1, 25)
        ]
        candidates.append(NeighbourCandidate(reference_date=str(ref_date), score=score, rows=rows))

    candidates.sort(key=lambda c: (c.score, c.reference_date))
    logger.info("Nearest neighbour: {} candidate days scored for {}.", len(candidates), today_iso)
    return candidates[:top_n]
