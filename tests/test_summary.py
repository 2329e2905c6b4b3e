from dataclasses import replace
from datetime import date, datetime, timezone

from aeso.models import FuelCapability, Provenance
from aeso.summary import (
    capability_averages,
    current_hour_ending,
    renewable_deltas,
    summarize_day,
    use_actual_flags,
)
from aeso.synthetic import build_synthetic_day

DAY = date(2025, 11, 19)


def test_current_hour_ending():
    # 09:30 UTC → 02:30 MST → HE 3
    assert current_hour_ending(datetime(2025, 11, 19, 9, 30, tzinfo=timezone.utc)) == 3
    assert current_hour_ending(datetime(2025, 11, 19, 23, 59)) == 24
    assert current_hour_ending(datetime(2025, 11, 19, 0, 0)) == 1


def test_summarize_day_skips_missing_values():
    records = build_synthetic_day(DAY)
    records[0] = replace(records[0], actual_load=None, actual_price=None, cushion_percent=None)
    records[1] = replace(records[1], provenance=Provenance.LIVE_AUGMENTED)

    summary = summarize_day(records, current_he=5)

    assert summary.date == "2025-11-19"
    assert summary.current.he == 5
    assert summary.peak_load == max(r.actual_load for r in records[1:])
    assert summary.max_price == max(r.actual_price for r in records[1:])
    assert summary.min_cushion == min(r.cushion_mw for r in records)
    pcts = [r.cushion_percent for r in records[1:]]
    assert summary.avg_cushion_pct == sum(pcts) / len(pcts)
    assert summary.live_hours == 1


def test_summarize_empty_day():
    summary = summarize_day([])
    assert summary.date is None and summary.live_hours == 0
    assert summary.to_dict()["current"] is None


def test_use_actual_flags():
    flags = use_actual_flags(build_synthetic_day(DAY), current_he=3)
    assert [he for he, closed in flags.items() if closed] == [1, 2, 3]


def test_renewable_deltas():
    record = replace(build_synthetic_day(DAY)[0], wind_forecast=100, wind_actual=80, solar_actual=None)

    hour = renewable_deltas([record])[0]
    assert hour.wind_delta == -20
    assert hour.solar_delta is None


def test_capability_averages():
    base = build_synthetic_day(DAY)[:2]
    records = [
        replace(base[0], capability=[FuelCapability("WIND", 900, 100), FuelCapability("HYDRO", 0, 0)]),
        replace(base[1], capability=[FuelCapability("WIND", 700, 300), FuelCapability("HYDRO", 0, 0)]),
    ]

    averages = {a.fuel: a for a in capability_averages(records)}
    assert averages["WIND"].avg_available_mw == 800
    assert averages["WIND"].avg_outage_mw == 200
    assert averages["WIND"].outage_pct == 20.0
    assert averages["HYDRO"].outage_pct is None
    assert capability_averages([]) == []
