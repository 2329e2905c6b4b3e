from datetime import date

import pytest

from aeso.models import Provenance, classify_cushion
from aeso.synthetic import (
    FUEL_TYPES,
    DayRole,
    build_reference_day,
    build_synthetic_day,
    hour_drivers,
    hour_ending_time,
    partition,
    price_from_cushion,
)

DAY = date(2025, 11, 19)


def test_day_has_24_synthetic_hours():
    records = build_synthetic_day(DAY)

    assert [r.he for r in records] == list(range(1, 25))
    assert all(r.date == DAY for r in records)
    assert all(r.provenance is Provenance.SYNTHETIC for r in records)


def test_same_inputs_reproduce_the_same_day():
    assert build_synthetic_day(DAY) == build_synthetic_day("2025-11-19")
    assert build_synthetic_day(DAY, "reference") == build_synthetic_day(DAY, DayRole.REFERENCE)


def test_roles_and_dates_differ():
    primary = build_synthetic_day(DAY)
    assert primary != build_synthetic_day(DAY, DayRole.REFERENCE)
    assert primary != build_synthetic_day(date(2025, 11, 20))


def test_unknown_role_rejected():
    with pytest.raises(ValueError):
        build_synthetic_day(DAY, "tertiary")


def test_cushion_fields_are_consistent():
    for record in build_synthetic_day(DAY):
        assert record.actual_load > 0
        assert record.cushion_percent == record.cushion_mw / record.actual_load
        assert record.cushion_flag is classify_cushion(record.cushion_percent)


def test_capability_partitions_are_exact():
    for record in build_synthetic_day(DAY):
        assert [c.fuel for c in record.capability] == FUEL_TYPES
        assert all(c.available_mw >= 0 and c.outage_mw >= 0 for c in record.capability)
        assert sum(c.available_mw for c in record.capability) == record.cushion_mw + record.actual_load

        drivers = hour_drivers(DAY, DayRole.PRIMARY, record.he)
        assert sum(c.outage_mw for c in record.capability) == round(drivers.outage_mw)


def test_interties_are_imports():
    record = build_synthetic_day(DAY)[12]

    assert [t.path for t in record.interties] == ["AB-BC", "AB-SK", "AB-MATL"]
    for tie in record.interties:
        assert tie.scheduled < 0
        assert tie.actual_flow < 0
        assert abs(tie.scheduled) <= tie.import_cap


def test_load_peaks_mid_day():
    records = build_synthetic_day(DAY)
    assert records[12].forecast_load > records[0].forecast_load


def test_reference_day_is_lighter_and_dated_back():
    reference = build_reference_day(DAY, lookback_days=7)
    assert reference[0].date == date(2025, 11, 12)
    assert all(r.actual_load == r.forecast_load for r in reference)


def test_hour_ending_time_rolls_over_at_he_24():
    assert hour_ending_time(DAY, 1) == "2025-11-19T01:00:00"
    assert hour_ending_time(DAY, 24) == "2025-11-20T00:00:00"


@pytest.mark.parametrize(
    "total, weights",
    [
        (1000, [1, 1, 1]),
        (7, [0.3, 0.3, 0.3, 0.1]),
        (0, [1, 2]),
        (10, [0, 0, 0]),
        (12345, [0.12, 0.25, 0.11, 0.2, 0.1, 0.19, 0.13]),
    ],
)
def test_partition_sums_to_total(total, weights):
    parts = partition(total, weights)
    assert len(parts) == len(weights)
    assert sum(parts) == total
    assert all(p >= 0 for p in parts)


def test_price_falls_as_cushion_widens():
    prices = [price_from_cushion(p) for p in (0.01, 0.04, 0.08, 0.15, 0.3)]
    assert prices == sorted(prices, reverse=True)
