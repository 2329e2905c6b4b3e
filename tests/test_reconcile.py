from dataclasses import replace
from datetime import date

from aeso.actual_forecast import ActualForecastRow
from aeso.models import CushionFlag, Provenance, classify_cushion
from aeso.reconcile import (
    NullPolicy,
    actual_forecast_live_rows,
    combine_live_rows,
    merge,
    renewable_live_rows,
)
from aeso.synthetic import build_synthetic_day

DAY = date(2025, 11, 19)


def _baseline():
    return build_synthetic_day(DAY)


def test_empty_live_rows_return_baseline_unchanged():
    baseline = _baseline()

    assert merge(baseline, {}) == baseline
    assert merge(baseline, None) == baseline
    assert merge(baseline, {}) is not baseline


def test_live_load_moves_cushion_by_the_load_delta():
    baseline = _baseline()
    before = baseline[4]
    new_load = before.actual_load + 250

    merged = merge(baseline, {5: {"actual_load": new_load}})
    after = merged[4]

    assert after.actual_load == new_load
    assert after.cushion_mw == before.cushion_mw - 250
    assert after.cushion_percent == after.cushion_mw / new_load
    assert after.cushion_flag is classify_cushion(after.cushion_percent)
    assert after.provenance is Provenance.LIVE_AUGMENTED


def test_other_hours_and_input_are_untouched():
    baseline = _baseline()
    snapshot = [r.to_dict() for r in baseline]

    merged = merge(baseline, {5: {"actual_price": 88.0}})

    assert [r.to_dict() for r in baseline] == snapshot
    for before, after in zip(baseline, merged):
        if before.he != 5:
            assert after is before
    assert merged[4].actual_price == 88.0
    assert merged[4].cushion_mw == baseline[4].cushion_mw


def test_merge_is_idempotent():
    baseline = _baseline()
    live = {3: {"actual_load": 9100.0, "actual_price": 42.0}, 7: {"wind_actual": 0.0}}

    once = merge(baseline, live)
    assert merge(once, live) == once


def test_null_keeps_baseline_by_default():
    baseline = _baseline()

    merged = merge(baseline, {5: {"actual_load": None, "actual_price": None}})

    assert merged[4] is baseline[4]
    assert merged[4].provenance is Provenance.SYNTHETIC


def test_blank_policy_clears_field_and_cushion_percent():
    baseline = _baseline()

    merged = merge(baseline, {5: {"actual_load": None}}, {"actual_load": NullPolicy.BLANK})
    after = merged[4]

    assert after.actual_load is None
    assert after.cushion_percent is None
    assert after.cushion_flag is CushionFlag.UNKNOWN
    assert after.cushion_mw == baseline[4].cushion_mw
    assert after.provenance is Provenance.LIVE_AUGMENTED


def test_non_positive_load_gives_unknown_flag():
    merged = merge(_baseline(), {1: {"actual_load": 0.0}})
    assert merged[0].cushion_percent is None
    assert merged[0].cushion_flag is CushionFlag.UNKNOWN


def test_non_mergeable_fields_are_ignored():
    baseline = _baseline()
    merged = merge(baseline, {2: {"cushion_mw": 1.0, "he": 9}})
    assert merged[1] is baseline[1]


def test_zero_renewable_reading_is_applied():
    merged = merge(_baseline(), {2: {"wind_actual": 0.0}})
    assert merged[1].wind_actual == 0.0
    assert merged[1].is_live


def test_actual_forecast_live_rows():
    rows = {5: ActualForecastRow(DAY, 5, 25.1, 22.0, 9500.0, None)}
    assert actual_forecast_live_rows(rows) == {
        5: {"forecast_price": 25.1, "actual_price": 22.0, "forecast_load": 9500.0, "actual_load": None},
    }


def test_renewable_live_rows():
    live = renewable_live_rows({11: 110.0}, {11: 40.0, 12: 30.0})
    assert live == {11: {"wind_actual": 110.0, "solar_actual": 40.0}, 12: {"solar_actual": 30.0}}
    assert renewable_live_rows() == {}


def test_combine_live_rows_first_non_null_wins():
    combined = combine_live_rows(
        {5: {"actual_load": None, "actual_price": 22.0}},
        {5: {"actual_load": 9400.0, "actual_price": 99.0}, 6: {"wind_actual": 1.0}},
        None,
    )
    assert combined == {5: {"actual_load": 9400.0, "actual_price": 22.0}, 6: {"wind_actual": 1.0}}


def test_blank_on_an_already_empty_field_changes_nothing():
    baseline = _baseline()
    baseline[4] = replace(baseline[4], system_marginal_price=None)

    merged = merge(baseline, {5: {"system_marginal_price": None}}, {"system_marginal_price": NullPolicy.BLANK})

    assert merged[4] is baseline[4]
    assert merged[4].provenance is Provenance.SYNTHETIC
