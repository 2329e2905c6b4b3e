from datetime import date, datetime

from aeso.renewables import localize, parse_shortterm, parse_timestamp


def test_parse_timestamp_formats():
    assert parse_timestamp("2025-11-19 10:30") == datetime(2025, 11, 19, 10, 30)
    assert parse_timestamp('"11/19/2025 10:30"') == datetime(2025, 11, 19, 10, 30)
    assert parse_timestamp("2025-11-19T10:30:00") == datetime(2025, 11, 19, 10, 30)
    assert parse_timestamp("yesterday") is None


def test_localize():
    ts = datetime(2025, 11, 19, 17, 0)
    assert localize(ts, "America/Edmonton", "America/Edmonton") is ts
    # MST is UTC-7 in November
    assert localize(ts, "UTC", "America/Edmonton") == datetime(2025, 11, 19, 10, 0)


def test_readings_are_averaged_into_hour_ending(shortterm_csv):
    hourly, debug = parse_shortterm(shortterm_csv, date(2025, 11, 19))

    # 10:00 → 100 and 10:30 → 120 both belong to HE 11
    assert hourly[11] == 110
    assert hourly[10] == 95
    assert 12 not in hourly
    assert debug.missing_actual == 1
    assert debug.skipped_rows == 1
    assert debug.readings_on_date == 4
    assert debug.hours == [10, 11]
    assert debug.ok is True


def test_date_filter_accepts_iso_string(shortterm_csv):
    hourly, _ = parse_shortterm(shortterm_csv, "2025-11-18")
    assert hourly == {11: 500}


def test_timezone_conversion_moves_readings_across_hours_and_dates():
    text = (
        "Date,Actual\n"
        "2025-11-19 17:00,50\n"
        "2025-11-19 06:30,70\n"
    )
    hourly, debug = parse_shortterm(text, date(2025, 11, 19), source_tz="UTC", target_tz="America/Edmonton")

    # 17:00 UTC → 10:00 MST → HE 11; 06:30 UTC is still the 18th locally
    assert hourly == {11: 50}
    assert debug.source_tz == "UTC"

    hourly, _ = parse_shortterm(text, date(2025, 11, 18), source_tz="UTC", target_tz="America/Edmonton")
    assert hourly == {24: 70}


def test_zero_is_a_reading_not_a_gap():
    hourly, _ = parse_shortterm("Date,Actual\n2025-11-19 02:15,0\n", date(2025, 11, 19))
    assert hourly == {3: 0}


def test_missing_header_and_empty_text():
    hourly, debug = parse_shortterm("2025-11-19 10:00,1,2\n", date(2025, 11, 19))
    assert hourly == {} and debug.header_found is False

    hourly, debug = parse_shortterm("", date(2025, 11, 19))
    assert hourly == {} and debug.error == "Empty report text"
