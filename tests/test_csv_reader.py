import pytest

from aeso.csv_reader import (
    REPORT_COLUMNS,
    field_at,
    iter_lines,
    matching_columns,
    resolve_columns,
    split_line,
    strip_quotes,
    to_number_or_null,
)


@pytest.mark.parametrize(
    "line",
    ["a,b,c", ",,", "1,,3,", "only"],
)
def test_split_line_unquoted_commas_give_n_plus_one_fields(line):
    assert len(split_line(line)) == line.count(",") + 1


def test_split_line_keeps_commas_inside_quotes():
    assert split_line('"11/18/2025 05","$1,025.10", 22.00 ') == ["11/18/2025 05", "$1,025.10", "22.00"]


def test_split_line_doubled_quote_collapses():
    assert split_line('"say ""hi""",x') == ['say "hi"', "x"]


def test_iter_lines_skips_blank_lines_and_handles_crlf():
    assert list(iter_lines("a\r\n\r\n  b  \n\n")) == ["a", "b"]
    assert list(iter_lines("")) == []


def test_strip_quotes():
    assert strip_quotes(' "HE 01" ') == "HE 01"


def test_field_at_tolerates_ragged_rows():
    fields = ["a", "b"]
    assert field_at(fields, 1) == "b"
    assert field_at(fields, 5) == ""
    assert field_at(fields, None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,234.50", 1234.5),
        ('"9,400"', 9400.0),
        ("-12.5", -12.5),
        (" 7 ", 7.0),
        ("-", None),
        ("--", None),
        ("", None),
        (None, None),
        ("abc", None),
        ("nan", None),
        ("inf", None),
    ],
)
def test_to_number_or_null(raw, expected):
    assert to_number_or_null(raw) == expected


def test_resolve_columns_actual_forecast_header():
    header = split_line(
        "Date (HE),Forecast Pool Price,Actual Posted Pool Price,Forecast AIL,Actual AIL,"
        "Forecast AIL & Actual AIL Difference"
    )
    resolved = resolve_columns(header, REPORT_COLUMNS["actual_forecast"])
    assert resolved == {
        "forecast_price": 1,
        "actual_price": 2,
        "forecast_load": 3,
        "actual_load": 4,
    }


def test_resolve_columns_first_match_wins_and_ignored_columns_never_resolve():
    header = ["Date", "HE", "AIL MW", "Load (alt)", "BC Export MW", "Pool Price"]
    resolved = resolve_columns(header, REPORT_COLUMNS["history"])
    assert resolved == {"date": 0, "he": 1, "load": 2, "price": 5}


def test_matching_columns():
    header = ["date", "bc_export_mw", "sk_export_mw", "bc_import_mw"]
    assert matching_columns(header, r"export") == [1, 2]
