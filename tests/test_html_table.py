from aeso.html_table import (
    clean_cell_text,
    discover_header,
    extract_cells,
    extract_hourly_percentages,
    first_number,
    parse_grid_date,
    select_table,
    split_rows,
)


def _header_cells(prefix=()):
    return list(prefix) + [str(h) for h in range(1, 25)]


def test_clean_cell_text():
    assert clean_cell_text("<b>SOLAR<br>PV</b>") == "SOLAR PV"
    assert clean_cell_text("&nbsp; 45 &amp; up\n ") == "45 & up"
    assert clean_cell_text("") == ""


def test_select_table_prefers_marker_and_falls_back_to_first():
    page = "<table><tr><td>intro</td></tr></table><TABLE border=1><tr><td>Hour Ending</td></tr></TABLE>"
    assert "Hour Ending" in select_table(page)
    assert "intro" in select_table(page, marker="Not There")
    assert select_table("<p>no tables</p>") is None


def test_split_rows_without_closing_tags():
    rows = split_rows("<tr><td>a</td><TR class=x><td>b</td></tr>")
    assert [extract_cells(r) for r in rows] == [["a"], ["b"]]


def test_parse_grid_date_and_first_number():
    assert parse_grid_date("19-Nov-25") == "2025-11-19"
    assert parse_grid_date("31-Feb-25") is None
    assert parse_grid_date("2025-11-19") is None
    assert first_number("45%") == 45.0
    assert first_number("approx 12.5 MW") == 12.5
    assert first_number("-") is None


def test_discover_header_within_lookahead():
    rows = [["Fuel", "Hour Ending"], ["Fuel", "Date"] + _header_cells()]
    header = discover_header(rows)
    assert header.row_index == 1
    assert header.first_column == 2
    assert header.columns[2] == 1 and header.columns[25] == 24


def test_discover_header_requires_all_24_hours():
    rows = [["Hour Ending"], [str(h) for h in range(1, 24)]]
    assert discover_header(rows) is None


def test_discover_header_outside_lookahead():
    rows = [["Hour Ending"], ["x"], ["x"], ["x"], ["x"], _header_cells()]
    assert discover_header(rows, lookahead=3) is None
    assert discover_header(rows, lookahead=5).row_index == 5


def test_extract_aligns_values_after_date_cell_for_rowspan_rows(capability_html):
    cells, debug = extract_hourly_percentages(capability_html)

    lookup = {(c.date, c.he, c.label): c.value for c in cells}
    assert lookup[("2025-11-19", 1, "WIND")] == 45
    assert lookup[("2025-11-19", 2, "WIND")] == 50
    assert lookup[("2025-11-20", 1, "WIND")] == 40
    assert lookup[("2025-11-20", 24, "WIND")] == 40
    assert ("2025-11-19", 2, "SOLAR PV") not in lookup
    assert debug.dates == ["2025-11-19", "2025-11-20"]
    assert debug.fuels == ["WIND", "SOLAR PV"]
    assert debug.skipped_cells == 1
    assert debug.record_count == 24 + 24 + 23
    assert debug.error is None


def test_rows_before_any_label_are_counted_not_guessed():
    html = (
        "<table><tr><td>Hour Ending</td></tr>"
        "<tr><td>Date</td>" + "".join(f"<td>{h}</td>" for h in range(1, 25)) + "</tr>"
        "<tr><td>19-Nov-25</td>" + "<td>5</td>" * 24 + "</tr></table>"
    )
    cells, debug = extract_hourly_percentages(html)
    assert cells == []
    assert debug.unlabelled_rows == 1
    assert debug.error is not None


def test_missing_table_and_missing_header_report_reasons():
    cells, debug = extract_hourly_percentages("<html><body>maintenance</body></html>")
    assert cells == [] and debug.error == "No <table> element found in HTML"

    cells, debug = extract_hourly_percentages("<table><tr><td>Hour Ending</td></tr></table>")
    assert cells == []
    assert debug.table_found is True
    assert "No header row" in debug.error

    cells, debug = extract_hourly_percentages("<table><tr><td>nothing</td></tr></table>")
    assert "not found" in debug.error
