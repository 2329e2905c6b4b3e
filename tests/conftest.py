import pytest


def _grid_row(cells):
    return "<tr>" + "".join(cells)


@pytest.fixture
def actual_forecast_csv():
    return (
        "Actual Forecast Report\r\n"
        "\r\n"
        "Date (HE),Forecast Pool Price,Actual Posted Pool Price,Forecast AIL,Actual AIL,"
        "Forecast AIL & Actual AIL Difference\r\n"
        '"11/18/2025 05",25.10,22.00,9500,9400\r\n'
    )


@pytest.fixture
def capability_html():
    """Two-fuel capability grid with rowspanned labels and sloppy markup."""
    he_header = "".join(f"<td align=center>{h}</td>" for h in range(1, 25))

    wind_19 = ["45", "50"] + ["60"] * 22
    wind_20 = ["40%"] * 24
    solar_19 = ["0", "-"] + ["12.5"] * 22

    rows = [
        '<tr bgcolor="#CCCCCC"><th colspan="2">Fuel Type</th><th colspan="24">Hour Ending</th></tr>',
        "<tr><td>Fuel</td><td>Date</td>" + he_header + "</tr>",
        _grid_row(
            ['<td rowspan="2" class="fuel">WIND</td>', "<td>19-Nov-25</td>"]
            + [f"<td>{v}</td>" for v in wind_19]
        ) + "</tr>",
        # no </tr> on purpose
        _grid_row(["<td>20-Nov-25</td>"] + [f"<td>{v}</td>" for v in wind_20]),
        _grid_row(
            ["<td rowspan=1>SOLAR<br/>PV</td>", "<td>19-Nov-25</td>"]
            + [f"<td>{v}</td>" for v in solar_19]
        ) + "</tr>",
    ]
    return (
        "<html><body>\n"
        "<table width='100%'><tr><td>Seven Day Hourly Available Capability</td></tr></table>\n"
        "<table border=1 cellpadding=2>\n" + "\n".join(rows) + "\n</table>\n"
        "</body></html>"
    )


@pytest.fixture
def csd_html():
    return """
    <html><body>
    <table border="1">
      <tr><th colspan="2">INTERCHANGE</th></tr>
      <tr><td class="label">British Columbia</td><td align="right">-435</td></tr>
      <tr><td>Montana</td><td> 120 </td></tr>
      <tr><td>Saskatchewan</td><td>-</td></tr>
    </table>
    <table border="1">
      <tr><th colspan="2">SUMMARY</th></tr>
      <tr><td>Net Actual Interchange</td><td>-1,289</td></tr>
    </table>
    </body></html>
    """


@pytest.fixture
def shortterm_csv():
    return (
        "Forecast Transaction Date,Min,Most Likely,Max,Actual\n"
        "2025-11-18 10:00,400,450,500,500\n"
        "2025-11-19 09:50,90,100,110,95\n"
        "2025-11-19 10:00,90,100,110,100\n"
        '2025-11-19 10:30,90,100,110,"120"\n'
        "2025-11-19 11:00,90,100,110,\n"
        "not a timestamp,1,2,3,4\n"
    )


@pytest.fixture
def history_csv_text():
    return (
        "date,he,ail_mw,pool_price,bc_export_mw,bc_import_mw,sk_export_mw,sk_import_mw\n"
        "2025-11-05,1,8612,41.20,120,,0,35\n"
        "2025-11-05,2,8500,,,50,,\n"
        "2025-11-06,1,8700,39.00,,,,\n"
    )
