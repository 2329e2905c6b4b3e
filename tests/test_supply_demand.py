from aeso.models import IntertieSnapshot
from aeso.supply_demand import extract_flow_for_label, parse_interchange, snapshot_from_interties


def test_extract_flow_for_label(csd_html):
    assert extract_flow_for_label(csd_html, "British Columbia") == -435
    assert extract_flow_for_label(csd_html, "montana") == 120
    assert extract_flow_for_label(csd_html, "Net Actual Interchange") == -1289
    assert extract_flow_for_label(csd_html, "Saskatchewan") is None
    assert extract_flow_for_label(csd_html, "Manitoba") is None
    assert extract_flow_for_label("", "Montana") is None


def test_extract_flow_uses_first_occurrence():
    html = "<td>Montana</td><td>10</td><td>Montana</td><td>99</td>"
    assert extract_flow_for_label(html, "Montana") == 10


def test_parse_interchange(csd_html):
    snapshot, debug = parse_interchange(csd_html)

    flows = {f.path: f.actual_flow_mw for f in snapshot.flows}
    assert flows == {"AB-BC": -435, "AB-MATL": 120, "AB-SK": None}
    assert snapshot.system_net_mw == -1289
    assert snapshot.sum_of_paths_mw == -315
    assert snapshot.system_vs_paths_delta_mw == -1289 - (-315)
    assert debug.ok is True
    assert debug.labels_missing == ["Saskatchewan"]


def test_parse_interchange_custom_labels(csd_html):
    snapshot, _ = parse_interchange(csd_html, labels={"AB-BC": "British Columbia"})
    assert [f.path for f in snapshot.flows] == ["AB-BC"]


def test_parse_interchange_empty_html():
    snapshot, debug = parse_interchange("")

    assert all(f.actual_flow_mw is None for f in snapshot.flows)
    assert snapshot.system_net_mw is None
    assert snapshot.sum_of_paths_mw is None
    assert snapshot.system_vs_paths_delta_mw is None
    assert debug.ok is False
    assert debug.error == "Empty report HTML"


def test_parse_interchange_no_labels_found():
    _, debug = parse_interchange("<table><tr><td>Maintenance</td></tr></table>")
    assert debug.ok is False
    assert debug.error is not None


def test_snapshot_from_interties_orders_paths_and_sums_net():
    interties = [
        IntertieSnapshot("AB-BC", 800, 800, -300, -310.4),
        IntertieSnapshot("AB-SK", 250, 250, -60, None),
        IntertieSnapshot("AB-MATL", 300, 300, -100, -95.6),
    ]

    snapshot = snapshot_from_interties(interties)

    assert [(f.path, f.counterparty, f.actual_flow_mw) for f in snapshot.flows] == [
        ("AB-BC", "British Columbia", -310),
        ("AB-MATL", "Montana", -96),
        ("AB-SK", "Saskatchewan", None),
    ]
    assert snapshot.system_net_mw == -406
    assert snapshot.system_vs_paths_delta_mw == 0
    assert snapshot_from_interties([]).system_net_mw is None


def test_label_offset_survives_case_folding_that_changes_length():
    # "İ".lower() is two code points long
    html = "<td>" + "İ" * 40 + "</td><td>999</td><tr><td>Montana</td><td>120</td></tr>"
    assert extract_flow_for_label(html, "Montana") == 120
