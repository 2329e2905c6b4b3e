"""
CushionWatch — Current Supply Demand (CSD) Interchange Snapshot
Reads real-time intertie flows from AESO's CSD report.

Source: http://ets.aeso.ca/ets_web/ip/Market/Reports/CSDReportServlet

The CSD page is a collection of small label/value tables whose row layout
shifts between releases.  Nothing here depends on row position: each label
is located independently and the first signed integer in the next table
cell after it is taken as the value.

    <tr><td>British Columbia</td><td>-435</td></tr>
    <tr><td>Net Actual Interchange</td><td>-489</td></tr>

Sign convention (AESO): positive = export from Alberta, negative = import.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from aeso.html_table import clean_cell_text
from aeso.models import IntertieSnapshot

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

AESO_CSD_URL = "http://ets.aeso.ca/ets_web/ip/Market/Reports/CSDReportServlet"

# path → counterparty label as printed in the INTERCHANGE table
INTERTIE_LABELS: dict[str, str] = {
    "AB-BC":   "British Columbia",
    "AB-MATL": "Montana",
    "AB-SK":   "Saskatchewan",
}

NET_INTERCHANGE_LABEL = "Net Actual Interchange"

_NEXT_CELL_RE = re.compile(r"<td\b[^>]*>(.*?)</td\s*>", re.I | re.S)
_SIGNED_INT_RE = re.compile(r"[-+]?\d[\d,]*")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class PathFlow:
    path: str
    counterparty: str
    actual_flow_mw: Optional[int]

    def to_dict(self) -> dict:
        return {
            "path":           self.path,
            "counterparty":   self.counterparty,
            "actual_flow_mw": self.actual_flow_mw,
        }


@dataclass
class InterchangeSnapshot:
    flows: list[PathFlow]
    system_net_mw: Optional[int]

    @property
    def sum_of_paths_mw(self) -> Optional[int]:
        known = [f.actual_flow_mw for f in self.flows if f.actual_flow_mw is not None]
        return sum(known) if known else None

    @property
    def system_vs_paths_delta_mw(self) -> Optional[int]:
        paths = self.sum_of_paths_mw
        if self.system_net_mw is None or paths is None:
            return None
        return self.system_net_mw - paths

    def to_dict(self) -> dict:
        return {
            "flows":                    [f.to_dict() for f in self.flows],
            "system_net_mw":            self.system_net_mw,
            "sum_of_paths_mw":          self.sum_of_paths_mw,
            "system_vs_paths_delta_mw": self.system_vs_paths_delta_mw,
        }


@dataclass
class InterchangeDebug:
    ok: bool = False
    labels_found: list[str] = field(default_factory=list)
    labels_missing: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok":             self.ok,
            "labels_found":   list(self.labels_found),
            "labels_missing": list(self.labels_missing),
            "error":          self.error,
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_flow_for_label(html: str, label: str) -> Optional[int]:
    """
    First signed integer inside the first ``<td>`` that follows *label*.

    The label match is case-insensitive and uses the first occurrence only.
    Returns None when the label, the following cell, or a number inside it
    is missing.
    """
    if not html or not label:
        return None
    found = re.search(re.escape(label), html, re.I)
    if not found:
        return None

    match = _NEXT_CELL_RE.search(html, found.end())
    if not match:
        return None

    number = _SIGNED_INT_RE.search(clean_cell_text(match.group(1)))
    if not number:
        return None
    try:
        return int(number.group(0).replace(",", ""))
    except ValueError:
        return None


def parse_interchange(
    html: str,
    labels: Optional[dict[str, str]] = None,
    net_label: str = NET_INTERCHANGE_LABEL,
) -> tuple[InterchangeSnapshot, InterchangeDebug]:
    """Build an interchange snapshot from CSD HTML.  Each label is looked up independently."""
    labels = labels or INTERTIE_LABELS
    debug = InterchangeDebug()

    if not html or not html.strip():
        debug.error = "Empty report HTML"
        debug.labels_missing = list(labels.values()) + [net_label]
        flows = [PathFlow(path, name, None) for path, name in labels.items()]
        return InterchangeSnapshot(flows=flows, system_net_mw=None), debug

    flows: list[PathFlow] = []
    for path, name in labels.items():
        value = extract_flow_for_label(html, name)
        (debug.labels_found if value is not None else debug.labels_missing).append(name)
        flows.append(PathFlow(path=path, counterparty=name, actual_flow_mw=value))

    system_net = extract_flow_for_label(html, net_label)
    (debug.labels_found if system_net is not None else debug.labels_missing).append(net_label)

    debug.ok = bool(debug.labels_found)
    if not debug.ok:
        debug.error = "None of the interchange labels were found next to a numeric cell"
        logger.warning("CSD interchange: {}", debug.error)
    elif debug.labels_missing:
        logger.debug("CSD interchange missing labels: {}", debug.labels_missing)

    return InterchangeSnapshot(flows=flows, system_net_mw=system_net), debug


def snapshot_from_interties(interties: list[IntertieSnapshot]) -> InterchangeSnapshot:
    """
    Interchange snapshot from modelled per-path flows (one synthetic hour).

    Paths follow ``INTERTIE_LABELS`` order; the system net is the sum of the
    paths, so the system-vs-paths delta is 0 whenever any path has a flow.
    """
    by_path = {t.path: t for t in interties}
    ordered = [p for p in INTERTIE_LABELS if p in by_path] + [p for p in by_path if p not in INTERTIE_LABELS]

    flows: list[PathFlow] = []
    for path in ordered:
        flow = by_path[path].actual_flow
        flows.append(PathFlow(
            path=path,
            counterparty=INTERTIE_LABELS.get(path, path),
            actual_flow_mw=int(round(flow)) if flow is not None else None,
        ))
    known = [f.actual_flow_mw for f in flows if f.actual_flow_mw is not None]
    return InterchangeSnapshot(flows=flows, system_net_mw=sum(known) if known else None)
