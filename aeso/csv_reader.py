"""
CushionWatch — Tolerant CSV Reader
Shared line splitter and numeric coercion used by every CSV-shaped AESO
report parser.

AESO's servlet CSVs are irregular: data rows are usually fully quoted,
header rows often are not, numbers carry "$" prefixes and thousands
separators, and a dash stands in for "not yet published".  Nothing in here
raises on bad input; malformed fields simply come back as None.

Column resolution
-----------------
Each report shape registers a table of column-name patterns mapped to
canonical field identifiers (``REPORT_COLUMNS``).  A header row is resolved
once per parse with ``resolve_columns``; supporting a new report shape means
adding a table, not new branching code.
"""

from __future__ import annotations

import math
import re
from typing import Iterator, Optional, Sequence

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NULL_TOKENS: frozenset[str] = frozenset({"", "-", "--"})

_NUMERIC_NOISE = re.compile(r"[$,\s]")

# (pattern, field_id) pairs, checked in order against the lower-cased header
# cell.  The first pattern that matches decides what the column is; a
# field_id of None marks the column as deliberately ignored.
ColumnTable = Sequence[tuple[str, Optional[str]]]

REPORT_COLUMNS: dict[str, ColumnTable] = {
    # ActualForecastWMRQHReportServlet
    "actual_forecast": (
        (r"difference",                None),
        (r"forecast.*pool price",      "forecast_price"),
        (r"actual.*pool price",        "actual_price"),
        (r"forecast\s*ail",            "forecast_load"),
        (r"actual\s*ail",              "actual_load"),
    ),
    # wind_rpt_shortterm.csv / solar_rpt_shortterm.csv
    "shortterm": (
        (r"date|time",                 "timestamp"),
        (r"^actual",                   "actual"),
    ),
    # Static nearest-neighbour history file
    "history": (
        (r"export",                    None),
        (r"import",                    None),
        (r"date",                      "date"),
        (r"^he$|^hour|hour.?ending",   "he"),
        (r"ail|load",                  "load"),
        (r"price",                     "price"),
    ),
}


# ---------------------------------------------------------------------------
# Line splitting
# ---------------------------------------------------------------------------


def iter_lines(text: str) -> Iterator[str]:
    """Yield non-blank, whitespace-trimmed lines (CRLF or LF)."""
    for raw in (text or "").splitlines():
        line = raw.strip()
        if line:
            yield line


def split_line(line: str) -> list[str]:
    """
    Split one CSV line on commas, honouring a single level of double quotes.

    A quote toggles the "inside field" state; a doubled quote inside a quoted
    field collapses to one literal quote.  Enclosing quotes are dropped and
    each field is whitespace-trimmed.  N unquoted commas always produce N+1
    fields.
    """
    fields: list[str] = []
    buf: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)

    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                buf.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
        i += 1

    fields.append("".join(buf).strip())
    return fields


def strip_quotes(field: str) -> str:
    """Remove surrounding whitespace and double quotes from a field."""
    return (field or "").strip().strip('"').strip()


def field_at(fields: Sequence[str], index: Optional[int]) -> str:
    """Return ``fields[index]`` or "" when the row is too short (ragged rows)."""
    if index is None or index < 0 or index >= len(fields):
        return ""
    return fields[index]


# ---------------------------------------------------------------------------
# Numeric coercion
# ---------------------------------------------------------------------------


def to_number_or_null(field: Optional[str]) -> Optional[float]:
    """
    Coerce a currency/number-like string to float, or None.

    "$1,234.50" → 1234.5, "-" → None, "" → None, "abc" → None.
    Non-finite results (nan, inf) are also None.  Never raises.
    """
    if field is None:
        return None
    cleaned = _NUMERIC_NOISE.sub("", strip_quotes(str(field)))
    if cleaned in NULL_TOKENS:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


# ---------------------------------------------------------------------------
# Header resolution
# ---------------------------------------------------------------------------


def resolve_columns(header_fields: Sequence[str], table: ColumnTable) -> dict[str, int]:
    """
    Map canonical field ids to column indexes for one header row.

    The first matching column wins for each field id; later duplicates are
    ignored.  Columns matched by a ``None`` entry never resolve.
    """
    compiled = [(re.compile(pattern), field_id) for pattern, field_id in table]
    resolved: dict[str, int] = {}

    for idx, raw in enumerate(header_fields):
        name = strip_quotes(raw).lower()
        if not name:
            continue
        for pattern, field_id in compiled:
            if pattern.search(name):
                if field_id is not None and field_id not in resolved:
                    resolved[field_id] = idx
                break

    return resolved


def matching_columns(header_fields: Sequence[str], pattern: str) -> list[int]:
    """Return every column index whose lower-cased name matches *pattern*."""
    rx = re.compile(pattern)
    return [
        idx for idx, raw in enumerate(header_fields)
        if rx.search(strip_quotes(raw).lower())
    ]
