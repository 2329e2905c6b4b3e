"""
CushionWatch — AESO Report Fetcher
Synchronous download of the raw AESO report texts the parsers consume.

Reports
-------
  actual_forecast  ActualForecastWMRQHReportServlet (CSV)
  capability       SevenDaysHourlyAvailableCapabilityReportServlet (HTML)
  supply_demand    CSDReportServlet (HTML)
  wind_shortterm   wind_rpt_shortterm.csv
  solar_shortterm  solar_rpt_shortterm.csv

All reports are public; no key or registration is needed.

Failure contract
----------------
Retries and backoff live here and nowhere else.  Once retries are
exhausted the failure is logged and returned as a ``ReportFetch`` with
``ok=False`` and empty text, which every parser treats as "no rows".
``fetch`` never raises for transport problems.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Iterable, Optional

import requests
from dotenv import load_dotenv
from loguru import logger

from aeso.actual_forecast import AESO_ACTUAL_FORECAST_CSV_URL
from aeso.capability import AESO_CAPABILITY_HTML_URL
from aeso.renewables import AESO_SOLAR_SHORTTERM_URL, AESO_WIND_SHORTTERM_URL
from aeso.supply_demand import AESO_CSD_URL

load_dotenv()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REPORT_URLS: dict[str, str] = {
    "actual_forecast": AESO_ACTUAL_FORECAST_CSV_URL,
    "capability":      AESO_CAPABILITY_HTML_URL,
    "supply_demand":   AESO_CSD_URL,
    "wind_shortterm":  AESO_WIND_SHORTTERM_URL,
    "solar_shortterm": AESO_SOLAR_SHORTTERM_URL,
}

HEADERS = {
    "User-Agent": "CushionWatch/0.1 (alberta-market-monitor)",
    "Accept":     "text/csv, text/html;q=0.9, */*;q=0.5",
}

# Retry settings
MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 2.0
REQUEST_TIMEOUT_SECONDS = float(os.getenv("AESO_REQUEST_TIMEOUT", "20"))


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ReportFetch:
    """Outcome of downloading one report."""

    name: str
    url: str
    ok: bool
    http_status: Optional[int]
    text: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name":        self.name,
            "url":         self.url,
            "ok":          self.ok,
            "http_status": self.http_status,
            "bytes":       len(self.text),
            "error":       self.error,
        }


# ---------------------------------------------------------------------------
# Core client class
# ---------------------------------------------------------------------------


class AESOReportClient:
    """
    Fetches AESO ETS reports as text.

    Parameters
    ----------
    timeout:
        Per-request HTTP timeout in seconds.
    max_retries:
        Attempts per report on timeouts, connection errors and 5xx responses.
        4xx responses are not retried.
    session:
        Optional ``requests.Session`` (tests inject a fake).
    """

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        session: Optional[requests.Session] = None,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max_retries
        self._session = session or requests.Session()
        self._backoff = backoff_seconds

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, url: str) -> requests.Response:
        """
        Single GET with retry/backoff.  Returns the successful response.
        Raises the last ``requests`` exception when every attempt fails.
        """
        last_exc: Exception = RuntimeError("No attempts made")
        for attempt in range(1, self._max_retries + 1):
            try:
                logger.debug("GET {} attempt={}/{}", url, attempt, self._max_retries)
                resp = self._session.get(url, headers=HEADERS, timeout=self._timeout)
                resp.raise_for_status()
                return resp
            except requests.exceptions.Timeout as exc:
                logger.warning("Timeout (attempt {}): {}", attempt, exc)
                last_exc = exc
            except requests.exceptions.ConnectionError as exc:
                logger.warning("Connection error (attempt {}): {}", attempt, exc)
                last_exc = exc
            except requests.exceptions.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else "?"
                if exc.response is not None and 400 <= exc.response.status_code < 500:
                    logger.error("Client error {}: {}", status, exc)
                    raise
                logger.warning("Server error {} (attempt {}): {}", status, attempt, exc)
                last_exc = exc

            if attempt < self._max_retries:
                wait = self._backoff * attempt
                logger.info("Retrying in {:.1f}s…", wait)
                time.sleep(wait)

        raise last_exc

    # ------------------------------------------------------------------
    # Public API methods
    # ------------------------------------------------------------------

    def fetch(self, name: str) -> ReportFetch:
        """Download report *name* (a key of ``REPORT_URLS``).  Never raises on transport errors."""
        if name not in REPORT_URLS:
            raise KeyError(f"Unknown AESO report {name!r}; expected one of {sorted(REPORT_URLS)}")
        url = REPORT_URLS[name]

        try:
            resp = self._get(url)
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            return ReportFetch(name, url, False, status, "", f"HTTP {status}: {exc}")
        except requests.exceptions.RequestException as exc:
            logger.error("Fetching {} failed after {} attempts: {}", name, self._max_retries, exc)
            return ReportFetch(name, url, False, None, "", str(exc))

        text = resp.text or ""
        if not text.strip():
            logger.warning("{} returned an empty body.", name)
            return ReportFetch(name, url, False, resp.status_code, "", "Empty response from AESO")

        logger.info("Fetched {} ({} bytes, HTTP {}).", name, len(text), resp.status_code)
        return ReportFetch(name, url, True, resp.status_code, text)

    def fetch_all(self, names: Optional[Iterable[str]] = None) -> dict[str, ReportFetch]:
        """Fetch several reports one after another; defaults to every known report."""
        return {name: self.fetch(name) for name in (names or REPORT_URLS)}


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------


def fetch_report(name: str) -> ReportFetch:
    return AESOReportClient().fetch(name)


# ---------------------------------------------------------------------------
# Smoke test  (python -m aeso.client)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import sys

    logger.remove()
    logger.add(sys.stderr, level="DEBUG")

    logger.info("=== CushionWatch — AESO Report Fetch Smoke Test ===")

    for report in REPORT_URLS:
        result = fetch_report(report)
        if result.ok:
            logger.success("{} OK — HTTP {} | {} bytes", report, result.http_status, len(result.text))
        else:
            logger.error("{} FAILED — {}", report, result.error)
