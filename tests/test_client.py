import pytest
import requests

from aeso.client import REPORT_URLS, AESOReportClient, ReportFetch


class DummyResp:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Hands out queued responses (or raises queued exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(session, retries=3):
    return AESOReportClient(session=session, max_retries=retries, backoff_seconds=0)


def test_fetch_success():
    session = FakeSession(DummyResp(200, "Date (HE),x\n"))

    result = _client(session).fetch("actual_forecast")

    assert isinstance(result, ReportFetch)
    assert result.ok is True
    assert result.http_status == 200
    assert result.text.startswith("Date (HE)")
    assert session.calls == [REPORT_URLS["actual_forecast"]]


def test_server_errors_are_retried():
    session = FakeSession(DummyResp(503), requests.ConnectionError("reset"), DummyResp(200, "ok"))

    result = _client(session).fetch("capability")

    assert result.ok is True
    assert len(session.calls) == 3


def test_client_errors_are_not_retried():
    session = FakeSession(DummyResp(404), DummyResp(200, "never"))

    result = _client(session).fetch("supply_demand")

    assert result.ok is False
    assert result.http_status == 404
    assert result.text == ""
    assert len(session.calls) == 1


def test_exhausted_retries_return_failed_fetch():
    session = FakeSession(*(requests.Timeout("slow") for _ in range(2)))

    result = _client(session, retries=2).fetch("wind_shortterm")

    assert result.ok is False
    assert result.http_status is None
    assert "slow" in result.error


def test_persistent_server_error_keeps_status():
    session = FakeSession(DummyResp(500), DummyResp(500))

    result = _client(session, retries=2).fetch("solar_shortterm")

    assert result.ok is False
    assert result.http_status == 500


def test_empty_body_is_a_failure():
    result = _client(FakeSession(DummyResp(200, "   \n"))).fetch("actual_forecast")

    assert result.ok is False
    assert result.error == "Empty response from AESO"


def test_unknown_report_name():
    with pytest.raises(KeyError):
        _client(FakeSession()).fetch("pool_price")


def test_fetch_all_defaults_to_every_report():
    session = FakeSession(*(DummyResp(200, "x") for _ in REPORT_URLS))

    results = _client(session).fetch_all()

    assert list(results) == list(REPORT_URLS)
    assert all(r.ok for r in results.values())
    assert results["capability"].to_dict()["bytes"] == 1


def test_fetch_report_uses_a_fresh_session(monkeypatch):
    import aeso.client as mod

    session = FakeSession(DummyResp(200, "<table></table>"))
    monkeypatch.setattr(mod.requests, "Session", lambda: session)

    result = mod.fetch_report("supply_demand")

    assert result.ok is True
    assert session.calls == [REPORT_URLS["supply_demand"]]
