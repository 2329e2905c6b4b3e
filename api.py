"""
CushionWatch — FastAPI Service
Serves reconciled hourly Alberta market state built from AESO's public ETS
reports, with a deterministic synthetic baseline filling every gap.

Run:  uvicorn api:app --reload --port 8000
Docs: http://localhost:8000/docs

Every data endpoint fetches the AESO reports it needs concurrently, hands
the texts to ``aeso.pipeline.assemble_day`` and wraps the result in the
standard envelope.  Upstream failures never surface as 5xx responses: they
degrade to synthetic hours and show up in the per-report ``debug`` block.
"""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any, Generic, Optional, TypeVar
from zoneinfo import ZoneInfo

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from aeso.actual_forecast import parse_actual_forecast
from aeso.capability import (
    available_dates,
    choose_report_date,
    current_hour_view,
    daily_average_view,
)
from aeso.client import HEADERS, REPORT_URLS, REQUEST_TIMEOUT_SECONDS, ReportFetch
from aeso.history import load_history_from_env, rank_neighbours, reference_flows
from aeso.pipeline import DayResult, assemble_day, attach_fetch_status
from aeso.renewables import DEFAULT_TIMEZONE
from aeso.supply_demand import snapshot_from_interties
from aeso.summary import (
    capability_averages,
    current_hour_ending,
    renewable_deltas,
    summarize_day,
    use_actual_flags,
)
from aeso.synthetic import build_reference_day

load_dotenv()

logger.remove()
logger.add(sys.stderr, level=os.getenv("LOG_LEVEL", "INFO"))

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

AESO_TIMEZONE = ZoneInfo(DEFAULT_TIMEZONE)

# Reports feeding the reconciled hourly records
HOURLY_REPORTS = ("actual_forecast", "wind_shortterm", "solar_shortterm")

DEFAULT_LOOKBACK_DAYS = 14

# ---------------------------------------------------------------------------
# Application state — shared httpx client
# ---------------------------------------------------------------------------

_http_client: Optional[httpx.AsyncClient] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create a single shared httpx client for the lifetime of the process."""
    global _http_client
    _http_client = httpx.AsyncClient(
        timeout=REQUEST_TIMEOUT_SECONDS,
        headers=HEADERS,
        follow_redirects=True,
    )
    logger.info("httpx AsyncClient initialised.")
    yield
    await _http_client.aclose()
    logger.info("httpx AsyncClient closed.")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CushionWatch API",
    description=(
        "Hourly Alberta supply-cushion monitor. Parses AESO's public ETS "
        "reports and reconciles them onto a deterministic synthetic day."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Envelope — standard top-level wrapper for all data endpoints
# ---------------------------------------------------------------------------

_T_data    = TypeVar("_T_data")
_T_summary = TypeVar("_T_summary")


class EnvelopeMeta(BaseModel):
    """Metadata block present on every CushionWatch API response."""
    api_version:  str = "1.0"
    is_demo:      bool
    date:         str   # market date the data describes, ISO
    timezone:     str = DEFAULT_TIMEZONE
    last_updated: str   # server timestamp when response was built
    units:        str   # primary unit, e.g. "MW", "$/MWh"
    data_quality: str   # "LIVE" | "PARTIAL" | "SYNTHETIC" | "DEMO"


class ApiResponse(BaseModel, Generic[_T_data, _T_summary]):
    """Uniform envelope returned by every CushionWatch data endpoint."""
    meta:    EnvelopeMeta
    data:    list[_T_data]
    summary: _T_summary


# ---------------------------------------------------------------------------
# Record models  (per-row shape inside data[])
# ---------------------------------------------------------------------------

class IntertieModel(BaseModel):
    path:        str
    import_cap:  float
    export_cap:  float
    scheduled:   Optional[float]
    actual_flow: Optional[float]   # positive = export


class FuelCapabilityModel(BaseModel):
    fuel:         str
    available_mw: int
    outage_mw:    int


class HourlyRecordModel(BaseModel):
    date:                  str
    he:                    int
    time:                  str
    forecast_price:        Optional[float]
    actual_price:          Optional[float]
    system_marginal_price: Optional[float]
    forecast_load:         Optional[float]
    actual_load:           Optional[float]
    reference_price:       Optional[float]
    reference_load:        Optional[float]
    cushion_mw:            Optional[float]
    cushion_percent:       Optional[float]
    cushion_flag:          str   # "tight" | "watch" | "comfortable" | "unknown"
    wind_forecast:         Optional[float]
    wind_actual:           Optional[float]
    solar_forecast:        Optional[float]
    solar_actual:          Optional[float]
    interties:             list[IntertieModel]
    capability:            list[FuelCapabilityModel]
    provenance:            str   # "synthetic" | "live-augmented"


class CapabilityRowModel(BaseModel):
    fuel:             str
    availability_pct: float
    hours:            int   # HEs contributing (1 for the current-hour view)


class PathFlowModel(BaseModel):
    path:           str
    counterparty:   str
    actual_flow_mw: Optional[int]


class RenewableHourModel(BaseModel):
    he:             int
    wind_forecast:  Optional[float]
    wind_actual:    Optional[float]
    wind_delta:     Optional[float]
    solar_forecast: Optional[float]
    solar_actual:   Optional[float]
    solar_delta:    Optional[float]


class NeighbourRowModel(BaseModel):
    he:                 int
    today_price:        Optional[float]
    today_price_source: Optional[str]   # "actual" | "forecast"
    reference_price:    Optional[float]
    delta_price:        Optional[float]
    today_load:         Optional[float]
    reference_load:     Optional[float]
    delta_load:         Optional[float]


class NeighbourCandidateModel(BaseModel):
    reference_date: str
    score:          float
    rows:           list[NeighbourRowModel]


class ActualForecastRowModel(BaseModel):
    date:           str
    he:             int
    forecast_price: Optional[float]
    actual_price:   Optional[float]
    forecast_load:  Optional[float]
    actual_load:    Optional[float]


# ---------------------------------------------------------------------------
# Summary models  (aggregated fields inside summary{})
# ---------------------------------------------------------------------------

class HourlySummary(BaseModel):
    current_he:      int
    peak_load:       Optional[float]
    max_price:       Optional[float]
    min_cushion:     Optional[float]
    avg_cushion_pct: Optional[float]
    live_hours:      int
    closed_hours:    list[int]   # HEs whose actuals should be shown
    debug:           dict[str, Any]


class ReferenceFlowModel(BaseModel):
    he:          int
    net_flow_mw: float


class ReferenceSummary(BaseModel):
    reference_date:    str
    lookback_days:     int
    history_available: bool
    reference_flows:   list[ReferenceFlowModel]


class FuelCapabilityAverageModel(BaseModel):
    fuel:             str
    avg_available_mw: float
    avg_outage_mw:    float
    outage_pct:       Optional[float]


class CapabilitySummary(BaseModel):
    view:            str             # "current" | "daily"
    report_date:     Optional[str]   # date chosen from the AESO report
    he:              Optional[int]
    available_dates: list[str]
    modelled:        list[FuelCapabilityAverageModel]
    debug:           dict[str, Any]


class InterchangeSummary(BaseModel):
    system_net_mw:            Optional[int]
    sum_of_paths_mw:          Optional[int]
    system_vs_paths_delta_mw: Optional[int]
    debug:                    dict[str, Any]


class RenewablesSummary(BaseModel):
    wind_live_hours:  int
    solar_live_hours: int
    debug:            dict[str, Any]


class NeighbourSummary(BaseModel):
    today_date:        str
    history_available: bool
    candidate_count:   int
    message:           str


# ---------------------------------------------------------------------------
# Typed envelope aliases — one per data endpoint
# ---------------------------------------------------------------------------

HourlyApiResponse     = ApiResponse[HourlyRecordModel,       HourlySummary]
ReferenceApiResponse  = ApiResponse[HourlyRecordModel,       ReferenceSummary]
CapabilityApiResponse = ApiResponse[CapabilityRowModel,      CapabilitySummary]
IntertieApiResponse   = ApiResponse[PathFlowModel,           InterchangeSummary]
RenewablesApiResponse = ApiResponse[RenewableHourModel,      RenewablesSummary]
NeighbourApiResponse  = ApiResponse[NeighbourCandidateModel, NeighbourSummary]


# ---------------------------------------------------------------------------
# Meta-only models (health, debug — not wrapped in envelope)
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status:             str
    timestamp:          str
    timezone:           str
    history_configured: bool


class ActualForecastDebugResponse(BaseModel):
    debug: dict[str, Any]
    rows:  list[ActualForecastRowModel]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _now_ab() -> datetime:
    return datetime.now(tz=AESO_TIMEZONE)


def _resolve_date(raw: Optional[str]) -> date:
    """Parse the ``date`` query parameter; today in Alberta when omitted."""
    if not raw:
        return _now_ab().date()
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid date {raw!r}. Use 'YYYY-MM-DD'.",
        ) from exc


def _make_meta(*, is_demo: bool, day: date, units: str, data_quality: str) -> EnvelopeMeta:
    """Build the standard EnvelopeMeta for a response."""
    return EnvelopeMeta(
        is_demo=is_demo,
        date=day.isoformat(),
        units=units,
        data_quality="DEMO" if is_demo else data_quality,
        last_updated=_now_ab().isoformat(),
    )


async def _fetch_text(name: str) -> ReportFetch:
    """
    GET one AESO report.  Transport failures are logged and returned as an
    unsuccessful ``ReportFetch`` with empty text; nothing is raised.
    """
    url = REPORT_URLS[name]
    if _http_client is None:
        return ReportFetch(name, url, False, None, "", "HTTP client not initialised")
    try:
        resp = await _http_client.get(url)
        resp.raise_for_status()
    except httpx.TimeoutException as exc:
        logger.warning("AESO {} timed out: {}", name, exc)
        return ReportFetch(name, url, False, None, "", "Timed out")
    except httpx.HTTPStatusError as exc:
        logger.error("AESO {} returned {}: {}", name, exc.response.status_code, exc)
        return ReportFetch(name, url, False, exc.response.status_code, "", f"HTTP {exc.response.status_code}")
    except httpx.HTTPError as exc:
        logger.error("AESO {} request failed: {}", name, exc)
        return ReportFetch(name, url, False, None, "", str(exc))

    text = resp.text or ""
    if not text.strip():
        return ReportFetch(name, url, False, resp.status_code, "", "Empty response from AESO")
    return ReportFetch(name, url, True, resp.status_code, text)


async def _fetch_reports(names: tuple[str, ...]) -> dict[str, ReportFetch]:
    """Fetch several reports concurrently (fire-and-await-all)."""
    results = await asyncio.gather(*(_fetch_text(n) for n in names))
    return dict(zip(names, results))


async def _day_result(day: date, names: tuple[str, ...], demo: bool) -> DayResult:
    if demo:
        return assemble_day(day)
    fetches = await _fetch_reports(names)
    texts = {name: f.text for name, f in fetches.items() if f.ok}
    return attach_fetch_status(assemble_day(day, texts), fetches)


def _record_models(result_records) -> list[HourlyRecordModel]:
    return [HourlyRecordModel(**r.to_dict()) for r in result_records]


def _closed_through(day: date) -> int:
    """Last HE with published actuals: 24 for past dates, 0 for future ones."""
    today = _now_ab().date()
    if day < today:
        return 24
    if day > today:
        return 0
    return current_hour_ending()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

_DEMO_QUERY = Query(
    default=False,
    description=(
        "Return the deterministic synthetic day instead of hitting AESO. "
        "Useful for demos, offline development, and AESO-down scenarios. "
        "Returns the same values every time for a given date."
    ),
)

_DATE_QUERY = Query(
    default=None,
    description="Market date, 'YYYY-MM-DD'. Defaults to today in Alberta.",
)


@app.get("/health", response_model=HealthResponse, tags=["Meta"])
async def health():
    """Returns service health status and whether a history file is configured."""
    return HealthResponse(
        status="ok",
        timestamp=_now_ab().isoformat(),
        timezone=DEFAULT_TIMEZONE,
        history_configured=bool(os.getenv("AESO_HISTORY_CSV", "").strip()),
    )


@app.get("/hourly", response_model=HourlyApiResponse, tags=["Hourly"])
async def get_hourly(
    date: Optional[str] = _DATE_QUERY,
    demo: bool = _DEMO_QUERY,
):
    """
    Return the 24 reconciled hourly records for a market date.

    Live Actual/Forecast price and AIL plus short-term wind and solar
    actuals overwrite the synthetic baseline hour by hour; cushion metrics
    follow the reconciled load.
    """
    day = _resolve_date(date)
    logger.info("GET /hourly | date={} | demo={}", day, demo)

    result = await _day_result(day, HOURLY_REPORTS, demo)
    current_he = _closed_through(day)
    summary = summarize_day(result.records, current_he)
    flags = use_actual_flags(result.records, current_he)

    return HourlyApiResponse(
        meta=_make_meta(is_demo=demo, day=day, units="MW", data_quality=result.data_quality),
        data=_record_models(result.records),
        summary=HourlySummary(
            current_he=current_he,
            peak_load=summary.peak_load,
            max_price=summary.max_price,
            min_cushion=summary.min_cushion,
            avg_cushion_pct=summary.avg_cushion_pct,
            live_hours=summary.live_hours,
            closed_hours=[he for he, closed in flags.items() if closed],
            debug=result.debug,
        ),
    )


@app.get("/reference", response_model=ReferenceApiResponse, tags=["Hourly"])
async def get_reference(
    date: Optional[str] = _DATE_QUERY,
    lookback_days: int = Query(
        default=DEFAULT_LOOKBACK_DAYS,
        ge=1,
        le=365,
        description="How many days before `date` the reference day sits (1–365).",
    ),
):
    """
    Return the synthetic reference day plus, when a history CSV is
    configured, the net reference intertie flow for each HE of that day.
    """
    day = _resolve_date(date)
    ref_day = day - timedelta(days=lookback_days)
    logger.info("GET /reference | date={} | reference={}", day, ref_day)

    records = build_reference_day(day, lookback_days)
    history = load_history_from_env()
    flows = reference_flows(history, ref_day) if history is not None else {}

    return ReferenceApiResponse(
        meta=_make_meta(is_demo=False, day=ref_day, units="MW", data_quality="SYNTHETIC"),
        data=_record_models(records),
        summary=ReferenceSummary(
            reference_date=ref_day.isoformat(),
            lookback_days=lookback_days,
            history_available=history is not None,
            reference_flows=[
                ReferenceFlowModel(he=he, net_flow_mw=mw) for he, mw in sorted(flows.items())
            ],
        ),
    )


@app.get("/capability", response_model=CapabilityApiResponse, tags=["Capability"])
async def get_capability(
    date: Optional[str] = _DATE_QUERY,
    view: str = Query(
        default="daily",
        pattern="^(current|daily)$",
        description="'current' = one HE, every fuel; 'daily' = mean availability per fuel.",
    ),
    he: Optional[int] = Query(
        default=None,
        ge=1,
        le=24,
        description="Hour ending for the current view. Defaults to the HE in progress.",
    ),
    demo: bool = _DEMO_QUERY,
):
    """
    Return AESO available capability by fuel (percent) for one date.

    The report spans several days; the requested date is used when the
    report covers it, otherwise the most recent date in the report.  The
    summary also carries the modelled MW capability/outage split.
    """
    day = _resolve_date(date)
    logger.info("GET /capability | date={} | view={} | he={}", day, view, he)

    result = await _day_result(day, ("capability",), demo)
    cells = result.capability
    report_date = choose_report_date(cells, day.isoformat())

    if view == "current":
        target_he = he or current_hour_ending()
        rows = [
            CapabilityRowModel(fuel=c.fuel, availability_pct=c.availability_pct, hours=1)
            for c in current_hour_view(cells, report_date, target_he)
        ] if report_date else []
    else:
        target_he = None
        rows = [
            CapabilityRowModel(fuel=a.fuel, availability_pct=a.avg_availability_pct, hours=a.hours)
            for a in daily_average_view(cells, report_date)
        ] if report_date else []

    quality = "LIVE" if rows else "SYNTHETIC"
    return CapabilityApiResponse(
        meta=_make_meta(is_demo=demo, day=day, units="%", data_quality=quality),
        data=rows,
        summary=CapabilitySummary(
            view=view,
            report_date=report_date,
            he=target_he,
            available_dates=available_dates(cells),
            modelled=[FuelCapabilityAverageModel(**a.to_dict()) for a in capability_averages(result.records)],
            debug=result.debug.get("capability", {}),
        ),
    )


@app.get("/interties", response_model=IntertieApiResponse, tags=["Interties"])
async def get_interties(demo: bool = _DEMO_QUERY):
    """
    Return the real-time net flow on each Alberta intertie from the CSD
    report, the system net interchange, and the system-vs-paths delta.
    Positive = export from Alberta.

    In demo mode, or when no CSD label yields a flow, the modelled flows
    of the synthetic hour in progress are returned instead.
    """
    day = _now_ab().date()
    logger.info("GET /interties | demo={}", demo)

    result = await _day_result(day, ("supply_demand",), demo)
    snapshot = result.interchange
    found = bool(snapshot and any(f.actual_flow_mw is not None for f in snapshot.flows))
    if not found:
        snapshot = snapshot_from_interties(result.records[current_hour_ending() - 1].interties)

    return IntertieApiResponse(
        meta=_make_meta(is_demo=demo, day=day, units="MW", data_quality="LIVE" if found else "SYNTHETIC"),
        data=[PathFlowModel(**f.to_dict()) for f in snapshot.flows],
        summary=InterchangeSummary(
            system_net_mw=snapshot.system_net_mw,
            sum_of_paths_mw=snapshot.sum_of_paths_mw,
            system_vs_paths_delta_mw=snapshot.system_vs_paths_delta_mw,
            debug=result.debug.get("supply_demand", {}),
        ),
    )


@app.get("/renewables", response_model=RenewablesApiResponse, tags=["Renewables"])
async def get_renewables(
    date: Optional[str] = _DATE_QUERY,
    demo: bool = _DEMO_QUERY,
):
    """Return hourly wind and solar forecast vs. actual, with the forecast error per HE."""
    day = _resolve_date(date)
    logger.info("GET /renewables | date={} | demo={}", day, demo)

    result = await _day_result(day, ("wind_shortterm", "solar_shortterm"), demo)
    wind_debug = result.debug.get("wind_shortterm", {})
    solar_debug = result.debug.get("solar_shortterm", {})

    return RenewablesApiResponse(
        meta=_make_meta(is_demo=demo, day=day, units="MW", data_quality=result.data_quality),
        data=[RenewableHourModel(**h.to_dict()) for h in renewable_deltas(result.records)],
        summary=RenewablesSummary(
            wind_live_hours=len(wind_debug.get("hours", [])),
            solar_live_hours=len(solar_debug.get("hours", [])),
            debug={"wind_shortterm": wind_debug, "solar_shortterm": solar_debug},
        ),
    )


@app.get("/nearest-neighbour", response_model=NeighbourApiResponse, tags=["Nearest Neighbour"])
async def get_nearest_neighbour(
    date: Optional[str] = _DATE_QUERY,
    top_n: int = Query(default=10, ge=1, le=50, description="Number of analogue days to return (1–50)."),
    demo: bool = _DEMO_QUERY,
):
    """
    Rank historical days from the configured history CSV by load- and
    price-shape similarity to today's best-known curve.
    """
    day = _resolve_date(date)
    logger.info("GET /nearest-neighbour | date={} | top_n={}", day, top_n)

    history = load_history_from_env()
    result = await _day_result(day, HOURLY_REPORTS, demo)
    candidates = rank_neighbours(result.records, history, top_n=top_n)

    if history is None:
        message = "No history CSV configured. Set AESO_HISTORY_CSV to enable nearest-neighbour ranking."
    elif candidates:
        message = f"{len(candidates)} analogue days ranked."
    else:
        message = "No historical day overlaps today's curve."

    return NeighbourApiResponse(
        meta=_make_meta(is_demo=demo, day=day, units="$/MWh", data_quality=result.data_quality),
        data=[NeighbourCandidateModel(**c.to_dict()) for c in candidates],
        summary=NeighbourSummary(
            today_date=day.isoformat(),
            history_available=history is not None,
            candidate_count=len(candidates),
            message=message,
        ),
    )


@app.get("/debug/actual-forecast", response_model=ActualForecastDebugResponse, tags=["Meta"])
async def debug_actual_forecast(date: Optional[str] = _DATE_QUERY):
    """
    Fetch the Actual/Forecast CSV and report exactly what the parser saw:
    HTTP status, line counts, report dates, sample lines and parsed rows.
    """
    day = _resolve_date(date) if date else None
    fetch = (await _fetch_reports(("actual_forecast",)))["actual_forecast"]
    rows, debug = parse_actual_forecast(fetch.text, report_date=day)

    payload = debug.to_dict()
    payload["http_status"] = fetch.http_status
    payload["fetch_ok"] = fetch.ok
    if fetch.error:
        payload["fetch_error"] = fetch.error

    return ActualForecastDebugResponse(
        debug=payload,
        rows=[ActualForecastRowModel(**r.to_dict()) for _, r in sorted(rows.items())],
    )
