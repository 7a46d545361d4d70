import logging

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Path
from fastapi import Request

from contact_stats.api.schemas.weekly import WeekChart
from contact_stats.clients.base import CountSource
from contact_stats.clients.base import QueryFailure
from contact_stats.services.chart_service import build_chart_payload
from contact_stats.services.weekly_service import WeeklyAggregator
from contact_stats.services.weekly_service import display_series
from contact_stats.services.weekly_service import fetch_week
from contact_stats.settings import Settings


logger = logging.getLogger(__name__)

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_aggregator(request: Request) -> WeeklyAggregator:
    return request.app.state.aggregator


def get_count_source(request: Request) -> CountSource:
    return request.app.state.count_source


def dashboard_payload(
    aggregator: WeeklyAggregator, settings: Settings
) -> dict[str, object]:
    return build_chart_payload(
        week=aggregator.current_week,
        display_series=aggregator.get_display_series(),
        month_label=aggregator.month_label,
        is_loading=aggregator.is_loading,
        display_year=settings.display_year,
        max_week=settings.max_week,
    )


@router.get("/")
async def root() -> dict[str, str]:
    """Return a basic service greeting."""

    return {"message": "Hello World"}


@router.get("/health/live")
def health_live() -> dict[str, str]:
    """Return liveness probe response for health checks."""

    return {"status": "ok"}


@router.get("/dashboard", response_model=WeekChart)
async def get_dashboard(
    aggregator: WeeklyAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    """Return the chart for the currently selected week, loading it on first use."""

    if not aggregator.has_loaded and not aggregator.is_loading:
        await aggregator.load_week(aggregator.current_week)
    return dashboard_payload(aggregator, settings)


@router.post("/dashboard/next", response_model=WeekChart)
async def next_week(
    aggregator: WeeklyAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    try:
        await aggregator.next_week()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return dashboard_payload(aggregator, settings)


@router.post("/dashboard/previous", response_model=WeekChart)
async def previous_week(
    aggregator: WeeklyAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    await aggregator.previous_week()
    return dashboard_payload(aggregator, settings)


@router.get("/weeks/{week_index}", response_model=WeekChart)
async def get_week(
    week_index: int = Path(ge=1),
    source: CountSource = Depends(get_count_source),
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    """Return the chart for any week without moving the dashboard pointer."""

    try:
        series, label = await fetch_week(
            source,
            settings.anchor_date,
            week_index,
            query_style=settings.query_style,
            timezone=settings.timezone,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except QueryFailure as exc:
        logger.warning("Count query failed for week %s: %s", week_index, exc)
        raise HTTPException(status_code=502, detail="Count query failed") from exc

    return build_chart_payload(
        week=week_index,
        display_series=display_series(settings.anchor_date, week_index, series),
        month_label=label,
        is_loading=False,
        display_year=settings.display_year,
        max_week=settings.max_week,
    )
