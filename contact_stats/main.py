import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from contact_stats.api.routes.weekly import router as weekly_router
from contact_stats.clients.base import CountSource
from contact_stats.clients.firestore_client import FirestoreCountSource
from contact_stats.core.logging import configure_logging
from contact_stats.core.middleware import CountQueryRateLimitMiddleware
from contact_stats.core.observability import init_sentry
from contact_stats.services.weekly_service import WeeklyAggregator
from contact_stats.settings import Settings


logger = logging.getLogger(__name__)


def build_count_source(app_settings: Settings) -> FirestoreCountSource:
    return FirestoreCountSource(
        project_id=app_settings.firestore_project_id,
        stats_collection=app_settings.stats_collection,
        contacts_collection=app_settings.contacts_collection,
        base_url=app_settings.firestore_base_url,
        database=app_settings.firestore_database,
        api_key=app_settings.firestore_api_key,
        bearer_token=app_settings.firestore_bearer_token,
        timeout=app_settings.request_timeout_seconds,
    )


def create_app(
    app_settings: Settings | None = None,
    count_source: CountSource | None = None,
) -> FastAPI:
    """Build the FastAPI application with its count source and week state."""

    app_settings = app_settings or Settings()
    configure_logging(app_settings)
    init_sentry(app_settings)

    owned_source: FirestoreCountSource | None = None
    if count_source is None:
        owned_source = build_count_source(app_settings)
        count_source = owned_source

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if owned_source is not None:
            await owned_source.aclose()

    application = FastAPI(title="contact-stats", lifespan=lifespan)
    application.state.settings = app_settings
    application.state.count_source = count_source
    application.state.aggregator = WeeklyAggregator(
        count_source,
        anchor_date=app_settings.anchor_date,
        query_style=app_settings.query_style,
        timezone=app_settings.timezone,
    )

    application.add_middleware(
        CountQueryRateLimitMiddleware,
        requests_per_window=app_settings.rate_limit_per_minute,
        window_seconds=app_settings.rate_limit_window_seconds,
    )
    application.include_router(weekly_router)

    logger.info(
        "Serving weekly contact counts (style=%s, anchor=%s)",
        app_settings.query_style,
        app_settings.anchor_date.isoformat(),
    )
    return application
