import logging

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from contact_stats.settings import Settings


def init_sentry(app_settings: Settings) -> None:
    """Initialize Sentry SDK when DSN is configured.

    Warnings are reported as events so weeks that degraded to an empty series
    after a failed count query show up in Sentry, not only as breadcrumbs.
    """

    if not app_settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=app_settings.sentry_dsn,
        environment=app_settings.environment,
        release=app_settings.release,
        traces_sample_rate=app_settings.sentry_traces_sample_rate,
        send_default_pii=False,
        integrations=[
            LoggingIntegration(level=logging.INFO, event_level=logging.WARNING)
        ],
    )
    sentry_sdk.set_tag("query_style", app_settings.query_style)
    sentry_sdk.set_tag(
        "firestore_project", app_settings.firestore_project_id or "unset"
    )
