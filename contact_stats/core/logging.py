import logging

from contact_stats.settings import Settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(app_settings: Settings) -> None:
    """Configure root logging from the configured level name."""

    level = logging.getLevelName(app_settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("contact_stats").setLevel(level)
