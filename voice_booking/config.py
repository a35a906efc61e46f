import logging
import os
from datetime import date, datetime

from dateutil import tz
from pydantic import BaseModel

logger = logging.getLogger(__name__)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "development")
    http_base_url: str = os.getenv("HTTP_BASE_URL", "http://localhost:8000")
    ws_base_url: str = os.getenv("WS_BASE_URL", "ws://localhost:8000")
    booking_api_base_url: str = os.getenv("BOOKING_API_BASE_URL", "http://localhost:5000")
    booking_api_timeout: float = float(os.getenv("BOOKING_API_TIMEOUT", "10"))
    cors_allow_origins: list[str] = _split_csv(os.getenv("CORS_ALLOW_ORIGINS", "*"))
    default_language: str = os.getenv("DEFAULT_LANGUAGE", "en")
    timezone: str = os.getenv("TIMEZONE", "Asia/Kolkata")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def today_in(tz_name: str | None = None) -> date:
    """Current calendar date in the given IANA timezone (UTC if unknown)."""
    name = tz_name or settings.timezone
    zone = tz.gettz(name)
    if zone is None:
        logger.warning("Unknown timezone %r, falling back to UTC", name)
        zone = tz.UTC
    return datetime.now(tz=zone).date()
