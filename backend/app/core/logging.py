import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    raw = (level or settings.LOG_LEVEL or "INFO").strip().upper()
    logging.basicConfig(level=getattr(logging, raw, logging.INFO), format=LOG_FORMAT)
