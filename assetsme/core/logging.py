import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from assetsme.core.context import get_owner_id, get_request_id
from assetsme.core.settings import settings


class RequestContextFilter(logging.Filter):
    """Inject request/owner ids into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.owner_id = get_owner_id()
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; extra ``stage``/``path`` attributes are kept."""

    _extra_fields = ("stage", "path", "folder_id", "asset_id")

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "owner_id": getattr(record, "owner_id", "-"),
            "request_id": getattr(record, "request_id", "-"),
        }
        for field in self._extra_fields:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] request=%(request_id)s owner=%(owner_id)s %(message)s"


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    formatter = fmt or settings.log_format
    handler = {
        "class": "logging.StreamHandler",
        "level": log_level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter},
                "text": {"format": TEXT_FORMAT},
            },
            "handlers": {"default": handler},
            "loggers": {
                "": {"handlers": ["default"], "level": log_level, "propagate": False},
                # Pillow logs every decoded chunk at DEBUG.
                "PIL": {"level": "WARNING"},
                "uvicorn.error": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured level=%s format=%s storage_provider=%s",
        log_level,
        formatter,
        settings.storage_provider,
    )
