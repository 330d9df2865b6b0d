import logging
import logging.config
import re

CONTACT_PATTERNS = [
    re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"),
    re.compile(r"\b(?:\+1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)\d{3}[-.\s]?\d{4}\b"),
]

# Delegation reasons are free text; keep the key, drop the value.
REASON_PATTERN = re.compile(r"(?i)(reason\s*[=:]\s*)([^,\s]+)")


class SensitiveDataFilter(logging.Filter):
    """Strip contact details and delegation reasons from log records.

    Routing logs carry user ids, rule names and counts only.  Free-text
    delegation reasons and directory e-mail addresses are redacted if
    they slip into a message.
    """

    def _sanitize(self, value: object) -> object:
        if not isinstance(value, str):
            return value

        for pattern in CONTACT_PATTERNS:
            value = pattern.sub("[REDACTED]", value)
        return REASON_PATTERN.sub(r"\1[REDACTED]", value)

    def filter(self, record: logging.LogRecord) -> bool:
        # Render first: a "reason=%s" template only reveals its value once formatted.
        if record.args:
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                message = str(record.msg)
            record.msg = self._sanitize(message)
            record.args = None
        else:
            record.msg = self._sanitize(record.msg)
        return True


def setup_logging() -> None:
    from assignflow.core.settings import get_settings

    settings = get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "sensitive": {
                    "()": "assignflow.core.logging.SensitiveDataFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["sensitive"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": settings.log_level.upper(),
                },
                "sqlalchemy.engine": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
