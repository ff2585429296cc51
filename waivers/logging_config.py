"""
Logging setup shared by the Cloud Function and the local emulator.

Player email addresses appear in several log lines; the filter masks the
local part so shared logs do not carry full addresses.
"""

import logging
import logging.config
import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})")

LOG_FORMAT = "%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s"


def redact_emails(value: str) -> str:
    """Keep the first character and the domain: jane@example.com -> j***@example.com"""
    return EMAIL_PATTERN.sub(r"\1***\2", value)


class EmailRedactingFilter(logging.Filter):
    """Masks email addresses in log messages and their arguments."""

    def _sanitize(self, value: object) -> object:
        if not isinstance(value, str):
            return value
        return redact_emails(value)

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._sanitize(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self._sanitize(item) for item in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: self._sanitize(value) for key, value in record.args.items()}

        return True


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name. Defaults to LOG_LEVEL from settings.
    """
    if level is None:
        from waivers.settings import get_settings
        level = get_settings().log_level

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact_emails": {
                    "()": "waivers.logging_config.EmailRedactingFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": LOG_FORMAT,
                    "datefmt": "%H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["redact_emails"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": level.upper(),
                },
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
