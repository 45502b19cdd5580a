"""Structured logging setup.

Modules log through ``logging.getLogger(__name__)`` and attach structured
fields as ``extra={"structured": {...}}``; the formatter appends them as JSON.
"""

import json
import logging
from typing import Any

from backend.app.config import Settings


class StructuredFormatter(logging.Formatter):
    """Formatter that renders the ``structured`` extra as a JSON suffix."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        structured: dict[str, Any] | None = getattr(record, "structured", None)
        if structured:
            message = f"{message} {json.dumps(structured, default=str, sort_keys=True)}"
        return message


def configure_logging(settings: Settings) -> None:
    """Install the structured formatter on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())
