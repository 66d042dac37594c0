"""Structured JSON logging with request, owner, and token context fields.

Token codes are bearer credentials, so log records only ever carry a masked
form (`VID-…9f3a`) of the code being handled.
"""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from onceview.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
token_code_ctx: ContextVar[str] = ContextVar("token_code", default="")
owner_id_ctx: ContextVar[str] = ContextVar("owner_id", default="")


def mask_token_code(code: str) -> str:
    if not code:
        return ""
    prefix, _, suffix = code.partition("-")
    if not suffix:
        return "****"
    return f"{prefix}-…{suffix[-4:]}"


class ContextFilter(logging.Filter):
    """Attach service, trace, owner, and masked token fields to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.owner_id = owner_id_ctx.get()
        record.token = mask_token_code(token_code_ctx.get())
        return True


def configure_logging() -> None:
    """Route every logger through one JSON stdout handler."""

    context_filter = ContextFilter()
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(context_filter)
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(service_name)s %(trace_id)s %(owner_id)s %(token)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "ts"},
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)


logger = logging.getLogger("onceview")
