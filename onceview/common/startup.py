"""Startup snapshot of the effective settings, with secrets redacted."""

from onceview.common.config import CommonSettings
from onceview.common.logging import logger

# Field-name fragments whose values never reach the logs.
SECRET_FIELDS = ("key", "secret", "password", "dsn")


def redact_setting(field: str, value) -> str:
    if value is None or value == "":
        return "<unset>"
    if any(marker in field.lower() for marker in SECRET_FIELDS):
        return "<redacted>"
    return str(value)


def log_startup_config(config: CommonSettings, fields: list[str]) -> dict:
    """Log the selected settings once at boot and return what was logged."""

    snapshot = {"service": config.service_name}
    for field in fields:
        snapshot[field] = redact_setting(field, getattr(config, field, None))
    logger.info("startup_config=%s", snapshot)
    return snapshot
