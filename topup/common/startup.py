"""Startup config logging with credentials masked."""

from topup.common.config import CommonSettings
from topup.common.logging import logger

SECRET_MARKERS = ("key", "secret", "password", "token")


def mask_dsn(dsn: str) -> str:
    """Replace the `user:password` part of a database URL."""

    scheme, sep, rest = dsn.partition("://")
    if not sep or "@" not in rest:
        return dsn
    return f"{scheme}://***@{rest.rpartition('@')[2]}"


def redacted_settings(config: CommonSettings, fields: list[str]) -> dict[str, object]:
    values: dict[str, object] = {}
    for name in fields:
        value = getattr(config, name)
        if any(marker in name for marker in SECRET_MARKERS):
            value = "<redacted>"
        elif name.endswith("_dsn"):
            value = mask_dsn(value)
        values[name] = value
    return values


def log_startup_config(config: CommonSettings, fields: list[str]) -> None:
    """Log the settings a service depends on, once, at boot."""

    logger.info(
        "startup_config service=%s config=%s",
        config.service_name,
        redacted_settings(config, fields),
    )
