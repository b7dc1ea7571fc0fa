"""Startup config redaction."""

from topup.common.config import CommonSettings
from topup.common.startup import mask_dsn, redacted_settings


def test_dsn_credentials_are_masked():
    assert mask_dsn("postgresql+psycopg://topup:s3cret@db:5432/topup") == "postgresql+psycopg://***@db:5432/topup"
    assert mask_dsn("sqlite+pysqlite:///:memory:") == "sqlite+pysqlite:///:memory:"


def test_selected_settings_are_reported_with_credentials_hidden():
    config = CommonSettings(
        postgres_dsn="postgresql+psycopg://topup:s3cret@db:5432/topup",
        idempotency_check=True,
    )

    values = redacted_settings(config, ["postgres_dsn", "idempotency_check", "payment_timeout_ms"])

    assert values == {
        "postgres_dsn": "postgresql+psycopg://***@db:5432/topup",
        "idempotency_check": True,
        "payment_timeout_ms": config.payment_timeout_ms,
    }
    assert "s3cret" not in str(values)
