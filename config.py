"""Configuration loading: config.yaml plus environment-variable overrides."""

from __future__ import annotations

import logging
import os
import secrets

import yaml

from config_models import (
    AppConfig,
    CommerceConfig,
    EmailConfig,
    LocaleConfig,
    WhatsAppConfig,
)

logger = logging.getLogger(__name__)


def _env_flag(name: str, default) -> bool:
    return os.environ.get(name, str(default)).lower() in ("true", "1", "yes")


def load_config():
    """Load configuration from *config.yaml* with env-var overrides.

    Environment variables take precedence over config.yaml values.
    Returns (AppConfig, EmailConfig, WhatsAppConfig, CommerceConfig,
    LocaleConfig, database_uri).
    """
    config_path = os.environ.get("CONFIG_PATH", "config.yaml")
    raw: dict = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

    app_cfg = raw.get("app", {})
    email_cfg = raw.get("email", {})
    wa_cfg = raw.get("whatsapp", {})
    commerce_cfg = raw.get("commerce", {})
    locale_cfg = raw.get("locale", {})
    db_cfg = raw.get("database", {})

    secret_key = os.environ.get("APP_SECRET_KEY", app_cfg.get("secret_key", ""))
    if not secret_key or secret_key == "change-me":
        secret_key = secrets.token_hex(32)
        logger.warning(
            "Using auto-generated secret key. Set APP_SECRET_KEY env var "
            "or app.secret_key in config.yaml for stable sessions across restarts."
        )

    return (
        AppConfig(
            name=app_cfg.get("name", "Glove Commerce"),
            secret_key=secret_key,
            base_currency=app_cfg.get("base_currency", "IDR"),
            storefront_url=os.environ.get(
                "STOREFRONT_URL", app_cfg.get("storefront_url", "http://localhost:3000")
            ),
        ),
        EmailConfig(
            enabled=_env_flag("EMAIL_ENABLED", email_cfg.get("enabled", False)),
            smtp_host=os.environ.get("SMTP_HOST", email_cfg.get("smtp_host", "")),
            smtp_port=int(os.environ.get("SMTP_PORT", email_cfg.get("smtp_port", 587))),
            smtp_user=os.environ.get("SMTP_USER", email_cfg.get("smtp_user", "")),
            smtp_password=os.environ.get("SMTP_PASSWORD", email_cfg.get("smtp_password", "")),
            sender=os.environ.get("EMAIL_SENDER", email_cfg.get("sender", "")),
            operator_cc=os.environ.get("EMAIL_OPERATOR_CC", email_cfg.get("operator_cc", "")),
        ),
        WhatsAppConfig(
            enabled=_env_flag("WHATSAPP_ENABLED", wa_cfg.get("enabled", False)),
            api_url=os.environ.get(
                "WHATSAPP_API_URL",
                wa_cfg.get("api_url", "https://graph.facebook.com/v19.0"),
            ),
            phone_number_id=os.environ.get(
                "WHATSAPP_PHONE_NUMBER_ID", str(wa_cfg.get("phone_number_id", ""))
            ),
            access_token=os.environ.get("WHATSAPP_ACCESS_TOKEN", wa_cfg.get("access_token", "")),
            verify_token=os.environ.get("WHATSAPP_VERIFY_TOKEN", wa_cfg.get("verify_token", "")),
            language_code=wa_cfg.get("language_code", "id"),
        ),
        CommerceConfig(
            ppn_rate=str(os.environ.get("PPN_RATE", commerce_cfg.get("ppn_rate", "0.11"))),
            quotation_valid_days=int(commerce_cfg.get("quotation_valid_days", 14)),
            invoice_due_days=int(commerce_cfg.get("invoice_due_days", 30)),
            low_stock_threshold=int(commerce_cfg.get("low_stock_threshold", 10)),
        ),
        LocaleConfig(
            currency_symbol=locale_cfg.get("currency_symbol", "Rp"),
            thousands_separator=locale_cfg.get("thousands_separator", "."),
            decimal_separator=locale_cfg.get("decimal_separator", ","),
            minor_units=int(locale_cfg.get("minor_units", 100)),
            utc_offset_hours=int(
                os.environ.get("BUSINESS_UTC_OFFSET", locale_cfg.get("utc_offset_hours", 7))
            ),
        ),
        os.environ.get("DATABASE_URI", db_cfg.get("uri", "sqlite:///glove_commerce.db")),
    )


def enable_sqlite_fks(dbapi_conn, _connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
