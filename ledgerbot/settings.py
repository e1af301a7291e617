from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = Field(default="dev", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Supabase
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    supabase_service_role_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")

    # Table names
    credit_entries_table: str = Field(default="ventas_libriado", alias="SUPABASE_VENTAS_TABLE")
    sales_table: str = Field(default="ventas", alias="SUPABASE_SALES_TABLE")
    payments_table: str = Field(default="pagos", alias="SUPABASE_PAYMENTS_TABLE")
    customers_table: str = Field(default="clientes", alias="SUPABASE_CUSTOMERS_TABLE")
    line_items_table: str = Field(default="detalle_venta", alias="SUPABASE_LINE_ITEMS_TABLE")

    # Ingestion
    poll_interval_seconds: float = Field(default=10.0, alias="POLL_INTERVAL_SECONDS")
    poll_batch_size: int = Field(default=500, alias="POLL_BATCH_SIZE")
    resubscribe_delay_seconds: float = Field(default=5.0, alias="RESUBSCRIBE_DELAY_SECONDS")
    dedup_window_seconds: float = Field(default=120.0, alias="DEDUP_WINDOW_SECONDS")
    bot_state_path: Path = Field(default=Path(".bot_state.json"), alias="BOT_STATE_PATH")

    # Ledger semantics
    open_credit_statuses: list[str] = Field(
        default=["fiado", "pendiente", "parcial", "credit", "credit-pending", "pending", "partial"],
        alias="OPEN_CREDIT_STATUSES",
    )
    ledger_sale_type: str = Field(default="libriado", alias="LEDGER_SALE_TYPE")

    # Messages
    business_name: str = Field(default="BURITICA PORCICULTURA", alias="BUSINESS_NAME")
    phone_country_code: str = Field(default="57", alias="PHONE_COUNTRY_CODE")
    chat_address_suffix: str = Field(default="@c.us", alias="CHAT_ADDRESS_SUFFIX")

    # Reminders
    bot_timezone: str = Field(default="America/Bogota", alias="BOT_TIMEZONE")
    reminder_days: list[int] = Field(default=[1, 16], alias="REMINDER_DAYS")
    reminder_hour: int = Field(default=10, alias="REMINDER_HOUR")

    # WhatsApp Cloud API
    enable_whatsapp: bool = Field(default=False, alias="ENABLE_WHATSAPP")
    whatsapp_token: str | None = Field(default=None, alias="WHATSAPP_TOKEN")
    whatsapp_phone_number_id: str | None = Field(default=None, alias="WHATSAPP_PHONE_NUMBER_ID")
    meta_graph_version: str = Field(default="v19.0", alias="META_GRAPH_VERSION")

    # Dev/test mode
    test_mode: bool = Field(default=False, alias="TEST_MODE")


settings = Settings()


def require_secrets() -> None:
    missing: list[str] = []
    if not settings.supabase_url:
        missing.append("SUPABASE_URL")
    if not settings.supabase_service_role_key:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if settings.enable_whatsapp and not settings.test_mode:
        if not settings.whatsapp_token:
            missing.append("WHATSAPP_TOKEN")
        if not settings.whatsapp_phone_number_id:
            missing.append("WHATSAPP_PHONE_NUMBER_ID")

    if missing:
        raise RuntimeError("Missing required env vars: " + ", ".join(missing))
