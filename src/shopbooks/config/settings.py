"""Configuration settings for the shopbooks ledger."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Tax constants (POS, manual invoices and recurring invoices differ on purpose)
    pos_tax_rate: float = Field(default=0.10, validation_alias="POS_TAX_RATE")
    invoice_tax_rate: float = Field(default=0.15, validation_alias="INVOICE_TAX_RATE")
    recurring_tax_rate: float = Field(
        default=0.10, validation_alias="RECURRING_TAX_RATE"
    )

    # Inventory
    low_stock_threshold: int = Field(default=10, validation_alias="LOW_STOCK_THRESHOLD")
    allow_negative_stock: bool = Field(
        default=True, validation_alias="ALLOW_NEGATIVE_STOCK"
    )

    # Invoicing and jobs
    invoice_payment_terms_days: int = Field(
        default=14, validation_alias="INVOICE_PAYMENT_TERMS_DAYS"
    )
    reminder_interval_days: int = Field(
        default=3, validation_alias="REMINDER_INTERVAL_DAYS"
    )

    # Account routing
    cash_account_id: str = Field(default="acc_2", validation_alias="CASH_ACCOUNT_ID")
    clearing_account_id: str = Field(
        default="acc_3", validation_alias="CLEARING_ACCOUNT_ID"
    )
    currency: str = Field(default="ZAR", validation_alias="CURRENCY")

    # AI insight collaborator
    google_api_key: SecretStr | None = Field(
        default=None, validation_alias="GOOGLE_API_KEY"
    )
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    llm_max_tokens: int = Field(default=1024, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.4, validation_alias="LLM_TEMPERATURE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
