"""Application configuration from environment variables."""

from datetime import date
from decimal import Decimal
from functools import lru_cache

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

from src.services.billing_cycle import BillingConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./gridbill.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # API
    api_title: str = Field(default="GridBill API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")

    # Billing cycle
    cycle_epoch: date = Field(
        default=date(2024, 1, 1), description="Reference date the 60-day cycles count from"
    )
    tariff_domestic: Decimal = Field(default=Decimal("5"), ge=0, description="Rate per unit")
    tariff_commercial: Decimal = Field(default=Decimal("10"), ge=0, description="Rate per unit")
    tariff_industrial: Decimal = Field(default=Decimal("15"), ge=0, description="Rate per unit")

    # Fine
    fixed_fine: Decimal = Field(default=Decimal("100"), ge=0, description="Flat overdue fine")
    cgst_rate: Decimal = Field(default=Decimal("0.09"), ge=0, description="CGST on fine")
    sgst_rate: Decimal = Field(default=Decimal("0.09"), ge=0, description="SGST on fine")

    def billing_config(self) -> BillingConfig:
        """Build the immutable engine configuration."""
        return BillingConfig(
            tariff_rates={
                "domestic": self.tariff_domestic,
                "commercial": self.tariff_commercial,
                "industrial": self.tariff_industrial,
            },
            cycle_epoch=self.cycle_epoch,
            fixed_fine=self.fixed_fine,
            cgst_rate=self.cgst_rate,
            sgst_rate=self.sgst_rate,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
