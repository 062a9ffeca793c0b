"""Application configuration.

Loads settings from environment variables (prefixed ``CAKESHOP_``) with
sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings

from cakeshop.domain.delivery import DeliveryConfig
from cakeshop.domain.rules import RulesConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Delivery
    free_delivery_threshold: int = Field(default=9000, ge=0)
    default_delivery_fee: int = Field(default=500, ge=0)

    # Notice periods
    standard_notice_days: int = Field(default=1, ge=0)
    custom_notice_days: int = Field(default=7, ge=0)
    custom_max_advance_months: int = Field(default=6, ge=1)

    # Advance payments
    advance_price_threshold: int = Field(default=10000, ge=0)
    advance_requirements_length: int = Field(default=100, ge=0)
    advance_percentage: float = Field(default=0.30, gt=0, le=1)
    minimum_advance: int = Field(default=2000, ge=0)

    # Shop calendar
    shop_timezone: str = "Asia/Colombo"

    # Events
    event_history_size: int = Field(default=1000, ge=1)

    # Payment gateway
    payment_gateway_url: str | None = None
    payment_gateway_timeout: float = Field(default=10.0, gt=0)

    class Config:
        """Pydantic configuration."""

        env_prefix = "CAKESHOP_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def rules_config(self) -> RulesConfig:
        """Build the rules engine configuration from these settings."""
        return RulesConfig(
            standard_notice_days=self.standard_notice_days,
            custom_notice_days=self.custom_notice_days,
            custom_max_advance_months=self.custom_max_advance_months,
            advance_price_threshold=self.advance_price_threshold,
            advance_requirements_length=self.advance_requirements_length,
            advance_percentage=self.advance_percentage,
            minimum_advance=self.minimum_advance,
            delivery=DeliveryConfig.default(
                default_fee=self.default_delivery_fee,
                free_threshold=self.free_delivery_threshold,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings, read once from the environment."""
    return Settings()
