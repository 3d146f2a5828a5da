"""Settlement settings loaded from environment variables.

Every value can be overridden with a ``SETTLEMENT_`` prefixed variable, e.g.
``SETTLEMENT_COMMISSION_PERCENT=7.5``. Percentages are expressed as numbers
between 0 and 100.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeeKind(Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SETTLEMENT_",
        env_file=".env",
        extra="ignore",
    )

    # Money
    currency: str = Field(default="USD", description="ISO currency code for all amounts")
    commission_percent: Decimal = Field(default=Decimal("5"), description="Platform commission on payments")
    tax_percent: Decimal = Field(default=Decimal("0"), description="Tax applied to the post-coupon subtotal")
    platform_fee_kind: FeeKind = Field(default=FeeKind.PERCENTAGE, description="Flat or percentage platform fee")
    platform_fee_value: Decimal = Field(default=Decimal("5"), description="Fee amount or percentage")
    delivery_fee: Decimal = Field(default=Decimal("0"), description="Fee waived by free-delivery coupons")

    # Payments
    payment_expiry_minutes: int = Field(default=30, description="Lifetime of an initiated payment attempt")
    card_api_key: str = Field(default="card_test_key", description="Card network API key")
    card_webhook_secret: str = Field(default="card_webhook_secret", description="Card webhook signing secret")
    hosted_checkout_url: str = Field(
        default="https://checkout.example.com/pay", description="Hosted checkout base URL"
    )
    hosted_store_id: str = Field(default="test_store", description="Hosted checkout store id")
    hosted_store_secret: str = Field(default="test_store_secret", description="Hosted checkout signing secret")
    manual_proof_secret: str = Field(default="manual_proof_secret", description="Signs upload-proof tokens")

    # Payouts
    minimum_payout_amount: Decimal = Field(default=Decimal("0"), description="Smallest payout a vendor may request")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("commission_percent", "tax_percent")
    @classmethod
    def validate_percent(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Percentages must be between 0 and 100")
        return v

    @field_validator("platform_fee_value", "delivery_fee", "minimum_payout_amount")
    @classmethod
    def validate_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amounts must not be negative")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3:
            raise ValueError("Currency must be a 3-letter ISO code")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
