"""Billing engine configuration."""

import os
from decimal import Decimal

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class BillingConfig(BaseModel):
    """
    Billing configuration.

    Defaults match the store front-desk setup: GST at 18%, Indian mobile
    numbers, tax applied on top of catalog prices.
    """

    # Backend
    api_base_url: str = Field(
        default="http://localhost:3000/api/v1",
        description="Base URL of the billing backend, including the API version",
    )
    request_timeout_seconds: int = Field(
        default=15,
        description="Timeout for every backend request",
        ge=1,
        le=120,
    )

    # Tax
    default_tax_rate_percent: Decimal = Field(
        default=Decimal("18"),
        description="Tax rate for new items and for held items whose rate cannot be derived",
        ge=0,
        le=100,
    )
    apply_tax: bool = Field(
        default=True,
        description="Whether new drafts apply tax",
    )

    # Customer
    default_country_code: str = Field(
        default="+91",
        description="Prefix for 10-digit local phone numbers",
        pattern=r"^\+\d{1,3}$",
    )
    billing_timezone: str = Field(
        default="Asia/Kolkata",
        description="Zone the billing date/time fields are entered in",
    )

    @classmethod
    def from_env(cls) -> "BillingConfig":
        """Build config from BILLING_* environment variables (.env is honoured)."""
        load_dotenv()

        overrides = {}
        env_map = {
            "BILLING_API_BASE_URL": "api_base_url",
            "BILLING_REQUEST_TIMEOUT": "request_timeout_seconds",
            "BILLING_DEFAULT_TAX_RATE": "default_tax_rate_percent",
            "BILLING_COUNTRY_CODE": "default_country_code",
            "BILLING_TIMEZONE": "billing_timezone",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                overrides[field_name] = value

        apply_tax = os.getenv("BILLING_APPLY_TAX")
        if apply_tax:
            overrides["apply_tax"] = apply_tax.strip().lower() not in ("0", "false", "no")

        return cls(**overrides)
