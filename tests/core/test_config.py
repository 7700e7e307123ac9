"""Tests for BillingConfig."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.config import BillingConfig


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "BILLING_API_BASE_URL", "BILLING_REQUEST_TIMEOUT", "BILLING_DEFAULT_TAX_RATE",
        "BILLING_COUNTRY_CODE", "BILLING_TIMEZONE", "BILLING_APPLY_TAX",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("core.config.load_dotenv", lambda: False)
    return monkeypatch


class TestDefaults:

    def test_defaults(self):
        config = BillingConfig()

        assert config.api_base_url == "http://localhost:3000/api/v1"
        assert config.default_tax_rate_percent == Decimal("18")
        assert config.default_country_code == "+91"
        assert config.apply_tax is True

    def test_rejects_bad_country_code(self):
        with pytest.raises(ValidationError):
            BillingConfig(default_country_code="91")

    def test_rejects_tax_rate_over_100(self):
        with pytest.raises(ValidationError):
            BillingConfig(default_tax_rate_percent=Decimal("150"))


class TestFromEnv:

    def test_no_env_gives_defaults(self, clean_env):
        assert BillingConfig.from_env() == BillingConfig()

    def test_reads_overrides(self, clean_env):
        clean_env.setenv("BILLING_API_BASE_URL", "https://billing.example.com/api/v1")
        clean_env.setenv("BILLING_REQUEST_TIMEOUT", "30")
        clean_env.setenv("BILLING_DEFAULT_TAX_RATE", "12")
        clean_env.setenv("BILLING_TIMEZONE", "UTC")

        config = BillingConfig.from_env()

        assert config.api_base_url == "https://billing.example.com/api/v1"
        assert config.request_timeout_seconds == 30
        assert config.default_tax_rate_percent == Decimal("12")
        assert config.billing_timezone == "UTC"

    @pytest.mark.parametrize("raw,expected", [
        ("false", False), ("0", False), ("No", False), ("true", True), ("1", True),
    ])
    def test_apply_tax_flag(self, clean_env, raw, expected):
        clean_env.setenv("BILLING_APPLY_TAX", raw)
        assert BillingConfig.from_env().apply_tax is expected
