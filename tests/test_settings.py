"""Tests for configuration loading."""

import pytest
from decimal import Decimal

from pydantic import ValidationError

from splitledger.config import (
    AppSettings,
    LedgerSettings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)


class TestLedgerSettings:

    def test_defaults(self):
        settings = LedgerSettings()
        assert settings.default_currency == "INR"
        assert settings.rounding_tolerance == Decimal("0.01")
        assert settings.default_relationship_type == "split_expense"
        assert settings.default_settlement_method == "other"
        assert settings.store_retry_attempts == 3

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DEFAULT_CURRENCY", "EUR")
        assert LedgerSettings().default_currency == "EUR"

    def test_currency_must_be_three_letters(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DEFAULT_CURRENCY", "EURO")
        with pytest.raises(ValidationError):
            LedgerSettings()


class TestSupabaseSettings:

    def test_url_trailing_slash_stripped(self):
        settings = SupabaseSettings(url="https://abc.supabase.co/", key="k")
        assert settings.url == "https://abc.supabase.co"
        assert settings.audit_table == "ledger_audit_log"

    def test_url_needs_scheme(self):
        with pytest.raises(ValidationError, match="http"):
            SupabaseSettings(url="abc.supabase.co", key="k")


class TestAppSettings:

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert AppSettings().log_level == "DEBUG"

    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(ValidationError):
            AppSettings()


class TestSettingsAggregate:

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_validate_all_reports_missing_supabase(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_KEY", raising=False)

        results = validate_all_settings()

        assert results["ledger"] is True
        assert results["app"] is True
        assert results["supabase"] is False
        assert "supabase_error" in results
