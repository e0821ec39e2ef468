"""
Tests for settings and the configuration report.
"""

from conftest import make_settings

from nepali_payment.config import Settings, missing_config
from nepali_payment.fsm.states import Gateway


def test_gateway_config_strips_prefix(settings):
    config = settings.gateway_config(Gateway.KHALTI)

    assert config["secret_key"] == "test_secret_key"
    assert config["environment"] == "test"
    assert "esewa_secret_key" not in config


def test_missing_fields_lists_empty_settings():
    settings = make_settings(esewa_secret_key="", esewa_product_code="")

    assert settings.missing_fields(Gateway.ESEWA) == ["product_code", "secret_key"]
    assert settings.missing_fields(Gateway.KHALTI) == []


def test_environment_is_lowercased():
    settings = make_settings(khalti_environment="LIVE")
    assert settings.khalti_environment == "live"


def test_database_flag_reads_prefixed_env(monkeypatch):
    monkeypatch.setenv("NEPALI_PAYMENT_DATABASE_ENABLED", "true")
    settings = Settings(_env_file=None)
    assert settings.database_enabled is True


def test_defaults_have_persistence_off(monkeypatch):
    monkeypatch.delenv("NEPALI_PAYMENT_DATABASE_ENABLED", raising=False)
    monkeypatch.delenv("DATABASE_ENABLED", raising=False)
    settings = Settings(_env_file=None)
    assert settings.database_enabled is False


def test_missing_config_report():
    settings = make_settings(connectips_password="", connectips_app_id="")
    report = missing_config(settings)

    assert report[Gateway.ESEWA] == []
    assert report[Gateway.KHALTI] == []
    assert report[Gateway.CONNECTIPS] == ["app_id", "password"]
