"""Tests for environment-driven portal configuration and the service factory."""

from unittest.mock import MagicMock

import pytest

from adapters.merlink_adapter import MerlinkAdapter
from models.credentials import DiscoverCredentials
from models.dispute import PortalType
from services.service_factory import ServiceFactory
from utils.portal_config import configured_portals, load_api_settings, load_portal_config


ENV = {
    "VERIFI_API_KEY": "vk_live",
    "VERIFI_MERCHANT_ID": "M-1",
    "VERIFI_RDR_ENABLED": "true",
    "VERIFI_API_URL": "https://sandbox.verifi.test/v3",
    "ETHOCA_API_KEY": "ek_live",
    "ETHOCA_MERCHANT_ID": "M-2",
    "ETHOCA_ALERT_TYPES": "fraud, consumer_dispute ,",
    "DISCOVER_API_KEY": "dk_live",
    "DISCOVER_MERCHANT_ID": "M-3",
    "DISCOVER_PROTECT_BUY_MID": "PB-1",
    "DISCOVER_WEBHOOK_SECRET": "",
    "PORTAL_TIMEOUT_MS": "15000",
}


class TestLoadPortalConfig:
    def test_unconfigured_portal(self):
        assert load_portal_config(PortalType.MERLINK, ENV) is None

    def test_common_fields(self):
        config = load_portal_config(PortalType.VERIFI, ENV)

        assert config.base_url == "https://sandbox.verifi.test/v3"
        assert config.timeout_ms == 15000
        assert config.credentials["api_key"] == "vk_live"
        assert config.credentials["rdr_enabled"] is True

    def test_list_fields(self):
        config = load_portal_config(PortalType.ETHOCA, ENV)

        assert config.credentials["alert_types"] == ["fraud", "consumer_dispute"]

    def test_empty_values_are_skipped(self):
        config = load_portal_config(PortalType.DISCOVER, ENV)

        assert config.credentials["webhook_secret"] is None
        assert "acquirer_bin" not in config.credentials
        credentials = DiscoverCredentials.model_validate(config.credentials)
        assert credentials.protect_buy_mid == "PB-1"

    def test_configured_portals(self):
        assert configured_portals(ENV) == [PortalType.VERIFI, PortalType.ETHOCA, PortalType.DISCOVER]


class TestApiSettings:
    def test_defaults(self):
        settings = load_api_settings({})

        assert settings.host == "0.0.0.0"
        assert settings.port == 8003
        assert settings.require_signature is True
        assert set(vars(settings)) == {"host", "port", "require_signature"}

    def test_overrides(self):
        settings = load_api_settings({"API_PORT": "9000", "WEBHOOK_REQUIRE_SIGNATURE": "false"})

        assert settings.port == 9000
        assert settings.require_signature is False


class TestServiceFactory:
    @pytest.fixture(autouse=True)
    def reset_factory(self):
        ServiceFactory.reset()
        yield
        ServiceFactory.reset()

    def test_adapter_is_cached(self, monkeypatch):
        monkeypatch.setenv("MERLINK_API_KEY", "mk")
        monkeypatch.setenv("MERLINK_API_SECRET", "ms")
        monkeypatch.setenv("MERLINK_MERCHANT_ID", "M-4")

        adapter = ServiceFactory.get_adapter(PortalType.MERLINK)

        assert isinstance(adapter, MerlinkAdapter)
        assert ServiceFactory.get_adapter(PortalType.MERLINK) is adapter

    def test_unconfigured_adapter(self, monkeypatch):
        monkeypatch.delenv("ETHOCA_API_KEY", raising=False)

        assert ServiceFactory.get_adapter(PortalType.ETHOCA) is None

    def test_event_publisher_is_singleton(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr("services.event_publisher.boto3.client", lambda service: client)

        publisher = ServiceFactory.get_event_publisher()

        assert publisher.sqs is client
        assert ServiceFactory.get_event_publisher() is publisher
