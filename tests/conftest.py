"""Pytest fixtures for the dispute portal adapter tests."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from adapters.discover_adapter import DiscoverDisputeAdapter
from adapters.ethoca_adapter import EthocaAdapter
from adapters.merlink_adapter import MerlinkAdapter
from adapters.verifi_adapter import VerifiAdapter


def make_response(status_code=200, body=None, url="https://portal.test/"):
    """Build a real requests.Response carrying a JSON body."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    return response


@pytest.fixture
def respond():
    """Factory for canned portal responses."""
    return make_response


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch):
    """Retries never actually sleep in tests."""
    sleep = MagicMock()
    monkeypatch.setattr("adapters.base_adapter.time.sleep", sleep)
    return sleep


def _stub_session(adapter, *responses):
    """Replace the adapter's HTTP transport with canned responses (or exceptions)."""
    adapter.session.request = MagicMock(side_effect=list(responses))
    return adapter.session.request


@pytest.fixture
def verifi_config():
    return {
        "credentials": {
            "apiKey": "vk_test_123",
            "merchantId": "M-1001",
            "cardAcceptorId": "CA-77",
            "webhookSecret": "whsec_verifi",
        },
        "baseUrl": "https://verifi.test/v3",
    }


@pytest.fixture
def ethoca_config():
    return {
        "credentials": {
            "apiKey": "ek_test_123",
            "merchantId": "M-2002",
            "webhookSecret": "whsec_ethoca",
        },
        "baseUrl": "https://ethoca.test/v2",
    }


@pytest.fixture
def discover_config():
    return {
        "credentials": {
            "apiKey": "dk_test_123",
            "merchantId": "M-3003",
            "acquirerBin": "601100",
            "webhookSecret": "whsec_discover",
        },
        "baseUrl": "https://discover.test",
    }


@pytest.fixture
def merlink_config():
    return {
        "credentials": {
            "apiKey": "mk_test_123",
            "apiSecret": "merlink_signing_secret",
            "merchantId": "M-4004",
            "hotelId": "HOTEL-9",
            "webhookSecret": "whsec_merlink",
        },
        "baseUrl": "https://merlink.test/v2",
    }


@pytest.fixture
def verifi(verifi_config):
    return VerifiAdapter(verifi_config)


@pytest.fixture
def ethoca(ethoca_config):
    return EthocaAdapter(ethoca_config)


@pytest.fixture
def discover(discover_config):
    return DiscoverDisputeAdapter(discover_config)


@pytest.fixture
def merlink(merlink_config):
    return MerlinkAdapter(merlink_config)


@pytest.fixture
def stub_http():
    """``stub_http(adapter, *responses)`` patches the adapter's session.request."""
    return _stub_session
