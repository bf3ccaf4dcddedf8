"""Tests for the command-line entry points in app.py."""

from unittest.mock import MagicMock

import pytest

import app
from adapters.exceptions import PortalConfigurationError, PortalRequestError
from models.dispute import PortalType


@pytest.fixture
def publisher(monkeypatch):
    publisher = MagicMock()
    publisher.publish_dispute.side_effect = ["msg-1", None]
    monkeypatch.setattr(app.ServiceFactory, "get_event_publisher", classmethod(lambda cls: publisher))
    return publisher


def use_adapter(monkeypatch, adapter):
    monkeypatch.setattr(app.ServiceFactory, "get_adapter", classmethod(lambda cls, portal_type: adapter))


class TestPullAndPublish:
    def test_publishes_each_dispute(self, monkeypatch, publisher, verifi, respond, stub_http):
        use_adapter(monkeypatch, verifi)
        request = stub_http(verifi, respond(200, {"alerts": [{"alertId": "A-1"}, {"alertId": "A-2"}]}))

        published = app.pull_and_publish("verifi", "under_review")

        assert published == 1
        assert publisher.publish_dispute.call_count == 2
        assert request.call_args.kwargs["params"]["status"] == "under_review"

    def test_unsupported_portal(self, publisher):
        assert app.pull_and_publish("stripe") == 0
        publisher.publish_dispute.assert_not_called()

    def test_unconfigured_portal(self, monkeypatch, publisher):
        use_adapter(monkeypatch, None)

        assert app.pull_and_publish("ethoca") == 0

    def test_misconfigured_portal(self, monkeypatch, publisher):
        def raise_config_error(cls, portal_type):
            raise PortalConfigurationError("Invalid Merlink credentials: apiSecret", "MERLINK")

        monkeypatch.setattr(app.ServiceFactory, "get_adapter", classmethod(raise_config_error))

        assert app.pull_and_publish("merlink") == 0
        publisher.publish_dispute.assert_not_called()

    def test_portal_failure(self, monkeypatch, publisher):
        adapter = MagicMock()
        adapter.fetch_disputes.side_effect = PortalRequestError("Service unavailable", "DISCOVER",
                                                                status_code=503, retryable=True, attempts=3)
        use_adapter(monkeypatch, adapter)

        assert app.pull_and_publish("discover") == 0
        publisher.publish_dispute.assert_not_called()


class TestHealthChecks:
    def test_no_portals_configured(self, monkeypatch):
        monkeypatch.setattr(app, "configured_portals", lambda: [])

        assert app.run_health_checks() is False

    def test_all_healthy(self, monkeypatch):
        adapter = MagicMock()
        adapter.health_check.return_value = {"healthy": True, "latency_ms": 12, "message": "ok", "details": {}}
        monkeypatch.setattr(app, "configured_portals", lambda: [PortalType.VERIFI, PortalType.MERLINK])
        use_adapter(monkeypatch, adapter)

        assert app.run_health_checks() is True
        assert adapter.health_check.call_count == 2

    def test_one_unhealthy(self, monkeypatch):
        adapter = MagicMock()
        adapter.health_check.side_effect = [
            {"healthy": True, "latency_ms": 12, "message": "ok", "details": {}},
            {"healthy": False, "latency_ms": 10000, "message": "timed out", "details": {}},
        ]
        monkeypatch.setattr(app, "configured_portals", lambda: [PortalType.VERIFI, PortalType.MERLINK])
        use_adapter(monkeypatch, adapter)

        assert app.run_health_checks() is False
