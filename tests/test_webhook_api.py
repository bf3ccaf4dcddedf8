"""Tests for the FastAPI webhook ingress."""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from adapters.base_adapter import BaseDisputeAdapter
from adapters.exceptions import PortalConfigurationError
from api.main import app, get_adapter_resolver, get_publisher, get_settings
from models.dispute import PortalType
from utils.portal_config import ApiSettings


VERIFI_WEBHOOK = {
    "eventType": "alert.created",
    "alertId": "CDRN-TEST-10001",
    "data": {
        "alertId": "CDRN-TEST-10001",
        "amount": 289.50,
        "reasonCode": "13.1",
        "status": "pending",
    },
}


def sign(body: bytes, secret: str) -> str:
    return BaseDisputeAdapter._generate_signature(body, secret)


def misconfigured_resolver(portal_type):
    raise PortalConfigurationError("Invalid Merlink credentials: apiSecret", portal_type.value)


@pytest.fixture
def publisher():
    publisher = MagicMock()
    publisher.publish_webhook_event.return_value = "msg-1"
    publisher.publish_raw_webhook.return_value = "msg-raw"
    return publisher


@pytest.fixture
def settings():
    return ApiSettings(require_signature=True)


@pytest.fixture
def configured(verifi, discover):
    return {PortalType.VERIFI: verifi, PortalType.DISCOVER: discover}


@pytest.fixture
def client(settings, publisher, configured):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_adapter_resolver] = lambda: configured.get

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


class TestServiceEndpoints:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["supported_portals"] == ["VERIFI", "ETHOCA", "DISCOVER", "MERLINK"]

    def test_portals(self, client):
        assert client.get("/portals").json() == {"portals": ["VERIFI", "ETHOCA", "DISCOVER", "MERLINK"]}

    def test_portal_health(self, client, verifi, respond, stub_http):
        stub_http(verifi, respond(200, {}))

        response = client.get("/portals/verifi/health")

        assert response.status_code == 200
        assert response.json()["portal_type"] == "VERIFI"
        assert response.json()["healthy"] is True

    def test_portal_health_unsupported(self, client):
        assert client.get("/portals/stripe/health").status_code == 404

    def test_portal_health_unconfigured(self, client):
        assert client.get("/portals/merlink/health").status_code == 404

    def test_portal_health_misconfigured(self, client):
        app.dependency_overrides[get_adapter_resolver] = lambda: misconfigured_resolver

        response = client.get("/portals/merlink/health")

        assert response.status_code == 503
        assert response.json()["detail"] == "Invalid Merlink credentials: apiSecret"


class TestAdapterWebhooks:
    def test_signed_webhook_is_accepted(self, client, publisher):
        body = json.dumps(VERIFI_WEBHOOK).encode()

        response = client.post("/webhooks/verifi", content=body,
                               headers={"X-Verifi-Signature": sign(body, "whsec_verifi")})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "accepted"
        assert data["adapter"] is True
        assert data["portal_type"] == "VERIFI"
        assert data["event"] == "alert.created"
        assert data["dispute_id"] == "CDRN-TEST-10001"
        assert data["signature_verified"] is True
        assert data["dispute"]["reason_description"] == "Merchandise/Services Not Received"
        assert data["message_id"] == "msg-1"

        portal_type, event, dispute = publisher.publish_webhook_event.call_args.args
        assert portal_type == "VERIFI"
        assert event.dispute_id == "CDRN-TEST-10001"
        assert dispute.amount == 289.5

    def test_bad_signature_is_rejected(self, client, publisher):
        body = json.dumps(VERIFI_WEBHOOK).encode()

        response = client.post("/webhooks/verifi", content=body,
                               headers={"X-Verifi-Signature": sign(body, "wrong_secret")})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid webhook signature"
        publisher.publish_webhook_event.assert_not_called()

    def test_missing_signature_is_rejected(self, client):
        response = client.post("/webhooks/verifi", content=json.dumps(VERIFI_WEBHOOK).encode())

        assert response.status_code == 401

    def test_unsigned_webhook_allowed_when_not_required(self, client, settings):
        settings.require_signature = False

        response = client.post("/webhooks/verifi", content=json.dumps(VERIFI_WEBHOOK).encode())

        assert response.status_code == 200
        assert response.json()["signature_verified"] is False

    def test_invalid_json_is_a_bad_request(self, client):
        body = b"{not json"

        response = client.post("/webhooks/verifi", content=body,
                               headers={"X-Verifi-Signature": sign(body, "whsec_verifi")})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Verifi webhook payload: not valid JSON"

    def test_discover_alternate_signature_header(self, client):
        body = json.dumps({
            "eventType": "chargeback.created",
            "caseId": "DSC-1",
            "payload": {"caseId": "DSC-1", "reasonCode": "UA02"},
        }).encode()

        response = client.post("/webhooks/discover", content=body,
                               headers={"X-Discover-Signature": sign(body, "whsec_discover")})

        assert response.status_code == 200
        assert response.json()["dispute"]["reason_code"] == "UA02"

    def test_event_without_dispute(self, client):
        body = json.dumps({"eventType": "ping", "data": {}}).encode()

        response = client.post("/webhooks/verifi", content=body,
                               headers={"X-Verifi-Signature": sign(body, "whsec_verifi")})

        assert response.status_code == 200
        assert response.json()["dispute"] is None

    def test_supported_but_unconfigured_portal(self, client):
        response = client.post("/webhooks/ethoca", content=b"{}")

        assert response.status_code == 404

    def test_misconfigured_portal_is_unavailable(self, client, publisher):
        app.dependency_overrides[get_adapter_resolver] = lambda: misconfigured_resolver

        response = client.post("/webhooks/merlink", content=b"{}")

        assert response.status_code == 503
        assert response.json()["detail"] == "Invalid Merlink credentials: apiSecret"
        publisher.publish_webhook_event.assert_not_called()


class TestGenericWebhooks:
    def test_unknown_portal_is_forwarded(self, client, publisher):
        response = client.post("/webhooks/chargebacks911", content=b'{"case": "X-1"}',
                               headers={"X-Api-Key": "secret-key"})

        assert response.status_code == 202
        assert response.json() == {
            "status": "accepted",
            "adapter": False,
            "portal_type": "CHARGEBACKS911",
            "message_id": "msg-raw",
        }
        portal_type, body, headers = publisher.publish_raw_webhook.call_args.args
        assert portal_type == "CHARGEBACKS911"
        assert body == '{"case": "X-1"}'
        assert headers["x-api-key"] == "secret-key"
        publisher.publish_webhook_event.assert_not_called()
