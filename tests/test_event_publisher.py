"""Tests for DisputeEventPublisher (SQS hand-off to case management)."""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from models.dispute import WebhookEvent
from services.event_publisher import DisputeEventPublisher


QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/dispute-events"


@pytest.fixture
def sqs_client():
    client = MagicMock()
    client.send_message.return_value = {"MessageId": "msg-123"}
    return client


@pytest.fixture
def publisher(sqs_client):
    return DisputeEventPublisher(queue_url=QUEUE_URL, sqs_client=sqs_client)


def sent_body(sqs_client):
    return json.loads(sqs_client.send_message.call_args.kwargs["MessageBody"])


class TestSendMessage:
    def test_message_attributes(self, publisher, sqs_client):
        message_id = publisher.send_message({"event_type": "dispute_received", "portal_type": "VERIFI"})

        kwargs = sqs_client.send_message.call_args.kwargs
        assert message_id == "msg-123"
        assert kwargs["QueueUrl"] == QUEUE_URL
        assert kwargs["MessageAttributes"] == {
            "PortalType": {"DataType": "String", "StringValue": "VERIFI"},
            "EventType": {"DataType": "String", "StringValue": "dispute_received"},
        }

    def test_no_queue_configured(self, sqs_client, monkeypatch):
        monkeypatch.delenv("DISPUTE_EVENTS_QUEUE_URL", raising=False)
        publisher = DisputeEventPublisher(sqs_client=sqs_client)

        assert publisher.send_message({"event_type": "x"}) is None
        sqs_client.send_message.assert_not_called()

    def test_queue_url_from_environment(self, sqs_client, monkeypatch):
        monkeypatch.setenv("DISPUTE_EVENTS_QUEUE_URL", QUEUE_URL)

        assert DisputeEventPublisher(sqs_client=sqs_client).queue_url == QUEUE_URL

    def test_client_error_returns_none(self, publisher, sqs_client):
        sqs_client.send_message.side_effect = ClientError(
            {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "queue missing"}},
            "SendMessage",
        )

        assert publisher.send_message({"event_type": "x"}) is None


class TestPublishing:
    def test_publish_dispute(self, publisher, sqs_client, verifi):
        dispute = verifi.normalize_dispute({"alertId": "CDRN-1", "amount": 50, "status": "new"})

        assert publisher.publish_dispute(dispute, source="poll") == "msg-123"

        body = sent_body(sqs_client)
        assert body["event_type"] == "dispute_received"
        assert body["portal_type"] == "VERIFI"
        assert body["source"] == "poll"
        assert body["dispute"]["dispute_id"] == "CDRN-1"
        assert body["dispute"]["status"] == "PENDING"

    def test_publish_webhook_event(self, publisher, sqs_client):
        event = WebhookEvent(event="dispute.created", dispute_id="MRL-1", data={"disputeId": "MRL-1"},
                             timestamp="2024-03-01T10:00:00Z", webhook_id="WH-1")

        publisher.publish_webhook_event("MERLINK", event)

        body = sent_body(sqs_client)
        assert body["event_type"] == "portal_webhook"
        assert body["event"] == "dispute.created"
        assert body["webhook_id"] == "WH-1"
        assert body["dispute"] is None

    def test_raw_webhook_headers_are_redacted(self, publisher, sqs_client):
        publisher.publish_raw_webhook("CHARGEBACKS911", '{"case": 1}', {
            "x-api-key": "live-key",
            "x-signature": "abc",
            "content-type": "application/json",
        })

        body = sent_body(sqs_client)
        assert body["event_type"] == "generic_webhook"
        assert body["body"] == '{"case": 1}'
        assert body["headers"]["x-api-key"] == "***REDACTED***"
        assert body["headers"]["x-signature"] == "***REDACTED***"
        assert body["headers"]["content-type"] == "application/json"
