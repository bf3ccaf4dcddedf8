"""Tests for the shared adapter infrastructure in BaseDisputeAdapter."""

import json

import pytest
import requests

from adapters.base_adapter import BaseDisputeAdapter, RetryPolicy, first_present
from adapters.discover_adapter import DiscoverDisputeAdapter
from adapters.exceptions import (
    DisputePortalError,
    PortalConfigurationError,
    PortalRequestError,
    WebhookPayloadError,
)
from adapters.merlink_adapter import MerlinkAdapter
from adapters.verifi_adapter import VerifiAdapter
from models.dispute import DisputeStatus, WebhookEvent


class TestRetryExecutor:
    """Tests for _with_retry via _call."""

    def test_retryable_status_is_attempted_three_times(self, verifi, respond, stub_http, no_backoff_sleep):
        request = stub_http(verifi, *[respond(503, {"message": "Service unavailable"})] * 3)

        with pytest.raises(PortalRequestError) as exc_info:
            verifi.get_dispute_status("D-1")

        assert request.call_count == 3
        assert no_backoff_sleep.call_count == 2
        assert exc_info.value.retryable is True
        assert exc_info.value.attempts == 3
        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Service unavailable"

    def test_client_error_fails_after_one_attempt(self, verifi, respond, stub_http, no_backoff_sleep):
        request = stub_http(verifi, respond(400, {"message": "Invalid dispute id"}))

        with pytest.raises(PortalRequestError) as exc_info:
            verifi.get_dispute_status("bad")

        assert request.call_count == 1
        no_backoff_sleep.assert_not_called()
        assert exc_info.value.retryable is False
        assert exc_info.value.attempts == 1
        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "[VERIFI] Invalid dispute id (HTTP 400)"

    def test_transient_failure_then_success(self, verifi, respond, stub_http):
        request = stub_http(
            verifi,
            requests.Timeout("read timed out"),
            respond(429, {"error": "rate limited"}),
            respond(200, {"status": "won"}),
        )

        result = verifi.get_dispute_status("D-1")

        assert request.call_count == 3
        assert result["status"] == DisputeStatus.WON

    def test_connection_errors_exhaust_budget(self, verifi, stub_http):
        stub_http(verifi, *[requests.ConnectionError("connection refused")] * 3)

        with pytest.raises(PortalRequestError) as exc_info:
            verifi.fetch_disputes()

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.message

    def test_retry_options_override_attempts(self, verifi_config, respond, stub_http):
        verifi_config["retryOptions"] = {"maxRetries": 0}
        adapter = VerifiAdapter(verifi_config)
        request = stub_http(adapter, respond(502))

        with pytest.raises(PortalRequestError):
            adapter.get_dispute_status("D-1")

        assert request.call_count == 1

    def test_request_goes_to_base_url_with_timeout(self, verifi, respond, stub_http):
        request = stub_http(verifi, respond(200, {"status": "pending"}))

        verifi.get_dispute_status("D-42")

        args, kwargs = request.call_args
        assert args == ("GET", "https://verifi.test/v3/disputes/D-42/status")
        assert kwargs["timeout"] == 30.0


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay_ms == 1000
        assert policy.max_delay_ms == 10000
        assert 503 in policy.retryable_statuses
        assert 400 not in policy.retryable_statuses

    def test_from_camel_case_options(self):
        policy = RetryPolicy.from_options({"maxRetries": 5, "baseDelayMs": 10, "retryableStatuses": ["503"]})

        assert policy.max_attempts == 6
        assert policy.base_delay_ms == 10
        assert policy.retryable_statuses == (503,)

    def test_delay_is_capped(self):
        policy = RetryPolicy()

        assert policy.delay_seconds(10) == 10.0
        assert 1.0 <= policy.delay_seconds(0) <= 1.5


class TestResponseDecoding:
    def test_empty_body_is_empty_dict(self, verifi, respond, stub_http):
        stub_http(verifi, respond(204))

        assert verifi._call("POST", "/anything") == {}

    def test_list_body_is_wrapped(self, verifi, respond, stub_http):
        stub_http(verifi, respond(200, [{"alertId": "A-1"}]))

        assert verifi._call("GET", "/alerts") == {"data": [{"alertId": "A-1"}]}

    def test_non_json_success_body_is_a_portal_error(self, verifi, respond, stub_http):
        response = respond(200)
        response._content = b"<html>OK</html>"
        response.headers["Content-Type"] = "text/html"
        stub_http(verifi, response)

        with pytest.raises(PortalRequestError) as exc_info:
            verifi.submit_evidence("D-1", {"files": []})

        assert exc_info.value.status_code == 200
        assert exc_info.value.retryable is False
        assert "non-JSON response (text/html)" in exc_info.value.message
        assert isinstance(exc_info.value, DisputePortalError)

    def test_none_params_are_dropped(self, verifi, respond, stub_http):
        request = stub_http(verifi, respond(200, {"alerts": []}))

        verifi.fetch_disputes({"since": None})

        assert "since" not in request.call_args.kwargs["params"]


class TestIdempotencyKeys:
    def test_key_format(self, verifi):
        key = verifi._generate_idempotency_key("evidence")

        prefix, portal, millis, suffix = key.split("_")
        assert (prefix, portal) == ("evidence", "VERIFI")
        assert millis.isdigit()
        assert len(suffix) == 16

    def test_keys_are_unique(self, verifi):
        keys = {verifi._generate_idempotency_key("evidence") for _ in range(50)}

        assert len(keys) == 50

    def test_retries_reuse_the_same_key(self, verifi, respond, stub_http):
        request = stub_http(verifi, respond(503), respond(200, {"submissionId": "S-1"}))

        verifi.submit_evidence("D-1", {"files": []})

        first_key = request.call_args_list[0].kwargs["json"]["idempotencyKey"]
        second_key = request.call_args_list[1].kwargs["json"]["idempotencyKey"]
        assert first_key == second_key


class TestWebhookSignatures:
    BODY = b'{"eventType":"alert.created","alertId":"A-1"}'

    def test_known_hmac_vector(self):
        signature = BaseDisputeAdapter._generate_signature("The quick brown fox jumps over the lazy dog", "key")

        assert signature == "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"

    def test_valid_signature(self, verifi):
        signature = verifi._generate_signature(self.BODY, "whsec_verifi")

        assert verifi.verify_webhook_signature(self.BODY, signature, "whsec_verifi") is True
        assert verifi.verify_webhook_signature(self.BODY.decode(), signature, "whsec_verifi") is True

    def test_tampered_body_fails(self, verifi):
        signature = verifi._generate_signature(self.BODY, "whsec_verifi")

        assert verifi.verify_webhook_signature(self.BODY + b" ", signature, "whsec_verifi") is False

    @pytest.mark.parametrize("position", [0, 17, 63])
    def test_single_flipped_hex_char_fails(self, verifi, position):
        signature = verifi._generate_signature(self.BODY, "whsec_verifi")
        flipped = "1" if signature[position] == "0" else "0"
        mutated = signature[:position] + flipped + signature[position + 1:]

        assert verifi.verify_webhook_signature(self.BODY, mutated, "whsec_verifi") is False

    def test_truncated_and_extended_signatures_fail(self, verifi):
        signature = verifi._generate_signature(self.BODY, "whsec_verifi")

        assert verifi.verify_webhook_signature(self.BODY, signature[:-1], "whsec_verifi") is False
        assert verifi.verify_webhook_signature(self.BODY, signature + "0", "whsec_verifi") is False

    def test_wrong_secret_fails(self, verifi):
        signature = verifi._generate_signature(self.BODY, "other_secret")

        assert verifi.verify_webhook_signature(self.BODY, signature, "whsec_verifi") is False

    def test_missing_signature_or_secret_fails(self, verifi):
        signature = verifi._generate_signature(self.BODY, "whsec_verifi")

        assert verifi.verify_webhook_signature(self.BODY, None, "whsec_verifi") is False
        assert verifi.verify_webhook_signature(self.BODY, signature, None) is False
        assert verifi.verify_webhook_signature(self.BODY, "", "whsec_verifi") is False

    def test_parsed_body_is_refused(self, verifi):
        parsed = json.loads(self.BODY)
        signature = verifi._generate_signature(json.dumps(parsed), "whsec_verifi")

        assert verifi.verify_webhook_signature(parsed, signature, "whsec_verifi") is False


class TestErrorExtraction:
    def test_none(self):
        assert BaseDisputeAdapter._extract_error_message(None) == "Unknown error"

    def test_portal_error_message(self):
        error = DisputePortalError("Portal said no", "VERIFI")

        assert BaseDisputeAdapter._extract_error_message(error) == "Portal said no"

    def test_body_message_wins(self, respond):
        error = requests.HTTPError("400 Client Error", response=respond(400, {"message": "Bad alert"}))

        assert BaseDisputeAdapter._extract_error_message(error) == "Bad alert"

    def test_structured_error_is_serialized(self, respond):
        error = requests.HTTPError("422", response=respond(422, {"error": {"field": "amount"}}))

        assert BaseDisputeAdapter._extract_error_message(error) == '{"field": "amount"}'

    def test_string_error(self, respond):
        error = requests.HTTPError("422", response=respond(422, {"error": "amount required"}))

        assert BaseDisputeAdapter._extract_error_message(error) == "amount required"

    def test_falls_back_to_exception_text(self):
        assert BaseDisputeAdapter._extract_error_message(requests.Timeout("timed out")) == "timed out"


class TestWebhookParsing:
    def test_parse_event(self, verifi):
        body = json.dumps({
            "eventType": "alert.created",
            "alertId": "A-100",
            "data": {"alertId": "A-100", "amount": 120.5},
            "webhookId": "WH-1",
            "timestamp": "2024-03-01T10:00:00Z",
        }).encode()

        event = verifi.parse_webhook_payload(body, {})

        assert event.event == "alert.created"
        assert event.dispute_id == "A-100"
        assert event.data == {"alertId": "A-100", "amount": 120.5}
        assert event.webhook_id == "WH-1"
        assert event.timestamp == "2024-03-01T10:00:00Z"

    def test_header_fallbacks(self, verifi):
        event = verifi.parse_webhook_payload(
            b'{"event": "alert.updated", "data": {"disputeId": "D-7"}}',
            {"X-Verifi-Timestamp": "1700000000", "X-Verifi-Webhook-Id": "WH-9"},
        )

        assert event.dispute_id == "D-7"
        assert event.timestamp == "1700000000"
        assert event.webhook_id == "WH-9"

    def test_invalid_json(self, verifi):
        with pytest.raises(WebhookPayloadError) as exc_info:
            verifi.parse_webhook_payload(b"{not json", {})

        assert exc_info.value.message == "Invalid Verifi webhook payload: not valid JSON"

    def test_non_object_json(self, verifi):
        with pytest.raises(WebhookPayloadError) as exc_info:
            verifi.parse_webhook_payload(b"[1, 2, 3]", {})

        assert "expected a JSON object" in exc_info.value.message

    def test_dispute_from_webhook_without_id(self, verifi):
        event = WebhookEvent(event="ping", data={}, timestamp="2024-03-01T10:00:00Z")

        assert verifi.dispute_from_webhook(event) is None

    def test_dispute_from_webhook_uses_event_id(self, verifi):
        event = WebhookEvent(event="alert.updated", dispute_id="A-5", data={"status": "won"},
                             timestamp="2024-03-01T10:00:00Z")

        dispute = verifi.dispute_from_webhook(event)

        assert dispute.dispute_id == "A-5"
        assert dispute.status == DisputeStatus.WON


class TestStatusMapping:
    def test_unknown_status_is_pending(self, verifi):
        assert verifi.normalize_dispute_status("something_new") == DisputeStatus.PENDING
        assert verifi.normalize_dispute_status(None) == DisputeStatus.PENDING
        assert verifi.normalize_dispute_status("") == DisputeStatus.PENDING

    def test_status_lookup_is_case_insensitive(self, verifi):
        assert verifi.normalize_dispute_status("WON") == DisputeStatus.WON
        assert verifi.normalize_dispute_status(" Under_Review ") == DisputeStatus.IN_REVIEW

    def test_unmapped_outbound_status_passes_through(self, verifi):
        assert verifi.to_portal_status(DisputeStatus.RESOLVED) == "RESOLVED"
        assert verifi.to_portal_status("custom_state") == "custom_state"
        assert verifi.to_portal_status("submitted") == "responded"


class TestHealthCheck:
    def test_reachable(self, verifi, respond, stub_http):
        stub_http(verifi, respond(200, {"ok": True}))

        result = verifi.health_check()

        assert result["healthy"] is True
        assert result["details"]["response_status"] == 200
        assert result["details"]["card_acceptor_id"] == "CA-77"

    def test_failure_is_reported_not_raised(self, verifi, stub_http):
        stub_http(verifi, requests.ConnectionError("no route to host"))

        result = verifi.health_check()

        assert result["healthy"] is False
        assert "no route to host" in result["message"]
        assert result["details"]["error_status"] is None

    def test_http_error_status_is_reported(self, verifi, respond, stub_http):
        stub_http(verifi, respond(401, {"message": "Bad API key"}))

        result = verifi.health_check()

        assert result["healthy"] is False
        assert result["details"]["error_status"] == 401
        assert result["details"]["error_message"] == "Bad API key"


class TestConfiguration:
    def test_missing_credentials_raise(self):
        with pytest.raises(PortalConfigurationError) as exc_info:
            VerifiAdapter({"credentials": {"merchantId": "M-1"}})

        assert "apiKey" in exc_info.value.message or "api_key" in exc_info.value.message
        assert exc_info.value.portal_type == "VERIFI"

    def test_merlink_requires_api_secret(self):
        with pytest.raises(PortalConfigurationError):
            MerlinkAdapter({"credentials": {"apiKey": "k", "merchantId": "M-1"}})

    def test_auth_headers_skip_empty_values(self, discover):
        assert discover.session.headers["X-Discover-API-Key"] == "dk_test_123"
        assert discover.session.headers["X-Acquirer-BIN"] == "601100"
        assert "X-ProtectBuy-MID" not in discover.session.headers

    def test_default_base_url(self):
        adapter = DiscoverDisputeAdapter({"credentials": {"apiKey": "k", "merchantId": "M-1"}})

        assert adapter.base_url == "https://api.discover.com"

    def test_secrets_are_masked_in_repr(self, verifi):
        assert "vk_test_123" not in repr(verifi.credentials)
        assert verifi.credentials.secret_value("api_key") == "vk_test_123"


class TestWebhookRegistration:
    def test_register_generates_secret(self, verifi, respond, stub_http):
        request = stub_http(verifi, respond(201, {"webhookId": "WH-77"}))

        result = verifi.register_webhook("https://hooks.example.com/verifi")

        args, kwargs = request.call_args
        assert args == ("POST", "https://verifi.test/v3/webhooks")
        assert kwargs["json"]["callbackUrl"] == "https://hooks.example.com/verifi"
        assert kwargs["json"]["version"] == "v3"
        assert result["webhook_id"] == "WH-77"
        assert result["active"] is True
        assert len(result["secret"]) == 64
        assert result["events"] == list(verifi.webhook_events)

    def test_ethoca_reuses_configured_secret(self, ethoca, respond, stub_http):
        stub_http(ethoca, respond(201, {"id": "WH-1"}))

        result = ethoca.register_webhook("https://hooks.example.com/ethoca", ["alert.new"])

        assert result["secret"] == "whsec_ethoca"
        assert result["events"] == ["alert.new"]


def test_first_present_skips_falsy_values():
    assert first_present({"a": "", "b": None, "c": "x"}, "a", "b", "c") == "x"
    assert first_present({}, "a", default="fallback") == "fallback"
