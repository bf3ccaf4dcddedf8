"""
Base Dispute Adapter

Contract shared by every dispute portal adapter, plus the infrastructure they
all rely on: a configured HTTP session, a retry executor with exponential
backoff, idempotency keys, HMAC-SHA256 signing and verification, webhook body
decoding and error-message extraction.

Adapters talk to portals in both directions:
  inbound  - disputes, alerts and status updates FROM a portal
  outbound - evidence, responses and status updates TO a portal
"""
import hashlib
import hmac
import json
import random
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any, Callable, List, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ValidationError

from adapters.exceptions import (
    DisputePortalError,
    PortalConfigurationError,
    PortalRequestError,
    WebhookPayloadError,
)
from models.credentials import AdapterConfig, PortalCredentials
from models.dispute import (
    DisputeStatus,
    NormalizedDispute,
    PortalType,
    ReasonCodeEntry,
    WebhookEvent,
)
from models.evidence import EvidencePackage, ResponsePackage
from utils.logging_config import get_logger
from utils.redaction import redact_sensitive

logger = get_logger('adapters.base')

USER_AGENT = 'DisputePortals/1.0'


@dataclass
class RetryPolicy:
    """Retry budget for outbound portal calls"""
    max_attempts: int = 3
    base_delay_ms: int = 1000       # delay = base * 2^attempt + jitter
    max_delay_ms: int = 10000
    jitter_ms: int = 500
    retryable_statuses: Tuple[int, ...] = (408, 429, 500, 502, 503, 504)

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]]) -> 'RetryPolicy':
        """
        Build a policy from config overrides

        Accepts snake_case or camelCase keys. ``maxRetries`` counts retries
        after the first attempt, so it maps to ``max_attempts - 1``.
        """
        if not options:
            return cls()
        policy = cls()
        aliases = {
            'maxAttempts': 'max_attempts',
            'baseDelayMs': 'base_delay_ms',
            'maxDelayMs': 'max_delay_ms',
            'jitterMs': 'jitter_ms',
            'retryableStatuses': 'retryable_statuses',
        }
        for key, value in options.items():
            if key in ('maxRetries', 'max_retries'):
                policy.max_attempts = int(value) + 1
                continue
            name = aliases.get(key, key)
            if name == 'retryable_statuses':
                value = tuple(int(status) for status in value)
            if hasattr(policy, name):
                setattr(policy, name, value)
        policy.max_attempts = max(1, int(policy.max_attempts))
        return policy

    def delay_seconds(self, attempt: int) -> float:
        delay_ms = min(self.base_delay_ms * (2 ** attempt) + random.uniform(0, self.jitter_ms),
                       self.max_delay_ms)
        return delay_ms / 1000.0


def first_present(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Value of the first key holding a truthy value"""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return default


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class BaseDisputeAdapter(ABC):
    """
    Abstract base for dispute portal adapters

    Subclasses declare their portal identity, status vocabulary and auth
    headers, and implement the portal-specific operations. One instance per
    integration; methods never mutate instance state, so an instance can
    serve concurrent calls for independent disputes.
    """

    portal_type: PortalType
    portal_label: str = ''
    default_base_url: str = ''
    credentials_model = PortalCredentials
    health_path: str = '/health'
    webhook_path: str = '/webhooks'
    webhook_events: Tuple[str, ...] = ()
    webhook_header_prefix: str = ''
    webhook_dispute_id_keys: Tuple[str, ...] = ('disputeId',)
    webhook_data_keys: Tuple[str, ...] = ('data', 'payload')
    status_map_in: Dict[str, DisputeStatus] = {}
    status_map_out: Dict[DisputeStatus, str] = {}

    def __init__(self, config: Union[AdapterConfig, Dict[str, Any], None] = None):
        if not isinstance(config, AdapterConfig):
            config = AdapterConfig.model_validate(config or {})

        self.base_url = (config.base_url or self.default_base_url).rstrip('/')
        self.integration_id = config.integration_id
        self.timeout_ms = config.timeout_ms
        self.retry_policy = RetryPolicy.from_options(config.retry_options)
        self.credentials = self._load_credentials(config.credentials)

        self.session = requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        })
        self.session.headers.update(
            {name: value for name, value in self._auth_headers().items() if value}
        )

        logger.info(f"✅ [{self.tag}] Adapter initialized")
        logger.info(f"🔗 [{self.tag}] Using base URL: {self.base_url}")

    @property
    def tag(self) -> str:
        return self.portal_type.value

    def _load_credentials(self, credentials: Any) -> PortalCredentials:
        if isinstance(credentials, self.credentials_model):
            return credentials
        if isinstance(credentials, BaseModel):
            credentials = dict(credentials)
        try:
            return self.credentials_model.model_validate(credentials or {})
        except ValidationError as e:
            missing = ', '.join(str(err['loc'][0]) for err in e.errors() if err.get('loc'))
            raise PortalConfigurationError(
                f"Invalid {self.portal_label} credentials: {missing or e}", self.tag
            ) from e

    def _secret(self, field: str) -> Optional[str]:
        return self.credentials.secret_value(field)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def _auth_headers(self) -> Dict[str, Optional[str]]:
        """Portal authentication headers set on every request"""

    def receive_dispute(self, payload: Dict[str, Any]) -> NormalizedDispute:
        """
        Accept a raw inbound dispute or alert and normalize it
        """
        logger.info(f"📥 [{self.tag}] Receiving dispute: "
                    f"{first_present(payload or {}, *self.webhook_dispute_id_keys, default='unknown')}")
        dispute = self.normalize_dispute(payload)
        logger.info(f"✅ [{self.tag}] Dispute normalized: {dispute.dispute_id} ({dispute.reason_code})")
        return dispute

    @abstractmethod
    def get_dispute_status(self, dispute_id: str) -> Dict[str, Any]:
        """Poll the portal for a dispute's current status"""

    @abstractmethod
    def get_evidence_requirements(self, dispute_id: str) -> Dict[str, Any]:
        """Portal-declared evidence requirements merged with the reason-code table"""

    @abstractmethod
    def fetch_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Paginated pull of disputes from the portal"""

    def list_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.fetch_disputes(params)

    @abstractmethod
    def submit_evidence(self, dispute_id: str,
                        evidence: Union[EvidencePackage, Dict[str, Any]]) -> Dict[str, Any]:
        """Submit an evidence package; returns submission_id, status, message, timestamp"""

    @abstractmethod
    def push_response(self, dispute_id: str,
                      response: Union[ResponsePackage, Dict[str, Any]]) -> Dict[str, Any]:
        """Push a representment response; returns response_id, status, message, timestamp"""

    @abstractmethod
    def accept_dispute(self, dispute_id: str, outcome: Optional[str] = None) -> Dict[str, Any]:
        """Accept liability on a dispute"""

    @abstractmethod
    def update_case_status(self, dispute_id: str, status: Union[DisputeStatus, str],
                           notes: str = '') -> Dict[str, Any]:
        """Translate an internal status to the portal vocabulary and push it"""

    @abstractmethod
    def normalize_dispute(self, raw: Dict[str, Any]) -> NormalizedDispute:
        """Convert a portal dispute payload into a NormalizedDispute"""

    @abstractmethod
    def normalize_reason_code(self, code: Any) -> ReasonCodeEntry:
        """Look up a portal reason code: exact table, then heuristics, then UNKNOWN"""

    def normalize_dispute_status(self, portal_status: Optional[str]) -> DisputeStatus:
        """
        Map a portal status string to the internal enum; unknown values are PENDING
        """
        if not portal_status:
            return DisputeStatus.PENDING
        return self.status_map_in.get(str(portal_status).strip().lower(), DisputeStatus.PENDING)

    def to_portal_status(self, status: Union[DisputeStatus, str]) -> str:
        """
        Map an internal status to the portal's closest equivalent

        Statuses with no portal equivalent are passed through unchanged.
        """
        raw = status.value if isinstance(status, DisputeStatus) else str(status)
        try:
            internal = DisputeStatus(raw.upper())
        except ValueError:
            return raw
        return self.status_map_out.get(internal, raw)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def parse_webhook_payload(self, raw: Union[bytes, str, Dict[str, Any]],
                              headers: Optional[Dict[str, str]] = None) -> WebhookEvent:
        """
        Parse a webhook body into a WebhookEvent

        Raises:
            WebhookPayloadError: body is not a JSON object
        """
        parsed = self._decode_webhook_body(raw)
        headers = {str(name).lower(): value for name, value in (headers or {}).items()}

        data = first_present(parsed, *self.webhook_data_keys, default=parsed)
        if not isinstance(data, dict):
            data = {'value': data}

        dispute_id = first_present(parsed, *self.webhook_dispute_id_keys)
        if dispute_id is None:
            dispute_id = first_present(data, *self.webhook_dispute_id_keys)

        prefix = self.webhook_header_prefix
        return WebhookEvent(
            event=first_present(parsed, 'event', 'eventType'),
            dispute_id=str(dispute_id) if dispute_id is not None else None,
            data=data,
            timestamp=str(parsed.get('timestamp') or headers.get(f'{prefix}-timestamp') or utc_now_iso()),
            webhook_id=parsed.get('webhookId') or headers.get(f'{prefix}-webhook-id'),
            raw_data=parsed,
        )

    def _decode_webhook_body(self, raw: Union[bytes, str, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        try:
            if isinstance(raw, (bytes, bytearray)):
                raw = bytes(raw).decode('utf-8')
            parsed = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"❌ [{self.tag}] Failed to parse webhook payload as JSON: {e}")
            raise WebhookPayloadError(
                f"Invalid {self.portal_label} webhook payload: not valid JSON", self.tag
            ) from e
        if not isinstance(parsed, dict):
            raise WebhookPayloadError(
                f"Invalid {self.portal_label} webhook payload: expected a JSON object", self.tag
            )
        return parsed

    def verify_webhook_signature(self, raw: Union[bytes, str], signature: Optional[str],
                                 secret: Optional[str]) -> bool:
        """
        Verify an HMAC-SHA256 webhook signature over the raw body

        Only the exact bytes received are accepted; an already-parsed body is
        rejected because re-serializing it can change the signed bytes.
        Never raises.
        """
        if not signature or not secret:
            logger.warning(f"⚠️ [{self.tag}] Webhook signature verification skipped: "
                           f"missing signature or secret")
            return False
        if not isinstance(raw, (bytes, bytearray, str)):
            logger.warning(f"⚠️ [{self.tag}] Webhook signature verification requires the raw body")
            return False

        expected = self._generate_signature(raw, secret)
        if not hmac.compare_digest(expected.encode('utf-8'), str(signature).encode('utf-8')):
            logger.warning(f"⚠️ [{self.tag}] Webhook signature mismatch")
            return False
        return True

    def register_webhook(self, callback_url: str, events: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Register a callback URL with the portal

        Uses the webhook secret from the credentials when the portal issues
        one up front, otherwise a fresh random secret.
        """
        events = list(events or self.webhook_events)
        webhook_secret = self._webhook_secret_for_registration()

        payload = self._webhook_registration_payload(callback_url, events, webhook_secret)
        payload['idempotencyKey'] = self._generate_idempotency_key('webhook')
        data = self._call('POST', self.webhook_path, json_body=payload)

        logger.info(f"✅ [{self.tag}] Webhook registered: {callback_url} for events: {', '.join(events)}")

        return {
            'webhook_id': first_present(data, 'webhookId', 'id'),
            'callback_url': callback_url,
            'events': events,
            'active': True,
            'secret': webhook_secret,
            'message': data.get('message') or 'Webhook registered successfully',
        }

    def _webhook_secret_for_registration(self) -> str:
        return secrets.token_hex(32)

    def _webhook_registration_payload(self, callback_url: str, events: List[str],
                                      webhook_secret: str) -> Dict[str, Any]:
        return {
            'merchantId': self.credentials.merchant_id,
            'callbackUrl': callback_url,
            'events': events,
            'active': True,
            'secret': webhook_secret,
            'format': 'json',
        }

    def dispute_from_webhook(self, event: WebhookEvent) -> Optional[NormalizedDispute]:
        """
        The dispute carried by a webhook event, if any
        """
        dispute = self.normalize_dispute(event.data)
        if dispute.dispute_id is None and event.dispute_id:
            dispute = dispute.model_copy(update={'dispute_id': event.dispute_id})
        if dispute.dispute_id is None:
            logger.info(f"ℹ️ [{self.tag}] Webhook {event.event} carries no dispute")
            return None
        return dispute

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self) -> Dict[str, Any]:
        """
        Lightweight reachability check; failures are reported, never raised
        """
        start = time.monotonic()
        try:
            response = self._request('GET', self.health_path, timeout_ms=10000)
            latency_ms = int((time.monotonic() - start) * 1000)
            details = self._health_details()
            details['response_status'] = response.status_code
            return {
                'healthy': True,
                'latency_ms': latency_ms,
                'message': f"{self.portal_label} API is reachable",
                'details': details,
            }
        except Exception as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            message = self._extract_error_message(e)
            logger.error(f"❌ [{self.tag}] Health check failed: {message}")
            status_code = e.response.status_code if getattr(e, 'response', None) is not None else None
            return {
                'healthy': False,
                'latency_ms': latency_ms,
                'message': f"{self.portal_label} API health check failed: {message}",
                'details': {
                    'portal_type': self.tag,
                    'merchant_id': self.credentials.merchant_id,
                    'error_status': status_code,
                    'error_message': message,
                },
            }

    def _health_details(self) -> Dict[str, Any]:
        return {
            'portal_type': self.tag,
            'merchant_id': self.credentials.merchant_id,
        }

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                 json_body: Optional[Dict[str, Any]] = None,
                 timeout_ms: Optional[int] = None) -> requests.Response:
        """
        Single HTTP call; raises requests exceptions on transport or HTTP errors
        """
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        start = time.monotonic()
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                params=params or None,
                json=json_body,
                timeout=(timeout_ms or self.timeout_ms) / 1000.0,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            self._log_api_error(method, path, e, int((time.monotonic() - start) * 1000))
            raise
        self._log_api_call(method, path, response.status_code, int((time.monotonic() - start) * 1000))
        return response

    def _call(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
              json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """HTTP call wrapped in the retry policy; returns the decoded JSON body"""
        response = self._with_retry(
            lambda: self._request(method, path, params=params, json_body=json_body)
        )
        return self._response_json(response)

    def _response_json(self, response: requests.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            content_type = response.headers.get('Content-Type') or 'unknown content type'
            logger.error(f"❌ [{self.tag}] Undecodable response body ({content_type}): {e}")
            raise PortalRequestError(
                f"Portal returned a non-JSON response ({content_type})", self.tag,
                status_code=response.status_code, retryable=False
            ) from e
        if isinstance(body, dict):
            return body
        return {'data': body}

    def _with_retry(self, request_fn: Callable[[], Any], policy: Optional[RetryPolicy] = None) -> Any:
        """
        Run ``request_fn`` under the retry policy

        Timeouts, connection errors and retryable HTTP statuses are retried
        with exponential backoff. Any other HTTP error fails after one attempt.

        Raises:
            PortalRequestError: non-retryable failure, or retry budget exhausted
        """
        policy = policy or self.retry_policy
        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(policy.max_attempts):
            try:
                return request_fn()
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status not in policy.retryable_statuses:
                    raise PortalRequestError(
                        self._extract_error_message(e), self.tag,
                        status_code=status, retryable=False, attempts=attempt + 1
                    ) from e
                last_error, last_status = e, status
            except (requests.Timeout, requests.ConnectionError) as e:
                last_error, last_status = e, None
            except requests.RequestException as e:
                raise PortalRequestError(
                    self._extract_error_message(e), self.tag, retryable=False, attempts=attempt + 1
                ) from e

            if attempt + 1 < policy.max_attempts:
                delay = policy.delay_seconds(attempt)
                logger.warning(
                    f"⚠️ [{self.tag}] Request failed (attempt {attempt + 1}/{policy.max_attempts}), "
                    f"retrying in {int(delay * 1000)}ms: {self._extract_error_message(last_error)}"
                )
                time.sleep(delay)

        logger.error(f"❌ [{self.tag}] Request failed after {policy.max_attempts} attempts")
        raise PortalRequestError(
            self._extract_error_message(last_error), self.tag,
            status_code=last_status, retryable=True, attempts=policy.max_attempts
        ) from last_error

    def _log_api_call(self, method: str, path: str, status: int, duration_ms: int):
        logger.info(f"🌐 [{self.tag}] {method} {path} -> {status} ({duration_ms}ms)")

    def _log_api_error(self, method: str, path: str, error: Exception, duration_ms: int):
        response = getattr(error, 'response', None)
        status = response.status_code if response is not None else None
        body = None
        if response is not None and response.content:
            try:
                body = redact_sensitive(response.json())
            except ValueError:
                body = response.text[:500]
        logger.error(f"❌ [{self.tag}] {method} {path} FAILED ({duration_ms}ms): "
                     f"{error.__class__.__name__} status={status} body={body}")

    # ------------------------------------------------------------------
    # Shared utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _generate_signature(payload: Union[bytes, bytearray, str], secret: str) -> str:
        """Hex HMAC-SHA256 of ``payload``"""
        if isinstance(payload, str):
            payload = payload.encode('utf-8')
        return hmac.new(secret.encode('utf-8'), bytes(payload), hashlib.sha256).hexdigest()

    def _generate_idempotency_key(self, prefix: str) -> str:
        """Fresh key per logical operation: prefix_PORTAL_epochms_randomhex"""
        return f"{prefix}_{self.tag}_{int(time.time() * 1000)}_{secrets.token_hex(8)}"

    @staticmethod
    def _extract_error_message(error: Optional[Exception]) -> str:
        """Reduce any failure to a short human-readable message"""
        if error is None:
            return 'Unknown error'
        if isinstance(error, DisputePortalError):
            return error.message
        response = getattr(error, 'response', None)
        if response is not None and response.content:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                if body.get('message'):
                    return str(body['message'])
                if body.get('error'):
                    error_value = body['error']
                    return error_value if isinstance(error_value, str) else json.dumps(error_value)
        return str(error) or 'Unknown error'

    def _parse_amount(self, value: Any) -> float:
        if value in (None, ''):
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"⚠️ [{self.tag}] Unparseable amount {value!r}, using 0")
            return 0.0

    @staticmethod
    def _merge_evidence_types(portal_required: List[str], recommended: List[str]) -> List[str]:
        """Ordered union, portal-declared types first"""
        return list(dict.fromkeys(list(portal_required or []) + list(recommended or [])))

    def _evidence_documents(self, evidence: EvidencePackage) -> List[Dict[str, Any]]:
        return [
            {
                'documentType': file.type or 'supporting_document',
                'fileName': file.file_name,
                'mimeType': file.mime_type or 'application/pdf',
                'data': file.encoded_data(),
                'description': file.description or f"Evidence document {index + 1}",
            }
            for index, file in enumerate(evidence.files)
        ]
