"""
Merlink Dispute Adapter

Merlink is a dispute management platform for hospitality merchants with
full two-way sync:
  - Inbound: dispute alerts, status updates and evidence requests
  - Outbound: evidence, representment responses, case sync
  - Portfolio: aggregated stats for hotel groups with several properties

Disputes can originate from either Visa or Mastercard, so both reason code
shapes are understood. Every outbound request is HMAC-SHA256 signed.

Auth: X-API-Key, X-Merchant-ID and X-Hotel-ID headers, plus X-Timestamp and
X-Signature computed per request over METHOD:PATH:TIMESTAMP:SECRET.
"""
import hashlib
import hmac
import re
import time
from typing import Dict, Any, List, Optional, Union
from urllib.parse import urlsplit

from requests.auth import AuthBase

from adapters.base_adapter import BaseDisputeAdapter, first_present, utc_now_iso
from adapters.ethoca_adapter import MASTERCARD_REASON_CODES
from adapters.verifi_adapter import VISA_PREFIX_CATEGORIES
from models.credentials import AdapterConfig, MerlinkCredentials
from models.dispute import (
    DisputeStatus,
    NormalizedDispute,
    PortalType,
    ReasonCategory,
    ReasonCodeEntry,
)
from models.evidence import (
    EvidencePackage,
    ResponsePackage,
    as_evidence_package,
    as_response_package,
)
from utils.logging_config import get_logger

logger = get_logger('adapters.merlink')

VISA_CODE_PATTERN = re.compile(r'^\d+\.\d+$')

STATUS_MAP_FROM_MERLINK = {
    'new': DisputeStatus.PENDING,
    'pending_review': DisputeStatus.PENDING,
    'open': DisputeStatus.PENDING,
    'in_progress': DisputeStatus.IN_REVIEW,
    'under_review': DisputeStatus.IN_REVIEW,
    'evidence_gathering': DisputeStatus.IN_REVIEW,
    'submitted': DisputeStatus.SUBMITTED,
    'responded': DisputeStatus.SUBMITTED,
    'representment_filed': DisputeStatus.SUBMITTED,
    'won': DisputeStatus.WON,
    'merchant_won': DisputeStatus.WON,
    'closed_won': DisputeStatus.WON,
    'lost': DisputeStatus.LOST,
    'merchant_lost': DisputeStatus.LOST,
    'closed_lost': DisputeStatus.LOST,
    'expired': DisputeStatus.EXPIRED,
    'closed': DisputeStatus.RESOLVED,
}

# RESOLVED has no Merlink equivalent and is passed through
STATUS_MAP_TO_MERLINK = {
    DisputeStatus.PENDING: 'pending_review',
    DisputeStatus.IN_REVIEW: 'in_progress',
    DisputeStatus.SUBMITTED: 'submitted',
    DisputeStatus.WON: 'won',
    DisputeStatus.LOST: 'lost',
    DisputeStatus.EXPIRED: 'expired',
}

WEBHOOK_EVENTS = (
    'dispute.created',
    'dispute.updated',
    'dispute.closed',
    'evidence.requested',
    'response.submitted',
)

SYNC_DIRECTIONS = ('push', 'pull', 'both')

# Hotel evidence profiles keyed by the reason codes they cover (Visa or Mastercard)
HOTEL_EVIDENCE_PROFILES = {
    'fraud': (
        ('4837',),
        ['signed_registration_card', 'id_verification', 'avs_cvv_match',
         'check_in_confirmation', 'key_card_access_log', 'surveillance'],
        'Provide evidence that the cardholder was present and authorized the charge: '
        'signed registration card, ID verification, check-in records, key card access logs, '
        'and AVS/CVV match confirmation.',
    ),
    'not_received': (
        ('13.1', '4855'),
        ['check_in_confirmation', 'folio', 'guest_registration_card',
         'key_card_access_log', 'id_verification', 'proof_of_delivery'],
        'Provide proof that the guest checked in and received hotel services: '
        'signed registration card, room folio, key card access logs, and check-in confirmation.',
    ),
    'not_as_described': (
        ('13.3', '4853'),
        ['booking_confirmation', 'folio', 'terms_accepted',
         'guest_correspondence', 'service_description'],
        'Provide evidence that the hotel services matched the booking description: '
        'booking confirmation with room details, guest folio, terms accepted at booking, '
        'and any guest correspondence.',
    ),
    'credit_not_processed': (
        ('13.6', '4860'),
        ['refund_policy', 'cancellation_policy', 'terms_and_conditions',
         'no_refund_entitlement', 'credit_issued_proof'],
        'Provide evidence that a refund is not owed or has already been issued: '
        'cancellation policy, refund terms accepted by the guest, or proof of credit processed.',
    ),
    'cancelled': (
        ('13.7',),
        ['cancellation_policy', 'no_show_documentation', 'terms_accepted',
         'guest_folio', 'reservation_confirmation'],
        None,
    ),
    'not_recognized': (
        ('4863',),
        ['booking_confirmation', 'signed_registration_card', 'folio',
         'merchant_descriptor_match', 'guest_correspondence'],
        None,
    ),
}

DEFAULT_HOTEL_EVIDENCE_TYPES = [
    'folio', 'guest_registration_card', 'booking_confirmation',
    'check_in_confirmation', 'guest_correspondence',
]

GENERIC_EVIDENCE_INSTRUCTIONS = (
    'Submit all available hotel evidence: folio, signed registration card, '
    'booking confirmation, check-in/out records, and any guest correspondence.'
)


def _evidence_profile(code: Any) -> Optional[str]:
    if not code:
        return None
    normalized = str(code).strip()
    if normalized.startswith('10.'):
        return 'fraud'
    for name, (codes, _, _) in HOTEL_EVIDENCE_PROFILES.items():
        if normalized in codes:
            return name
    return None


def recommended_hotel_evidence(code: Any) -> List[str]:
    """Hotel-specific evidence types for a Visa or Mastercard reason code"""
    if not code:
        return []
    profile = _evidence_profile(code)
    if profile is None:
        return list(DEFAULT_HOTEL_EVIDENCE_TYPES)
    return list(HOTEL_EVIDENCE_PROFILES[profile][1])


def hotel_evidence_instructions(code: Any) -> str:
    profile = _evidence_profile(code)
    if profile is None:
        return GENERIC_EVIDENCE_INSTRUCTIONS
    return HOTEL_EVIDENCE_PROFILES[profile][2] or GENERIC_EVIDENCE_INSTRUCTIONS


class MerlinkRequestSigner(AuthBase):
    """
    Signs every outbound Merlink request

    X-Signature = hex HMAC-SHA256(secret, "METHOD:PATH:TIMESTAMP:SECRET"),
    where PATH is relative to the API base URL and excludes the query string.
    """

    def __init__(self, api_secret: str, base_url: str):
        self.api_secret = api_secret
        self.base_path = urlsplit(base_url).path.rstrip('/')

    def relative_path(self, url: str) -> str:
        path = urlsplit(url).path
        if self.base_path and path.startswith(self.base_path):
            path = path[len(self.base_path):]
        return path or '/'

    def sign(self, method: str, path: str, timestamp: str) -> str:
        payload = f"{method.upper()}:{path}:{timestamp}:{self.api_secret}"
        return hmac.new(self.api_secret.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()

    def __call__(self, request):
        timestamp = str(int(time.time() * 1000))
        request.headers['X-Timestamp'] = timestamp
        request.headers['X-Signature'] = self.sign(request.method, self.relative_path(request.url), timestamp)
        return request


class MerlinkAdapter(BaseDisputeAdapter):
    """
    Two-way sync with the Merlink hospitality dispute platform
    """

    portal_type = PortalType.MERLINK
    portal_label = 'Merlink'
    default_base_url = 'https://api.merlink.com/v2'
    credentials_model = MerlinkCredentials
    health_path = '/ping'
    webhook_path = '/webhooks'
    webhook_events = WEBHOOK_EVENTS
    webhook_header_prefix = 'x-merlink'
    webhook_dispute_id_keys = ('disputeId',)
    webhook_data_keys = ('data', 'payload')
    status_map_in = STATUS_MAP_FROM_MERLINK
    status_map_out = STATUS_MAP_TO_MERLINK

    def __init__(self, config: Union[AdapterConfig, Dict[str, Any], None] = None):
        super().__init__(config)
        self.session.auth = MerlinkRequestSigner(self._secret('api_secret'), self.base_url)

    def _auth_headers(self) -> Dict[str, Optional[str]]:
        return {
            'X-API-Key': self._secret('api_key'),
            'X-Merchant-ID': self.credentials.merchant_id,
            'X-Hotel-ID': self.credentials.hotel_id,
        }

    # Inbound

    def receive_dispute(self, payload: Dict[str, Any]) -> NormalizedDispute:
        payload = payload or {}
        logger.info(f"📥 [MERLINK] Receiving dispute: {first_present(payload, 'disputeId', 'id', default='unknown')}")

        dispute = self.normalize_dispute(payload)

        logger.info(f"✅ [MERLINK] Dispute normalized: {dispute.dispute_id} "
                    f"({dispute.reason_code} - ${dispute.amount})")
        return dispute

    def get_dispute_status(self, dispute_id: str) -> Dict[str, Any]:
        data = self._call('GET', f'/disputes/{dispute_id}')
        return {
            'dispute_id': dispute_id,
            'status': self.normalize_dispute_status(data.get('status')),
            'portal_status': data.get('status'),
            'last_updated': first_present(data, 'lastUpdated', 'updatedAt'),
            'notes': first_present(data, 'notes', 'statusNotes', default=''),
            'outcome': data.get('outcome'),
            'outcome_date': first_present(data, 'outcomeDate', 'resolvedAt'),
            'assigned_to': data.get('assignedTo'),
        }

    def get_evidence_requirements(self, dispute_id: str) -> Dict[str, Any]:
        dispute = self._call('GET', f'/disputes/{dispute_id}')
        reason_code = dispute.get('reasonCode')
        reason = self.normalize_reason_code(reason_code)

        portal_required = first_present(dispute, 'requiredEvidenceTypes', 'evidenceTypes', default=[])
        recommended = recommended_hotel_evidence(reason_code)

        return {
            'dispute_id': dispute_id,
            'required_types': self._merge_evidence_types(portal_required, recommended),
            'portal_required_types': portal_required,
            'recommended_types': recommended,
            'deadline': first_present(dispute, 'responseDeadline', 'dueDate'),
            'instructions': dispute.get('evidenceInstructions') or hotel_evidence_instructions(reason_code),
            'reason_code': reason_code,
            'reason_category': reason.category,
        }

    def fetch_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Page through disputes by status, date range and property

        Accepts either ``page`` (1-based) or a raw ``offset``.
        """
        params = params or {}
        limit = min(int(params.get('limit') or 100), 200)
        page = params.get('page')
        offset = (int(page) - 1) * limit if page else int(params.get('offset') or 0)

        query = {
            'status': params.get('status') or 'open',
            'startDate': params.get('since'),
            'endDate': params.get('until') or params.get('endDate'),
            'hotelId': params.get('hotelId') or self.credentials.hotel_id,
            'limit': limit,
            'offset': offset,
        }
        data = self._call('GET', '/disputes', params=query)
        disputes = first_present(data, 'data', 'disputes', default=[])

        return {
            'disputes': [self.normalize_dispute(item) for item in disputes],
            'total_count': first_present(data, 'totalCount', 'total', default=len(disputes)),
            'has_more': bool(data.get('hasMore')) or len(disputes) >= limit,
            'page': int(page) if page else offset // limit + 1,
        }

    def get_dispute(self, dispute_id: str) -> NormalizedDispute:
        return self.normalize_dispute(self._call('GET', f'/disputes/{dispute_id}'))

    # Outbound

    @staticmethod
    def _is_legacy_evidence(evidence: Any) -> bool:
        return isinstance(evidence, dict) and bool(evidence.get('type') or evidence.get('documents'))

    @staticmethod
    def _is_legacy_response(response: Any) -> bool:
        return isinstance(response, dict) and bool(response.get('reservationNumber') or response.get('argument'))

    def submit_evidence(self, dispute_id: str,
                        evidence: Union[EvidencePackage, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Submit evidence; older ``{type, documents}`` payloads are sent in their own layout
        """
        if self._is_legacy_evidence(evidence):
            logger.info(f"ℹ️ [MERLINK] Legacy evidence payload detected for dispute {dispute_id}")
            payload = {
                'evidenceType': evidence.get('type'),
                'description': evidence.get('description'),
                'documents': evidence.get('documents'),
                'compellingEvidence': evidence.get('compellingEvidence') or {},
                'metadata': evidence.get('metadata'),
                'idempotencyKey': self._generate_idempotency_key('evidence'),
            }
        else:
            package = as_evidence_package(evidence)
            metadata = package.metadata
            payload = {
                'disputeId': dispute_id,
                'merchantId': self.credentials.merchant_id,
                'hotelId': self.credentials.hotel_id,
                'evidenceType': metadata.evidence_category or 'compelling_evidence',
                'description': metadata.notes,
                'documents': self._evidence_documents(package),
                'compellingEvidence': {
                    'guestName': metadata.guest_name,
                    'confirmationNumber': metadata.confirmation_number,
                    'checkInDate': metadata.check_in_date,
                    'checkOutDate': metadata.check_out_date,
                    'transactionAmount': metadata.transaction_amount,
                    'transactionDate': metadata.transaction_date,
                    'transactionId': metadata.transaction_id,
                },
                'metadata': {
                    'submittedBy': 'DisputePortals',
                    'autoSubmit': self.credentials.auto_submit,
                    'propertyId': self.credentials.hotel_id,
                },
                'idempotencyKey': self._generate_idempotency_key('evidence'),
            }

        data = self._call('POST', f'/disputes/{dispute_id}/evidence', json_body=payload)

        logger.info(f"✅ [MERLINK] Evidence submitted for dispute {dispute_id}")

        return {
            'submission_id': first_present(data, 'submissionId', 'id'),
            'status': data.get('status') or 'submitted',
            'message': data.get('message') or 'Evidence submitted successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def push_response(self, dispute_id: str,
                      response: Union[ResponsePackage, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Push a representment package

        Older ``{reservationNumber, argument}`` payloads are detected by field
        presence and sent in their own layout.
        """
        if self._is_legacy_response(response):
            logger.info(f"ℹ️ [MERLINK] Legacy response payload detected for dispute {dispute_id}")
            payload = {
                'responseType': response.get('type') or response.get('representmentType') or 'representment',
                'representmentPackage': {
                    'guestName': response.get('guestName'),
                    'reservationNumber': response.get('reservationNumber'),
                    'checkInDate': response.get('checkInDate'),
                    'checkOutDate': response.get('checkOutDate'),
                    'transactionAmount': response.get('amount'),
                    'evidenceDocuments': response.get('evidenceIds'),
                    'compellingArgument': response.get('argument'),
                },
                'autoSubmit': bool(response.get('autoSubmit')) or self.credentials.auto_submit,
                'idempotencyKey': self._generate_idempotency_key('response'),
            }
        else:
            package = as_response_package(response)
            guest, stay, evidence = package.guest_details, package.stay_details, package.compelling_evidence
            payload = {
                'disputeId': dispute_id,
                'merchantId': self.credentials.merchant_id,
                'hotelId': self.credentials.hotel_id,
                'responseType': package.representment_type,
                'representmentPackage': {
                    'guestName': guest.name,
                    'guestEmail': guest.email,
                    'guestPhone': guest.phone,
                    'loyaltyNumber': guest.loyalty_number,
                    'reservationNumber': stay.confirmation_number,
                    'checkInDate': stay.check_in_date,
                    'checkOutDate': stay.check_out_date,
                    'propertyName': stay.property_name,
                    'roomType': stay.room_type,
                    'roomRate': stay.room_rate,
                    'totalCharges': stay.total_charges,
                    'noShow': stay.no_show,
                    'earlyCheckout': stay.early_checkout,
                    'transactionAmount': stay.total_charges,
                    'evidenceDocuments': package.evidence_ids,
                    'compellingArgument': evidence.description,
                },
                'compellingEvidence': {
                    'type': evidence.type,
                    'description': evidence.description,
                    'priorTransactions': evidence.prior_transactions,
                },
                'narrative': package.narrative,
                'autoSubmit': bool(package.auto_submit) or self.credentials.auto_submit,
                'idempotencyKey': self._generate_idempotency_key('response'),
            }

        data = self._call('POST', f'/disputes/{dispute_id}/response', json_body=payload)

        logger.info(f"✅ [MERLINK] Response submitted for dispute {dispute_id}")

        return {
            'response_id': first_present(data, 'responseId', 'id'),
            'status': data.get('status') or 'submitted',
            'message': data.get('message') or 'Response submitted successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def accept_dispute(self, dispute_id: str, outcome: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            'disputeId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'hotelId': self.credentials.hotel_id,
            'action': 'accept',
            'notes': 'Liability accepted by merchant',
            'idempotencyKey': self._generate_idempotency_key('accept'),
        }
        data = self._call('POST', f'/disputes/{dispute_id}/response', json_body=payload)

        logger.info(f"✅ [MERLINK] Dispute {dispute_id} accepted (liability acknowledged)")

        return {
            'accepted': True,
            'dispute_id': dispute_id,
            'response_id': first_present(data, 'responseId', 'id'),
            'message': data.get('message') or 'Dispute accepted',
        }

    def update_case_status(self, dispute_id: str, status: Union[DisputeStatus, str],
                           notes: str = '') -> Dict[str, Any]:
        merlink_status = self.to_portal_status(status)
        data = self._call('PATCH', f'/disputes/{dispute_id}/status', json_body={
            'status': merlink_status,
            'notes': notes,
            'updatedAt': utc_now_iso(),
            'idempotencyKey': self._generate_idempotency_key('status'),
        })

        logger.info(f"✅ [MERLINK] Case {dispute_id} status updated to {merlink_status}")

        return {
            'dispute_id': dispute_id,
            'status': merlink_status,
            'message': data.get('message') or 'Status updated',
            'timestamp': utc_now_iso(),
        }

    # Case sync

    def sync_case(self, local_case: Dict[str, Any], direction: str = 'both') -> Any:
        """
        Sync a local case record with Merlink

        Args:
            local_case: case record with processorDisputeId, caseNumber, status,
                confidenceScore, recommendation and updatedAt
            direction: 'push', 'pull' or 'both'

        Returns:
            The pulled NormalizedDispute, or {'success': True} for push only
        """
        if direction not in SYNC_DIRECTIONS:
            raise ValueError(f"Unknown sync direction: {direction}")

        dispute_id = first_present(local_case, 'processorDisputeId', 'processor_dispute_id')
        case_number = first_present(local_case, 'caseNumber', 'case_number')

        try:
            if direction in ('push', 'both'):
                status = str(first_present(local_case, 'status', default='')).upper()
                merlink_status = 'pending_review'
                if status in DisputeStatus.__members__:
                    merlink_status = STATUS_MAP_TO_MERLINK.get(DisputeStatus[status], merlink_status)
                self._call('PUT', f'/disputes/{dispute_id}', json_body={
                    'externalCaseId': case_number,
                    'status': merlink_status,
                    'confidenceScore': first_present(local_case, 'confidenceScore', 'confidence_score'),
                    'aiRecommendation': local_case.get('recommendation'),
                    'lastUpdated': first_present(local_case, 'updatedAt', 'updated_at'),
                    'idempotencyKey': self._generate_idempotency_key('sync'),
                })
                logger.info(f"⬆️ [MERLINK] Case {case_number} pushed to Merlink")

            if direction in ('pull', 'both'):
                dispute = self.get_dispute(dispute_id)
                logger.info(f"⬇️ [MERLINK] Case {case_number} pulled from Merlink")
                return dispute
        except Exception as e:
            logger.error(f"❌ [MERLINK] Failed to sync case {case_number}: {self._extract_error_message(e)}")
            raise

        return {'success': True}

    def sync_case_data(self, case_data: Dict[str, Any]) -> Dict[str, Any]:
        """Bulk sync through the /cases/sync endpoint"""
        data = self._call('POST', '/cases/sync', json_body={
            'merchantId': self.credentials.merchant_id,
            'hotelId': self.credentials.hotel_id,
            'caseData': case_data,
            'syncTimestamp': utc_now_iso(),
            'idempotencyKey': self._generate_idempotency_key('sync'),
        })

        logger.info("✅ [MERLINK] Case sync completed via /cases/sync")

        return {
            'synced': data.get('synced', True),
            'case_count': data.get('caseCount') or 1,
            'message': data.get('message') or 'Case sync completed',
        }

    # Portfolio

    def get_portfolio_stats(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Aggregated dispute stats across the portfolio, or for one property
        """
        params = params or {}
        query = {
            'portfolioId': params.get('portfolioId') or self.credentials.portfolio_id,
            'hotelId': params.get('hotelId'),
            'startDate': params.get('startDate'),
            'endDate': params.get('endDate'),
        }
        stats = self._call('GET', '/portfolio/stats', params=query)

        return {
            'portfolio_id': stats.get('portfolioId') or query['portfolioId'],
            'period': {
                'start_date': stats.get('startDate') or query['startDate'],
                'end_date': stats.get('endDate') or query['endDate'],
            },
            'total_disputes': stats.get('totalDisputes') or 0,
            'open_disputes': stats.get('openDisputes') or 0,
            'won_disputes': stats.get('wonDisputes') or 0,
            'lost_disputes': stats.get('lostDisputes') or 0,
            'win_rate': stats.get('winRate') or 0,
            'total_amount': stats.get('totalAmount') or 0,
            'recovered_amount': stats.get('recoveredAmount') or 0,
            'recovery_rate': stats.get('recoveryRate') or 0,
            'average_resolution_days': stats.get('averageResolutionDays') or 0,
            'by_property': stats.get('byProperty') or [],
            'by_reason_code': stats.get('byReasonCode') or [],
            'by_month': stats.get('byMonth') or [],
        }

    # Webhooks / health

    def _webhook_registration_payload(self, callback_url, events, webhook_secret):
        return {
            'url': callback_url,
            'events': events,
            'active': True,
            'secret': webhook_secret,
            'merchantId': self.credentials.merchant_id,
            'hotelId': self.credentials.hotel_id,
        }

    def _health_details(self) -> Dict[str, Any]:
        details = super()._health_details()
        details.update({
            'hotel_id': self.credentials.hotel_id,
            'portfolio_id': self.credentials.portfolio_id,
            'auto_submit': self.credentials.auto_submit,
            'api_version': 'v2',
        })
        return details

    def test_connection(self) -> Dict[str, Any]:
        """Health check in the {success, message, data} shape"""
        health = self.health_check()
        return {
            'success': health['healthy'],
            'message': health['message'],
            'data': health['details'],
        }

    # Normalization

    def normalize_dispute(self, raw: Dict[str, Any]) -> NormalizedDispute:
        raw = raw or {}
        reason = self.normalize_reason_code(raw.get('reasonCode') or '')
        dispute_id = first_present(raw, 'disputeId', 'id')
        masked = raw.get('maskedCardNumber') or ''

        return NormalizedDispute(
            dispute_id=str(dispute_id) if dispute_id is not None else None,
            case_number=first_present(raw, 'caseNumber', 'referenceNumber'),
            amount=self._parse_amount(first_present(raw, 'amount', 'transactionAmount', default=0)),
            currency=raw.get('currency') or 'USD',
            card_last_four=first_present(raw, 'cardLast4', 'cardLastFour', default=masked[-4:]),
            card_brand=raw.get('cardBrand') or '',
            guest_name=first_present(raw, 'guestName', 'cardholderName', default=''),
            reason_code=reason.code,
            reason_category=reason.category,
            reason_description=reason.description or raw.get('reasonDescription') or '',
            dispute_date=first_present(raw, 'disputeDate', 'createdAt'),
            due_date=first_present(raw, 'responseDeadline', 'dueDate'),
            status=self.normalize_dispute_status(raw.get('status')),
            portal_status=raw.get('status'),
            alert_type='DISPUTE',
            dispute_stage=raw.get('stage'),
            transaction_id=raw.get('transactionId') or '',
            transaction_date=raw.get('transactionDate'),
            portal_type=PortalType.MERLINK,
            extra={
                'guest_email': raw.get('guestEmail'),
                'confirmation_number': first_present(raw, 'reservationNumber', 'confirmationNumber'),
                'check_in_date': raw.get('checkInDate'),
                'check_out_date': raw.get('checkOutDate'),
                'property_id': first_present(raw, 'hotelId', 'propertyId', default=self.credentials.hotel_id),
                'property_name': first_present(raw, 'hotelName', 'propertyName'),
            },
            raw_data=raw,
        )

    def normalize_reason_code(self, code: Any) -> ReasonCodeEntry:
        """
        Visa ``NN.N`` codes by prefix, Mastercard 48xx codes by range, else passthrough
        """
        if not code:
            return ReasonCodeEntry.unknown()

        normalized = str(code).strip()
        recommended = recommended_hotel_evidence(normalized)

        if VISA_CODE_PATTERN.match(normalized):
            for prefix, category, label in VISA_PREFIX_CATEGORIES:
                if normalized.startswith(prefix):
                    return ReasonCodeEntry(code=normalized, category=category,
                                           description=f"{label} - Code {normalized}",
                                           recommended_evidence_types=recommended)

        if normalized.isdigit() and 4800 <= int(normalized) < 4900:
            known = MASTERCARD_REASON_CODES.get(normalized)
            return ReasonCodeEntry(
                code=normalized,
                category=ReasonCategory.FRAUD if normalized == '4837' else ReasonCategory.CONSUMER_DISPUTE,
                description=known.description if known else f"Mastercard Dispute - Code {normalized}",
                recommended_evidence_types=recommended,
            )

        return ReasonCodeEntry(code=normalized, category=ReasonCategory.UNKNOWN,
                               description=str(code), recommended_evidence_types=recommended)
