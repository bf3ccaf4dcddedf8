"""
Discover Dispute Adapter

Full dispute lifecycle through Discover's Dispute API: retrievals
(pre-chargeback information requests), chargebacks, representment,
pre-arbitration and arbitration. Fraud disputes can be enriched with
ProtectBuy (Discover 3-D Secure) authentication data.

Discover reason codes are two letters with an optional numeric suffix
(AA ... UA12). Response deadlines are reconstructed locally from the
dispute date and stage when the portal does not send one.

Auth: X-Discover-API-Key, merchant id and acquirer BIN headers.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Any, Optional, Union

from adapters.base_adapter import BaseDisputeAdapter, first_present, utc_now_iso
from adapters.exceptions import DisputePortalError, PortalRequestError
from models.credentials import DiscoverCredentials
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

logger = get_logger('adapters.discover')


class DisputeStage(str, Enum):
    RETRIEVAL = 'retrieval'
    FIRST_CHARGEBACK = 'first_chargeback'
    REPRESENTMENT = 'representment'
    PRE_ARBITRATION = 'pre_arbitration'
    ARBITRATION = 'arbitration'


STANDARD_RESPONSE_DAYS = 30

# Stages whose window differs from the standard 30 days
STAGE_RESPONSE_DAYS = {
    DisputeStage.RETRIEVAL.value: 20,
    DisputeStage.PRE_ARBITRATION.value: 30,
    DisputeStage.ARBITRATION.value: 10,
}


def _code(code, category, description, *evidence_types) -> ReasonCodeEntry:
    return ReasonCodeEntry(code=code, category=category, description=description,
                           recommended_evidence_types=list(evidence_types))


DISCOVER_REASON_CODES: Dict[str, ReasonCodeEntry] = {
    entry.code: entry for entry in (
        _code('AA', ReasonCategory.AUTHORIZATION, 'Does Not Recognize',
              'signed_receipt', 'guest_registration_card', 'check_in_proof',
              'id_verification', 'avs_cvv_match', 'device_fingerprint'),
        _code('AP', ReasonCategory.PROCESSING_ERROR, 'Cancelled Recurring Transaction',
              'recurring_agreement', 'cancellation_policy', 'terms_and_conditions',
              'proof_of_cancellation_absence', 'signed_agreement'),
        _code('AW', ReasonCategory.AUTHORIZATION, 'Altered Amount',
              'signed_receipt', 'folio', 'itemized_charges', 'authorization_amount_proof'),
        _code('CD', ReasonCategory.PROCESSING_ERROR, 'Credit/Debit Posted Incorrectly',
              'transaction_receipt', 'processing_records', 'settlement_report'),
        _code('DA', ReasonCategory.AUTHORIZATION, 'Declined Authorization',
              'authorization_approval_code', 'authorization_log', 'transaction_receipt'),
        _code('DP', ReasonCategory.PROCESSING_ERROR, 'Duplicate Processing',
              'transaction_log', 'unique_transaction_ids', 'batch_settlement_report',
              'separate_service_proof'),
        _code('EX', ReasonCategory.PROCESSING_ERROR, 'Expired Card',
              'authorization_approval_code', 'valid_date_verification'),
        _code('FR', ReasonCategory.FRAUD, 'Fraud',
              'signed_receipt', 'chip_read_log', 'avs_cvv_match', 'protectbuy_authentication',
              'device_fingerprint', 'ip_address_log', 'id_verification',
              'prior_undisputed_transactions'),
        _code('IN', ReasonCategory.CONSUMER_DISPUTE, 'Not Classified (Inquiry/Notification)',
              'transaction_receipt', 'folio', 'guest_correspondence'),
        _code('LP', ReasonCategory.PROCESSING_ERROR, 'Late Presentment',
              'authorization_date_proof', 'transaction_date_proof', 'delayed_charge_disclosure'),
        _code('NA', ReasonCategory.AUTHORIZATION, 'No Authorization',
              'authorization_approval_code', 'authorization_log', 'transaction_receipt'),
        _code('NC', ReasonCategory.CONSUMER_DISPUTE, 'Not Received',
              'proof_of_delivery', 'check_in_confirmation', 'folio',
              'guest_registration_card', 'key_card_access_log', 'id_verification'),
        _code('NF', ReasonCategory.CONSUMER_DISPUTE, 'Not as Described / Defective',
              'service_description', 'booking_confirmation', 'folio',
              'guest_correspondence', 'terms_accepted', 'property_photos'),
        _code('PM', ReasonCategory.CONSUMER_DISPUTE, 'Paid by Other Means',
              'transaction_log', 'unique_transaction_ids', 'proof_of_separate_charges'),
        _code('RG', ReasonCategory.CONSUMER_DISPUTE, 'Non-Receipt of Goods or Services',
              'proof_of_delivery', 'check_in_confirmation', 'signed_registration_card',
              'key_card_access_log', 'folio'),
        _code('RM', ReasonCategory.CONSUMER_DISPUTE, 'Quality Discrepancy',
              'service_description', 'booking_confirmation', 'folio',
              'guest_correspondence', 'terms_accepted', 'quality_documentation'),
        _code('RN', ReasonCategory.CONSUMER_DISPUTE, 'Credit Not Received',
              'refund_policy', 'terms_and_conditions', 'no_refund_entitlement',
              'credit_issued_proof', 'cancellation_policy'),
        _code('UA01', ReasonCategory.FRAUD, 'Fraud - Card Present',
              'signed_receipt', 'chip_read_log', 'pin_validation',
              'id_verification', 'surveillance_footage'),
        _code('UA02', ReasonCategory.FRAUD, 'Fraud - Card Not Present',
              'avs_cvv_match', 'protectbuy_authentication', 'delivery_confirmation',
              'device_fingerprint', 'ip_address_match', 'prior_undisputed_transactions'),
        _code('UA05', ReasonCategory.FRAUD, 'Fraud - Counterfeit Chip Transaction',
              'emv_chip_transaction_log', 'terminal_capability_certificate'),
        _code('UA06', ReasonCategory.FRAUD, 'Fraud - Chip-and-PIN Liability Shift',
              'emv_chip_transaction_log', 'pin_validation_log', 'terminal_capability_certificate'),
        _code('UA10', ReasonCategory.AUTHORIZATION, 'Request for Copy of Sales Draft',
              'signed_receipt', 'folio', 'transaction_receipt'),
        _code('UA11', ReasonCategory.CONSUMER_DISPUTE, 'Cardholder Claims Cancellation',
              'cancellation_policy', 'no_show_documentation', 'terms_accepted',
              'reservation_confirmation', 'guest_folio', 'booking_confirmation'),
        _code('UA12', ReasonCategory.CONSUMER_DISPUTE,
              'Non-Receipt of Cash from ATM / Goods/Services Not Received',
              'proof_of_delivery', 'check_in_confirmation', 'folio',
              'guest_registration_card', 'key_card_access_log'),
    )
}

PROTECT_BUY_REASON_CODES = ('FR', 'UA01', 'UA02')

STATUS_MAP_FROM_DISCOVER = {
    'new': DisputeStatus.PENDING,
    'open': DisputeStatus.PENDING,
    'pending_merchant_response': DisputeStatus.PENDING,
    'retrieval_pending': DisputeStatus.PENDING,
    'under_review': DisputeStatus.IN_REVIEW,
    'issuer_review': DisputeStatus.IN_REVIEW,
    'pre_arbitration_pending': DisputeStatus.IN_REVIEW,
    'evidence_submitted': DisputeStatus.SUBMITTED,
    'representment_filed': DisputeStatus.SUBMITTED,
    'response_submitted': DisputeStatus.SUBMITTED,
    'merchant_won': DisputeStatus.WON,
    'representment_accepted': DisputeStatus.WON,
    'chargeback_reversed': DisputeStatus.WON,
    'merchant_lost': DisputeStatus.LOST,
    'representment_declined': DisputeStatus.LOST,
    'chargeback_upheld': DisputeStatus.LOST,
    'expired': DisputeStatus.EXPIRED,
    'closed': DisputeStatus.RESOLVED,
    'accepted_by_merchant': DisputeStatus.RESOLVED,
}

STATUS_MAP_TO_DISCOVER = {
    DisputeStatus.PENDING: 'open',
    DisputeStatus.IN_REVIEW: 'under_review',
    DisputeStatus.SUBMITTED: 'representment_filed',
    DisputeStatus.WON: 'merchant_won',
    DisputeStatus.LOST: 'merchant_lost',
    DisputeStatus.EXPIRED: 'expired',
    DisputeStatus.RESOLVED: 'closed',
}

WEBHOOK_EVENTS = (
    'retrieval.created',
    'retrieval.updated',
    'chargeback.created',
    'chargeback.updated',
    'chargeback.status_changed',
    'representment.accepted',
    'representment.declined',
    'pre_arbitration.initiated',
    'arbitration.initiated',
)

DEFAULT_EVIDENCE_INSTRUCTIONS = {
    'AA': 'Provide proof the cardholder recognizes this transaction: signed registration card, '
          'check-in confirmation, booking confirmation email sent to cardholder, '
          'guest folio, and ID verification records.',
    'AP': 'Provide signed recurring billing agreement with cancellation terms, '
          'proof that no cancellation request was received prior to the charge, '
          'and the terms and conditions accepted by the cardholder.',
    'FR': 'Provide compelling evidence for fraud dispute: signed receipt, chip read log, '
          'AVS/CVV match, ProtectBuy (3DS) authentication data, device fingerprint, '
          'and prior undisputed transactions.',
    'NC': 'Provide proof the cardholder received the services: check-in confirmation, '
          'signed registration card, key card access logs, room folio, and ID verification.',
    'NF': 'Provide booking confirmation showing services as advertised, guest folio, '
          'property photos, terms accepted at booking, and any guest correspondence.',
    'RN': 'Provide refund policy accepted by cardholder, proof no cancellation was received, '
          'or proof that a credit has already been processed.',
    'UA02': 'Provide compelling evidence for card-not-present fraud: AVS/CVV match data, '
            'ProtectBuy (3DS) authentication, delivery confirmation, device fingerprint, '
            'IP address logs, and prior undisputed transactions.',
    'UA11': 'Provide cancellation policy accepted at booking, no-show documentation, '
            'reservation confirmation with terms, and guest folio. '
            'Discover requires proof the cancellation policy was clearly communicated.',
}

GENERIC_EVIDENCE_INSTRUCTIONS = (
    'Submit all available evidence including guest folio, signed registration, '
    'booking confirmation, authorization records, and ProtectBuy data if applicable. '
    'Discover requires responses within 30 days of the dispute date.'
)


def _parse_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_response_deadline(dispute_date: Any, stage: Optional[str]) -> str:
    """
    Response deadline as an ISO timestamp: dispute date plus the stage's window

    Retrievals get 20 days, arbitration 10, everything else 30. A missing or
    unparseable dispute date counts from now.
    """
    base = _parse_date(dispute_date) or datetime.now(timezone.utc)
    days = STANDARD_RESPONSE_DAYS
    if stage in STAGE_RESPONSE_DAYS:
        days = STAGE_RESPONSE_DAYS[stage]
    return (base + timedelta(days=days)).isoformat()


class DiscoverDisputeAdapter(BaseDisputeAdapter):
    """
    Two-way integration with Discover's merchant dispute API
    """

    portal_type = PortalType.DISCOVER
    portal_label = 'Discover'
    default_base_url = 'https://api.discover.com'
    credentials_model = DiscoverCredentials
    health_path = '/api/v1/health'
    webhook_path = '/api/v1/webhooks'
    webhook_events = WEBHOOK_EVENTS
    webhook_header_prefix = 'x-discover'
    webhook_dispute_id_keys = ('caseId', 'disputeId', 'retrievalId')
    webhook_data_keys = ('payload', 'data')
    status_map_in = STATUS_MAP_FROM_DISCOVER
    status_map_out = STATUS_MAP_TO_DISCOVER

    def _auth_headers(self) -> Dict[str, Optional[str]]:
        return {
            'X-Discover-API-Key': self._secret('api_key'),
            'X-Merchant-ID': self.credentials.merchant_id,
            'X-Acquirer-BIN': self.credentials.acquirer_bin,
            'X-ProtectBuy-MID': self.credentials.protect_buy_mid,
        }

    def authenticate(self) -> Dict[str, Any]:
        """
        Validate credentials against the merchant profile endpoint

        Raises:
            PortalRequestError: the portal rejected the credentials
        """
        merchant_id = self.credentials.merchant_id
        logger.info(f"🔐 [DISCOVER] Authenticating merchant {merchant_id}")

        try:
            profile = self._call('GET', '/api/v1/merchant/profile', params={'merchantId': merchant_id})
        except PortalRequestError as e:
            logger.error(f"❌ [DISCOVER] Authentication failed: {e.message}")
            raise PortalRequestError(
                f"Discover authentication failed: {e.message}", self.tag,
                status_code=e.status_code, retryable=e.retryable, attempts=e.attempts
            ) from e

        logger.info(f"✅ [DISCOVER] Authentication successful for merchant {merchant_id}")

        return {
            'authenticated': True,
            'merchant_id': merchant_id,
            'acquirer_bin': self.credentials.acquirer_bin,
            'merchant_name': profile.get('merchantName') or '',
            'protect_buy_enabled': bool(profile.get('protectBuyEnabled')),
            'api_version': 'v1',
        }

    # Inbound

    def receive_dispute(self, payload: Dict[str, Any]) -> NormalizedDispute:
        """
        Normalize a retrieval, chargeback or pre-arbitration case

        Adds ProtectBuy authentication data when a ProtectBuy merchant id is
        configured, and a locally computed deadline when none was sent.
        """
        payload = payload or {}
        logger.info(f"📥 [DISCOVER] Receiving dispute: "
                    f"{first_present(payload, 'caseId', 'disputeId', 'retrievalId', default='unknown')}")

        dispute = self.normalize_dispute(payload)

        if self.credentials.protect_buy_mid and dispute.transaction_id:
            protect_buy = self._lookup_protect_buy_data(dispute.transaction_id)
            if protect_buy:
                enrichment = {
                    'protect_buy_status': 'available',
                    'protect_buy_data': protect_buy,
                    'protect_buy_authenticated': protect_buy['authentication_status'] == 'authenticated',
                }
            else:
                enrichment = {'protect_buy_status': 'unavailable'}
            dispute = dispute.model_copy(update={'extra': {**dispute.extra, **enrichment}})

        if not dispute.due_date:
            dispute = dispute.model_copy(update={'due_date': calculate_response_deadline(
                dispute.dispute_date, dispute.dispute_stage
            )})

        logger.info(f"✅ [DISCOVER] Dispute normalized: {dispute.dispute_id} | Stage: {dispute.dispute_stage} "
                    f"| Reason: {dispute.reason_code} | Due: {dispute.due_date}")
        return dispute

    def get_dispute_status(self, dispute_id: str) -> Dict[str, Any]:
        data = self._call('GET', f'/api/v1/disputes/{dispute_id}')
        portal_status = first_present(data, 'status', 'caseStatus')
        return {
            'dispute_id': dispute_id,
            'status': self.normalize_dispute_status(portal_status),
            'portal_status': portal_status,
            'stage': first_present(data, 'stage', 'disputeStage', default=DisputeStage.FIRST_CHARGEBACK.value),
            'last_updated': first_present(data, 'lastModifiedDate', 'updatedAt'),
            'notes': first_present(data, 'statusNotes', 'notes', default=''),
            'outcome': data.get('outcome'),
            'outcome_date': data.get('resolutionDate'),
            'financial_impact': data.get('financialImpact'),
            'issuer_response': data.get('issuerResponseDescription'),
            'days_remaining': data.get('daysRemaining'),
        }

    def get_evidence_requirements(self, dispute_id: str) -> Dict[str, Any]:
        dispute = self._call('GET', f'/api/v1/disputes/{dispute_id}')
        reason_code = first_present(dispute, 'reasonCode', 'chargebackReasonCode')
        reason = self.normalize_reason_code(reason_code)
        stage = dispute.get('stage') or DisputeStage.FIRST_CHARGEBACK.value

        portal_required = dispute.get('requiredDocumentTypes') or []
        recommended = list(reason.recommended_evidence_types)

        return {
            'dispute_id': dispute_id,
            'required_types': self._merge_evidence_types(portal_required, recommended),
            'portal_required_types': portal_required,
            'recommended_types': recommended,
            'deadline': first_present(dispute, 'responseDeadline', 'dueDate'),
            'deadline_days': STAGE_RESPONSE_DAYS.get(stage, STANDARD_RESPONSE_DAYS),
            'instructions': dispute.get('evidenceInstructions')
            or DEFAULT_EVIDENCE_INSTRUCTIONS.get(reason.code, GENERIC_EVIDENCE_INSTRUCTIONS),
            'reason_code': reason_code,
            'reason_category': reason.category,
            'stage': stage,
            'is_retrieval': stage == DisputeStage.RETRIEVAL.value or bool(dispute.get('retrievalId')),
            'protect_buy_relevant': reason.code in PROTECT_BUY_REASON_CODES,
        }

    def list_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Page through disputes; filters by date range, status, stage and reason code
        """
        params = params or {}
        query = {
            'startDate': params.get('since'),
            'endDate': params.get('until'),
            'status': params.get('status'),
            'stage': params.get('stage'),
            'reasonCode': params.get('reasonCode') or params.get('reason_code'),
            'merchantId': self.credentials.merchant_id,
            'page': params.get('page') or 1,
            'pageSize': min(int(params.get('limit') or 50), 100),
        }
        data = self._call('GET', '/api/v1/disputes', params=query)

        disputes = first_present(data, 'disputes', 'cases', 'data', default=[])
        page = first_present(data, 'currentPage', 'page', default=query['page'])
        total_pages = data.get('totalPages')

        return {
            'disputes': [self.normalize_dispute(item) for item in disputes],
            'total_count': first_present(data, 'totalCount', 'totalRecords', default=len(disputes)),
            'has_more': bool(data.get('hasMore')) or (total_pages is not None and page < total_pages),
            'page': page,
        }

    def fetch_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.list_disputes(params)

    # Outbound

    def submit_evidence(self, dispute_id: str,
                        evidence: Union[EvidencePackage, Dict[str, Any]]) -> Dict[str, Any]:
        evidence = as_evidence_package(evidence)
        metadata = evidence.metadata

        payload = {
            'caseId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'evidenceCategory': metadata.evidence_category or 'merchant_evidence',
            'documents': [
                {
                    'documentType': file.type or 'supporting_document',
                    'documentCategory': file.category or 'evidence',
                    'fileName': file.file_name,
                    'mimeType': file.mime_type or 'application/pdf',
                    'fileContent': file.encoded_data(),
                    'description': file.description or f"Evidence document {index + 1}",
                    'pageCount': file.page_count or 1,
                }
                for index, file in enumerate(evidence.files)
            ],
            'transactionDetails': {
                'cardholderName': metadata.guest_name,
                'confirmationNumber': metadata.confirmation_number,
                'checkInDate': metadata.check_in_date,
                'checkOutDate': metadata.check_out_date,
                'transactionAmount': metadata.transaction_amount,
                'transactionDate': metadata.transaction_date,
                'transactionId': metadata.transaction_id,
                'authorizationCode': metadata.authorization_code,
            },
            'protectBuyData': metadata.protect_buy_data,
            'merchantNotes': metadata.notes,
            'idempotencyKey': self._generate_idempotency_key('discover_evidence'),
        }

        data = self._call('POST', f'/api/v1/disputes/{dispute_id}/documents', json_body=payload)
        submission_id = first_present(data, 'submissionId', 'id')

        logger.info(f"✅ [DISCOVER] Evidence submitted for case {dispute_id}: {submission_id or 'OK'}")

        return {
            'submission_id': submission_id,
            'status': data.get('status') or 'submitted',
            'message': data.get('message') or 'Evidence submitted successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def push_response(self, dispute_id: str,
                      response: Union[ResponsePackage, Dict[str, Any]]) -> Dict[str, Any]:
        """File a representment at the package's stage (representment by default)"""
        response = as_response_package(response)
        guest, stay, evidence = response.guest_details, response.stay_details, response.compelling_evidence
        stage = response.stage or DisputeStage.REPRESENTMENT.value

        payload = {
            'caseId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'responseType': response.representment_type,
            'disputeStage': stage,
            'compellingEvidence': {
                'type': evidence.type,
                'description': evidence.description,
                'protectBuyAuthentication': evidence.protect_buy_data,
                'priorUndisputedTransactions': evidence.prior_transactions,
                'deviceFingerprint': evidence.device_fingerprint,
                'ipAddress': evidence.ip_address,
            },
            'guestDetails': {
                'cardholderName': guest.name,
                'email': guest.email,
                'phone': guest.phone,
                'loyaltyNumber': guest.loyalty_number,
            },
            'stayDetails': {
                'propertyName': stay.property_name,
                'confirmationNumber': stay.confirmation_number,
                'checkInDate': stay.check_in_date,
                'checkOutDate': stay.check_out_date,
                'roomType': stay.room_type,
                'roomRate': stay.room_rate,
                'totalCharges': stay.total_charges,
                'noShow': stay.no_show,
                'earlyCheckout': stay.early_checkout,
                'folioNumber': stay.folio_number,
            },
            'documentIds': response.evidence_ids,
            'merchantNarrative': response.narrative,
            'idempotencyKey': self._generate_idempotency_key('discover_response'),
        }

        data = self._call('POST', f'/api/v1/disputes/{dispute_id}/respond', json_body=payload)

        logger.info(f"✅ [DISCOVER] Representment filed for case {dispute_id} (stage: {stage})")

        return {
            'response_id': first_present(data, 'responseId', 'representmentId', 'id'),
            'status': data.get('status') or 'filed',
            'stage': stage,
            'message': data.get('message') or 'Representment filed successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def accept_dispute(self, dispute_id: str, outcome: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            'caseId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'action': 'accept_liability',
            'merchantNotes': 'Liability accepted by merchant',
            'idempotencyKey': self._generate_idempotency_key('discover_accept'),
        }
        data = self._call('POST', f'/api/v1/disputes/{dispute_id}/accept', json_body=payload)

        logger.info(f"✅ [DISCOVER] Dispute {dispute_id} accepted (liability acknowledged)")

        return {
            'accepted': True,
            'dispute_id': dispute_id,
            'response_id': first_present(data, 'responseId', 'id'),
            'message': data.get('message') or 'Dispute liability accepted',
        }

    def update_case_status(self, dispute_id: str, status: Union[DisputeStatus, str],
                           notes: str = '') -> Dict[str, Any]:
        discover_status = self.to_portal_status(status)
        data = self._call('POST', f'/api/v1/disputes/{dispute_id}/status', json_body={
            'caseId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'status': discover_status,
            'notes': notes,
            'updatedAt': utc_now_iso(),
            'idempotencyKey': self._generate_idempotency_key('discover_status'),
        })

        logger.info(f"✅ [DISCOVER] Case {dispute_id} status updated to {discover_status}")

        return {
            'dispute_id': dispute_id,
            'status': discover_status,
            'message': data.get('message') or 'Status updated',
            'timestamp': utc_now_iso(),
        }

    # Retrievals

    def respond_to_retrieval(self, retrieval_id: str, retrieval: Dict[str, Any]) -> Dict[str, Any]:
        """
        Answer a retrieval request; a good answer can stop it becoming a chargeback
        """
        payload = {
            'retrievalId': retrieval_id,
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'responseType': 'retrieval_response',
            'transactionDetails': {
                'cardholderName': retrieval.get('guestName'),
                'confirmationNumber': retrieval.get('confirmationNumber'),
                'checkInDate': retrieval.get('checkInDate'),
                'checkOutDate': retrieval.get('checkOutDate'),
                'transactionAmount': retrieval.get('transactionAmount'),
                'transactionDate': retrieval.get('transactionDate'),
                'authorizationCode': retrieval.get('authorizationCode'),
                'merchantDescriptor': retrieval.get('merchantDescriptor') or '',
                'itemizedCharges': retrieval.get('itemizedCharges') or [],
                'folioNumber': retrieval.get('folioNumber'),
            },
            'documentIds': retrieval.get('evidenceIds') or [],
            'merchantExplanation': retrieval.get('explanation') or '',
            'creditOffered': bool(retrieval.get('creditOffered')),
            'creditAmount': retrieval.get('creditAmount'),
            'idempotencyKey': self._generate_idempotency_key('discover_retrieval'),
        }

        data = self._call('POST', f'/api/v1/retrievals/{retrieval_id}/respond', json_body=payload)

        logger.info(f"✅ [DISCOVER] Retrieval {retrieval_id} responded "
                    f"(credit offered: {payload['creditOffered']})")

        return {
            'response_id': first_present(data, 'responseId', 'id'),
            'status': data.get('status') or 'responded',
            'message': data.get('message') or 'Retrieval response submitted',
            'prevented_chargeback': bool(data.get('preventedChargeback')),
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def fetch_retrievals(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = params or {}
        query = {
            'startDate': params.get('since'),
            'endDate': params.get('until'),
            'status': params.get('status') or 'pending',
            'merchantId': self.credentials.merchant_id,
            'page': params.get('page') or 1,
            'pageSize': min(int(params.get('limit') or 50), 100),
        }
        data = self._call('GET', '/api/v1/retrievals', params=query)
        retrievals = first_present(data, 'retrievals', 'data', default=[])

        return {
            'retrievals': [self._normalize_retrieval(item) for item in retrievals],
            'total_count': data.get('totalCount') or len(retrievals),
            'has_more': bool(data.get('hasMore')),
            'page': data.get('page') or query['page'],
        }

    def _normalize_retrieval(self, retrieval: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'retrieval_id': first_present(retrieval, 'retrievalId', 'id'),
            'case_number': retrieval.get('caseNumber'),
            'status': retrieval.get('status') or 'pending',
            'retrieval_date': first_present(retrieval, 'retrievalDate', 'createdAt'),
            'response_deadline': retrieval.get('responseDeadline') or calculate_response_deadline(
                first_present(retrieval, 'retrievalDate', 'createdAt'), DisputeStage.RETRIEVAL.value
            ),
            'transaction_id': retrieval.get('transactionId') or '',
            'transaction_date': retrieval.get('transactionDate') or '',
            'transaction_amount': self._parse_amount(first_present(retrieval, 'transactionAmount', 'amount')),
            'currency': retrieval.get('currency') or 'USD',
            'card_last_four': first_present(retrieval, 'cardLastFour', 'cardLast4', default=''),
            'cardholder_name': retrieval.get('cardholderName') or '',
            'reason_code': retrieval.get('reasonCode') or '',
            'merchant_descriptor': retrieval.get('merchantDescriptor') or '',
            'issuer_name': retrieval.get('issuerName') or '',
            'request_type': retrieval.get('requestType') or 'copy_request',
            'raw_data': retrieval,
        }

    # Pre-arbitration

    def respond_to_pre_arbitration(self, dispute_id: str, pre_arb: Dict[str, Any]) -> Dict[str, Any]:
        """Contest (or accept) a pre-arbitration case after a declined representment"""
        action = pre_arb.get('action') or 'contest'
        payload = {
            'caseId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'stage': DisputeStage.PRE_ARBITRATION.value,
            'action': action,
            'preArbitrationReason': pre_arb.get('reason') or '',
            'additionalDocumentIds': pre_arb.get('evidenceIds') or [],
            'merchantNarrative': pre_arb.get('narrative') or '',
            'escalateToArbitration': bool(pre_arb.get('escalateToArbitration')),
            'idempotencyKey': self._generate_idempotency_key('discover_prearb'),
        }

        data = self._call('POST', f'/api/v1/disputes/{dispute_id}/pre-arbitration', json_body=payload)

        logger.info(f"✅ [DISCOVER] Pre-arbitration response filed for case {dispute_id} (action: {action})")

        return {
            'response_id': first_present(data, 'responseId', 'id'),
            'status': data.get('status') or 'filed',
            'stage': DisputeStage.PRE_ARBITRATION.value,
            'message': data.get('message') or 'Pre-arbitration response filed',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    # ProtectBuy

    def _lookup_protect_buy_data(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """
        ProtectBuy 3-D Secure data for a transaction, or None when unavailable
        """
        if not self.credentials.protect_buy_mid:
            return None

        try:
            data = self._call('GET', f'/api/v1/protectbuy/transactions/{transaction_id}', params={
                'merchantId': self.credentials.merchant_id,
                'protectBuyMID': self.credentials.protect_buy_mid,
            })
        except DisputePortalError as e:
            logger.warning(f"⚠️ [DISCOVER] ProtectBuy lookup failed for {transaction_id}: "
                           f"{self._extract_error_message(e)}")
            return None

        return {
            'transaction_id': transaction_id,
            'authentication_status': data.get('authenticationStatus') or 'unknown',
            'eci': data.get('eci') or '',
            'cavv': data.get('cavv') or '',
            'xid': data.get('xid') or '',
            'ds_transaction_id': data.get('dsTransactionId') or '',
            'three_ds_version': data.get('threeDSVersion') or '2.0',
            'authentication_date': data.get('authenticationDate'),
            'liability_shift': bool(data.get('liabilityShift')),
            'protect_buy_indicator': data.get('protectBuyIndicator') or '',
        }

    # Webhooks / health

    def _webhook_registration_payload(self, callback_url, events, webhook_secret):
        return {
            'merchantId': self.credentials.merchant_id,
            'acquirerBIN': self.credentials.acquirer_bin,
            'callbackUrl': callback_url,
            'events': events,
            'active': True,
            'hmacSecret': webhook_secret,
            'format': 'json',
            'apiVersion': 'v1',
        }

    def _health_details(self) -> Dict[str, Any]:
        details = super()._health_details()
        details.update({
            'acquirer_bin': self.credentials.acquirer_bin,
            'protect_buy_enabled': bool(self.credentials.protect_buy_mid),
            'api_version': 'v1',
        })
        return details

    # Normalization

    def normalize_dispute(self, raw: Dict[str, Any]) -> NormalizedDispute:
        raw = raw or {}
        reason = self.normalize_reason_code(first_present(raw, 'reasonCode', 'chargebackReasonCode', default=''))
        portal_status = first_present(raw, 'status', 'caseStatus')
        masked = raw.get('maskedPAN') or ''
        dispute_id = first_present(raw, 'caseId', 'disputeId', 'retrievalId', 'id')

        if raw.get('retrievalId') or raw.get('stage') == DisputeStage.RETRIEVAL.value:
            stage = DisputeStage.RETRIEVAL.value
        else:
            stage = raw.get('stage') or DisputeStage.FIRST_CHARGEBACK.value
        is_retrieval = stage == DisputeStage.RETRIEVAL.value

        return NormalizedDispute(
            dispute_id=str(dispute_id) if dispute_id is not None else None,
            case_number=first_present(raw, 'caseNumber', 'referenceNumber'),
            amount=self._parse_amount(first_present(raw, 'amount', 'disputeAmount', 'transactionAmount', default=0)),
            currency=first_present(raw, 'currency', 'transactionCurrency', default='USD'),
            card_last_four=first_present(raw, 'cardLastFour', 'cardLast4', default=masked[-4:]),
            card_brand='DISCOVER',
            guest_name=first_present(raw, 'cardholderName', 'guestName', default=''),
            reason_code=reason.code,
            reason_category=reason.category,
            reason_description=reason.description,
            dispute_date=first_present(raw, 'disputeDate', 'chargebackDate', 'retrievalDate', 'createdAt'),
            due_date=first_present(raw, 'responseDeadline', 'dueDate'),
            status=self.normalize_dispute_status(portal_status),
            portal_status=portal_status,
            dispute_stage=stage,
            alert_type='RETRIEVAL' if is_retrieval else 'CHARGEBACK',
            is_pre_chargeback=is_retrieval,
            transaction_id=first_present(raw, 'transactionId', 'networkReferenceNumber', default=''),
            transaction_date=raw.get('transactionDate'),
            merchant_descriptor=raw.get('merchantDescriptor') or '',
            issuer_name=raw.get('issuerName'),
            portal_type=PortalType.DISCOVER,
            extra={
                'authorization_code': first_present(raw, 'authorizationCode', 'approvalCode', default=''),
                'network_reference_number': first_present(raw, 'networkReferenceNumber', 'nrn', default=''),
                'protect_buy_authenticated': bool(raw.get('protectBuyAuthenticated')),
            },
            raw_data=raw,
        )

    def normalize_reason_code(self, code: Any) -> ReasonCodeEntry:
        """
        Exact table, then prefix heuristics: UA* and F* fraud, A* authorization
        """
        if not code:
            return ReasonCodeEntry.unknown()

        normalized = str(code).strip().upper()
        known = DISCOVER_REASON_CODES.get(normalized)
        if known:
            return known

        if normalized.startswith('UA'):
            return ReasonCodeEntry(code=normalized, category=ReasonCategory.FRAUD,
                                   description=f"Discover Fraud/Auth - Code {normalized}")
        if normalized.startswith('F'):
            return ReasonCodeEntry(code=normalized, category=ReasonCategory.FRAUD,
                                   description=f"Discover Fraud - Code {normalized}")
        if normalized.startswith('A'):
            return ReasonCodeEntry(code=normalized, category=ReasonCategory.AUTHORIZATION,
                                   description=f"Discover Authorization - Code {normalized}")

        return ReasonCodeEntry(code=normalized, category=ReasonCategory.UNKNOWN,
                               description=f"Discover Reason Code {normalized}")
