"""
Ethoca Adapter (Mastercard Alerts / Consumer Clarity / Eliminator)

Ethoca alerts reach the merchant through the issuer collaboration network
with a short window to refund and prevent a formal chargeback. Consumer
Clarity shares reservation details with issuers during cardholder inquiries;
Eliminator resolves disputes automatically when the merchant's transaction
data matches the issuer's claim.

Auth: API key and merchant id headers.
"""
from enum import Enum
from typing import Dict, Any, Optional, Union

from adapters.base_adapter import BaseDisputeAdapter, first_present, utc_now_iso
from models.credentials import EthocaCredentials
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

logger = get_logger('adapters.ethoca')


class AlertOutcome(str, Enum):
    """How the merchant resolves an Ethoca alert"""
    REFUND = 'refund'
    STOP_RECURRING = 'stop_recurring'
    ALREADY_REFUNDED = 'already_refunded'
    NO_ACTION = 'no_action'
    FIGHT = 'fight'


MASTERCARD_REASON_CODES: Dict[str, ReasonCodeEntry] = {
    entry.code: entry for entry in (
        ReasonCodeEntry(code='4837', category=ReasonCategory.FRAUD,
                        description='No Cardholder Authorization',
                        recommended_evidence_types=['signed_receipt', 'chip_read_log', 'avs_cvv_match',
                                                    'id_verification', 'device_fingerprint',
                                                    'ip_address_log']),
        ReasonCodeEntry(code='4853', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Cardholder Dispute - Not as Described or Defective',
                        recommended_evidence_types=['service_description', 'terms_accepted',
                                                    'guest_correspondence', 'folio',
                                                    'booking_confirmation', 'quality_documentation']),
        ReasonCodeEntry(code='4855', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Goods or Services Not Provided',
                        recommended_evidence_types=['proof_of_delivery', 'check_in_confirmation', 'folio',
                                                    'guest_registration_card', 'key_card_access_log',
                                                    'id_verification']),
        ReasonCodeEntry(code='4860', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Credit Not Processed',
                        recommended_evidence_types=['refund_policy', 'terms_and_conditions',
                                                    'no_refund_entitlement', 'credit_issued_proof',
                                                    'cancellation_policy']),
        ReasonCodeEntry(code='4863', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Cardholder Does Not Recognize Transaction',
                        recommended_evidence_types=['signed_receipt', 'booking_confirmation',
                                                    'guest_registration_card', 'folio',
                                                    'merchant_descriptor_match', 'correspondence']),
    )
}

STATUS_MAP_FROM_ETHOCA = {
    'new': DisputeStatus.PENDING,
    'open': DisputeStatus.PENDING,
    'pending': DisputeStatus.PENDING,
    'investigating': DisputeStatus.IN_REVIEW,
    'under_review': DisputeStatus.IN_REVIEW,
    'in_progress': DisputeStatus.IN_REVIEW,
    'evidence_submitted': DisputeStatus.SUBMITTED,
    'responded': DisputeStatus.SUBMITTED,
    'representment_filed': DisputeStatus.SUBMITTED,
    'won': DisputeStatus.WON,
    'merchant_won': DisputeStatus.WON,
    'resolved_merchant': DisputeStatus.WON,
    'auto_resolved': DisputeStatus.WON,
    'lost': DisputeStatus.LOST,
    'merchant_lost': DisputeStatus.LOST,
    'resolved_issuer': DisputeStatus.LOST,
    'expired': DisputeStatus.EXPIRED,
    'closed': DisputeStatus.RESOLVED,
}

STATUS_MAP_TO_ETHOCA = {
    DisputeStatus.PENDING: 'open',
    DisputeStatus.IN_REVIEW: 'investigating',
    DisputeStatus.SUBMITTED: 'responded',
    DisputeStatus.WON: 'resolved_merchant',
    DisputeStatus.LOST: 'resolved_issuer',
    DisputeStatus.EXPIRED: 'expired',
}

WEBHOOK_EVENTS = (
    'alert.new',
    'alert.updated',
    'dispute.opened',
    'dispute.closed',
    'clarity.requested',
)

DEFAULT_EVIDENCE_INSTRUCTIONS = {
    '4837': 'Provide evidence that the cardholder authorized the transaction: '
            'signed receipt, chip read log, AVS/CVV match confirmation, '
            'ID verification, or device fingerprint data.',
    '4853': 'Provide evidence that services were as described: '
            'booking confirmation showing room type and amenities, guest folio, '
            'terms accepted at booking, and any guest correspondence.',
    '4855': 'Provide proof that the guest received the hotel services: '
            'check-in confirmation, signed registration card, room folio, '
            'key card access logs, or ID verification records.',
    '4860': 'Provide evidence that a credit is not owed or has already been issued: '
            'refund policy accepted by the guest, cancellation policy terms, '
            'proof that no cancellation was received, or proof of credit already processed.',
    '4863': 'Provide evidence to help the cardholder recognize the transaction: '
            'booking confirmation with merchant name, signed registration card, '
            'folio showing the merchant descriptor, and any guest correspondence.',
}

GENERIC_EVIDENCE_INSTRUCTIONS = (
    'Submit all available evidence including guest folio, signed registration, '
    'booking confirmation, correspondence, and any other compelling documentation.'
)


def mastercard_reason_code(code: Any) -> ReasonCodeEntry:
    """
    Mastercard lookup: exact table, then the 4800-4899 dispute range, then UNKNOWN
    """
    if not code:
        return ReasonCodeEntry.unknown()

    normalized = str(code).strip()
    known = MASTERCARD_REASON_CODES.get(normalized)
    if known:
        return known

    if normalized.isdigit() and 4800 <= int(normalized) < 4900:
        return ReasonCodeEntry(code=normalized, category=ReasonCategory.CONSUMER_DISPUTE,
                               description=f"Mastercard Dispute - Code {normalized}")

    return ReasonCodeEntry(code=normalized, category=ReasonCategory.UNKNOWN,
                           description=f"Mastercard Reason Code {normalized}")


class EthocaAdapter(BaseDisputeAdapter):
    """
    Two-way integration with Mastercard's Ethoca network
    """

    portal_type = PortalType.ETHOCA
    portal_label = 'Ethoca'
    default_base_url = 'https://api.ethoca.com/v2'
    credentials_model = EthocaCredentials
    health_path = '/ping'
    webhook_path = '/webhooks'
    webhook_events = WEBHOOK_EVENTS
    webhook_header_prefix = 'x-ethoca'
    webhook_dispute_id_keys = ('alertId', 'disputeId', 'id')
    status_map_in = STATUS_MAP_FROM_ETHOCA
    status_map_out = STATUS_MAP_TO_ETHOCA

    def _auth_headers(self) -> Dict[str, Optional[str]]:
        return {
            'X-API-Key': self._secret('api_key'),
            'X-Merchant-ID': self.credentials.merchant_id,
        }

    # Inbound

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
            'issuer_name': data.get('issuerName'),
        }

    def get_evidence_requirements(self, dispute_id: str) -> Dict[str, Any]:
        dispute = self._call('GET', f'/disputes/{dispute_id}')
        reason_code = dispute.get('reasonCode')
        reason = self.normalize_reason_code(reason_code)

        portal_required = dispute.get('requiredEvidenceTypes') or []
        recommended = list(reason.recommended_evidence_types)

        return {
            'dispute_id': dispute_id,
            'required_types': self._merge_evidence_types(portal_required, recommended),
            'portal_required_types': portal_required,
            'recommended_types': recommended,
            'deadline': first_present(dispute, 'responseDeadline', 'dueDate'),
            'instructions': dispute.get('evidenceInstructions')
            or DEFAULT_EVIDENCE_INSTRUCTIONS.get(reason_code, GENERIC_EVIDENCE_INSTRUCTIONS),
            'reason_code': reason_code,
            'reason_category': reason.category,
            'issuer_name': dispute.get('issuerName'),
        }

    def fetch_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Pull a page of open alerts, at most 100 per page
        """
        params = params or {}
        query = {
            'since': params.get('since'),
            'status': params.get('status') or 'open',
            'page': params.get('page') or 1,
            'limit': min(int(params.get('limit') or 50), 100),
            'alertType': params.get('alertType') or params.get('alert_type'),
        }
        data = self._call('GET', '/alerts', params=query)

        alerts = first_present(data, 'alerts', 'data', default=[])
        page = data.get('page') or query['page']
        total_pages = data.get('totalPages')

        return {
            'disputes': [self.normalize_dispute(alert) for alert in alerts],
            'total_count': first_present(data, 'totalCount', 'total', default=len(alerts)),
            'has_more': bool(data.get('hasMore')) or (total_pages is not None and page < total_pages),
            'page': page,
        }

    def get_alert_details(self, alert_id: str) -> NormalizedDispute:
        return self.normalize_dispute(self._call('GET', f'/alerts/{alert_id}'))

    # Outbound

    def submit_evidence(self, dispute_id: str,
                        evidence: Union[EvidencePackage, Dict[str, Any]]) -> Dict[str, Any]:
        evidence = as_evidence_package(evidence)
        metadata = evidence.metadata

        payload = {
            'disputeId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'evidenceCategory': metadata.evidence_category or 'compelling_evidence',
            'documents': self._evidence_documents(evidence),
            'transactionDetails': {
                'guestName': metadata.guest_name,
                'confirmationNumber': metadata.confirmation_number,
                'checkInDate': metadata.check_in_date,
                'checkOutDate': metadata.check_out_date,
                'transactionAmount': metadata.transaction_amount,
                'transactionDate': metadata.transaction_date,
                'transactionId': metadata.transaction_id,
                'merchantDescriptor': metadata.merchant_descriptor or '',
            },
            'merchantNotes': metadata.notes,
            'idempotencyKey': self._generate_idempotency_key('evidence'),
        }

        data = self._call('POST', f'/disputes/{dispute_id}/evidence', json_body=payload)
        submission_id = first_present(data, 'submissionId', 'id')

        logger.info(f"✅ [ETHOCA] Evidence submitted for dispute {dispute_id}: {submission_id or 'OK'}")

        return {
            'submission_id': submission_id,
            'status': data.get('status') or 'submitted',
            'message': data.get('message') or 'Evidence submitted successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def push_response(self, dispute_id: str,
                      response: Union[ResponsePackage, Dict[str, Any]]) -> Dict[str, Any]:
        response = as_response_package(response)
        guest, stay, evidence = response.guest_details, response.stay_details, response.compelling_evidence

        payload = {
            'disputeId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'responseType': response.representment_type,
            'compellingEvidence': {
                'type': evidence.type,
                'description': evidence.description,
                'priorTransactions': evidence.prior_transactions,
                'deviceInfo': evidence.device_info,
            },
            'guestDetails': {
                'name': guest.name,
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
            },
            'evidenceIds': response.evidence_ids,
            'merchantNarrative': response.narrative,
            'idempotencyKey': self._generate_idempotency_key('response'),
        }

        data = self._call('POST', f'/alerts/{dispute_id}/respond', json_body=payload)

        logger.info(f"✅ [ETHOCA] Response submitted for dispute {dispute_id}")

        return {
            'response_id': first_present(data, 'responseId', 'id'),
            'status': data.get('status') or 'submitted',
            'message': data.get('message') or 'Response submitted successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def accept_dispute(self, dispute_id: str,
                       outcome: Union[AlertOutcome, str, None] = None) -> Dict[str, Any]:
        """
        Accept an alert with an outcome (refund by default), closing it before a chargeback is filed

        Raises:
            ValueError: outcome is not an AlertOutcome value
        """
        outcome = AlertOutcome(outcome or AlertOutcome.REFUND).value
        payload = {
            'alertId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'action': 'accept',
            'outcome': outcome,
            'merchantNotes': f"Liability accepted - action: {outcome}",
            'idempotencyKey': self._generate_idempotency_key('accept'),
        }
        data = self._call('POST', f'/alerts/{dispute_id}/respond', json_body=payload)

        logger.info(f"✅ [ETHOCA] Alert {dispute_id} accepted with outcome: {outcome}")

        return {
            'accepted': True,
            'dispute_id': dispute_id,
            'outcome': outcome,
            'response_id': first_present(data, 'responseId', 'id'),
            'message': data.get('message') or 'Alert accepted',
        }

    def update_case_status(self, dispute_id: str, status: Union[DisputeStatus, str],
                           notes: str = '') -> Dict[str, Any]:
        ethoca_status = self.to_portal_status(status)
        data = self._call('POST', f'/disputes/{dispute_id}/evidence', json_body={
            'disputeId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'statusUpdate': ethoca_status,
            'notes': notes,
            'updatedAt': utc_now_iso(),
            'idempotencyKey': self._generate_idempotency_key('status'),
        })

        logger.info(f"✅ [ETHOCA] Case {dispute_id} status updated to {ethoca_status}")

        return {
            'dispute_id': dispute_id,
            'status': ethoca_status,
            'message': data.get('message') or 'Status updated',
            'timestamp': utc_now_iso(),
        }

    # Consumer Clarity

    def submit_consumer_clarity(self, enrichment: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send reservation details that issuers show cardholders during an inquiry
        """
        order = enrichment.get('orderDetails') or {}
        delivery = enrichment.get('deliveryDetails') or {}
        payload = {
            'merchantId': self.credentials.merchant_id,
            'transactionId': enrichment.get('transactionId'),
            'cardLastFour': enrichment.get('cardLastFour'),
            'transactionAmount': enrichment.get('amount'),
            'transactionDate': enrichment.get('transactionDate'),
            'merchantDescriptor': enrichment.get('merchantDescriptor') or '',
            'orderDetails': {
                'orderType': 'hotel_reservation',
                'confirmationNumber': order.get('confirmationNumber'),
                'guestName': order.get('guestName'),
                'checkInDate': order.get('checkInDate'),
                'checkOutDate': order.get('checkOutDate'),
                'propertyName': order.get('propertyName'),
                'propertyAddress': order.get('propertyAddress') or '',
                'propertyPhone': order.get('propertyPhone') or '',
                'roomType': order.get('roomType') or '',
                'totalAmount': order.get('totalAmount'),
                'currency': order.get('currency') or 'USD',
                'itemizedCharges': order.get('itemizedCharges') or [],
                'cancellationPolicy': order.get('cancellationPolicy') or '',
                'bookingSource': order.get('bookingSource') or 'direct',
                'bookingDate': order.get('bookingDate'),
            },
            'deliveryDetails': {
                'serviceDelivered': delivery.get('serviceDelivered') is not False,
                'deliveryDate': delivery.get('deliveryDate') or order.get('checkInDate'),
                'guestCheckedIn': delivery.get('guestCheckedIn') is not False,
                'noShow': bool(delivery.get('noShow')),
            },
            'idempotencyKey': self._generate_idempotency_key('clarity'),
        }

        data = self._call('POST', '/clarity/enrich', json_body=payload)

        logger.info(f"✅ [ETHOCA] Consumer Clarity data submitted for transaction "
                    f"{enrichment.get('transactionId')}")

        return {
            'enrichment_id': first_present(data, 'enrichmentId', 'id'),
            'status': data.get('status') or 'accepted',
            'message': data.get('message') or 'Consumer Clarity data submitted',
        }

    def respond_to_clarity_request(self, request_id: str, enrichment: Dict[str, Any]) -> Dict[str, Any]:
        """Answer a ``clarity.requested`` webhook with enrichment data"""
        payload = {
            **enrichment,
            'requestId': request_id,
            'merchantId': self.credentials.merchant_id,
            'respondedAt': utc_now_iso(),
            'idempotencyKey': self._generate_idempotency_key('clarity'),
        }
        data = self._call('POST', f'/clarity/requests/{request_id}/respond', json_body=payload)

        logger.info(f"✅ [ETHOCA] Responded to Consumer Clarity request {request_id}")

        return {
            'request_id': request_id,
            'status': data.get('status') or 'responded',
            'message': data.get('message') or 'Clarity request responded to successfully',
        }

    # Eliminator

    def check_eliminator_eligibility(self, transaction: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ask Eliminator whether a dispute can be resolved automatically

        Failures are reported as not eligible; the check never aborts the
        primary dispute flow.
        """
        guest = transaction.get('guestDetails') or {}
        stay = transaction.get('stayDetails') or {}
        dispute_id = transaction.get('disputeId')
        payload = {
            'merchantId': self.credentials.merchant_id,
            'disputeId': dispute_id,
            'transactionId': transaction.get('transactionId'),
            'transactionAmount': transaction.get('amount'),
            'guestDetails': {
                'name': guest.get('name'),
                'email': guest.get('email'),
                'phone': guest.get('phone'),
            },
            'stayDetails': {
                'confirmationNumber': stay.get('confirmationNumber'),
                'checkInDate': stay.get('checkInDate'),
                'checkOutDate': stay.get('checkOutDate'),
                'propertyName': stay.get('propertyName'),
            },
        }

        try:
            result = self._call('POST', '/eliminator/check', json_body=payload)
        except Exception as e:
            message = self._extract_error_message(e)
            logger.warning(f"⚠️ [ETHOCA] Eliminator check failed for dispute {dispute_id}: {message}")
            return {
                'eligible': False,
                'eliminator_id': None,
                'action': None,
                'message': f"Eliminator check failed: {message}",
            }

        eligible = bool(result.get('eligible'))
        logger.info(f"✅ [ETHOCA] Eliminator check for dispute {dispute_id}: "
                    f"{'ELIGIBLE' if eligible else 'NOT ELIGIBLE'}")

        return {
            'eligible': eligible,
            'eliminator_id': first_present(result, 'eliminatorId', 'id'),
            'action': result.get('recommendedAction'),
            'confidence': result.get('confidenceScore'),
            'matched_fields': result.get('matchedFields') or [],
            'message': result.get('message') or (
                'Dispute eligible for Eliminator auto-resolution' if eligible
                else 'Dispute not eligible for Eliminator'
            ),
        }

    # Webhooks / health

    def _webhook_secret_for_registration(self) -> str:
        return self._secret('webhook_secret') or super()._webhook_secret_for_registration()

    def _webhook_registration_payload(self, callback_url, events, webhook_secret):
        payload = super()._webhook_registration_payload(callback_url, events, webhook_secret)
        payload.update({'version': 'v2', 'alertTypes': self.credentials.alert_types})
        return payload

    def _health_details(self) -> Dict[str, Any]:
        details = super()._health_details()
        details.update({'alert_types': self.credentials.alert_types, 'api_version': 'v2'})
        return details

    # Normalization

    def normalize_dispute(self, raw: Dict[str, Any]) -> NormalizedDispute:
        raw = raw or {}
        reason = self.normalize_reason_code(raw.get('reasonCode') or '')
        masked = raw.get('maskedPan') or ''
        dispute_id = first_present(raw, 'alertId', 'disputeId', 'id')

        return NormalizedDispute(
            dispute_id=str(dispute_id) if dispute_id is not None else None,
            case_number=first_present(raw, 'caseNumber', 'referenceNumber'),
            amount=self._parse_amount(first_present(raw, 'amount', 'transactionAmount', default=0)),
            currency=first_present(raw, 'currency', 'transactionCurrency', default='USD'),
            card_last_four=first_present(raw, 'cardLastFour', 'cardLast4', default=masked[-4:]),
            card_brand='MASTERCARD',
            guest_name=first_present(raw, 'cardholderName', 'guestName', default=''),
            reason_code=reason.code,
            reason_category=reason.category,
            reason_description=reason.description,
            dispute_date=first_present(raw, 'alertDate', 'disputeDate', 'createdAt'),
            due_date=first_present(raw, 'responseDeadline', 'dueDate'),
            status=self.normalize_dispute_status(raw.get('status')),
            portal_status=raw.get('status'),
            alert_type=raw.get('alertType') or ('ETHOCA_ALERT' if raw.get('alertId') else 'DISPUTE'),
            is_pre_chargeback=bool(raw.get('alertId')),
            transaction_id=first_present(raw, 'transactionId', 'acquirerReferenceNumber', default=''),
            transaction_date=raw.get('transactionDate'),
            merchant_descriptor=raw.get('merchantDescriptor') or '',
            issuer_name=first_present(raw, 'issuerName', 'issuingBank'),
            portal_type=PortalType.ETHOCA,
            raw_data=raw,
        )

    def normalize_reason_code(self, code: Any) -> ReasonCodeEntry:
        return mastercard_reason_code(code)
