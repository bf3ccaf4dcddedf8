"""
Verifi Adapter (Visa CDRN / RDR / Order Insight)

  - CDRN alerts arrive before a formal chargeback is filed and give the
    merchant a window to resolve or accept pre-chargeback.
  - RDR auto-resolves qualifying disputes under merchant-defined rules.
  - Order Insight pushes order details to issuers so cardholders asking
    about a charge can see them before filing a dispute.

Auth: API key, merchant id and card acceptor id headers.
"""
from typing import Dict, Any, Optional, Union

from adapters.base_adapter import BaseDisputeAdapter, first_present, utc_now_iso
from models.credentials import VerifiCredentials
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

logger = get_logger('adapters.verifi')

# Visa condition codes: category 10 is fraud, 13 is consumer disputes
VISA_REASON_CODES: Dict[str, ReasonCodeEntry] = {
    entry.code: entry for entry in (
        ReasonCodeEntry(code='10.1', category=ReasonCategory.FRAUD,
                        description='EMV Liability Shift Counterfeit Fraud',
                        recommended_evidence_types=['emv_chip_transaction_log', 'terminal_capability']),
        ReasonCodeEntry(code='10.2', category=ReasonCategory.FRAUD,
                        description='EMV Liability Shift Non-Counterfeit Fraud',
                        recommended_evidence_types=['emv_chip_transaction_log', 'terminal_capability']),
        ReasonCodeEntry(code='10.3', category=ReasonCategory.FRAUD,
                        description='Other Fraud - Card-Present Environment',
                        recommended_evidence_types=['signed_receipt', 'chip_read_log', 'surveillance']),
        ReasonCodeEntry(code='10.4', category=ReasonCategory.FRAUD,
                        description='Other Fraud - Card-Absent Environment',
                        recommended_evidence_types=['avs_cvv_match', 'delivery_confirmation',
                                                    'device_fingerprint', 'ip_address_match',
                                                    'prior_undisputed_transactions']),
        ReasonCodeEntry(code='10.5', category=ReasonCategory.FRAUD,
                        description='Visa Fraud Monitoring Program',
                        recommended_evidence_types=['transaction_receipt', 'proof_of_delivery']),
        ReasonCodeEntry(code='13.1', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Merchandise/Services Not Received',
                        recommended_evidence_types=['proof_of_delivery', 'check_in_confirmation', 'folio',
                                                    'guest_registration_card', 'id_verification']),
        ReasonCodeEntry(code='13.2', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Cancelled Recurring Transaction',
                        recommended_evidence_types=['terms_and_conditions', 'cancellation_policy',
                                                    'signed_agreement']),
        ReasonCodeEntry(code='13.3', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Not as Described or Defective Merchandise/Services',
                        recommended_evidence_types=['service_description', 'terms_accepted',
                                                    'guest_correspondence', 'folio',
                                                    'quality_documentation']),
        ReasonCodeEntry(code='13.6', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Credit Not Processed',
                        recommended_evidence_types=['refund_policy', 'terms_and_conditions',
                                                    'no_refund_entitlement', 'credit_issued_proof']),
        ReasonCodeEntry(code='13.7', category=ReasonCategory.CONSUMER_DISPUTE,
                        description='Cancelled Merchandise/Services',
                        recommended_evidence_types=['cancellation_policy', 'no_show_documentation',
                                                    'terms_accepted', 'guest_folio',
                                                    'reservation_confirmation']),
    )
}

# Numeric prefix -> (category, label) for codes missing from the table
VISA_PREFIX_CATEGORIES = (
    ('10.', ReasonCategory.FRAUD, 'Visa Fraud'),
    ('11.', ReasonCategory.AUTHORIZATION, 'Visa Authorization'),
    ('12.', ReasonCategory.PROCESSING_ERROR, 'Visa Processing Error'),
    ('13.', ReasonCategory.CONSUMER_DISPUTE, 'Visa Consumer Dispute'),
)

STATUS_MAP_FROM_VERIFI = {
    'new': DisputeStatus.PENDING,
    'pending': DisputeStatus.PENDING,
    'under_review': DisputeStatus.IN_REVIEW,
    'in_progress': DisputeStatus.IN_REVIEW,
    'evidence_submitted': DisputeStatus.SUBMITTED,
    'responded': DisputeStatus.SUBMITTED,
    'representment_filed': DisputeStatus.SUBMITTED,
    'won': DisputeStatus.WON,
    'merchant_won': DisputeStatus.WON,
    'lost': DisputeStatus.LOST,
    'merchant_lost': DisputeStatus.LOST,
    'expired': DisputeStatus.EXPIRED,
    'closed': DisputeStatus.RESOLVED,
}

STATUS_MAP_TO_VERIFI = {
    DisputeStatus.PENDING: 'pending',
    DisputeStatus.IN_REVIEW: 'under_review',
    DisputeStatus.SUBMITTED: 'responded',
    DisputeStatus.WON: 'won',
    DisputeStatus.LOST: 'lost',
    DisputeStatus.EXPIRED: 'expired',
}

WEBHOOK_EVENTS = (
    'alert.created',
    'alert.updated',
    'dispute.created',
    'dispute.resolved',
    'rdr.resolved',
)

DEFAULT_EVIDENCE_INSTRUCTIONS = {
    '10.4': 'Provide compelling evidence of a valid card-not-present transaction: '
            'AVS/CVV match confirmation, device fingerprint, IP address logs, '
            'and at least two prior undisputed transactions from the same device/IP.',
    '13.1': 'Provide proof that the guest received the services: '
            'check-in confirmation, signed registration card, room folio, '
            'key card access logs, or ID verification records.',
    '13.2': 'Provide evidence that the recurring charge was authorized: '
            'signed agreement with cancellation terms, proof that cancellation '
            'policy was disclosed and accepted.',
    '13.3': 'Provide evidence that services were provided as described: '
            'booking confirmation showing room type and amenities, guest folio, '
            'and any correspondence with the guest.',
    '13.6': 'Provide evidence that a credit is not owed or has already been issued: '
            'refund policy accepted by the guest, proof that no cancellation '
            'was received, or proof of credit already processed.',
    '13.7': 'Provide evidence for cancelled reservation disputes: '
            'cancellation policy accepted at booking, no-show documentation, '
            'guest folio, and reservation confirmation with terms.',
}

GENERIC_EVIDENCE_INSTRUCTIONS = (
    'Submit all available evidence including guest folio, signed registration, '
    'booking confirmation, correspondence, and any other compelling documentation.'
)


class VerifiAdapter(BaseDisputeAdapter):
    """
    Two-way integration with Visa's Verifi platform
    """

    portal_type = PortalType.VERIFI
    portal_label = 'Verifi'
    default_base_url = 'https://api.verifi.com/v3'
    credentials_model = VerifiCredentials
    health_path = '/ping'
    webhook_path = '/webhooks'
    webhook_events = WEBHOOK_EVENTS
    webhook_header_prefix = 'x-verifi'
    webhook_dispute_id_keys = ('disputeId', 'alertId', 'id')
    status_map_in = STATUS_MAP_FROM_VERIFI
    status_map_out = STATUS_MAP_TO_VERIFI

    def _auth_headers(self) -> Dict[str, Optional[str]]:
        return {
            'X-API-Key': self._secret('api_key'),
            'X-Merchant-ID': self.credentials.merchant_id,
            'X-Card-Acceptor-ID': self.credentials.card_acceptor_id,
        }

    # Inbound

    def get_dispute_status(self, dispute_id: str) -> Dict[str, Any]:
        data = self._call('GET', f'/disputes/{dispute_id}/status')
        return {
            'dispute_id': dispute_id,
            'status': self.normalize_dispute_status(data.get('status')),
            'portal_status': data.get('status'),
            'last_updated': first_present(data, 'lastUpdated', 'updatedAt'),
            'notes': first_present(data, 'notes', 'statusNotes', default=''),
            'outcome': data.get('outcome'),
            'outcome_date': data.get('outcomeDate'),
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
        }

    def fetch_disputes(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Pull a page of CDRN alerts; defaults to pending alerts, at most 100 per page
        """
        params = params or {}
        query = {
            'since': params.get('since'),
            'status': params.get('status') or 'pending',
            'page': params.get('page') or 1,
            'limit': min(int(params.get('limit') or 50), 100),
        }
        data = self._call('GET', '/alerts', params=query)

        alerts = first_present(data, 'alerts', 'data', default=[])
        page = data.get('page') or query['page']
        total_pages = data.get('totalPages')
        has_more = bool(data.get('hasMore')) or (total_pages is not None and page < total_pages)

        return {
            'disputes': [self.normalize_dispute(alert) for alert in alerts],
            'total_count': first_present(data, 'totalCount', 'total', default=len(alerts)),
            'has_more': has_more,
            'page': page,
        }

    def get_alert_details(self, alert_id: str) -> NormalizedDispute:
        """Fetch one CDRN alert by id"""
        return self.normalize_dispute(self._call('GET', f'/alerts/{alert_id}'))

    # Outbound

    def submit_evidence(self, dispute_id: str,
                        evidence: Union[EvidencePackage, Dict[str, Any]]) -> Dict[str, Any]:
        evidence = as_evidence_package(evidence)
        metadata = evidence.metadata

        payload = {
            'disputeId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'cardAcceptorId': self.credentials.card_acceptor_id,
            'evidenceCategory': metadata.evidence_category or 'compelling_evidence',
            'compellingEvidenceType': metadata.compelling_evidence_type or 'generic',
            'documents': self._evidence_documents(evidence),
            'transactionDetails': {
                'guestName': metadata.guest_name,
                'confirmationNumber': metadata.confirmation_number,
                'checkInDate': metadata.check_in_date,
                'checkOutDate': metadata.check_out_date,
                'transactionAmount': metadata.transaction_amount,
                'transactionDate': metadata.transaction_date,
                'transactionId': metadata.transaction_id,
            },
            'merchantNotes': metadata.notes,
            'idempotencyKey': self._generate_idempotency_key('evidence'),
        }

        data = self._call('POST', f'/disputes/{dispute_id}/evidence', json_body=payload)
        submission_id = first_present(data, 'submissionId', 'id')

        logger.info(f"✅ [VERIFI] Evidence submitted for dispute {dispute_id}: {submission_id or 'OK'}")

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
                'priorUndisputedTransactions': evidence.prior_transactions,
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

        logger.info(f"✅ [VERIFI] Response submitted for dispute {dispute_id}")

        return {
            'response_id': first_present(data, 'responseId', 'id'),
            'status': data.get('status') or 'submitted',
            'message': data.get('message') or 'Response submitted successfully',
            'timestamp': data.get('timestamp') or utc_now_iso(),
        }

    def accept_dispute(self, dispute_id: str, outcome: Optional[str] = None) -> Dict[str, Any]:
        """
        Accept liability on a CDRN alert; Verifi credits the cardholder automatically
        """
        payload = {
            'alertId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'action': 'accept',
            'merchantNotes': 'Liability accepted by merchant',
            'idempotencyKey': self._generate_idempotency_key('accept'),
        }
        data = self._call('POST', f'/alerts/{dispute_id}/respond', json_body=payload)

        logger.info(f"✅ [VERIFI] Dispute {dispute_id} accepted (liability acknowledged)")

        return {
            'accepted': True,
            'dispute_id': dispute_id,
            'response_id': first_present(data, 'responseId', 'id'),
            'message': data.get('message') or 'Dispute accepted',
        }

    def update_case_status(self, dispute_id: str, status: Union[DisputeStatus, str],
                           notes: str = '') -> Dict[str, Any]:
        verifi_status = self.to_portal_status(status)
        data = self._call('POST', f'/disputes/{dispute_id}/evidence', json_body={
            'disputeId': dispute_id,
            'merchantId': self.credentials.merchant_id,
            'statusUpdate': verifi_status,
            'notes': notes,
            'updatedAt': utc_now_iso(),
            'idempotencyKey': self._generate_idempotency_key('status'),
        })

        logger.info(f"✅ [VERIFI] Case {dispute_id} status updated to {verifi_status}")

        return {
            'dispute_id': dispute_id,
            'status': verifi_status,
            'message': data.get('message') or 'Status updated',
            'timestamp': utc_now_iso(),
        }

    # RDR

    def resolve_via_rdr(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Auto-resolve a dispute through Rapid Dispute Resolution

        The merchant agrees up front to credit the cardholder when the alert
        matches its rules (amount threshold, excluded reason codes). Returns
        ``resolved: False`` without calling the portal when RDR is disabled
        for this merchant.
        """
        if not self.credentials.rdr_enabled:
            logger.warning("⚠️ [VERIFI] RDR is not enabled for this merchant")
            return {
                'resolved': False,
                'message': 'RDR is not enabled. Enable it in integration settings.',
            }

        alert_id = request.get('alertId') or request.get('alert_id')
        amount = request.get('amount')
        rules = request.get('rules') or {
            'autoAcceptBelow': request.get('autoAcceptBelow'),
            'excludeReasonCodes': request.get('excludeReasonCodes') or [],
            'requireReview': bool(request.get('requireReview')),
        }
        payload = {
            'alertId': alert_id,
            'merchantId': self.credentials.merchant_id,
            'cardAcceptorId': self.credentials.card_acceptor_id,
            'transactionAmount': amount,
            'reasonCode': request.get('reasonCode') or request.get('reason_code'),
            'cardLastFour': request.get('cardLastFour') or request.get('card_last_four'),
            'rdrRules': rules,
            'idempotencyKey': self._generate_idempotency_key('rdr'),
        }

        result = self._call('POST', '/rdr/resolve', json_body=payload)
        resolved = bool(result.get('resolved'))

        logger.info(f"✅ [VERIFI] RDR resolution for alert {alert_id}: "
                    f"{'AUTO-RESOLVED' if resolved else 'NOT RESOLVED'} ({result.get('action') or 'none'})")

        return {
            'resolved': resolved,
            'rdr_id': first_present(result, 'rdrId', 'id'),
            'action': result.get('action'),
            'amount': result.get('creditAmount') or amount,
            'message': result.get('message')
            or ('Dispute auto-resolved via RDR' if resolved else 'RDR did not resolve'),
            'timestamp': result.get('timestamp') or utc_now_iso(),
        }

    # Order Insight

    def submit_order_insight(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Share reservation details with issuers before a dispute is filed
        """
        details = order.get('orderDetails') or {}
        payload = {
            'merchantId': self.credentials.merchant_id,
            'cardAcceptorId': self.credentials.card_acceptor_id,
            'transactionId': order.get('transactionId'),
            'merchantDescriptor': order.get('descriptor') or self.credentials.descriptor,
            'orderDetails': {
                'orderType': 'hotel_reservation',
                'confirmationNumber': details.get('confirmationNumber'),
                'guestName': details.get('guestName'),
                'checkInDate': details.get('checkInDate'),
                'checkOutDate': details.get('checkOutDate'),
                'propertyName': details.get('propertyName'),
                'propertyAddress': details.get('propertyAddress'),
                'roomType': details.get('roomType'),
                'totalAmount': details.get('totalAmount'),
                'currency': details.get('currency') or 'USD',
                'itemizedCharges': details.get('itemizedCharges') or [],
                'cancellationPolicy': details.get('cancellationPolicy') or '',
                'bookingSource': details.get('bookingSource') or 'direct',
            },
            'idempotencyKey': self._generate_idempotency_key('insight'),
        }

        data = self._call('POST', '/order-insight/submit', json_body=payload)

        logger.info(f"✅ [VERIFI] Order Insight submitted for transaction {order.get('transactionId')}")

        return {
            'insight_id': first_present(data, 'insightId', 'id'),
            'status': data.get('status') or 'accepted',
            'message': data.get('message') or 'Order insight submitted',
        }

    # Webhooks / health

    def _webhook_registration_payload(self, callback_url, events, webhook_secret):
        payload = super()._webhook_registration_payload(callback_url, events, webhook_secret)
        payload['version'] = 'v3'
        return payload

    def _health_details(self) -> Dict[str, Any]:
        details = super()._health_details()
        details.update({
            'card_acceptor_id': self.credentials.card_acceptor_id,
            'rdr_enabled': self.credentials.rdr_enabled,
            'api_version': 'v3',
        })
        return details

    # Normalization

    def normalize_dispute(self, raw: Dict[str, Any]) -> NormalizedDispute:
        """
        Normalize a CDRN alert or a formal dispute; an ``alertId`` marks a pre-chargeback alert
        """
        raw = raw or {}
        reason = self.normalize_reason_code(first_present(raw, 'reasonCode', 'conditionCode', default=''))
        masked = raw.get('maskedCardNumber') or ''
        dispute_id = first_present(raw, 'disputeId', 'alertId', 'id')

        return NormalizedDispute(
            dispute_id=str(dispute_id) if dispute_id is not None else None,
            case_number=first_present(raw, 'caseNumber', 'referenceNumber'),
            amount=self._parse_amount(first_present(raw, 'amount', 'transactionAmount', default=0)),
            currency=first_present(raw, 'currency', 'transactionCurrency', default='USD'),
            card_last_four=first_present(raw, 'cardLastFour', 'cardLast4', default=masked[-4:]),
            card_brand='VISA',
            guest_name=first_present(raw, 'cardholderName', 'guestName', default=''),
            reason_code=reason.code,
            reason_category=reason.category,
            reason_description=reason.description,
            dispute_date=first_present(raw, 'alertDate', 'disputeDate', 'createdAt'),
            due_date=first_present(raw, 'responseDeadline', 'dueDate'),
            status=self.normalize_dispute_status(raw.get('status')),
            portal_status=raw.get('status'),
            alert_type=raw.get('alertType') or ('CDRN' if raw.get('alertId') else 'DISPUTE'),
            is_pre_chargeback=bool(raw.get('alertId')),
            transaction_id=first_present(raw, 'transactionId', 'acquirerReferenceNumber', default=''),
            transaction_date=raw.get('transactionDate'),
            merchant_descriptor=raw.get('merchantDescriptor') or '',
            portal_type=PortalType.VERIFI,
            raw_data=raw,
        )

    def normalize_reason_code(self, code: Any) -> ReasonCodeEntry:
        if not code:
            return ReasonCodeEntry.unknown()

        normalized = str(code).strip()
        known = VISA_REASON_CODES.get(normalized)
        if known:
            return known

        for prefix, category, label in VISA_PREFIX_CATEGORIES:
            if normalized.startswith(prefix):
                return ReasonCodeEntry(code=normalized, category=category,
                                       description=f"{label} - Code {normalized}")

        return ReasonCodeEntry(code=normalized, category=ReasonCategory.UNKNOWN,
                               description=f"Visa Reason Code {normalized}")
