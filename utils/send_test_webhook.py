"""
Send a signed test webhook to the local webhook API

Usage:
    python utils/send_test_webhook.py [PORTAL]
"""
import os
import sys
import json
from datetime import datetime, timezone

import requests
from dotenv import load_dotenv

# Add the project root to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters.base_adapter import BaseDisputeAdapter
from models.dispute import PortalType
from utils.logging_config import init_logging, get_logger, console_print
from api.main import SIGNATURE_HEADERS

load_dotenv()

init_logging()
logger = get_logger('scripts.send_test_webhook')

SAMPLE_PAYLOADS = {
    PortalType.VERIFI: {
        'eventType': 'alert.created',
        'alertId': 'CDRN-TEST-10001',
        'data': {
            'alertId': 'CDRN-TEST-10001',
            'caseNumber': 'VRF-2024-0001',
            'amount': 289.50,
            'currency': 'USD',
            'cardLast4': '4242',
            'cardholderName': 'Jane Guest',
            'reasonCode': '13.1',
            'status': 'pending',
            'transactionId': 'TXN-88231',
        },
    },
    PortalType.ETHOCA: {
        'eventType': 'alert.created',
        'alertId': 'ETH-TEST-20001',
        'data': {
            'alertId': 'ETH-TEST-20001',
            'amount': 412.00,
            'currency': 'USD',
            'cardLast4': '5454',
            'cardholderName': 'John Traveler',
            'reasonCode': '4837',
            'status': 'open',
            'alertType': 'fraud',
        },
    },
    PortalType.DISCOVER: {
        'eventType': 'chargeback.created',
        'caseId': 'DSC-TEST-30001',
        'payload': {
            'caseId': 'DSC-TEST-30001',
            'amount': 615.25,
            'currency': 'USD',
            'cardLastFour': '1117',
            'cardholderName': 'Alex Visitor',
            'reasonCode': 'UA02',
            'status': 'open',
            'stage': 'first_chargeback',
            'disputeDate': '2024-03-01',
        },
    },
    PortalType.MERLINK: {
        'event': 'dispute.created',
        'disputeId': 'MRL-TEST-40001',
        'data': {
            'disputeId': 'MRL-TEST-40001',
            'amount': 980.00,
            'currency': 'USD',
            'cardLast4': '0005',
            'guestName': 'Sam Resident',
            'reasonCode': '13.7',
            'status': 'new',
            'reservationNumber': 'RES-55102',
            'checkInDate': '2024-02-10',
            'checkOutDate': '2024-02-14',
        },
    },
}


def send_test_webhook(portal: str = 'MERLINK') -> bool:
    """
    Sign a sample webhook with <PORTAL>_WEBHOOK_SECRET and POST it to the API
    """
    portal_type = PortalType(portal.upper())
    payload = dict(SAMPLE_PAYLOADS[portal_type])
    payload['timestamp'] = datetime.now(timezone.utc).isoformat()
    body = json.dumps(payload)

    headers = {'Content-Type': 'application/json'}
    secret = os.getenv(f'{portal_type.value}_WEBHOOK_SECRET')
    if secret:
        headers[SIGNATURE_HEADERS[portal_type][0]] = BaseDisputeAdapter._generate_signature(body, secret)
    else:
        logger.warning(f"{portal_type.value}_WEBHOOK_SECRET not set, sending unsigned webhook")

    host = os.getenv('API_HOST', '127.0.0.1')
    if host == '0.0.0.0':
        host = '127.0.0.1'
    url = f"http://{host}:{os.getenv('API_PORT', 8003)}/webhooks/{portal_type.value.lower()}"

    try:
        response = requests.post(url, data=body, headers=headers, timeout=10)
    except requests.RequestException as e:
        logger.error(f"Failed to send webhook: {e}")
        console_print(f"Failed to send webhook: {e}", "ERROR")
        return False

    logger.info(f"Webhook sent to {url}: HTTP {response.status_code}")
    if response.ok:
        console_print(f"Webhook accepted: {response.json()}", "SUCCESS")
        return True

    console_print(f"Webhook rejected (HTTP {response.status_code}): {response.text}", "ERROR")
    return False


if __name__ == "__main__":
    portal_arg = sys.argv[1] if len(sys.argv) > 1 else 'MERLINK'
    if portal_arg.upper() not in PortalType.__members__:
        console_print(f"Unknown portal: {portal_arg}", "ERROR")
        sys.exit(2)

    console_print(f"Sending test {portal_arg.upper()} webhook", "SUCCESS")
    sys.exit(0 if send_test_webhook(portal_arg) else 1)
