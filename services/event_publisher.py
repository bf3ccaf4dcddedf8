"""
Dispute Event Publisher

Hands webhook events and normalized disputes to the case-management
pipeline through the dispute events SQS queue.
"""
import os
import json
import boto3
from typing import Dict, Any, Optional
from botocore.exceptions import BotoCoreError, ClientError

from models.dispute import NormalizedDispute, WebhookEvent
from utils.logging_config import get_logger
from utils.redaction import redact_sensitive

logger = get_logger('services.event_publisher')


class DisputeEventPublisher:
    """
    Publishes dispute events as JSON messages on an SQS queue
    """

    def __init__(self, queue_url: Optional[str] = None, sqs_client=None):
        """
        Args:
            queue_url: Dispute events queue; defaults to DISPUTE_EVENTS_QUEUE_URL
            sqs_client: Preconfigured boto3 SQS client
        """
        self.sqs = sqs_client or boto3.client('sqs')
        self.queue_url = queue_url or os.getenv('DISPUTE_EVENTS_QUEUE_URL')

        logger.info("Dispute event publisher initialized")

        if not self.queue_url:
            logger.warning("DISPUTE_EVENTS_QUEUE_URL not configured")

    def send_message(self, message_body: Dict[str, Any]) -> Optional[str]:
        """
        Send one message to the dispute events queue

        Returns:
            Message ID if successful, None otherwise
        """
        if not self.queue_url:
            logger.error("Dispute events queue URL not configured")
            return None

        attributes = {
            name: {'DataType': 'String', 'StringValue': str(message_body[key])}
            for name, key in (('PortalType', 'portal_type'), ('EventType', 'event_type'))
            if message_body.get(key)
        }

        try:
            response = self.sqs.send_message(
                QueueUrl=self.queue_url,
                MessageBody=json.dumps(message_body, default=str),
                MessageAttributes=attributes,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Error sending message to SQS: {e}")
            return None

        message_id = response['MessageId']
        logger.info(f"📤 Message sent to SQS queue: {message_id}")
        return message_id

    def publish_webhook_event(self, portal_type: str, event: WebhookEvent,
                              dispute: Optional[NormalizedDispute] = None) -> Optional[str]:
        """
        Publish a parsed portal webhook with the dispute it carries, if any
        """
        message_id = self.send_message({
            'event_type': 'portal_webhook',
            'portal_type': portal_type,
            'event': event.event,
            'dispute_id': event.dispute_id,
            'webhook_id': event.webhook_id,
            'timestamp': event.timestamp,
            'data': event.data,
            'dispute': dispute.to_dict() if dispute else None,
        })

        if message_id:
            logger.info(f"✅ [{portal_type}] Webhook event {event.event} published: {message_id}")
        return message_id

    def publish_dispute(self, dispute: NormalizedDispute, source: str = 'poll') -> Optional[str]:
        """Publish a normalized dispute pulled from a portal"""
        portal_type = dispute.portal_type.value
        message_id = self.send_message({
            'event_type': 'dispute_received',
            'portal_type': portal_type,
            'source': source,
            'dispute_id': dispute.dispute_id,
            'dispute': dispute.to_dict(),
        })

        if message_id:
            logger.info(f"✅ [{portal_type}] Dispute {dispute.dispute_id} published: {message_id}")
        return message_id

    def publish_raw_webhook(self, portal_type: str, body: str,
                            headers: Optional[Dict[str, str]] = None) -> Optional[str]:
        """
        Publish an untouched webhook body for portals without a dedicated adapter
        """
        message_id = self.send_message({
            'event_type': 'generic_webhook',
            'portal_type': portal_type,
            'body': body,
            'headers': redact_sensitive(headers or {}),
        })

        if message_id:
            logger.info(f"✅ [{portal_type}] Generic webhook published: {message_id}")
        return message_id
