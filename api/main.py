"""
FastAPI Application for dispute portal webhooks
"""
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from adapters.adapter_factory import is_supported, list_supported_types
from adapters.base_adapter import BaseDisputeAdapter
from adapters.exceptions import DisputePortalError, WebhookPayloadError
from models.dispute import PortalType
from services.event_publisher import DisputeEventPublisher
from services.service_factory import ServiceFactory
from utils.logging_config import init_logging, get_logger
from utils.portal_config import ApiSettings, load_api_settings

# Load environment variables
load_dotenv()

# Initialize centralized logging
init_logging()
logger = get_logger('api.main')

# Header names carrying the webhook HMAC, per portal
SIGNATURE_HEADERS = {
    PortalType.VERIFI: ('x-verifi-signature',),
    PortalType.ETHOCA: ('x-ethoca-signature',),
    PortalType.DISCOVER: ('x-discover-hmac-signature', 'x-discover-signature'),
    PortalType.MERLINK: ('x-merlink-signature',),
}

app = FastAPI(
    title="Dispute Portal Webhook API",
    description="Receives dispute portal webhooks and forwards normalized events to case management",
    version="1.0.0"
)


def get_settings() -> ApiSettings:
    return load_api_settings()


def get_publisher() -> DisputeEventPublisher:
    return ServiceFactory.get_event_publisher()


def get_adapter_resolver() -> Callable[[PortalType], Optional[BaseDisputeAdapter]]:
    return ServiceFactory.get_adapter


def _signature_from_headers(portal_type: PortalType, request: Request) -> Optional[str]:
    for name in SIGNATURE_HEADERS.get(portal_type, ()):
        value = request.headers.get(name)
        if value:
            return value
    return None


def _configured_adapter(resolve_adapter: Callable, portal_type: PortalType) -> BaseDisputeAdapter:
    """Adapter for a supported portal; 404 when unconfigured, 503 when misconfigured"""
    try:
        adapter = resolve_adapter(portal_type)
    except DisputePortalError as e:
        logger.error(f"❌ [API] {portal_type.value} adapter unavailable: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)
    if adapter is None:
        raise HTTPException(status_code=404, detail=f"Portal {portal_type.value} is not configured")
    return adapter


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"message": "Dispute Portal Webhook API", "status": "healthy"}


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "supported_portals": list_supported_types()
    }


@app.get("/portals")
async def list_portals():
    """Portal types with a dedicated adapter"""
    return {"portals": list_supported_types()}


@app.get("/portals/{portal_type}/health")
def portal_health(portal_type: str,
                  resolve_adapter: Callable = Depends(get_adapter_resolver)):
    """Run the adapter health check for one configured portal"""
    if not is_supported(portal_type):
        raise HTTPException(status_code=404, detail=f"Unsupported portal type: {portal_type}")

    adapter = _configured_adapter(resolve_adapter, PortalType(portal_type.upper()))

    return {"portal_type": adapter.tag, **adapter.health_check()}


@app.post("/webhooks/{portal_type}")
async def receive_webhook(portal_type: str, request: Request,
                          settings: ApiSettings = Depends(get_settings),
                          publisher: DisputeEventPublisher = Depends(get_publisher),
                          resolve_adapter: Callable = Depends(get_adapter_resolver)):
    """
    Receive a portal webhook

    Portals with an adapter get signature verification, parsing and
    normalization. Anything else is forwarded untouched on the generic path.
    """
    body = await request.body()
    headers = dict(request.headers)
    tag = portal_type.upper()

    logger.info(f"📨 [API] Webhook received for portal {tag} ({len(body)} bytes)")

    if not is_supported(portal_type):
        message_id = publisher.publish_raw_webhook(tag, body.decode('utf-8', errors='replace'), headers)
        logger.info(f"ℹ️ [API] No adapter for {tag}, forwarded on the generic path")
        return JSONResponse(status_code=202, content={
            "status": "accepted",
            "adapter": False,
            "portal_type": tag,
            "message_id": message_id
        })

    adapter = _configured_adapter(resolve_adapter, PortalType(tag))

    signature = _signature_from_headers(adapter.portal_type, request)
    verified = adapter.verify_webhook_signature(body, signature, adapter.credentials.secret_value('webhook_secret'))
    if not verified and settings.require_signature:
        logger.warning(f"⚠️ [API] Rejected {tag} webhook: signature verification failed")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = adapter.parse_webhook_payload(body, headers)
    except WebhookPayloadError as e:
        raise HTTPException(status_code=400, detail=e.message)

    dispute = adapter.dispute_from_webhook(event)
    message_id = publisher.publish_webhook_event(adapter.tag, event, dispute)

    logger.info(f"✅ [API] {tag} webhook {event.event} accepted (dispute: {event.dispute_id})")

    return {
        "status": "accepted",
        "adapter": True,
        "portal_type": adapter.tag,
        "event": event.event,
        "dispute_id": event.dispute_id,
        "signature_verified": verified,
        "dispute": dispute.to_dict() if dispute else None,
        "message_id": message_id
    }
