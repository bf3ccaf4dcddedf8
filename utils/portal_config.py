"""
Portal configuration from environment variables

Used by the process entry points only; adapters receive explicit
configuration and never read the environment themselves.

Per portal: <PORTAL>_API_URL, <PORTAL>_API_KEY, <PORTAL>_MERCHANT_ID,
<PORTAL>_WEBHOOK_SECRET, plus the portal-specific identifiers below.
"""
import os
from dataclasses import dataclass
from typing import Dict, Any, List, Mapping, Optional

from models.credentials import AdapterConfig
from models.dispute import PortalType
from utils.logging_config import get_logger

logger = get_logger('utils.portal_config')

# credential field -> env suffix, on top of api_key / merchant_id / webhook_secret
PORTAL_SPECIFIC_FIELDS: Dict[PortalType, Dict[str, str]] = {
    PortalType.VERIFI: {
        'card_acceptor_id': 'CARD_ACCEPTOR_ID',
        'descriptor': 'DESCRIPTOR',
        'rdr_enabled': 'RDR_ENABLED',
    },
    PortalType.ETHOCA: {
        'alert_types': 'ALERT_TYPES',
    },
    PortalType.DISCOVER: {
        'acquirer_bin': 'ACQUIRER_BIN',
        'protect_buy_mid': 'PROTECT_BUY_MID',
    },
    PortalType.MERLINK: {
        'api_secret': 'API_SECRET',
        'hotel_id': 'HOTEL_ID',
        'portfolio_id': 'PORTFOLIO_ID',
        'auto_submit': 'AUTO_SUBMIT',
    },
}

BOOLEAN_FIELDS = ('rdr_enabled', 'auto_submit')
LIST_FIELDS = ('alert_types',)


def _env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class ApiSettings:
    """Webhook ingress settings"""
    host: str = '0.0.0.0'
    port: int = 8003
    require_signature: bool = True


def load_api_settings(env: Optional[Mapping[str, str]] = None) -> ApiSettings:
    env = os.environ if env is None else env
    return ApiSettings(
        host=env.get('API_HOST', '0.0.0.0'),
        port=int(env.get('API_PORT', 8003)),
        require_signature=_env_bool(env.get('WEBHOOK_REQUIRE_SIGNATURE'), default=True),
    )


def load_portal_config(portal_type: PortalType,
                       env: Optional[Mapping[str, str]] = None) -> Optional[AdapterConfig]:
    """
    Adapter configuration for one portal

    Returns:
        AdapterConfig, or None when <PORTAL>_API_KEY is not set
    """
    env = os.environ if env is None else env
    prefix = portal_type.value

    api_key = env.get(f'{prefix}_API_KEY')
    if not api_key:
        logger.debug(f"{prefix}_API_KEY not set, {prefix} is not configured")
        return None

    credentials: Dict[str, Any] = {
        'api_key': api_key,
        'merchant_id': env.get(f'{prefix}_MERCHANT_ID'),
        'webhook_secret': env.get(f'{prefix}_WEBHOOK_SECRET') or None,
    }
    for field, suffix in PORTAL_SPECIFIC_FIELDS.get(portal_type, {}).items():
        value = env.get(f'{prefix}_{suffix}')
        if value is None or value == '':
            continue
        if field in BOOLEAN_FIELDS:
            credentials[field] = _env_bool(value)
        elif field in LIST_FIELDS:
            credentials[field] = [item.strip() for item in value.split(',') if item.strip()]
        else:
            credentials[field] = value

    return AdapterConfig(
        credentials=credentials,
        base_url=env.get(f'{prefix}_API_URL') or None,
        integration_id=env.get(f'{prefix}_INTEGRATION_ID') or None,
        timeout_ms=int(env.get('PORTAL_TIMEOUT_MS', 30000)),
    )


def configured_portals(env: Optional[Mapping[str, str]] = None) -> List[PortalType]:
    """Portals with an API key in the environment"""
    env = os.environ if env is None else env
    return [portal_type for portal_type in PortalType if env.get(f'{portal_type.value}_API_KEY')]
