"""
Dispute Adapter Factory

Selects the adapter class for a portal type. Portal types without a
dedicated adapter resolve to None so the caller can fall back to the
generic webhook path.
"""
from typing import Dict, Any, List, Optional, Type, Union

from adapters.base_adapter import BaseDisputeAdapter
from adapters.discover_adapter import DiscoverDisputeAdapter
from adapters.ethoca_adapter import EthocaAdapter
from adapters.merlink_adapter import MerlinkAdapter
from adapters.verifi_adapter import VerifiAdapter
from models.credentials import AdapterConfig
from models.dispute import PortalType
from utils.logging_config import get_logger

logger = get_logger('adapters.factory')

ADAPTERS: Dict[PortalType, Type[BaseDisputeAdapter]] = {
    PortalType.VERIFI: VerifiAdapter,
    PortalType.ETHOCA: EthocaAdapter,
    PortalType.DISCOVER: DiscoverDisputeAdapter,
    PortalType.MERLINK: MerlinkAdapter,
}


def _resolve_type(portal_type: Any) -> Optional[PortalType]:
    if portal_type is None:
        return None
    if isinstance(portal_type, PortalType):
        return portal_type
    try:
        return PortalType(str(portal_type).strip().upper())
    except ValueError:
        return None


def create_adapter(portal_type: Union[PortalType, str, None],
                   config: Union[AdapterConfig, Dict[str, Any], None] = None) -> Optional[BaseDisputeAdapter]:
    """
    Create an adapter for a portal type (case-insensitive)

    Returns:
        Adapter instance, or None when the portal has no dedicated adapter

    Raises:
        PortalConfigurationError: the credentials are incomplete for the portal
    """
    resolved = _resolve_type(portal_type)
    adapter_class = ADAPTERS.get(resolved) if resolved else None

    if adapter_class is None:
        logger.info(f"ℹ️ No dedicated adapter for portal type {portal_type!r}")
        return None

    return adapter_class(config)


def list_supported_types() -> List[str]:
    return [portal_type.value for portal_type in ADAPTERS]


def is_supported(portal_type: Union[PortalType, str, None]) -> bool:
    return _resolve_type(portal_type) in ADAPTERS
