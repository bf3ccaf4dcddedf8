"""
Dispute Portal Adapters Package

One adapter per dispute portal, all sharing the BaseDisputeAdapter contract,
plus the factory that selects an adapter by portal type.
"""

from .exceptions import (
    DisputePortalError,
    PortalConfigurationError,
    PortalRequestError,
    WebhookPayloadError,
)
from .base_adapter import BaseDisputeAdapter, RetryPolicy
from .verifi_adapter import VerifiAdapter
from .ethoca_adapter import AlertOutcome, EthocaAdapter
from .discover_adapter import DiscoverDisputeAdapter, DisputeStage
from .merlink_adapter import MerlinkAdapter, MerlinkRequestSigner
from .adapter_factory import create_adapter, is_supported, list_supported_types

__all__ = [
    'DisputePortalError',
    'PortalConfigurationError',
    'PortalRequestError',
    'WebhookPayloadError',
    'BaseDisputeAdapter',
    'RetryPolicy',
    'VerifiAdapter',
    'EthocaAdapter',
    'AlertOutcome',
    'DiscoverDisputeAdapter',
    'DisputeStage',
    'MerlinkAdapter',
    'MerlinkRequestSigner',
    'create_adapter',
    'is_supported',
    'list_supported_types'
]
