"""
Service Factory for managing singleton service instances
"""
from typing import Dict, Any, Optional

from adapters.adapter_factory import create_adapter
from adapters.base_adapter import BaseDisputeAdapter
from models.dispute import PortalType
from services.event_publisher import DisputeEventPublisher
from utils.logging_config import get_logger
from utils.portal_config import load_portal_config

logger = get_logger('services.factory')


class ServiceFactory:
    """
    Factory class to manage singleton service instances
    """

    _instances: Dict[str, Any] = {}

    @classmethod
    def get_event_publisher(cls) -> DisputeEventPublisher:
        """Get singleton dispute event publisher instance"""
        if 'event_publisher' not in cls._instances:
            cls._instances['event_publisher'] = DisputeEventPublisher()
            logger.info("Created singleton DisputeEventPublisher instance")
        return cls._instances['event_publisher']

    @classmethod
    def get_adapter(cls, portal_type: PortalType) -> Optional[BaseDisputeAdapter]:
        """
        Get the adapter for a portal configured in the environment

        Returns:
            Adapter instance, or None when the portal is not configured
        """
        key = f'adapter:{portal_type.value}'
        if key not in cls._instances:
            config = load_portal_config(portal_type)
            if config is None:
                logger.warning(f"⚠️ [{portal_type.value}] Portal not configured")
                return None
            cls._instances[key] = create_adapter(portal_type, config)
            logger.info(f"Created singleton {cls._instances[key].__class__.__name__} instance")
        return cls._instances[key]

    @classmethod
    def reset(cls):
        """Drop cached instances so configuration is re-read"""
        cls._instances.clear()
