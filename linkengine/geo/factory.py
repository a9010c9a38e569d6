"""
Factory for creating geo locator instances.
"""

import logging
from enum import Enum

from .strategies import GeoLocatorStrategy, IpApiGeoLocator, NullGeoLocator
from linkengine.config import settings

logger = logging.getLogger(__name__)


class GeoBackend(Enum):
    """Available geo lookup backends"""
    IP_API = "ip_api"
    NULL = "null"


class GeoFactory:
    """
    Simple factory for creating geo locators.

    Gets configuration from settings (not passed as parameters).
    """

    _instance: GeoLocatorStrategy = None  # Single cached instance

    @classmethod
    def create(cls, backend: GeoBackend) -> GeoLocatorStrategy:
        if cls._instance is not None:
            return cls._instance

        if backend == GeoBackend.IP_API:
            cls._instance = IpApiGeoLocator(
                base_url=settings.geo_api_url,
                timeout=settings.geo_timeout_seconds
            )
        elif backend == GeoBackend.NULL:
            cls._instance = NullGeoLocator()
        else:
            raise ValueError(f"Unknown geo backend: {backend}")

        logger.info("Geo locator initialized: %s", backend.value)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
