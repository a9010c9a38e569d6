"""
Geo lookup strategies using Strategy Pattern.
Allows switching between a real IP geolocation service and a no-op.
"""

import ipaddress
import logging
from abc import ABC, abstractmethod

import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


class GeoLocation(BaseModel):
    country: str = UNKNOWN
    city: str = UNKNOWN


class GeoLocatorStrategy(ABC):
    """
    Abstract base class for geo lookup.

    Lookups never raise: a visitor whose location cannot be determined is
    still a visitor, so failures degrade to "Unknown".
    """

    @abstractmethod
    def locate(self, ip_address: str) -> GeoLocation:
        """Resolve an IP address to a country and city"""
        pass


class IpApiGeoLocator(GeoLocatorStrategy):
    """
    ip-api.com JSON endpoint.

    Private, loopback and malformed addresses are answered locally without
    a network round trip.
    """

    def __init__(self, base_url: str = "http://ip-api.com/json", timeout: float = 2.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def locate(self, ip_address: str) -> GeoLocation:
        if not self._is_public(ip_address):
            return GeoLocation()

        try:
            response = requests.get(f"{self.base_url}/{ip_address}", timeout=self.timeout)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Geo lookup failed for %s: %s", ip_address, e)
            return GeoLocation()

        if data.get("status") != "success":
            return GeoLocation()

        return GeoLocation(
            country=data.get("country") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
        )

    @staticmethod
    def _is_public(ip_address: str) -> bool:
        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError:
            return False
        return address.is_global


class NullGeoLocator(GeoLocatorStrategy):
    """
    Null Object Pattern - every address is "Unknown".

    Used for tests and deployments without outbound network access.
    """

    def locate(self, ip_address: str) -> GeoLocation:
        return GeoLocation()
