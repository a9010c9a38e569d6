"""
Geo lookup module.
Implements Strategy Pattern for pluggable IP geolocation.
"""

from .strategies import GeoLocation, GeoLocatorStrategy, IpApiGeoLocator, NullGeoLocator
from .factory import GeoFactory, GeoBackend

__all__ = [
    "GeoLocation",
    "GeoLocatorStrategy",
    "IpApiGeoLocator",
    "NullGeoLocator",
    "GeoFactory",
    "GeoBackend",
]
