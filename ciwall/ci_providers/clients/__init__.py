from .bamboo import BambooClient
from .base import JsonApiClient, VendorError, VendorNotFoundError, VendorTransportError
from .hudson import HudsonClient
from .teamcity import TeamCityClient

__all__ = [
    "JsonApiClient",
    "VendorError",
    "VendorNotFoundError",
    "VendorTransportError",
    "HudsonClient",
    "TeamCityClient",
    "BambooClient",
]
