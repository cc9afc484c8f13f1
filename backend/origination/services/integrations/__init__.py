"""
Outbound collaborators: asset storage, core banking system, geo WPS.
"""
from .asset_store import LocalAssetStore, asset_name
from .cbs_client import CBSClient, CBSCredentials
from .geo_service import GeoValidationService, parcel_points

__all__ = [
    "LocalAssetStore",
    "asset_name",
    "CBSClient",
    "CBSCredentials",
    "GeoValidationService",
    "parcel_points",
]
