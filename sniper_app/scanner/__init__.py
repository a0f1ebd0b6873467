"""New instrument discovery across venue pair registries"""

from .asset_scanner import AssetScanner, DiscoveryEvent, VenueScanStats

__all__ = ["AssetScanner", "DiscoveryEvent", "VenueScanStats"]
