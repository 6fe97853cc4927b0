from assetsme.models.asset import Asset
from assetsme.models.folder import Folder

__all__ = [
    "Asset",
    "Folder",
]
