from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class VariantMeta(BaseModel):
    path: str
    width: int
    height: int


class AssetUploadRead(BaseModel):
    id: UUID
    url: str
    path: str
    folder_id: Optional[UUID] = None
    folder: Optional[str] = None
    mime: str
    size: int
    original_name: Optional[str] = None
    checksum: str
    created_at: Optional[datetime] = None
    sizes: Optional[Dict[str, str]] = None


class AssetRead(BaseModel):
    id: UUID
    path: str
    url: str
    folder_id: Optional[UUID] = None
    folder: Optional[str] = None
    owner_id: str
    original_name: Optional[str] = None
    mime: str
    size: int
    checksum: str
    variants: Dict[str, VariantMeta] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AssetListMeta(BaseModel):
    page: int
    per_page: int
    has_more: bool


class AssetListResponse(BaseModel):
    items: list[AssetRead]
    meta: AssetListMeta


class AssetDeleteResponse(BaseModel):
    deleted: bool
    path: str


def upload_payload(asset: Any, url: str, sizes: Dict[str, str]) -> AssetUploadRead:
    fields = dict(
        id=asset.id,
        url=url,
        path=asset.path,
        folder_id=asset.folder_id,
        folder=asset.folder,
        mime=asset.mime,
        size=asset.size,
        original_name=asset.original_name,
        checksum=asset.checksum,
        created_at=asset.created_at,
    )
    if sizes:
        fields["sizes"] = sizes
    return AssetUploadRead(**fields)


def list_item(asset: Any, url: str) -> AssetRead:
    return AssetRead.model_validate(
        {
            "id": asset.id,
            "path": asset.path,
            "url": url,
            "folder_id": asset.folder_id,
            "folder": asset.folder,
            "owner_id": asset.owner_id,
            "original_name": asset.original_name,
            "mime": asset.mime,
            "size": asset.size,
            "checksum": asset.checksum,
            "variants": asset.variants or {},
            "created_at": asset.created_at,
            "updated_at": asset.updated_at,
        }
    )
