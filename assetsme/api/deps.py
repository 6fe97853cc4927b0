from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from assetsme.core.context import set_owner_id
from assetsme.core.settings import settings
from assetsme.db.session import get_db
from assetsme.repositories.assets import SqlAssetRepository
from assetsme.repositories.folders import SqlFolderRepository
from assetsme.services.ingestion import AssetIngestionService, IngestionConfig
from assetsme.services.storage.adapter import StorageAdapter
from assetsme.services.storage.service import get_storage_adapter


async def get_current_owner(
    user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> str:
    owner_id = (user_id or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    set_owner_id(owner_id)
    return owner_id


def get_storage() -> StorageAdapter:
    return get_storage_adapter()


async def get_ingestion_service(
    db: AsyncSession = Depends(get_db),
    adapter: StorageAdapter = Depends(get_storage),
) -> AssetIngestionService:
    return AssetIngestionService(
        assets=SqlAssetRepository(db),
        folders=SqlFolderRepository(db),
        adapter=adapter,
        config=IngestionConfig.from_settings(settings),
    )
