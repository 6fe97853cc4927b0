"""Record access for assets."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assetsme.models.asset import Asset


class AssetRepository(ABC):
    @abstractmethod
    async def create(
        self,
        *,
        path: str,
        folder_id: UUID | None,
        folder: str | None,
        owner_id: str,
        original_name: str | None,
        mime: str,
        size: int,
        checksum: str,
    ) -> Asset:
        pass

    @abstractmethod
    async def attach_variants(self, asset: Asset, variants: dict[str, dict[str, Any]]) -> Asset:
        pass

    @abstractmethod
    async def get_by_path(self, path: str) -> Asset | None:
        pass

    @abstractmethod
    async def list_by_folder(self, folder: str | None, *, offset: int, limit: int) -> Sequence[Asset]:
        pass

    @abstractmethod
    async def delete(self, asset: Asset) -> None:
        pass


class SqlAssetRepository(AssetRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def create(
        self,
        *,
        path: str,
        folder_id: UUID | None,
        folder: str | None,
        owner_id: str,
        original_name: str | None,
        mime: str,
        size: int,
        checksum: str,
    ) -> Asset:
        asset = Asset(
            path=path,
            folder_id=folder_id,
            folder=folder,
            owner_id=owner_id,
            original_name=original_name,
            mime=mime,
            size=size,
            checksum=checksum,
            variants={},
        )
        self.session.add(asset)
        await self._commit()
        await self.session.refresh(asset)
        return asset

    async def attach_variants(self, asset: Asset, variants: dict[str, dict[str, Any]]) -> Asset:
        asset.variants = {**(asset.variants or {}), **variants}
        self.session.add(asset)
        await self._commit()
        await self.session.refresh(asset)
        return asset

    async def get_by_path(self, path: str) -> Asset | None:
        result = await self.session.execute(select(Asset).where(Asset.path == path))
        return result.scalar_one_or_none()

    async def list_by_folder(self, folder: str | None, *, offset: int, limit: int) -> Sequence[Asset]:
        stmt = select(Asset)
        if folder is not None:
            stmt = stmt.where(Asset.folder == folder)
        else:
            stmt = stmt.where(or_(Asset.folder.is_(None), Asset.folder == ""))
        stmt = stmt.order_by(Asset.created_at.desc(), Asset.id).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete(self, asset: Asset) -> None:
        await self.session.delete(asset)
        await self._commit()
