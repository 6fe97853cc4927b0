"""Record access for folders."""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetsme.models.folder import Folder


class FolderNameConflict(Exception):
    """A sibling with the same name was committed by another writer."""

    def __init__(self, name: str, parent_id: UUID | None) -> None:
        super().__init__(f"Folder '{name}' already exists under parent {parent_id}")
        self.name = name
        self.parent_id = parent_id


class FolderRepository(ABC):
    @abstractmethod
    async def find_child(self, name: str, parent_id: UUID | None) -> Folder | None:
        pass

    @abstractmethod
    async def create(
        self,
        *,
        name: str,
        parent_id: UUID | None,
        owner_id: str,
        access_level: str,
    ) -> Folder:
        """Insert a folder; raise ``FolderNameConflict`` on a sibling-name clash."""


class SqlFolderRepository(FolderRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_child(self, name: str, parent_id: UUID | None) -> Folder | None:
        stmt = select(Folder).where(Folder.name == name)
        if parent_id is None:
            stmt = stmt.where(Folder.parent_id.is_(None))
        else:
            stmt = stmt.where(Folder.parent_id == parent_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create(
        self,
        *,
        name: str,
        parent_id: UUID | None,
        owner_id: str,
        access_level: str,
    ) -> Folder:
        folder = Folder(name=name, parent_id=parent_id, owner_id=owner_id, access_level=access_level)
        try:
            # The savepoint keeps the outer transaction usable after a unique violation.
            async with self.session.begin_nested():
                self.session.add(folder)
                await self.session.flush()
        except IntegrityError as exc:
            raise FolderNameConflict(name, parent_id) from exc
        await self.session.commit()
        return folder
