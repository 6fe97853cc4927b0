"""Per-file ingestion pipeline.

For every uploaded file, in order: content-type gate, size limit, path
allocation and byte persistence, asset record, variant generation, variant
metadata. Variant parameters and the target folder are resolved once per
batch before any bytes are written, so a bad request never leaves files
behind. A failing file aborts the rest of the batch.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence
from uuid import UUID

from assetsme.core.errors import (
    AssetError,
    InputError,
    IngestionError,
    NotFoundError,
    ProcessingError,
    StorageError,
)
from assetsme.core.settings import Settings
from assetsme.models.asset import Asset
from assetsme.repositories.assets import AssetRepository
from assetsme.repositories.folders import FolderRepository
from assetsme.services.content_gate import ContentTypeGate, is_raster_image
from assetsme.services.folders import normalize_folder, normalize_path, resolve_folder_id
from assetsme.services.storage.adapter import StorageAdapter
from assetsme.services.storage.key_generator import PathAllocator
from assetsme.services.variants import (
    VariantConfig,
    VariantGenerator,
    VariantResult,
    VariantSize,
    resolve_variant_sizes,
)

logger = logging.getLogger(__name__)

# Width of assets.original_name.
MAX_ORIGINAL_NAME_LENGTH = 255


@dataclass(frozen=True, slots=True)
class IngestionConfig:
    max_file_size: int
    variants: VariantConfig
    denied_mime_patterns: tuple[str, ...]
    name_attempts: int = 5
    name_backoff_seconds: float = 0.001
    folder_attempts: int = 3
    default_access_level: str = "private"

    @classmethod
    def from_settings(cls, config: Settings) -> "IngestionConfig":
        return cls(
            max_file_size=config.max_file_size,
            variants=VariantConfig.from_settings(config),
            denied_mime_patterns=tuple(config.denied_mime_patterns),
            name_attempts=config.name_attempts,
            name_backoff_seconds=config.name_backoff_ms / 1000,
            folder_attempts=config.folder_attempts,
            default_access_level=config.default_access_level,
        )


@dataclass(slots=True)
class UploadedFile:
    filename: str | None
    content: bytes
    # Byte count seen by the transport; larger than ``content`` when the read was capped.
    declared_size: int | None = None

    @property
    def size(self) -> int:
        if self.declared_size is None:
            return len(self.content)
        return max(self.declared_size, len(self.content))


@dataclass(slots=True)
class IngestedAsset:
    asset: Asset
    url: str
    sizes: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class AssetPage:
    items: list[tuple[Asset, str]]
    page: int
    per_page: int
    has_more: bool


class _StageFailed(Exception):
    def __init__(self, stage: str, error: AssetError) -> None:
        super().__init__(stage)
        self.stage = stage
        self.error = error


class AssetIngestionService:
    def __init__(
        self,
        *,
        assets: AssetRepository,
        folders: FolderRepository,
        adapter: StorageAdapter,
        config: IngestionConfig,
    ) -> None:
        self.assets = assets
        self.folders = folders
        self.adapter = adapter
        self.config = config
        self.gate = ContentTypeGate.from_patterns(config.denied_mime_patterns)
        self.allocator = PathAllocator(
            adapter,
            max_attempts=config.name_attempts,
            backoff_seconds=config.name_backoff_seconds,
        )
        self.generator = VariantGenerator(adapter, allow_upscale=config.variants.allow_upscale)

    def resolve_variants(self, params: Mapping[str, str | None]) -> dict[str, VariantSize | None]:
        return resolve_variant_sizes(params, self.config.variants)

    async def resolve_folder(self, folder: str | None, owner_id: str) -> UUID | None:
        return await resolve_folder_id(
            self.folders,
            folder,
            owner_id,
            access_level=self.config.default_access_level,
            max_attempts=self.config.folder_attempts,
        )

    async def ingest(
        self,
        files: Sequence[UploadedFile],
        *,
        folder: str | None,
        owner_id: str,
        variant_params: Mapping[str, str | None],
    ) -> list[IngestedAsset]:
        if not files:
            raise InputError("No file was provided.", details={"file": ["No file was provided."]})

        folder = normalize_folder(folder)
        definitions = self.resolve_variants(variant_params)
        folder_id = await self.resolve_folder(folder, owner_id)

        results: list[IngestedAsset] = []
        for index, upload in enumerate(files):
            try:
                ingested = await self._ingest_one(
                    upload,
                    folder=folder,
                    folder_id=folder_id,
                    owner_id=owner_id,
                    definitions=definitions,
                )
            except _StageFailed as failure:
                raise IngestionError(
                    stage=failure.stage,
                    index=index,
                    original_name=upload.filename,
                    cause=failure.error,
                    completed=results,
                ) from failure.error
            results.append(ingested)
        return results

    async def _ingest_one(
        self,
        upload: UploadedFile,
        *,
        folder: str | None,
        folder_id: UUID | None,
        owner_id: str,
        definitions: Mapping[str, VariantSize | None],
    ) -> IngestedAsset:
        stage = "content_type"
        try:
            mime = self.gate.inspect(upload.content)

            stage = "size"
            if upload.size > self.config.max_file_size:
                raise InputError(
                    "One or more files exceed the maximum size.",
                    details={"max_file_size": self.config.max_file_size},
                )

            stage = "store"
            file_name, path = await self._store_bytes(upload, folder, mime)

            stage = "record"
            asset = await self._create_record(
                upload, path=path, folder=folder, folder_id=folder_id, owner_id=owner_id, mime=mime
            )

            stage = "variants"
            variants = await self._generate_variants(asset, upload.content, folder, file_name, definitions)
        except AssetError as exc:
            raise _StageFailed(stage, exc) from exc

        logger.info(
            "Ingested asset mime=%s size=%d variants=%s",
            asset.mime,
            asset.size,
            ",".join(variants.sizes) or "-",
            extra={"path": asset.path, "asset_id": str(asset.id)},
        )
        return IngestedAsset(asset=asset, url=self.adapter.object_url(asset.path), sizes=variants.sizes)

    async def _store_bytes(self, upload: UploadedFile, folder: str | None, mime: str) -> tuple[str, str]:
        try:
            return await asyncio.to_thread(
                self.allocator.store, folder, upload.filename, mime, upload.content
            )
        except AssetError:
            raise
        except Exception as exc:
            logger.exception("Failed to store uploaded file", extra={"stage": "store"})
            raise StorageError("Failed to store uploaded file.") from exc

    async def _create_record(
        self,
        upload: UploadedFile,
        *,
        path: str,
        folder: str | None,
        folder_id: UUID | None,
        owner_id: str,
        mime: str,
    ) -> Asset:
        try:
            return await self.assets.create(
                path=path,
                folder_id=folder_id,
                folder=folder,
                owner_id=owner_id,
                original_name=upload.filename[:MAX_ORIGINAL_NAME_LENGTH] if upload.filename else None,
                mime=mime,
                size=len(upload.content),
                checksum=hashlib.sha256(upload.content).hexdigest(),
            )
        except Exception as exc:
            logger.exception("Failed to record uploaded file", extra={"path": path})
            removed = await self._discard(path)
            raise StorageError(
                "Failed to record uploaded file.",
                details={"path": path, "bytes_removed": removed},
            ) from exc

    async def _discard(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self.adapter.delete_object, path)
        except Exception:
            logger.exception("Could not remove unreferenced bytes", extra={"path": path})
            return False
        return True

    async def _generate_variants(
        self,
        asset: Asset,
        content: bytes,
        folder: str | None,
        file_name: str,
        definitions: Mapping[str, VariantSize | None],
    ) -> VariantResult:
        requested = {key: size for key, size in definitions.items() if size is not None}
        if not requested:
            return VariantResult()
        if not is_raster_image(asset.mime):
            logger.info("Skipping variants for non-raster %s", asset.mime, extra={"path": asset.path})
            return VariantResult()

        written: list[str] = []
        partial = {"asset_id": str(asset.id), "path": asset.path}
        try:
            result = await asyncio.to_thread(
                self.generator.generate_variants, content, folder, file_name, requested, written=written
            )
        except ProcessingError as exc:
            logger.error("Variant generation failed: %s", exc.message, extra={"path": asset.path})
            raise ProcessingError(
                "Failed to generate one or more image variants.",
                details={**exc.details, **partial, "written_variants": written},
            ) from exc
        except Exception as exc:
            logger.exception("Variant generation failed", extra={"path": asset.path})
            raise ProcessingError(
                "Failed to generate one or more image variants.",
                details={**partial, "written_variants": written},
            ) from exc

        try:
            await self.assets.attach_variants(asset, result.metadata)
        except Exception as exc:
            logger.exception("Failed to record variant metadata", extra={"path": asset.path})
            raise StorageError(
                "Failed to record image variants.",
                details={**partial, "written_variants": written},
            ) from exc
        return result

    async def list_assets(self, folder: str | None, *, page: int = 1, per_page: int = 25) -> AssetPage:
        folder = normalize_folder(folder)
        rows = list(
            await self.assets.list_by_folder(folder, offset=(page - 1) * per_page, limit=per_page + 1)
        )
        has_more = len(rows) > per_page
        items = [(asset, self.adapter.object_url(asset.path)) for asset in rows[:per_page]]
        return AssetPage(items=items, page=page, per_page=per_page, has_more=has_more)

    async def delete_asset(self, path: str) -> Asset:
        normalized = normalize_path(path)
        asset = await self.assets.get_by_path(normalized)
        if asset is None:
            raise NotFoundError("Asset not found.", details={"path": normalized})

        keys = [asset.path, *(meta["path"] for meta in (asset.variants or {}).values() if meta.get("path"))]
        for key in keys:
            try:
                await asyncio.to_thread(self.adapter.delete_object, key)
            except Exception as exc:
                logger.exception("Failed to delete stored file", extra={"path": key})
                raise StorageError("Failed to delete stored file.", details={"path": key}) from exc

        try:
            await self.assets.delete(asset)
        except Exception as exc:
            logger.exception("Failed to delete asset record", extra={"path": asset.path})
            raise StorageError("Failed to delete asset record.", details={"path": asset.path}) from exc
        logger.info("Deleted asset with %d stored files", len(keys), extra={"path": asset.path})
        return asset

