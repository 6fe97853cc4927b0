from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import FileResponse

from assetsme.api import deps
from assetsme.schemas.assets import (
    AssetDeleteResponse,
    AssetListMeta,
    AssetListResponse,
    AssetUploadRead,
    list_item,
    upload_payload,
)
from assetsme.services.ingestion import AssetIngestionService, UploadedFile
from assetsme.services.storage.adapter import LocalFileSystemAdapter, StorageAdapter

router = APIRouter(prefix="/assets", tags=["assets"])


async def _read_upload(upload: UploadFile, max_file_size: int) -> UploadedFile:
    # One byte past the limit is enough to reject the file at the size stage.
    content = await upload.read(max_file_size + 1)
    return UploadedFile(filename=upload.filename, content=content, declared_size=upload.size)


@router.post(
    "",
    response_model=list[AssetUploadRead],
    response_model_exclude_unset=True,
    status_code=status.HTTP_201_CREATED,
    summary="Upload one or more files",
)
async def upload_assets(
    request: Request,
    file: UploadFile | None = File(default=None),
    files: list[UploadFile] | None = File(default=None),
    folder: str | None = Form(default=None),
    owner_id: str = Depends(deps.get_current_owner),
    service: AssetIngestionService = Depends(deps.get_ingestion_service),
):
    uploads = [upload for upload in [file, *(files or [])] if upload is not None]
    max_file_size = service.config.max_file_size
    batch = [await _read_upload(upload, max_file_size) for upload in uploads]
    variant_params = {key: request.query_params.get(key) for key in service.config.variants.keys}

    ingested = await service.ingest(
        batch,
        folder=folder,
        owner_id=owner_id,
        variant_params=variant_params,
    )
    return [upload_payload(item.asset, item.url, item.sizes) for item in ingested]


@router.get("", response_model=AssetListResponse, summary="List assets in a folder")
async def list_assets(
    folder: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=25, ge=1, le=100),
    _: str = Depends(deps.get_current_owner),
    service: AssetIngestionService = Depends(deps.get_ingestion_service),
):
    result = await service.list_assets(folder, page=page, per_page=per_page)
    return AssetListResponse(
        items=[list_item(asset, url) for asset, url in result.items],
        meta=AssetListMeta(page=result.page, per_page=result.per_page, has_more=result.has_more),
    )


@router.delete("", response_model=AssetDeleteResponse, summary="Delete an asset and its variants")
async def delete_asset(
    path: str = Query(...),
    _: str = Depends(deps.get_current_owner),
    service: AssetIngestionService = Depends(deps.get_ingestion_service),
):
    asset = await service.delete_asset(path)
    return AssetDeleteResponse(deleted=True, path=asset.path)


@router.get("/content/{object_key:path}", response_class=FileResponse, summary="Serve locally stored bytes")
async def get_local_content(
    object_key: str,
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> FileResponse:
    if not isinstance(adapter, LocalFileSystemAdapter):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not supported")
    path = adapter.resolve_path(object_key)
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    return FileResponse(path)
