from assetsme.core.errors import ConfigurationError
from assetsme.core.settings import Settings, settings as default_settings
from assetsme.services.storage.adapter import GCSStorageAdapter, LocalFileSystemAdapter, StorageAdapter


def get_storage_adapter(config: Settings | None = None) -> StorageAdapter:
    config = config or default_settings
    if config.storage_provider == "gcs":
        if not config.gcs_bucket:
            raise ConfigurationError("GCS bucket is not configured")
        return GCSStorageAdapter(bucket=config.gcs_bucket, base_url=config.assets_base_url)

    return LocalFileSystemAdapter(
        base_path=config.local_upload_dir,
        base_url=config.resolved_assets_base_url,
    )
