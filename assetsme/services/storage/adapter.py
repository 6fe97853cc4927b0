from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from assetsme.core.errors import InputError


class ObjectExistsError(Exception):
    """Raised by ``write_object`` when the key is already taken."""

    def __init__(self, object_key: str) -> None:
        super().__init__(f"Object already exists: {object_key}")
        self.object_key = object_key


class StorageAdapter(ABC):
    provider: str = "local"
    bucket: str | None = None

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    @abstractmethod
    def object_exists(self, object_key: str) -> bool:
        pass

    @abstractmethod
    def read_object(self, object_key: str) -> bytes:
        pass

    @abstractmethod
    def write_object(
        self,
        object_key: str,
        content: bytes,
        *,
        content_type: str | None = None,
        overwrite: bool = False,
    ) -> str:
        """Store ``content`` under ``object_key`` and return the key.

        Unless ``overwrite`` is set the write is create-if-absent and raises
        ``ObjectExistsError`` when another writer got there first.
        """

    @abstractmethod
    def delete_object(self, object_key: str) -> None:
        pass

    def object_url(self, object_key: str) -> str:
        return f"{self.base_url}/{quote(object_key)}"


class LocalFileSystemAdapter(StorageAdapter):
    def __init__(self, base_path: str, base_url: str):
        super().__init__(base_url)
        self.base_path = Path(base_path)
        self.provider = "local"
        self.bucket = "local"
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve_safe_path(self, object_key: str) -> Path:
        if not object_key or "\\" in object_key:
            raise InputError("Invalid object key")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise InputError("Invalid object key")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved == base or base not in resolved.parents:
            raise InputError("Invalid object key")
        return resolved

    def resolve_path(self, object_key: str) -> Path:
        return self._resolve_safe_path(object_key)

    def object_exists(self, object_key: str) -> bool:
        try:
            path = self._resolve_safe_path(object_key)
        except InputError:
            return False
        return path.exists()

    def read_object(self, object_key: str) -> bytes:
        return self._resolve_safe_path(object_key).read_bytes()

    def write_object(
        self,
        object_key: str,
        content: bytes,
        *,
        content_type: str | None = None,
        overwrite: bool = False,
    ) -> str:
        path = self._resolve_safe_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # "x" maps to O_CREAT | O_EXCL, so concurrent writers cannot both win.
        mode = "wb" if overwrite else "xb"
        try:
            with path.open(mode) as handle:
                handle.write(content)
        except FileExistsError as exc:
            raise ObjectExistsError(object_key) from exc
        return object_key

    def delete_object(self, object_key: str) -> None:
        path = self._resolve_safe_path(object_key)
        path.unlink(missing_ok=True)


class GCSStorageAdapter(StorageAdapter):
    def __init__(self, bucket: str, base_url: str | None = None):
        # Lazy import to avoid requiring dependency unless used
        from google.cloud import storage

        super().__init__(base_url or f"https://storage.googleapis.com/{bucket}")
        self.provider = "gcs"
        self.bucket = bucket
        self.client = storage.Client()
        self._bucket_ref = self.client.bucket(bucket)

    def object_exists(self, object_key: str) -> bool:
        return self._bucket_ref.blob(object_key).exists()

    def read_object(self, object_key: str) -> bytes:
        return self._bucket_ref.blob(object_key).download_as_bytes()

    def write_object(
        self,
        object_key: str,
        content: bytes,
        *,
        content_type: str | None = None,
        overwrite: bool = False,
    ) -> str:
        from google.api_core.exceptions import PreconditionFailed

        blob = self._bucket_ref.blob(object_key)
        kwargs = {} if overwrite else {"if_generation_match": 0}
        try:
            blob.upload_from_string(content, content_type=content_type, **kwargs)
        except PreconditionFailed as exc:
            raise ObjectExistsError(object_key) from exc
        return object_key

    def delete_object(self, object_key: str) -> None:
        from google.api_core.exceptions import NotFound

        try:
            self._bucket_ref.blob(object_key).delete()
        except NotFound:
            pass
