from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobClient, BlobServiceClient, ContentSettings

from dealflow.core.config import settings
from dealflow.shared.enums import Env


@dataclass(frozen=True)
class BlobWriteResult:
    blob_uri: str
    etag: str | None
    version_id: str | None
    sha256: str
    size_bytes: int

    @property
    def key(self) -> str:
        return self.blob_uri


class BlobStore(Protocol):
    def put(
        self,
        data: bytes,
        *,
        blob_name: str,
        content_type: str | None,
        metadata: dict[str, str] | None = None,
    ) -> BlobWriteResult: ...

    def get(self, key: str) -> bytes: ...

    def delete(self, key: str) -> None: ...


def _account_url() -> str:
    if settings.STORAGE_ACCOUNT_URL:
        return settings.STORAGE_ACCOUNT_URL.rstrip("/")
    if not settings.AZURE_STORAGE_ACCOUNT:
        raise ValueError("STORAGE_ACCOUNT_URL or AZURE_STORAGE_ACCOUNT not configured")
    return f"https://{settings.AZURE_STORAGE_ACCOUNT}.blob.core.windows.net"


def _use_local_storage() -> bool:
    if settings.env == Env.prod:
        return False
    # Placeholder accounts count as "not configured" so local runs never hit the network.
    if settings.STORAGE_ACCOUNT_URL and "example.blob.core.windows.net" in settings.STORAGE_ACCOUNT_URL:
        return True
    if settings.AZURE_STORAGE_ACCOUNT and settings.AZURE_STORAGE_ACCOUNT.lower() == "example":
        return True
    return not (settings.STORAGE_ACCOUNT_URL or settings.AZURE_STORAGE_ACCOUNT)


def _local_base_dir() -> Path:
    if settings.LOCAL_BLOB_ROOT:
        return Path(settings.LOCAL_BLOB_ROOT)
    # repo_root/tmp/local_blob_storage/<container>/<blob_name>
    repo_root = Path(__file__).resolve().parents[3]
    return repo_root / "tmp" / "local_blob_storage"


class LocalBlobStore:
    """Filesystem store for dev and tests; keys look like ``local://<container>/<blob_name>``."""

    def __init__(self, root: Path | str, container: str) -> None:
        self.root = Path(root)
        self.container = container

    def _path(self, container: str, blob_name: str) -> Path:
        # blob_name may contain '/' which we treat as folders.
        return self.root / container / Path(blob_name)

    def _parse(self, key: str) -> Path:
        if not key.startswith("local://"):
            raise ValueError("Not a local blob URI")
        container, _, blob_name = key.removeprefix("local://").partition("/")
        if not container or not blob_name:
            raise ValueError("Invalid local blob URI")
        return self._path(container, blob_name)

    def put(
        self,
        data: bytes,
        *,
        blob_name: str,
        content_type: str | None,
        metadata: dict[str, str] | None = None,
    ) -> BlobWriteResult:
        path = self._path(self.container, blob_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            raise ResourceExistsError("Blob already exists")
        path.write_bytes(data)
        return BlobWriteResult(
            blob_uri=f"local://{self.container}/{blob_name}",
            etag=None,
            version_id=None,
            sha256=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
        )

    def get(self, key: str) -> bytes:
        path = self._parse(key)
        if not path.exists():
            raise ResourceNotFoundError("Blob not found")
        return path.read_bytes()

    def delete(self, key: str) -> None:
        self._parse(key).unlink(missing_ok=True)


class AzureBlobStore:
    """Append-only writes to one container using Managed Identity (DefaultAzureCredential)."""

    def __init__(self, container: str, account_url: str | None = None) -> None:
        self.container = container
        self.account_url = account_url or _account_url()
        self._credential = DefaultAzureCredential(exclude_interactive_browser_credential=True)

    def _service_client(self) -> BlobServiceClient:
        return BlobServiceClient(account_url=self.account_url, credential=self._credential)

    def put(
        self,
        data: bytes,
        *,
        blob_name: str,
        content_type: str | None,
        metadata: dict[str, str] | None = None,
    ) -> BlobWriteResult:
        bc: BlobClient = self._service_client().get_blob_client(container=self.container, blob=blob_name)
        content_settings = ContentSettings(content_type=content_type) if content_type else None
        # overwrite=False: a second write to the same name raises ResourceExistsError.
        bc.upload_blob(data, overwrite=False, metadata=metadata, content_settings=content_settings)
        props = bc.get_blob_properties()
        return BlobWriteResult(
            blob_uri=f"{self.account_url}/{self.container}/{blob_name}",
            etag=(props.etag.strip('"') if props.etag else None),
            version_id=getattr(props, "version_id", None),
            sha256=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
        )

    def get(self, key: str) -> bytes:
        bc = BlobClient.from_blob_url(key, credential=self._credential)
        return bc.download_blob().readall()

    def delete(self, key: str) -> None:
        bc = BlobClient.from_blob_url(key, credential=self._credential)
        try:
            bc.delete_blob()
        except ResourceNotFoundError:
            return


def get_blob_store() -> BlobStore:
    """FastAPI dependency: the store rendered proposals are written to."""
    container = settings.AZURE_STORAGE_PROPOSALS_CONTAINER
    if _use_local_storage():
        return LocalBlobStore(_local_base_dir(), container)
    return AzureBlobStore(container)
