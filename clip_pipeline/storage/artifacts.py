from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Protocol

from clip_pipeline.config import StorageSettings
from clip_pipeline.errors import ClipPipelineError
from clip_pipeline.models import UploadResult

logger = logging.getLogger(__name__)


class ArtifactStore(Protocol):
    def upload(self, data: bytes | Path, key: str, mime_type: str = "video/mp4") -> UploadResult:
        ...

    def delete(self, path: str) -> bool:
        ...


class LocalArtifactStore:
    """Store finished clips on the local filesystem under a root directory."""

    def __init__(self, root: str | Path, public_base_url: str | None = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def upload(self, data: bytes | Path, key: str, mime_type: str = "video/mp4") -> UploadResult:
        destination = self._resolve(key)
        destination.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, Path):
            shutil.copyfile(data, destination)
        else:
            destination.write_bytes(data)

        size = destination.stat().st_size
        url = f"{self.public_base_url}/{key}" if self.public_base_url else destination.as_uri()
        logger.info("Stored %s (%d bytes)", destination, size)
        return UploadResult(url=url, path=key, size=size, mime_type=mime_type)

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        target.unlink()
        return True

    def _resolve(self, key: str) -> Path:
        destination = (self.root / key).resolve()
        if self.root not in destination.parents:
            raise ValueError(f"Artifact key escapes the store root: {key}")
        return destination


class GCSArtifactStore:
    """Store finished clips in a Google Cloud Storage bucket."""

    def __init__(self, bucket: str, prefix: str = "", client: Any = None) -> None:
        if not bucket:
            raise ValueError("GCS artifact store needs a bucket name.")
        self.bucket_name = bucket
        self.prefix = prefix.strip("/")
        self._client = client

    def upload(self, data: bytes | Path, key: str, mime_type: str = "video/mp4") -> UploadResult:
        object_name = self._object_name(key)
        blob = self._bucket().blob(object_name)
        if isinstance(data, Path):
            blob.upload_from_filename(str(data), content_type=mime_type)
            size = data.stat().st_size
        else:
            blob.upload_from_string(data, content_type=mime_type)
            size = len(data)

        logger.info("Uploaded gs://%s/%s (%d bytes)", self.bucket_name, object_name, size)
        return UploadResult(url=blob.public_url, path=object_name, size=size, mime_type=mime_type)

    def delete(self, path: str) -> bool:
        blob = self._bucket().blob(path)
        if not blob.exists():
            return False
        blob.delete()
        return True

    def _object_name(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _bucket(self) -> Any:
        if self._client is None:
            from google.cloud import storage as gcs_storage

            self._client = gcs_storage.Client()
        return self._client.bucket(self.bucket_name)


def build_artifact_store(settings: StorageSettings) -> ArtifactStore:
    backend = settings.backend.lower()
    if backend == "local":
        return LocalArtifactStore(settings.local_root, settings.public_base_url)
    if backend == "gcs":
        return GCSArtifactStore(settings.bucket, settings.prefix)
    raise ClipPipelineError(f"Unknown storage backend: {settings.backend}. Expected 'local' or 'gcs'.")
