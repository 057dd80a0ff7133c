"""
Stockage objet (images des lectures, dictées audio).

`GCSStorage` écrit dans un bucket Google Cloud Storage et renvoie l'URI `gs://` et l'URL
publique; `InMemoryStorage` conserve les octets en mémoire (dev/tests) avec des URL de même
forme.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from google.api_core import exceptions as gcs_exceptions
from google.auth import default as google_auth_default
from google.cloud import storage

from sipnread.app.metrics import STORAGE_UPLOADS
from sipnread.core.logging import get_logger
from sipnread.domain.errors import RemoteCallError

log = get_logger("storage")

PUBLIC_BASE = "https://storage.googleapis.com"


@dataclass(frozen=True)
class StoredObject:
    path: str
    gs_uri: str
    public_url: str
    content_type: str
    size: int


class ObjectStorage(ABC):
    """Interface de stockage objet."""

    bucket_name: str

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str, kind: str = "image") -> StoredObject:
        """Écrit `data` sous `path` et renvoie ses références."""
        ...

    def _stored(self, path: str, data: bytes, content_type: str) -> StoredObject:
        return StoredObject(
            path=path,
            gs_uri=f"gs://{self.bucket_name}/{path}",
            public_url=f"{PUBLIC_BASE}/{self.bucket_name}/{path}",
            content_type=content_type,
            size=len(data),
        )


class GCSStorage(ObjectStorage):
    """Stockage sur Google Cloud Storage (identifiants par défaut de l'environnement)."""

    def __init__(self, bucket_name: str, project: str | None = None, client=None):
        """Construit le client GCS à partir des identifiants applicatifs par défaut."""
        self.bucket_name = bucket_name
        if client is None:
            creds, detected_project = google_auth_default(
                scopes=["https://www.googleapis.com/auth/devstorage.read_write"]
            )
            client = storage.Client(project=project or detected_project, credentials=creds)
        self.client = client

    def upload(self, path: str, data: bytes, content_type: str, kind: str = "image") -> StoredObject:
        blob = self.client.bucket(self.bucket_name).blob(path)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except gcs_exceptions.GoogleAPIError as err:
            log.warning("storage_upload_failed", path=path, error=type(err).__name__)
            raise RemoteCallError("storage", f"Upload failed for {path}: {err}") from err
        STORAGE_UPLOADS.labels(kind).inc()
        log.info("storage_uploaded", path=path, size=len(data))
        return self._stored(path, data, content_type)


class InMemoryStorage(ObjectStorage):
    """Stockage objet en mémoire (dev/tests)."""

    def __init__(self, bucket_name: str = "sipnread-local"):
        self.bucket_name = bucket_name
        self.objects: dict[str, tuple[bytes, str]] = {}

    def upload(self, path: str, data: bytes, content_type: str, kind: str = "image") -> StoredObject:
        self.objects[path] = (data, content_type)
        STORAGE_UPLOADS.labels(kind).inc()
        return self._stored(path, data, content_type)
