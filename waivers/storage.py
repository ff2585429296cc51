"""
Object storage access for signed waiver PDFs.

The waiver-signing workflow uploads the PDF first and then writes its path
into the database; the handler checks the object exists and downloads it
whole.
"""

import logging
from typing import Optional

logger = logging.getLogger("storage")


class ObjectStorage:
    """Minimal blob interface addressed by path string."""

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def download(self, path: str) -> bytes:
        raise NotImplementedError

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        raise NotImplementedError


class InMemoryObjectStorage(ObjectStorage):
    """Dict-backed storage for tests and the local emulator."""

    def __init__(self, objects: Optional[dict[str, bytes]] = None):
        self._objects: dict[str, bytes] = dict(objects or {})
        self._content_types: dict[str, str] = {}

    def exists(self, path: str) -> bool:
        return path in self._objects

    def download(self, path: str) -> bytes:
        try:
            return self._objects[path]
        except KeyError:
            raise FileNotFoundError(f"No object at {path}") from None

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        self._objects[path] = bytes(data)
        self._content_types[path] = content_type

    def content_type(self, path: str) -> Optional[str]:
        return self._content_types.get(path)


class FirebaseObjectStorage(ObjectStorage):
    """
    Cloud Storage backend using firebase_admin.storage.

    Args:
        bucket_name: Bucket to use. Defaults to the app's storageBucket option.
        app: firebase_admin App (defaults to the default app)
    """

    def __init__(self, bucket_name: Optional[str] = None, app=None):
        self.bucket_name = bucket_name
        self.app = app
        self._bucket = None

    def _get_bucket(self):
        if self._bucket is None:
            from firebase_admin import storage
            self._bucket = storage.bucket(self.bucket_name, app=self.app)
        return self._bucket

    def exists(self, path: str) -> bool:
        return self._get_bucket().blob(path).exists()

    def download(self, path: str) -> bytes:
        return self._get_bucket().blob(path).download_as_bytes()

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        self._get_bucket().blob(path).upload_from_string(data, content_type=content_type)
        logger.info(f"Uploaded {len(data)} bytes to {path}")
