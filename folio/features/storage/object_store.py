"""
Object store collaborator.

`LocalObjectStore` keeps objects on the filesystem under OBJECT_STORE_ROOT and
serves them through the uploads router. Objects are write-once. Direct client
uploads go through HMAC-signed, time-limited PUT URLs.
"""

import hashlib
import hmac
import logging
import os
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Protocol
from urllib.parse import quote, urlencode

from folio.core.config import settings
from folio.core.errors import NotFoundError, ObjectExistsError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    def put(self, bucket: str, key: str, data: bytes, content_type: str) -> str: ...

    def presigned_put_url(self, bucket: str, key: str, expires_in: int) -> str: ...


def _check_name(bucket: str, key: str) -> PurePosixPath:
    if not bucket or "/" in bucket or bucket in (".", ".."):
        raise ValidationError(f"Invalid bucket name: {bucket!r}")
    path = PurePosixPath(key)
    if not key or path.is_absolute() or any(part in ("", ".", "..") for part in key.split("/")):
        raise ValidationError(f"Invalid object key: {key!r}")
    return path


def sign_upload(secret: str, bucket: str, key: str, expires: int) -> str:
    """HMAC-SHA256 over method, bucket, key and expiry."""
    signed_content = f"PUT\n{bucket}\n{key}\n{expires}".encode()
    return hmac.new(secret.encode(), signed_content, hashlib.sha256).hexdigest()


class LocalObjectStore:
    def __init__(
        self,
        root: Optional[str] = None,
        base_url: Optional[str] = None,
        signing_key: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.root = Path(root or settings.OBJECT_STORE_ROOT)
        self.base_url = (base_url or settings.OBJECT_STORE_BASE_URL).rstrip("/")
        self.signing_key = signing_key if signing_key is not None else settings.OBJECT_STORE_SIGNING_KEY
        self._clock = clock

    def _path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / Path(*_check_name(bucket, key).parts)

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.base_url}/{quote(bucket)}/{quote(key)}"

    def put(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        """
        Store `data` under bucket/key and return its URL.

        Raises:
            ObjectExistsError: the key already exists
            PersistenceError: the write failed
        """
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError:
            raise ObjectExistsError(f"Object already exists: {bucket}/{key}")
        except OSError as e:
            logger.error(f"[storage] write failed bucket={bucket} key={key}: {e}")
            raise PersistenceError("Object store write failed")

        logger.info(f"[storage] stored bucket={bucket} key={key} bytes={len(data)} content_type={content_type}")
        return self.public_url(bucket, key)

    def file_path(self, bucket: str, key: str) -> Path:
        path = self._path(bucket, key)
        if not path.is_file():
            raise NotFoundError("Object not found")
        return path

    def presigned_put_url(self, bucket: str, key: str, expires_in: int) -> str:
        if not self.signing_key:
            raise PersistenceError("Object store signing key is not configured")
        _check_name(bucket, key)
        expires = int(self._clock()) + int(expires_in)
        query = urlencode({"expires": expires, "signature": sign_upload(self.signing_key, bucket, key, expires)})
        return f"{self.public_url(bucket, key)}?{query}"

    def verify_presigned(self, bucket: str, key: str, expires: int, signature: str) -> bool:
        if not self.signing_key or not signature:
            return False
        if int(self._clock()) > int(expires):
            return False
        expected = sign_upload(self.signing_key, bucket, key, int(expires))
        return hmac.compare_digest(signature, expected)


def ensure_buckets(store: LocalObjectStore) -> None:
    for bucket in (settings.EXPORT_BUCKET, settings.COVER_BUCKET):
        os.makedirs(store.root / bucket, exist_ok=True)
