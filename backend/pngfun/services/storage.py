from __future__ import annotations
import io
import secrets
import time
from uuid import UUID
from minio import Minio
from minio.error import S3Error
from starlette.concurrency import run_in_threadpool
from pngfun.config import settings

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure


def photo_key(user_id: UUID, ext: str) -> str:
    # <user>/<unix ms>-<random>.<ext>
    return f"{user_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


class PhotoStorage:
    """Photo bytes live in an S3 bucket; the ledger only keeps the public URL."""

    def __init__(self, endpoint: str, access_key: str, secret_key: str, bucket: str, public_base_url: str):
        host, secure = _parse_endpoint(endpoint)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._client = Minio(host, access_key=access_key, secret_key=secret_key, secure=secure)
        self._bucket_ready = False

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            if not self._client.bucket_exists(self.bucket):
                self._client.make_bucket(self.bucket)
        except S3Error as e:
            # Lost a creation race with another worker
            if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise
        self._bucket_ready = True

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket()
        self._client.put_object(self.bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)

    async def upload_photo(self, data: bytes, user_id: UUID, content_type: str = "image/jpeg", ext: str = "jpg") -> str:
        key = photo_key(user_id, ext)
        await run_in_threadpool(self._put, key, data, content_type)
        return f"{self.public_base_url}/{self.bucket}/{key}"


_storage: PhotoStorage | None = None

def get_photo_storage() -> PhotoStorage:
    # Built on first use so importing the app never touches the network
    global _storage
    if _storage is None:
        _storage = PhotoStorage(
            settings.s3_endpoint,
            settings.s3_access_key,
            settings.s3_secret_key,
            settings.s3_bucket_photos,
            settings.s3_public_base_url,
        )
    return _storage
