from typing import Optional
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from core.config import s3, ORDER_IMAGES_BUCKET, R2_PUBLIC_BASE_URL, R2_ENDPOINT_URL, logger


class StoreError(Exception):
    """Upload to object storage failed. `code` classifies the failure."""

    def __init__(self, message: str, code: str = "store_error", key: str = ""):
        super().__init__(message)
        self.code = code
        self.key = key


# Error codes S3-compatible stores use when IfNoneMatch rejects an existing key
_EXISTS_CODES = ("PreconditionFailed", "412", "ConditionalRequestConflict")


class ObjectStore:
    """Create-only writer over one bucket with stable public URLs."""

    def __init__(self, bucket, public_base_url: str):
        self.bucket = bucket
        self.public_base_url = (public_base_url or "").rstrip("/")

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key.lstrip('/'), safe='/')}"

    def put(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        if self.bucket is None:
            raise StoreError("object storage is not configured", code="not_configured", key=key)
        try:
            self.bucket.put_object(
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000, immutable",
                IfNoneMatch="*",
            )
        except ClientError as ce:
            code = str(ce.response.get("Error", {}).get("Code") or "")
            if code in _EXISTS_CODES:
                logger.warning(f"[storage] refusing to overwrite existing object {key}")
                raise StoreError(f"object already exists: {key}", code="exists", key=key) from ce
            raise StoreError(f"upload failed for {key}: {code or ce}", code=code or "client_error", key=key) from ce
        except BotoCoreError as be:
            raise StoreError(f"upload failed for {key}: {be}", code="transport", key=key) from be

        url = self.public_url(key)
        logger.info(f"[storage] stored {key} ({len(data)} bytes)")
        return url


_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """FastAPI dependency returning the process-wide order image store."""
    global _store
    if _store is None:
        if s3 is None:
            logger.warning("[storage] R2 credentials missing; uploads will fail")
        base = R2_PUBLIC_BASE_URL or f"{R2_ENDPOINT_URL}/{ORDER_IMAGES_BUCKET}"
        _store = ObjectStore(s3.Bucket(ORDER_IMAGES_BUCKET) if s3 is not None else None, base)
    return _store
