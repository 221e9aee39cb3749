"""
Card image ingestion: turn a mixed list of URLs and base64 payloads into
public URLs in object storage. Best-effort per image.
"""
import asyncio
import base64
import binascii
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from core.config import UPLOAD_CONCURRENCY, logger
from utils.storage import ObjectStore

DEFAULT_EXTENSION = "png"

# data:<media type>[;param=value...];base64,
_DATA_URL_PREFIX = re.compile(r"^data:([^;,]*)(?:;[^,]*)?;base64,")
_IMAGE_SUBTYPE = re.compile(r"^image/(\w+)$")
_ORDER_ID = re.compile(r"^[A-Za-z0-9_.:-]+$")

# Declared formats stored under their own extension; anything else gets DEFAULT_EXTENSION
KNOWN_EXTENSIONS = {"png", "jpeg", "jpg", "gif", "webp", "avif", "bmp", "heic", "tiff"}
_CONTENT_TYPES = {"jpg": "image/jpeg"}
_WHITESPACE = re.compile(r"\s+")
_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9-]+")


class ImageDecodeError(ValueError):
    pass


@dataclass
class ImageResult:
    index: int
    url: Optional[str] = None
    error: Optional[str] = None
    passthrough: bool = False

    @property
    def ok(self) -> bool:
        return self.url is not None


@dataclass
class IngestReport:
    total_count: int
    results: List[ImageResult] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        # Processing order, not input order
        return [r.url for r in self.results if r.ok]

    @property
    def uploaded_count(self) -> int:
        return len(self.urls)

    @property
    def failures(self) -> List[ImageResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return self.uploaded_count > 0


def is_url(reference) -> bool:
    return isinstance(reference, str) and reference.startswith("http")


def is_valid_order_id(order_id) -> bool:
    """Order ids become the top-level folder of every upload key."""
    return isinstance(order_id, str) and bool(_ORDER_ID.match(order_id)) and ".." not in order_id


def extension_for(reference: str) -> str:
    m = _DATA_URL_PREFIX.match(reference or "")
    sub = _IMAGE_SUBTYPE.match(m.group(1).strip().lower()) if m else None
    if sub and sub.group(1) in KNOWN_EXTENSIONS:
        return sub.group(1)
    return DEFAULT_EXTENSION


def content_type_for(ext: str) -> str:
    return _CONTENT_TYPES.get(ext, f"image/{ext}")


def decode_payload(reference) -> bytes:
    if not isinstance(reference, str):
        raise ImageDecodeError(f"unsupported image reference type: {type(reference).__name__}")
    body = _WHITESPACE.sub("", _DATA_URL_PREFIX.sub("", reference, count=1))
    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as ex:
        raise ImageDecodeError(f"invalid base64 payload: {ex}") from ex
    if not data:
        raise ImageDecodeError("empty image payload")
    return data


def address_bucket(shipping_address: Optional[dict]) -> str:
    """Coarse geographic folder: '<country>_<postal code>'."""
    if not isinstance(shipping_address, dict):
        return "unknown"
    country = _UNSAFE_PATH_CHARS.sub("_", str(shipping_address.get("country") or "").strip()).strip("_") or "unknown"
    postal = _UNSAFE_PATH_CHARS.sub("_", str(shipping_address.get("postal_code") or "").strip()).strip("_") or "unknown"
    return f"{country}_{postal}"


def upload_folder(order_id: str, shipping_address: Optional[dict], now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = int(now.timestamp() * 1000)
    return f"{order_id}/{stamp}/{address_bucket(shipping_address)}"


def _store_one(store: ObjectStore, folder: str, reference: str) -> str:
    data = decode_payload(reference)
    ext = extension_for(reference)
    key = f"{folder}/{uuid.uuid4()}.{ext}"
    return store.put(key, data, content_type=content_type_for(ext))


async def ingest(
    references: list,
    order_id: str,
    shipping_address: Optional[dict],
    store: ObjectStore,
    concurrency: int = UPLOAD_CONCURRENCY,
) -> IngestReport:
    if not is_valid_order_id(order_id):
        raise ValueError(f"invalid order id: {order_id!r}")
    report = IngestReport(total_count=len(references))
    folder = upload_folder(order_id, shipping_address)
    sem = asyncio.Semaphore(max(1, int(concurrency or 1)))

    async def _process(idx: int, reference) -> None:
        if is_url(reference):
            report.results.append(ImageResult(index=idx, url=reference, passthrough=True))
            return
        async with sem:
            try:
                url = await asyncio.to_thread(_store_one, store, folder, reference)
            except Exception as ex:
                logger.error(f"[card-images] order={order_id} image {idx + 1} failed: {ex}")
                report.results.append(ImageResult(index=idx, error=str(ex)))
                return
        report.results.append(ImageResult(index=idx, url=url))

    await asyncio.gather(*(_process(i, ref) for i, ref in enumerate(references)))

    if report.failures:
        logger.warning(
            f"[card-images] order={order_id} uploaded {report.uploaded_count}/{report.total_count}, "
            f"failed indexes={[r.index + 1 for r in report.failures]}"
        )
    return report
