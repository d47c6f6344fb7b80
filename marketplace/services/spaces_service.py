import logging
import mimetypes
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image

from marketplace.config import settings

logger = logging.getLogger(__name__)

session = boto3.session.Session()

s3 = session.client(
    "s3",
    region_name=settings.SPACES_REGION,
    endpoint_url=settings.SPACES_ENDPOINT,
    aws_access_key_id=settings.SPACES_KEY,
    aws_secret_access_key=settings.SPACES_SECRET,
)

BUCKET = settings.SPACES_NAME
CDN_URL = settings.SPACES_CDN_URL
BASE_PATH = settings.SPACES_BASE_PATH
UPLOADS_FOLDER = "uploads"

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
THUMBNAIL_SUFFIX = "_thumb"
CLEANUP_WORKERS = 4


@dataclass
class UploadResult:
    success: bool
    main_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DeleteResult:
    success: bool
    error: Optional[str] = None


def _join_path(*segments: str) -> str:
    cleaned = [str(segment).strip("/") for segment in segments if segment and str(segment).strip("/")]
    return "/".join(cleaned)


def _uploads_prefix() -> str:
    return f"{CDN_URL}/{_join_path(BASE_PATH, UPLOADS_FOLDER)}/"


def _upload_file(data: bytes, key: str, content_type: str | None = None) -> str:
    extra_args = {"ACL": "public-read"}
    if content_type:
        extra_args["ContentType"] = content_type

    s3.put_object(
        Bucket=BUCKET,
        Key=key,
        Body=data,
        **extra_args
    )
    return f"{CDN_URL}/{key}"


def _key_from_url(url: str) -> Optional[str]:
    if not CDN_URL or not url.startswith(f"{CDN_URL}/"):
        return None
    return url[len(CDN_URL) + 1:]


def _thumbnail_key(key: str) -> str:
    stem, dot, extension = key.rpartition(".")
    if not dot:
        return f"{key}{THUMBNAIL_SUFFIX}"
    return f"{stem}{THUMBNAIL_SUFFIX}.{extension}"


def _make_thumbnail(image: Image.Image, size: int, image_format: str) -> bytes:
    thumb = image.copy()
    if image_format == "JPEG" and thumb.mode not in ("RGB", "L"):
        thumb = thumb.convert("RGB")
    thumb.thumbnail((size, size))
    out = BytesIO()
    thumb.save(out, format=image_format)
    return out.getvalue()


def upload_image(
    data: bytes,
    original_name: str,
    namespace: str,
    subpath: str,
    *,
    content_type: str | None = None,
    max_size: int | None = None,
    generate_thumbnail: bool = False,
    thumbnail_size: int | None = None,
) -> UploadResult:
    """Validate and store an image under ``{BASE_PATH}/uploads/{namespace}/{subpath}/``."""
    max_size = max_size or settings.MAX_IMAGE_SIZE_MB * 1024 * 1024
    if not data:
        return UploadResult(False, error="Uploaded file is empty")
    if len(data) > max_size:
        return UploadResult(False, error=f"File exceeds the {max_size // (1024 * 1024)}MB limit")

    content_type = content_type or mimetypes.guess_type(original_name or "")[0]
    if content_type not in ALLOWED_CONTENT_TYPES:
        return UploadResult(False, error="Only JPEG, PNG, WEBP and GIF images are allowed")

    # Besides corrupt data this covers Image.DecompressionBombError, which
    # Pillow raises for oversized dimensions and which is not an OSError.
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except Exception as exc:
        logger.info("Rejected %s: %s", original_name, exc)
        return UploadResult(False, error="Uploaded file is not a valid image")

    extension = mimetypes.guess_extension(content_type) or ".img"
    if extension == ".jpe":
        extension = ".jpg"
    key = _join_path(BASE_PATH, UPLOADS_FOLDER, namespace, subpath, f"{uuid.uuid4().hex}{extension}")

    thumb = None
    if generate_thumbnail:
        try:
            thumb = _make_thumbnail(image, thumbnail_size or settings.THUMBNAIL_SIZE, image.format or "PNG")
        except Exception as exc:
            logger.warning("Thumbnail for %s failed: %s", original_name, exc)
            return UploadResult(False, error="Uploaded file is not a valid image")

    main_url = None
    try:
        main_url = _upload_file(data, key, content_type)
        thumbnail_url = _upload_file(thumb, _thumbnail_key(key), content_type) if thumb is not None else None
    except (BotoCoreError, ClientError) as exc:
        logger.error("Upload of %s failed: %s", key, exc)
        if main_url is not None:
            delete_image_with_thumbnail(main_url)
        return UploadResult(False, error="Failed to upload image")

    logger.info("Uploaded %s", key)
    return UploadResult(True, main_url=main_url, thumbnail_url=thumbnail_url)


def is_custom_uploaded_image(url: str | None) -> bool:
    """True only for objects a provider uploaded; predefined catalog assets never match."""
    if not url or not CDN_URL:
        return False
    return url.startswith(_uploads_prefix())


def delete_image_with_thumbnail(url: str) -> DeleteResult:
    key = _key_from_url(url)
    if key is None:
        return DeleteResult(False, error="URL does not belong to the configured bucket")

    try:
        s3.delete_object(Bucket=BUCKET, Key=key)
        s3.delete_object(Bucket=BUCKET, Key=_thumbnail_key(key))
    except (BotoCoreError, ClientError) as exc:
        logger.warning("Delete of %s failed: %s", key, exc)
        return DeleteResult(False, error=str(exc))
    return DeleteResult(True)


def cleanup_images(urls: Iterable[Optional[str]]) -> int:
    """Delete replaced uploads concurrently. Best effort; returns the number removed."""
    targets = sorted({url for url in urls if is_custom_uploaded_image(url)})
    if not targets:
        return 0

    removed = 0
    with ThreadPoolExecutor(max_workers=min(CLEANUP_WORKERS, len(targets))) as pool:
        for url, result in zip(targets, pool.map(delete_image_with_thumbnail, targets)):
            if result.success:
                removed += 1
            else:
                logger.warning("Could not clean up %s: %s", url, result.error)
    return removed
