"""Normalize menu images to WebP and store them in Supabase storage."""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Protocol, Tuple
from urllib.parse import unquote, urlparse
from uuid import uuid4

import pillow_heif
from PIL import Image, ImageOps

from app.config.errors import ConfigurationError
from app.config.supabase_client import MENU_IMAGES_BUCKET, get_supabase_client

logger = logging.getLogger(__name__)

CANONICAL_EXTENSION = ".webp"
CANONICAL_CONTENT_TYPE = "image/webp"
MAX_IMAGE_SIDE = int(os.getenv("IMAGE_MAX_SIDE", "1600"))
WEBP_QUALITY = float(os.getenv("IMAGE_WEBP_QUALITY", "0.82"))
MAX_UPLOAD_BYTES = 8 * 1024 * 1024

# Phone-camera containers that Pillow cannot open on its own.
HEIF_EXTENSIONS = {".heic", ".heif"}
HEIF_CONTENT_TYPES = {"image/heic", "image/heif"}

STORAGE_OBJECT_MARKER = "/storage/v1/object/"
STORAGE_ACCESS_SEGMENTS = ("public", "sign", "authenticated")


class MediaError(RuntimeError):
    """Base error for the image pipeline."""


class FetchFailed(MediaError):
    """The source object could not be located or downloaded."""


class ConversionFailed(MediaError):
    """The source bytes could not be decoded or re-encoded."""


class UploadFailed(MediaError):
    """The converted image could not be stored."""


class UnsupportedUpload(MediaError):
    """An admin upload was empty, too large, or not an image."""


@dataclass(frozen=True)
class ImageConversionOutcome:
    converted: bool
    new_url: Optional[str] = None


class MediaStore(Protocol):
    def path_for(self, ref: str) -> Optional[str]:
        ...

    def download(self, path: str) -> bytes:
        ...

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def get_public_url(self, path: str) -> str:
        ...


def image_extension(ref: str) -> str:
    """Return the lowercase extension of a URL or path, ignoring any query string."""

    path = urlparse(ref).path if "://" in ref else ref.split("?", 1)[0].split("#", 1)[0]
    return PurePosixPath(path).suffix.lower()


def is_canonical_image(ref: str) -> bool:
    return image_extension(ref) == CANONICAL_EXTENSION


def compute_target_size(width: int, height: int, max_side: int = MAX_IMAGE_SIDE) -> Tuple[int, int]:
    """Scale ``width``x``height`` so the longer side is at most ``max_side``; never upscale."""

    if max(width, height) <= max_side:
        return width, height
    if width >= height:
        return max_side, max(1, round(height * max_side / width))
    return max(1, round(width * max_side / height)), max_side


def decode_image(data: bytes, *, heif: bool = False) -> Image.Image:
    if heif:
        return _decode_heif(data)
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ConversionFailed("Unable to decode the source image.") from exc
    return image


def _decode_heif(data: bytes) -> Image.Image:
    try:
        heif_file = pillow_heif.read_heif(io.BytesIO(data))
        return Image.frombytes(
            heif_file.mode,
            heif_file.size,
            heif_file.data,
            "raw",
            heif_file.mode,
            heif_file.stride,
        )
    except (OSError, ValueError, RuntimeError, EOFError) as exc:
        raise ConversionFailed("Unable to decode the HEIC/HEIF image.") from exc


def encode_canonical(
    image: Image.Image,
    *,
    max_side: int = MAX_IMAGE_SIDE,
    quality: float = WEBP_QUALITY,
) -> bytes:
    """Downscale ``image`` if needed and encode it as WebP."""

    try:
        image = ImageOps.exif_transpose(image)
        target = compute_target_size(image.width, image.height, max_side)
        if target != image.size:
            image = image.resize(target, Image.Resampling.LANCZOS)
        if image.mode not in ("RGB", "RGBA"):
            has_alpha = "A" in image.getbands() or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="WEBP", quality=int(round(quality * 100)))
    except (OSError, ValueError) as exc:
        raise ConversionFailed("Unable to encode the image as WebP.") from exc
    return buffer.getvalue()


def store_canonical(data: bytes, store: MediaStore) -> str:
    """Upload encoded WebP bytes under a fresh unique name and return its public URL."""

    path = f"{uuid4().hex}{CANONICAL_EXTENSION}"
    store.upload(path, data, CANONICAL_CONTENT_TYPE)
    return store.get_public_url(path)


def normalize_image(
    ref: str,
    store: MediaStore,
    *,
    max_side: int = MAX_IMAGE_SIDE,
    quality: float = WEBP_QUALITY,
) -> ImageConversionOutcome:
    """Make sure the image behind ``ref`` exists as WebP.

    Already-canonical references are a no-op. Otherwise the original object is
    downloaded through the store (so private buckets work), decoded, downscaled,
    re-encoded and uploaded as a new object; the original is left untouched.
    HEIC/HEIF sources that fail to decode raise :class:`ConversionFailed` and
    nothing is uploaded, so a later run can retry them.
    """

    if is_canonical_image(ref):
        return ImageConversionOutcome(converted=False)

    path = store.path_for(ref)
    if not path:
        raise FetchFailed(f"Cannot resolve a storage path for {ref}")
    source = store.download(path)
    if not source:
        raise FetchFailed(f"Storage object {path} is empty")

    image = decode_image(source, heif=image_extension(ref) in HEIF_EXTENSIONS)
    encoded = encode_canonical(image, max_side=max_side, quality=quality)
    new_url = store_canonical(encoded, store)
    logger.info("Converted %s to %s", path, new_url)
    return ImageConversionOutcome(converted=True, new_url=new_url)


def store_uploaded_image(
    filename: str,
    content_type: Optional[str],
    data: bytes,
    store: MediaStore,
) -> str:
    """Convert an admin upload to WebP and return the public URL of the stored copy."""

    if not data:
        raise UnsupportedUpload("The uploaded file is empty.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise UnsupportedUpload("The uploaded file exceeds the 8 MB limit.")
    lowered_type = (content_type or "").lower()
    extension = image_extension(filename or "")
    if lowered_type and not lowered_type.startswith("image/") and lowered_type != "application/octet-stream":
        raise UnsupportedUpload("Only image uploads are accepted.")

    heif = extension in HEIF_EXTENSIONS or lowered_type in HEIF_CONTENT_TYPES
    image = decode_image(data, heif=heif)
    return store_canonical(encode_canonical(image), store)


class SupabaseMediaStore:
    """:class:`MediaStore` backed by a Supabase storage bucket."""

    def __init__(self, bucket: str = MENU_IMAGES_BUCKET, client=None) -> None:
        self._bucket = bucket
        self._client = client

    def _bucket_api(self):
        client = self._client or get_supabase_client()
        if client is None:
            raise ConfigurationError("Supabase client is not configured.")
        return client.storage.from_(self._bucket)

    def path_for(self, ref: str) -> Optional[str]:
        """Return the bucket-relative object path for a storage URL (or a bare path)."""

        if "://" not in ref:
            return ref.lstrip("/") or None
        url_path = unquote(urlparse(ref).path)
        marker_index = url_path.find(STORAGE_OBJECT_MARKER)
        if marker_index == -1:
            return None
        segments = url_path[marker_index + len(STORAGE_OBJECT_MARKER):].split("/")
        if segments and segments[0] in STORAGE_ACCESS_SEGMENTS:
            segments = segments[1:]
        if len(segments) < 2 or segments[0] != self._bucket:
            return None
        return "/".join(segments[1:]) or None

    def download(self, path: str) -> bytes:
        bucket = self._bucket_api()
        try:
            return bucket.download(path)
        except Exception as exc:  # pragma: no cover - network interaction
            logger.error("Storage download failed for %s: %s", path, exc)
            raise FetchFailed(f"Unable to download {path}") from exc

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        bucket = self._bucket_api()
        try:
            bucket.upload(path, data, file_options={"content-type": content_type, "upsert": "false"})
        except Exception as exc:  # pragma: no cover - network interaction
            logger.error("Storage upload failed for %s: %s", path, exc)
            raise UploadFailed(f"Unable to upload {path}") from exc

    def get_public_url(self, path: str) -> str:
        bucket = self._bucket_api()
        try:
            return bucket.get_public_url(path).rstrip("?")
        except Exception as exc:
            logger.error("Public URL lookup failed for %s: %s", path, exc)
            raise UploadFailed(f"Unable to resolve a public URL for {path}") from exc


__all__ = [
    "CANONICAL_CONTENT_TYPE",
    "CANONICAL_EXTENSION",
    "ConversionFailed",
    "FetchFailed",
    "ImageConversionOutcome",
    "MediaError",
    "MediaStore",
    "SupabaseMediaStore",
    "UnsupportedUpload",
    "UploadFailed",
    "compute_target_size",
    "decode_image",
    "encode_canonical",
    "image_extension",
    "is_canonical_image",
    "normalize_image",
    "store_uploaded_image",
]
