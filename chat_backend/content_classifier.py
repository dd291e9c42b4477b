from __future__ import annotations

import logging
from enum import Enum

from chat_backend.errors import OversizeArtifact, UnsupportedMediaType
from chat_backend.schema_models import MediaType

logger = logging.getLogger(__name__)


class ContentCategory(str, Enum):
    PLAIN_TEXT = "plain_text"
    TEXT_DOCUMENT = "text_document"
    IMAGE = "image"


_CATEGORY_BY_MEDIA_TYPE = {
    MediaType.PLAIN_TEXT: ContentCategory.PLAIN_TEXT,
    MediaType.PDF: ContentCategory.TEXT_DOCUMENT,
    MediaType.PNG: ContentCategory.IMAGE,
    MediaType.JPEG: ContentCategory.IMAGE,
}

MAGIC_SIGNATURES: list[tuple[bytes, MediaType]] = [
    (b"%PDF", MediaType.PDF),
    (b"\x89PNG\r\n\x1a\n", MediaType.PNG),
    (b"\xff\xd8\xff", MediaType.JPEG),
]


def normalize_media_type(media_type: str | MediaType | None) -> MediaType:
    if isinstance(media_type, MediaType):
        return media_type
    # Drop parameters such as "; charset=utf-8".
    cleaned = (media_type or "").split(";", 1)[0].strip().lower()
    if cleaned == "image/jpg":
        cleaned = MediaType.JPEG.value
    try:
        return MediaType(cleaned)
    except ValueError:
        raise UnsupportedMediaType(detail=f"media type '{cleaned or 'unknown'}'") from None


def classify(media_type: str | MediaType | None) -> ContentCategory:
    return _CATEGORY_BY_MEDIA_TYPE[normalize_media_type(media_type)]


def detect_media_type(content_bytes: bytes) -> MediaType | None:
    for signature, media_type in MAGIC_SIGNATURES:
        if content_bytes.startswith(signature):
            return media_type
    return None


def check_declared_media_type(name: str, declared: MediaType, content_bytes: bytes) -> list[str]:
    """Compare the declared type with the sniffed one; the declared type is kept."""

    warnings: list[str] = []
    sniffed = detect_media_type(content_bytes)
    if sniffed is not None and sniffed != declared:
        message = f"File '{name}' was declared as {declared.value} but its content looks like {sniffed.value}."
        logger.warning(message)
        warnings.append(message)
    return warnings


def validate_artifact(name: str, media_type: str | MediaType | None, size_bytes: int, *, max_bytes: int) -> MediaType:
    resolved = normalize_media_type(media_type)
    if size_bytes > max_bytes:
        limit_mib = max_bytes / (1024 * 1024)
        raise OversizeArtifact(
            f"File size should be less than {limit_mib:g}MB.",
            detail=f"{name}: {size_bytes} bytes",
        )
    return resolved
