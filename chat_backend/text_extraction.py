from __future__ import annotations

import io
import logging

from pypdf import PdfReader
from pypdf.errors import DependencyError, FileNotDecryptedError, PdfReadError, WrongPasswordError

from chat_backend.content_classifier import ContentCategory, classify
from chat_backend.errors import (
    CorruptDocument,
    DecodingFailed,
    EncryptedDocument,
    ExtractionFailed,
    PasswordProtectedDocument,
    PipelineError,
)
from chat_backend.inline_encoder import encode_artifact_image
from chat_backend.schema_models import Artifact, ExtractedContent, ExtractionFailure, InlineImageContent, TextContent

logger = logging.getLogger(__name__)

EMPTY_DOCUMENT_PLACEHOLDER = (
    "[This PDF appears to be empty or contains only images. No text could be extracted.]"
)
EMPTY_TEXT_PLACEHOLDER = "[This text file is empty. No text could be extracted.]"

_CORRUPT_MARKERS = (
    "invalid pdf",
    "eof marker",
    "startxref",
    "pdf header",
    "empty file",
    "stream has ended unexpectedly",
    "trailer",
    "xref",
)


def _classify_pdf_error(exc: Exception) -> PipelineError:
    """Best-effort mapping of parser error text onto the error taxonomy."""

    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if isinstance(exc, WrongPasswordError) or "password" in lowered:
        return PasswordProtectedDocument(detail=message)
    if isinstance(exc, (FileNotDecryptedError, DependencyError)) or "encrypt" in lowered or "decrypt" in lowered:
        return EncryptedDocument(detail=message)
    if any(marker in lowered for marker in _CORRUPT_MARKERS):
        return CorruptDocument(detail=message)
    if isinstance(exc, PdfReadError):
        return CorruptDocument(detail=message)
    return ExtractionFailed(f"PDF parsing error: {message}", detail=message)


def _open_reader(content_bytes: bytes) -> PdfReader:
    reader = PdfReader(io.BytesIO(content_bytes))
    if not reader.is_encrypted:
        return reader

    # Owner-password-only PDFs open with an empty user password.
    try:
        result = reader.decrypt("")
    except (DependencyError, NotImplementedError) as exc:
        raise EncryptedDocument(detail=str(exc)) from exc
    if not result:
        raise PasswordProtectedDocument()
    return reader


def extract_document_text(content_bytes: bytes) -> str:
    if not content_bytes or not content_bytes.strip(b"\x00 \t\r\n"):
        raise CorruptDocument(detail="empty buffer")

    try:
        reader = _open_reader(content_bytes)
        pages: list[str] = []
        total_pages = len(reader.pages)
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                pages.append(page_text)
    except PipelineError:
        raise
    except Exception as exc:  # noqa: BLE001
        classified = _classify_pdf_error(exc)
        logger.warning("PDF parsing error (%s): %s", classified.error_kind.value, exc)
        raise classified from exc

    extracted = "\n\n".join(pages).strip()
    if not extracted:
        logger.warning("PDF parsed but no text found (%d pages); it may be a scanned image or empty", total_pages)
        return EMPTY_DOCUMENT_PLACEHOLDER

    logger.info("Extracted %d characters from %d/%d PDF pages", len(extracted), len(pages), total_pages)
    return extracted


def extract_plain_text(content_bytes: bytes) -> str:
    try:
        return content_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DecodingFailed(detail=f"invalid byte at position {exc.start}") from exc


def extract_artifact(artifact: Artifact, *, max_image_dimension: int | None = None) -> ExtractedContent:
    """Turn one artifact into exactly one ExtractedContent, never raising for pipeline errors."""

    try:
        category = classify(artifact.media_type)
        if category == ContentCategory.IMAGE:
            if not artifact.source_bytes:
                raise ExtractionFailed("Image file is empty.", detail=artifact.name)
            data_uri = encode_artifact_image(
                artifact.source_bytes,
                artifact.media_type,
                max_dimension=max_image_dimension,
            )
            return InlineImageContent(data_uri=data_uri, media_type=artifact.media_type)

        if category == ContentCategory.TEXT_DOCUMENT:
            text = extract_document_text(artifact.source_bytes)
            return TextContent(value=text, placeholder=text == EMPTY_DOCUMENT_PLACEHOLDER)

        text = extract_plain_text(artifact.source_bytes)
        if not text.strip():
            logger.warning("Text file '%s' has no content", artifact.name)
            return TextContent(value=EMPTY_TEXT_PLACEHOLDER, placeholder=True)
        logger.info("Read %d characters from text file '%s'", len(text), artifact.name)
        return TextContent(value=text)
    except PipelineError as exc:
        logger.warning("Extraction failed for '%s': %s", artifact.name, exc)
        return ExtractionFailure(reason=exc.error_kind, message=exc.user_message)
