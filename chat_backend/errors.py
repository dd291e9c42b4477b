from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    OVERSIZE_ARTIFACT = "oversize_artifact"
    EMPTY_ARTIFACT = "empty_artifact"
    ARTIFACT_NOT_FOUND = "artifact_not_found"
    CORRUPT_DOCUMENT = "corrupt_document"
    PASSWORD_PROTECTED_DOCUMENT = "password_protected_document"
    ENCRYPTED_DOCUMENT = "encrypted_document"
    EXTRACTION_FAILED = "extraction_failed"
    DECODING_FAILED = "decoding_failed"
    MISSING_INLINE_IMAGE_DATA = "missing_inline_image_data"


class PipelineError(Exception):
    """Base class for every failure the turn pipeline reports to callers.

    ``user_message`` is the human-readable reason surfaced to the user so they
    can correct the input; ``str(exc)`` may carry more technical detail.
    """

    error_kind: ErrorKind = ErrorKind.EXTRACTION_FAILED
    default_message = "Failed to process the attachment."

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.user_message = message or self.default_message
        self.detail = detail
        super().__init__(self.user_message if not detail else f"{self.user_message} ({detail})")


class UnsupportedMediaType(PipelineError):
    error_kind = ErrorKind.UNSUPPORTED_MEDIA_TYPE
    default_message = "File type should be PDF, TXT, PNG, or JPG."


class OversizeArtifact(PipelineError):
    error_kind = ErrorKind.OVERSIZE_ARTIFACT
    default_message = "File size exceeds the upload limit."


class EmptyArtifact(PipelineError):
    error_kind = ErrorKind.EMPTY_ARTIFACT
    default_message = "Empty uploads are not allowed."


class ArtifactNotFound(PipelineError):
    error_kind = ErrorKind.ARTIFACT_NOT_FOUND
    default_message = "Referenced attachment was not found."


class CorruptDocument(PipelineError):
    error_kind = ErrorKind.CORRUPT_DOCUMENT
    default_message = "Invalid or corrupted PDF file."


class PasswordProtectedDocument(PipelineError):
    error_kind = ErrorKind.PASSWORD_PROTECTED_DOCUMENT
    default_message = "PDF is password-protected."


class EncryptedDocument(PipelineError):
    error_kind = ErrorKind.ENCRYPTED_DOCUMENT
    default_message = "PDF is encrypted."


class ExtractionFailed(PipelineError):
    error_kind = ErrorKind.EXTRACTION_FAILED
    default_message = "Failed to extract text from PDF."


class DecodingFailed(PipelineError):
    error_kind = ErrorKind.DECODING_FAILED
    default_message = "Text file is not valid UTF-8."


class MissingInlineImageData(PipelineError):
    error_kind = ErrorKind.MISSING_INLINE_IMAGE_DATA
    default_message = "Image part has no inline data and cannot be sent to the model."


BLOCKING_ERROR_KINDS = frozenset(
    {
        ErrorKind.UNSUPPORTED_MEDIA_TYPE,
        ErrorKind.OVERSIZE_ARTIFACT,
        ErrorKind.ARTIFACT_NOT_FOUND,
        ErrorKind.CORRUPT_DOCUMENT,
        ErrorKind.PASSWORD_PROTECTED_DOCUMENT,
        ErrorKind.ENCRYPTED_DOCUMENT,
        ErrorKind.EXTRACTION_FAILED,
        ErrorKind.DECODING_FAILED,
    }
)


def is_blocking(kind: ErrorKind) -> bool:
    return kind in BLOCKING_ERROR_KINDS
