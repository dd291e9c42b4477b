from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from chat_backend.content_classifier import check_declared_media_type, validate_artifact
from chat_backend.errors import ArtifactNotFound, EmptyArtifact, ErrorKind, PipelineError
from chat_backend.pipeline_config import DEFAULT_DATA_DIR, DEFAULT_MAX_ARTIFACT_BYTES
from chat_backend.schema_models import Artifact, MediaType

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.getenv("CHAT_DATA_DIR", DEFAULT_DATA_DIR)) / "uploads"
METADATA_DIR = UPLOAD_DIR / "metadata"

_EXTENSIONS = {
    MediaType.PLAIN_TEXT: ".txt",
    MediaType.PDF: ".pdf",
    MediaType.PNG: ".png",
    MediaType.JPEG: ".jpg",
}
_ARTIFACT_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


@dataclass
class ValidationResult:
    status: str
    message: str
    warnings: list[str]
    media_type: MediaType | None = None
    error_kind: ErrorKind | None = None


@dataclass
class UploadResult:
    artifact_id: str
    storage_ref: str
    name: str
    media_type: str
    size_bytes: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _check_upload(filename: str, content_bytes: bytes, declared_media_type: str | None, *, max_bytes: int) -> MediaType:
    media_type = validate_artifact(filename, declared_media_type, len(content_bytes), max_bytes=max_bytes)
    if not content_bytes:
        raise EmptyArtifact(detail=filename)
    return media_type


def validate_upload(
    filename: str,
    content_bytes: bytes,
    declared_media_type: str | None,
    *,
    max_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES,
) -> ValidationResult:
    try:
        media_type = _check_upload(filename, content_bytes, declared_media_type, max_bytes=max_bytes)
    except PipelineError as exc:
        return ValidationResult(
            status="error",
            message=exc.user_message,
            warnings=[],
            error_kind=exc.error_kind,
        )

    warnings = check_declared_media_type(filename, media_type, content_bytes)
    return ValidationResult(
        status="success",
        message="File accepted for upload.",
        warnings=warnings,
        media_type=media_type,
    )


def upload_artifact(
    filename: str,
    content_bytes: bytes,
    declared_media_type: str | None,
    *,
    max_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES,
) -> UploadResult:
    """Validate and persist an upload; raises the validation error on rejection."""

    media_type = _check_upload(filename, content_bytes, declared_media_type, max_bytes=max_bytes)
    warnings = check_declared_media_type(filename, media_type, content_bytes)

    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    METADATA_DIR.mkdir(parents=True, exist_ok=True)

    artifact_id = uuid4().hex
    stored_path = UPLOAD_DIR / f"{artifact_id}{_EXTENSIONS[media_type]}"
    stored_path.write_bytes(content_bytes)

    result = UploadResult(
        artifact_id=artifact_id,
        storage_ref=stored_path.name,
        name=Path(filename).name or stored_path.name,
        media_type=media_type.value,
        size_bytes=len(content_bytes),
        warnings=warnings,
    )
    metadata = {**result.to_dict(), "uploaded_at": datetime.now(timezone.utc).isoformat()}
    (METADATA_DIR / f"{artifact_id}.json").write_text(json.dumps(metadata, indent=2), encoding="utf-8")
    logger.info("Stored upload '%s' (%s, %d bytes) as %s", result.name, media_type.value, len(content_bytes), stored_path.name)
    return result


def load_artifact(artifact_id: str) -> Artifact:
    if not _ARTIFACT_ID_PATTERN.match(artifact_id or ""):
        raise ArtifactNotFound(detail=str(artifact_id))

    metadata_path = METADATA_DIR / f"{artifact_id}.json"
    if not metadata_path.exists():
        raise ArtifactNotFound(detail=artifact_id)

    metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
    stored_path = UPLOAD_DIR / metadata["storage_ref"]
    if not stored_path.exists():
        raise ArtifactNotFound(detail=metadata["storage_ref"])

    content_bytes = stored_path.read_bytes()
    return Artifact(
        artifact_id=artifact_id,
        name=metadata["name"],
        media_type=MediaType(metadata["media_type"]),
        size_bytes=len(content_bytes),
        source_bytes=content_bytes,
    )
