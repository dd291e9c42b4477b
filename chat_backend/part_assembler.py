from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from chat_backend.errors import MissingInlineImageData
from chat_backend.schema_models import (
    Artifact,
    DocumentTextPart,
    ExtractedContent,
    ExtractionFailure,
    ImagePart,
    InlineImageContent,
    RawFilePart,
    RawPart,
    RawTextPart,
    TextPart,
    TurnPart,
)

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[... content truncated ...]"


@dataclass(frozen=True)
class TruncationResult:
    text: str
    truncated: bool
    original_length: int


@dataclass
class AssembledParts:
    parts: list[TurnPart]
    warnings: list[str] = field(default_factory=list)


def truncate_document_text(text: str, max_chars: int | None) -> TruncationResult:
    if max_chars is None or len(text) <= max_chars:
        return TruncationResult(text=text, truncated=False, original_length=len(text))
    return TruncationResult(
        text=text[:max_chars] + TRUNCATION_MARKER,
        truncated=True,
        original_length=len(text),
    )


def render_document_text(source_name: str, text: str) -> str:
    return f"[File: {source_name}]\n\n{text}"


def build_attachment_part(
    artifact: Artifact,
    content: ExtractedContent,
    *,
    max_document_chars: int | None,
    warnings: list[str],
) -> TurnPart:
    if isinstance(content, ExtractionFailure):
        raise ValueError(f"Cannot assemble failed extraction for '{artifact.name}'.")

    if isinstance(content, InlineImageContent):
        if not content.data_uri:
            raise MissingInlineImageData(detail=artifact.name)
        return ImagePart(data_uri=content.data_uri, media_type=content.media_type, name=artifact.name)

    truncation = truncate_document_text(content.value, max_document_chars)
    if truncation.truncated:
        message = (
            f"Attachment '{artifact.name}' truncated from {truncation.original_length} "
            f"to {max_document_chars} characters."
        )
        logger.warning(message)
        warnings.append(message)
    return DocumentTextPart(
        source_name=artifact.name,
        text=render_document_text(artifact.name, truncation.text),
    )


def assemble_turn_parts(
    raw_parts: Sequence[RawPart],
    artifacts: dict[str, Artifact],
    extracted: dict[str, ExtractedContent],
    *,
    max_document_chars: int | None = None,
) -> AssembledParts:
    """Build the turn's internal part sequence.

    Attachment parts come first, in submission order, followed by the user's
    free-text parts verbatim, so the model reads a document before the
    question that refers to it.
    """

    warnings: list[str] = []
    attachment_parts: list[TurnPart] = []
    text_parts: list[TurnPart] = []

    for raw_part in raw_parts:
        if isinstance(raw_part, RawTextPart):
            text_parts.append(TextPart(text=raw_part.text))
        elif isinstance(raw_part, RawFilePart):
            artifact = artifacts[raw_part.artifact_id]
            attachment_parts.append(
                build_attachment_part(
                    artifact,
                    extracted[raw_part.artifact_id],
                    max_document_chars=max_document_chars,
                    warnings=warnings,
                )
            )

    return AssembledParts(parts=attachment_parts + text_parts, warnings=warnings)


def build_system_prompt(base_prompt: str, memory_context: str) -> str:
    if not memory_context.strip():
        return base_prompt
    return f"{base_prompt}\n\n{memory_context}"
