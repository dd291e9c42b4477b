from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from chat_backend.errors import ErrorKind


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MediaType(str, Enum):
    PLAIN_TEXT = "text/plain"
    PDF = "application/pdf"
    PNG = "image/png"
    JPEG = "image/jpeg"


class Artifact(BaseModel):
    """A user-uploaded file for one chat turn. Never mutated once created."""

    model_config = ConfigDict(frozen=True)

    artifact_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    media_type: MediaType
    size_bytes: int = Field(ge=0)
    source_bytes: bytes = Field(repr=False)

    @model_validator(mode="after")
    def _size_matches_payload(self) -> Artifact:
        if self.size_bytes != len(self.source_bytes):
            raise ValueError(f"size_bytes={self.size_bytes} does not match payload length {len(self.source_bytes)}")
        return self


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str
    placeholder: bool = False


class InlineImageContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["inline_image"] = "inline_image"
    data_uri: str
    media_type: MediaType


class ExtractionFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    reason: ErrorKind
    message: str


ExtractedContent = Annotated[
    Union[TextContent, InlineImageContent, ExtractionFailure],
    Field(discriminator="kind"),
]


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    type: Literal["image"] = "image"
    data_uri: str
    media_type: MediaType
    name: str | None = None


class DocumentTextPart(BaseModel):
    type: Literal["document_text"] = "document_text"
    source_name: str
    text: str


TurnPart = Annotated[
    Union[TextPart, ImagePart, DocumentTextPart],
    Field(discriminator="type"),
]

turn_parts_adapter = TypeAdapter(list[TurnPart])


class ProviderTextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ProviderImagePart(BaseModel):
    type: Literal["image"] = "image"
    image_url: str


ProviderMessagePart = Annotated[
    Union[ProviderTextPart, ProviderImagePart],
    Field(discriminator="type"),
]


class ProviderMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: list[ProviderMessagePart]


class RawTextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = Field(min_length=1, max_length=200000)


class RawFilePart(BaseModel):
    type: Literal["file"] = "file"
    artifact_id: str


RawPart = Annotated[Union[RawTextPart, RawFilePart], Field(discriminator="type")]


class MemoryCategory(str, Enum):
    PERSONAL = "personal"
    PREFERENCE = "preference"
    CONTEXT = "context"
    FACT = "fact"


class MemoryRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    chat_id: str | None = None
    category: MemoryCategory
    key: str = Field(min_length=1)
    value: str
    importance: int = Field(default=5, ge=1, le=10)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_accessed_at: datetime = Field(default_factory=utc_now)
    access_count: int = Field(default=1, ge=0)
    metadata: dict[str, Any] | None = None


class MemoryCandidate(BaseModel):
    """A fact proposed by a fact extractor, not yet persisted."""

    model_config = ConfigDict(frozen=True)

    category: MemoryCategory
    key: str
    value: str
    importance: int = Field(default=7, ge=1, le=10)
