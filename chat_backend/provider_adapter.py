from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from chat_backend.errors import MissingInlineImageData
from chat_backend.inline_encoder import encode_image, is_inline_data_uri
from chat_backend.schema_models import ProviderImagePart, ProviderMessage, ProviderMessagePart, ProviderTextPart

logger = logging.getLogger(__name__)

ALLOWED_PART_TYPES = frozenset({"text", "image"})
_IMAGE_URL_FIELDS = ("image_url", "url", "image", "data_uri")


@dataclass
class AdaptationResult:
    parts: list[ProviderMessagePart]
    warnings: list[str] = field(default_factory=list)
    messages: list[ProviderMessage] = field(default_factory=list)


def _diagnostic(text: str, warnings: list[str]) -> ProviderTextPart:
    logger.warning(text)
    warnings.append(text)
    return ProviderTextPart(text=f"[{text}]")


def _inline_image_url(part: dict[str, Any]) -> str | None:
    for field_name in _IMAGE_URL_FIELDS:
        value = part.get(field_name)
        if isinstance(value, dict):
            value = value.get("url")
        if is_inline_data_uri(value):
            return value

    data = part.get("data")
    media_type = part.get("media_type") or part.get("mediaType") or part.get("mime_type")
    if not data or not isinstance(media_type, str) or not media_type.startswith("image/"):
        return None
    if isinstance(data, (bytes, bytearray)):
        return encode_image(bytes(data), media_type)
    if isinstance(data, str):
        try:
            base64.b64decode(data, validate=True)
        except ValueError:
            return None
        return f"data:{media_type};base64,{data}"
    return None


def _is_image_part(part: dict[str, Any]) -> bool:
    if part.get("type") == "image":
        return True
    media_type = part.get("media_type") or part.get("mediaType") or ""
    return part.get("type") == "file" and isinstance(media_type, str) and media_type.startswith("image/")


def _adapt_image(part: dict[str, Any], warnings: list[str], *, require_inline: bool) -> ProviderMessagePart:
    image_url = _inline_image_url(part)
    if image_url is not None:
        return ProviderImagePart(image_url=image_url)

    name = part.get("filename") or part.get("name") or "image"
    error = MissingInlineImageData(detail=str(name))
    if require_inline:
        raise error
    return _diagnostic(f"Image '{name}' omitted: {error.user_message}", warnings)


def adapt_provider_part(part: Any, warnings: list[str], *, require_inline: bool = False) -> ProviderMessagePart:
    if isinstance(part, (ProviderTextPart, ProviderImagePart)):
        part = part.model_dump()
    if not isinstance(part, dict):
        return _diagnostic(f"Unsupported content part of type '{type(part).__name__}' omitted", warnings)

    part_type = part.get("type")
    if part_type == "text" and isinstance(part.get("text"), str):
        return ProviderTextPart(text=part["text"])
    if _is_image_part(part):
        return _adapt_image(part, warnings, require_inline=require_inline)

    allowed = ", ".join(sorted(ALLOWED_PART_TYPES))
    return _diagnostic(
        f"Unsupported content part of type '{part_type}' omitted (provider accepts: {allowed})",
        warnings,
    )


def adapt_provider_parts(parts: Iterable[Any], *, require_inline: bool = False) -> AdaptationResult:
    """Repair lowered message content so only allow-listed kinds reach the provider.

    Referenced images are rewritten to inline ``data:`` URIs. Images without
    inline data and parts of unknown kinds become diagnostic text parts, unless
    ``require_inline`` is set, in which case a missing image raises
    ``MissingInlineImageData``.
    """

    warnings: list[str] = []
    adapted = [adapt_provider_part(part, warnings, require_inline=require_inline) for part in parts]
    return AdaptationResult(parts=adapted, warnings=warnings)


def adapt_provider_messages(messages: Iterable[dict[str, Any]], *, require_inline: bool = False) -> AdaptationResult:
    warnings: list[str] = []
    parts: list[ProviderMessagePart] = []
    adapted: list[ProviderMessage] = []
    for message in messages:
        result = adapt_provider_parts(message.get("content") or [], require_inline=require_inline)
        adapted.append(ProviderMessage(role=message.get("role") or "user", content=result.parts))
        parts.extend(result.parts)
        warnings.extend(result.warnings)
    return AdaptationResult(parts=parts, warnings=warnings, messages=adapted)
