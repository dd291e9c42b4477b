from __future__ import annotations

from typing import Any, Sequence

from chat_backend.schema_models import DocumentTextPart, ImagePart, TextPart, TurnPart


def lower_part(part: TurnPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, DocumentTextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        # Generic file semantics: the image travels as a URL reference.
        return {
            "type": "file",
            "media_type": part.media_type.value,
            "url": part.data_uri,
            "filename": part.name,
        }
    raise TypeError(f"Unknown turn part type: {type(part).__name__}")


def lower_to_provider_messages(parts: Sequence[TurnPart], *, role: str = "user") -> list[dict[str, Any]]:
    """Provider-agnostic conversion of turn parts into chat message dicts."""

    return [{"role": role, "content": [lower_part(part) for part in parts]}]
