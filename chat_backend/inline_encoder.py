from __future__ import annotations

import base64
import io
import logging

from PIL import Image

from chat_backend.schema_models import MediaType

logger = logging.getLogger(__name__)

_PIL_FORMATS = {MediaType.PNG: "PNG", MediaType.JPEG: "JPEG"}


def encode_image(content_bytes: bytes, media_type: MediaType | str) -> str:
    mime = media_type.value if isinstance(media_type, MediaType) else str(media_type)
    image_b64 = base64.b64encode(content_bytes).decode("ascii")
    return f"data:{mime};base64,{image_b64}"


def is_inline_data_uri(value: object) -> bool:
    return isinstance(value, str) and value.startswith("data:") and ";base64," in value


def resize_image_if_needed(content_bytes: bytes, media_type: MediaType, *, max_dimension: int) -> tuple[bytes, dict]:
    try:
        image = Image.open(io.BytesIO(content_bytes))
        width, height = image.size
        if max(width, height) <= max_dimension:
            return content_bytes, {"resized": False, "width": width, "height": height}

        scale = max_dimension / float(max(width, height))
        new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
        resized = image.resize(new_size)
        if media_type == MediaType.JPEG and resized.mode not in {"RGB", "L"}:
            resized = resized.convert("RGB")

        output = io.BytesIO()
        resized.save(output, format=_PIL_FORMATS.get(media_type, "PNG"))
        return output.getvalue(), {
            "resized": True,
            "original_width": width,
            "original_height": height,
            "new_width": new_size[0],
            "new_height": new_size[1],
        }
    except Exception as exc:
        logger.warning("Image resize failed: %s", exc)
        return content_bytes, {"resized": False, "reason": "resize_failed"}


def encode_artifact_image(content_bytes: bytes, media_type: MediaType, *, max_dimension: int | None = None) -> str:
    if max_dimension:
        content_bytes, details = resize_image_if_needed(content_bytes, media_type, max_dimension=max_dimension)
        if details.get("resized"):
            logger.info(
                "Downscaled image from %sx%s to %sx%s before inline encoding",
                details["original_width"],
                details["original_height"],
                details["new_width"],
                details["new_height"],
            )
    return encode_image(content_bytes, media_type)
