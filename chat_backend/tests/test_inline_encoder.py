import base64
import io

from PIL import Image

from chat_backend.inline_encoder import encode_artifact_image, encode_image, is_inline_data_uri, resize_image_if_needed
from chat_backend.schema_models import MediaType


def _png_bytes(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_encode_image_builds_data_uri():
    data_uri = encode_image(b"\xff\xd8\xff1234", MediaType.JPEG)

    assert data_uri.startswith("data:image/jpeg;base64,")
    assert base64.b64decode(data_uri.split(",", 1)[1]) == b"\xff\xd8\xff1234"


def test_is_inline_data_uri():
    assert is_inline_data_uri("data:image/png;base64,AAAA")
    assert not is_inline_data_uri("/uploads/cat.png")
    assert not is_inline_data_uri(None)


def test_resize_keeps_small_images():
    payload = _png_bytes(10, 10)

    resized, details = resize_image_if_needed(payload, MediaType.PNG, max_dimension=64)

    assert resized == payload
    assert details["resized"] is False


def test_resize_downscales_large_images():
    resized, details = resize_image_if_needed(_png_bytes(100, 50), MediaType.PNG, max_dimension=20)

    assert details["resized"] is True
    assert (details["new_width"], details["new_height"]) == (20, 10)
    assert Image.open(io.BytesIO(resized)).size == (20, 10)


def test_resize_failure_falls_back_to_original_bytes():
    payload = b"\x89PNG\r\n\x1a\nnot really"

    assert encode_artifact_image(payload, MediaType.PNG, max_dimension=32) == encode_image(payload, MediaType.PNG)
