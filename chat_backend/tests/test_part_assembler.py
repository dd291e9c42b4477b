import logging

import pytest

from chat_backend.errors import ErrorKind, MissingInlineImageData
from chat_backend.part_assembler import (
    TRUNCATION_MARKER,
    assemble_turn_parts,
    build_system_prompt,
    truncate_document_text,
)
from chat_backend.schema_models import (
    Artifact,
    DocumentTextPart,
    ExtractionFailure,
    ImagePart,
    InlineImageContent,
    MediaType,
    RawFilePart,
    RawTextPart,
    TextContent,
    TextPart,
)


def _artifact(name: str, media_type: MediaType, payload: bytes = b"x") -> Artifact:
    return Artifact(name=name, media_type=media_type, size_bytes=len(payload), source_bytes=payload)


def test_attachments_precede_free_text():
    notes = _artifact("notes.txt", MediaType.PLAIN_TEXT, b"hello")
    raw_parts = [RawTextPart(text="summarize"), RawFilePart(artifact_id=notes.artifact_id)]

    assembled = assemble_turn_parts(
        raw_parts,
        {notes.artifact_id: notes},
        {notes.artifact_id: TextContent(value="hello")},
    )

    assert assembled.parts == [
        DocumentTextPart(source_name="notes.txt", text="[File: notes.txt]\n\nhello"),
        TextPart(text="summarize"),
    ]


def test_attachments_keep_submission_order_and_images_stay_inline():
    first = _artifact("a.txt", MediaType.PLAIN_TEXT)
    second = _artifact("b.png", MediaType.PNG)
    raw_parts = [
        RawFilePart(artifact_id=first.artifact_id),
        RawTextPart(text="compare these"),
        RawFilePart(artifact_id=second.artifact_id),
        RawTextPart(text="please"),
    ]

    assembled = assemble_turn_parts(
        raw_parts,
        {first.artifact_id: first, second.artifact_id: second},
        {
            first.artifact_id: TextContent(value="alpha"),
            second.artifact_id: InlineImageContent(data_uri="data:image/png;base64,AAAA", media_type=MediaType.PNG),
        },
    )

    assert [part.type for part in assembled.parts] == ["document_text", "image", "text", "text"]
    assert isinstance(assembled.parts[1], ImagePart)
    assert assembled.parts[1].data_uri == "data:image/png;base64,AAAA"
    assert [part.text for part in assembled.parts[2:]] == ["compare these", "please"]


def test_free_text_is_preserved_verbatim():
    raw_parts = [RawTextPart(text="  spaced\n\ttext  ")]

    assembled = assemble_turn_parts(raw_parts, {}, {})

    assert assembled.parts == [TextPart(text="  spaced\n\ttext  ")]


def test_truncation_appends_marker_and_logs_original_length(caplog):
    doc = _artifact("long.txt", MediaType.PLAIN_TEXT)

    with caplog.at_level(logging.WARNING, logger="chat_backend.part_assembler"):
        assembled = assemble_turn_parts(
            [RawFilePart(artifact_id=doc.artifact_id)],
            {doc.artifact_id: doc},
            {doc.artifact_id: TextContent(value="x" * 50)},
            max_document_chars=10,
        )

    part = assembled.parts[0]
    assert part.text.endswith(TRUNCATION_MARKER)
    assert part.text == "[File: long.txt]\n\n" + "x" * 10 + TRUNCATION_MARKER
    assert "from 50 to 10" in caplog.text
    assert assembled.warnings and "50" in assembled.warnings[0]


def test_truncate_document_text_leaves_short_text_alone():
    result = truncate_document_text("short", 10)

    assert result.text == "short"
    assert result.truncated is False
    assert result.original_length == 5
    assert truncate_document_text("x" * 100, None).truncated is False


def test_failed_extraction_cannot_be_assembled():
    doc = _artifact("bad.pdf", MediaType.PDF)

    with pytest.raises(ValueError):
        assemble_turn_parts(
            [RawFilePart(artifact_id=doc.artifact_id)],
            {doc.artifact_id: doc},
            {doc.artifact_id: ExtractionFailure(reason=ErrorKind.CORRUPT_DOCUMENT, message="broken")},
        )


def test_image_without_inline_data_is_rejected():
    image = _artifact("cat.png", MediaType.PNG)

    with pytest.raises(MissingInlineImageData):
        assemble_turn_parts(
            [RawFilePart(artifact_id=image.artifact_id)],
            {image.artifact_id: image},
            {image.artifact_id: InlineImageContent(data_uri="", media_type=MediaType.PNG)},
        )


def test_memory_goes_to_system_prompt_only():
    assert build_system_prompt("Be helpful.", "") == "Be helpful."
    assert build_system_prompt("Be helpful.", "## User Memory\n\n- name: Alice") == (
        "Be helpful.\n\n## User Memory\n\n- name: Alice"
    )
