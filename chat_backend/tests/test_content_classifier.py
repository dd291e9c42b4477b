import unittest

from chat_backend.content_classifier import (
    ContentCategory,
    check_declared_media_type,
    classify,
    detect_media_type,
    validate_artifact,
)
from chat_backend.errors import OversizeArtifact, UnsupportedMediaType
from chat_backend.schema_models import MediaType


class TestClassify(unittest.TestCase):
    def test_supported_media_types_map_to_categories(self):
        self.assertEqual(classify("text/plain"), ContentCategory.PLAIN_TEXT)
        self.assertEqual(classify("application/pdf"), ContentCategory.TEXT_DOCUMENT)
        self.assertEqual(classify("image/png"), ContentCategory.IMAGE)
        self.assertEqual(classify("image/jpeg"), ContentCategory.IMAGE)
        self.assertEqual(classify(MediaType.PDF), ContentCategory.TEXT_DOCUMENT)

    def test_parameters_and_case_are_ignored(self):
        self.assertEqual(classify("Text/Plain; charset=utf-8"), ContentCategory.PLAIN_TEXT)
        self.assertEqual(classify("image/jpg"), ContentCategory.IMAGE)

    def test_unsupported_media_types_are_rejected(self):
        for media_type in ["application/zip", "image/gif", "text/html", "", None]:
            with self.subTest(media_type=media_type):
                with self.assertRaises(UnsupportedMediaType):
                    classify(media_type)


class TestValidateArtifact(unittest.TestCase):
    def test_accepts_artifact_within_cap(self):
        resolved = validate_artifact("a.txt", "text/plain", 10, max_bytes=100)
        self.assertEqual(resolved, MediaType.PLAIN_TEXT)

    def test_rejects_oversize_artifact(self):
        with self.assertRaises(OversizeArtifact) as ctx:
            validate_artifact("big.pdf", "application/pdf", 11 * 1024 * 1024, max_bytes=10 * 1024 * 1024)
        self.assertIn("10MB", ctx.exception.user_message)

    def test_zero_byte_artifact_passes_classification(self):
        self.assertEqual(validate_artifact("empty.txt", "text/plain", 0, max_bytes=100), MediaType.PLAIN_TEXT)

    def test_media_type_checked_before_size(self):
        with self.assertRaises(UnsupportedMediaType):
            validate_artifact("virus.exe", "application/x-msdownload", 10**9, max_bytes=100)


class TestMagicBytes(unittest.TestCase):
    def test_detects_known_signatures(self):
        self.assertEqual(detect_media_type(b"%PDF-1.7"), MediaType.PDF)
        self.assertEqual(detect_media_type(b"\x89PNG\r\n\x1a\nrest"), MediaType.PNG)
        self.assertEqual(detect_media_type(b"\xff\xd8\xff\xe0"), MediaType.JPEG)
        self.assertIsNone(detect_media_type(b"plain words"))

    def test_mismatch_produces_warning(self):
        warnings = check_declared_media_type("photo.png", MediaType.PNG, b"\xff\xd8\xff\xe0")
        self.assertEqual(len(warnings), 1)
        self.assertIn("image/jpeg", warnings[0])

    def test_matching_declared_type_has_no_warning(self):
        self.assertEqual(check_declared_media_type("doc.pdf", MediaType.PDF, b"%PDF-1.4"), [])


if __name__ == "__main__":
    unittest.main()
