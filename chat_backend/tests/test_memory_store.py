import unittest

import pytest

from chat_backend.memory_store import (
    InMemoryMemoryRepository,
    JsonFileMemoryRepository,
    MemoryStore,
    format_memories_for_context,
)
from chat_backend.pipeline_config import PipelineConfig
from chat_backend.schema_models import MemoryCategory


class TestMemoryStore(unittest.TestCase):
    def setUp(self):
        self.repository = InMemoryMemoryRepository()
        self.store = MemoryStore(self.repository)

    def test_upsert_same_key_keeps_single_record(self):
        self.store.save_memory("user-1", "name", "Alice", category="personal", importance=7)
        self.store.save_memory("user-1", "name", "Alice", category="personal", importance=7)

        records = self.repository.query("user-1")
        self.assertEqual(len([record for record in records if record.key == "name"]), 1)

    def test_upsert_updates_value_in_place(self):
        first = self.store.save_memory("user-1", "city", "Berlin", category="personal")
        second = self.store.save_memory("user-1", "city", "Hamburg", category="personal", importance=8)

        self.assertEqual(first.id, second.id)
        self.assertEqual(second.value, "Hamburg")
        self.assertEqual(second.importance, 8)
        self.assertEqual(second.access_count, 2)
        self.assertEqual(second.created_at, first.created_at)

    def test_keys_are_scoped_per_user(self):
        self.store.save_memory("user-1", "name", "Alice", category="personal")
        self.store.save_memory("user-2", "name", "Bob", category="personal")

        self.assertEqual(self.repository.get("user-1", "name").value, "Alice")
        self.assertEqual(self.repository.get("user-2", "name").value, "Bob")

    def test_importance_must_be_in_range(self):
        with self.assertRaises(ValueError):
            self.store.save_memory("user-1", "name", "Alice", importance=11)
        with self.assertRaises(ValueError):
            self.store.save_memory("user-1", "name", "Alice", importance=0)

    def test_load_context_ranks_and_limits(self):
        for index in range(30):
            self.store.save_memory(
                "user-1",
                f"fact-{index}",
                f"value {index}",
                category="fact",
                importance=(index % 8) + 3,
            )

        records = self.store.list_memories("user-1", min_importance=5, limit=20)

        self.assertEqual(len(records), 20)
        self.assertTrue(all(record.importance >= 5 for record in records))
        ranking = [(record.importance, record.updated_at) for record in records]
        self.assertEqual(ranking, sorted(ranking, reverse=True))

    def test_load_context_bumps_access_once_per_call(self):
        self.store.save_memory("user-1", "name", "Alice", category="personal", importance=9)
        self.store.save_memory("user-1", "hobby", "chess", category="preference", importance=2)

        self.store.load_context("user-1")

        self.assertEqual(self.repository.get("user-1", "name").access_count, 2)
        self.assertEqual(self.repository.get("user-1", "hobby").access_count, 1)

    def test_load_context_uses_configured_defaults(self):
        store = MemoryStore(self.repository, PipelineConfig(memory_min_importance=8, memory_limit=1))
        store.save_memory("user-1", "a", "one", category="fact", importance=9)
        store.save_memory("user-1", "b", "two", category="fact", importance=10)
        store.save_memory("user-1", "c", "three", category="fact", importance=7)

        context = store.load_context("user-1")

        self.assertIn("- b: two", context)
        self.assertNotIn("- a: one", context)
        self.assertNotIn("- c: three", context)

    def test_load_context_is_empty_without_qualifying_records(self):
        self.store.save_memory("user-1", "hobby", "chess", category="preference", importance=2)

        self.assertEqual(self.store.load_context("user-1"), "")

    def test_get_memory_by_key_tracks_access(self):
        self.store.save_memory("user-1", "name", "Alice", category="personal")

        record = self.store.get_memory_by_key("user-1", "name")

        self.assertEqual(record.value, "Alice")
        self.assertEqual(self.repository.get("user-1", "name").access_count, 2)
        self.assertIsNone(self.store.get_memory_by_key("user-1", "missing"))

    def test_delete_memory_and_delete_all(self):
        record = self.store.save_memory("user-1", "name", "Alice", category="personal")
        self.store.save_memory("user-1", "city", "Berlin", category="personal")
        self.store.save_memory("user-2", "name", "Bob", category="personal")

        self.assertFalse(self.store.delete_memory("user-2", record.id))
        self.assertTrue(self.store.delete_memory("user-1", record.id))
        self.assertEqual(self.store.delete_all_memories("user-1"), 1)
        self.assertEqual(self.repository.query("user-1"), [])
        self.assertEqual(len(self.repository.query("user-2")), 1)


def test_format_memories_uses_fixed_category_order():
    repository = InMemoryMemoryRepository()
    store = MemoryStore(repository)
    store.save_memory("u", "topic", "gardening", category="fact", importance=10)
    store.save_memory("u", "language", "German", category="preference", importance=9)
    store.save_memory("u", "name", "Alice", category="personal", importance=6)

    formatted = format_memories_for_context(repository.query("u"))

    assert formatted.startswith("## User Memory")
    assert formatted.index("### Personal Information") < formatted.index("### Preferences")
    assert formatted.index("### Preferences") < formatted.index("### Known Facts")
    assert "### Context & Background" not in formatted
    assert "- name: Alice" in formatted


def test_format_memories_empty():
    assert format_memories_for_context([]) == ""


def test_json_file_repository_persists_between_instances(tmp_path):
    path = tmp_path / "memory.json"
    MemoryStore(JsonFileMemoryRepository(path)).save_memory("u", "name", "Alice", category="personal", importance=7)

    reopened = JsonFileMemoryRepository(path)
    record = reopened.get("u", "name")

    assert record is not None
    assert record.value == "Alice"
    assert record.category == MemoryCategory.PERSONAL


def test_json_file_repository_rejects_corrupt_file(tmp_path):
    path = tmp_path / "memory.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RuntimeError):
        JsonFileMemoryRepository(path).query("u")


if __name__ == "__main__":
    unittest.main()
