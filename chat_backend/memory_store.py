from __future__ import annotations

import json
import logging
import tempfile
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

from chat_backend.pipeline_config import PipelineConfig
from chat_backend.schema_models import MemoryCategory, MemoryRecord, utc_now

logger = logging.getLogger(__name__)

CATEGORY_ORDER = [
    MemoryCategory.PERSONAL,
    MemoryCategory.PREFERENCE,
    MemoryCategory.CONTEXT,
    MemoryCategory.FACT,
]

CATEGORY_TITLES = {
    MemoryCategory.PERSONAL: "Personal Information",
    MemoryCategory.PREFERENCE: "Preferences",
    MemoryCategory.CONTEXT: "Context & Background",
    MemoryCategory.FACT: "Known Facts",
}


class MemoryRepository(Protocol):
    """Storage collaborator holding at most one record per (user_id, key)."""

    def upsert(
        self,
        user_id: str,
        key: str,
        *,
        category: MemoryCategory,
        value: str,
        importance: int,
        chat_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryRecord:
        ...

    def query(
        self,
        user_id: str,
        *,
        category: MemoryCategory | None = None,
        min_importance: int | None = None,
        limit: int | None = None,
    ) -> list[MemoryRecord]:
        ...

    def touch(self, record_ids: Iterable[str]) -> None:
        ...

    def get(self, user_id: str, key: str) -> MemoryRecord | None:
        ...

    def delete(self, user_id: str, memory_id: str) -> bool:
        ...

    def delete_all(self, user_id: str) -> int:
        ...


def _sort_key(record: MemoryRecord) -> tuple[int, float]:
    return record.importance, record.updated_at.timestamp()


class InMemoryMemoryRepository:
    """Process-local repository; every mutation happens under one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[tuple[str, str], MemoryRecord] = {}

    def _load(self) -> dict[tuple[str, str], MemoryRecord]:
        return self._records

    def _save(self, records: dict[tuple[str, str], MemoryRecord]) -> None:
        self._records = records

    def upsert(
        self,
        user_id: str,
        key: str,
        *,
        category: MemoryCategory,
        value: str,
        importance: int,
        chat_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryRecord:
        with self._lock:
            records = self._load()
            now = utc_now()
            existing = records.get((user_id, key))
            if existing is not None:
                update: dict[str, Any] = {
                    "value": value,
                    "importance": importance,
                    "updated_at": now,
                    "last_accessed_at": now,
                    "access_count": existing.access_count + 1,
                    "metadata": metadata,
                }
                if chat_id:
                    update["chat_id"] = chat_id
                record = MemoryRecord.model_validate({**existing.model_dump(), **update})
            else:
                record = MemoryRecord(
                    user_id=user_id,
                    chat_id=chat_id,
                    category=category,
                    key=key,
                    value=value,
                    importance=importance,
                    created_at=now,
                    updated_at=now,
                    last_accessed_at=now,
                    access_count=1,
                    metadata=metadata,
                )
            records[(user_id, key)] = record
            self._save(records)
            return record

    def query(
        self,
        user_id: str,
        *,
        category: MemoryCategory | None = None,
        min_importance: int | None = None,
        limit: int | None = None,
    ) -> list[MemoryRecord]:
        with self._lock:
            records = self._load()
            matches = [
                record
                for (owner, _key), record in records.items()
                if owner == user_id
                and (category is None or record.category == category)
                and (min_importance is None or record.importance >= min_importance)
            ]
        matches.sort(key=_sort_key, reverse=True)
        if limit is not None:
            matches = matches[: max(0, limit)]
        return matches

    def touch(self, record_ids: Iterable[str]) -> None:
        wanted = set(record_ids)
        if not wanted:
            return
        with self._lock:
            records = self._load()
            now = utc_now()
            for record_key, record in records.items():
                if record.id in wanted:
                    records[record_key] = record.model_copy(
                        update={"last_accessed_at": now, "access_count": record.access_count + 1}
                    )
            self._save(records)

    def get(self, user_id: str, key: str) -> MemoryRecord | None:
        with self._lock:
            return self._load().get((user_id, key))

    def delete(self, user_id: str, memory_id: str) -> bool:
        with self._lock:
            records = self._load()
            for record_key, record in list(records.items()):
                if record.user_id == user_id and record.id == memory_id:
                    del records[record_key]
                    self._save(records)
                    return True
        return False

    def delete_all(self, user_id: str) -> int:
        with self._lock:
            records = self._load()
            doomed = [record_key for record_key in records if record_key[0] == user_id]
            for record_key in doomed:
                del records[record_key]
            self._save(records)
        return len(doomed)


def atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        json.dump(payload, handle, indent=2)
        handle.flush()
        temp_path = Path(handle.name)
    temp_path.replace(path)


class JsonFileMemoryRepository(InMemoryMemoryRepository):
    """Repository persisted to a single JSON document, rewritten atomically on every change."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _load(self) -> dict[tuple[str, str], MemoryRecord]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"Memory store at {self.path} is not valid JSON: {exc}") from exc

        records: dict[tuple[str, str], MemoryRecord] = {}
        for item in raw.get("memories", []):
            record = MemoryRecord.model_validate(item)
            records[(record.user_id, record.key)] = record
        return records

    def _save(self, records: dict[tuple[str, str], MemoryRecord]) -> None:
        payload = {
            "updated_at": utc_now().isoformat(),
            "memories": [record.model_dump(mode="json") for record in records.values()],
        }
        atomic_write_json(self.path, payload)


def format_memories_for_context(records: list[MemoryRecord]) -> str:
    if not records:
        return ""

    grouped: dict[MemoryCategory, list[MemoryRecord]] = {}
    for record in records:
        grouped.setdefault(record.category, []).append(record)

    sections = ["## User Memory"]
    for category in CATEGORY_ORDER:
        items = grouped.get(category)
        if not items:
            continue
        lines = [f"### {CATEGORY_TITLES[category]}"]
        lines.extend(f"- {item.key}: {item.value}" for item in items)
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


class MemoryStore:
    """Reads and writes user memory on behalf of the turn pipeline.

    Reads are access-tracked: every record returned by a read gets exactly one
    ``access_count`` bump and a fresh ``last_accessed_at`` per call.
    """

    def __init__(self, repository: MemoryRepository, config: PipelineConfig | None = None) -> None:
        self.repository = repository
        self.config = config or PipelineConfig()

    def load_context(self, user_id: str, *, min_importance: int | None = None, limit: int | None = None) -> str:
        records = self.list_memories(
            user_id,
            min_importance=self.config.memory_min_importance if min_importance is None else min_importance,
            limit=self.config.memory_limit if limit is None else limit,
        )
        logger.debug("Loaded %d memories for user %s", len(records), user_id)
        return format_memories_for_context(records)

    def list_memories(
        self,
        user_id: str,
        *,
        category: MemoryCategory | None = None,
        min_importance: int | None = None,
        limit: int | None = None,
    ) -> list[MemoryRecord]:
        records = self.repository.query(
            user_id,
            category=category,
            min_importance=min_importance,
            limit=limit,
        )
        if records:
            self.repository.touch(record.id for record in records)
        return records

    def get_memory_by_key(self, user_id: str, key: str) -> MemoryRecord | None:
        record = self.repository.get(user_id, key)
        if record is not None:
            self.repository.touch([record.id])
        return record

    def save_memory(
        self,
        user_id: str,
        key: str,
        value: str,
        *,
        category: MemoryCategory | str = MemoryCategory.CONTEXT,
        importance: int = 5,
        chat_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryRecord:
        if not 1 <= importance <= 10:
            raise ValueError("Memory importance must be between 1 and 10.")
        cleaned_key = key.strip()
        if not cleaned_key:
            raise ValueError("Memory key must not be empty.")
        return self.repository.upsert(
            user_id,
            cleaned_key,
            category=MemoryCategory(category),
            value=value,
            importance=importance,
            chat_id=chat_id,
            metadata=metadata,
        )

    def delete_memory(self, user_id: str, memory_id: str) -> bool:
        return self.repository.delete(user_id, memory_id)

    def delete_all_memories(self, user_id: str) -> int:
        return self.repository.delete_all(user_id)
