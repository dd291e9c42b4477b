from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from chat_backend.memory_store import MemoryStore
from chat_backend.schema_models import MemoryCandidate, MemoryCategory, MemoryRecord

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTED_IMPORTANCE = 7


class FactExtractor(Protocol):
    def extract_facts(self, text: str) -> list[MemoryCandidate]:
        ...


@dataclass(frozen=True)
class PatternRule:
    pattern: re.Pattern[str]
    key: str
    category: MemoryCategory


DEFAULT_PATTERN_RULES = (
    PatternRule(re.compile(r"my name is (\w+)", re.IGNORECASE), "name", MemoryCategory.PERSONAL),
    PatternRule(re.compile(r"I live in (\w+)", re.IGNORECASE), "location", MemoryCategory.PERSONAL),
    PatternRule(re.compile(r"I work as (?:a |an )?(.+)", re.IGNORECASE), "job", MemoryCategory.PERSONAL),
    PatternRule(re.compile(r"I prefer (\w+)", re.IGNORECASE), "preference", MemoryCategory.PREFERENCE),
)


class PatternFactExtractor:
    """Regex heuristics; first match per rule, rules applied in order."""

    def __init__(self, rules: tuple[PatternRule, ...] = DEFAULT_PATTERN_RULES, importance: int = DEFAULT_EXTRACTED_IMPORTANCE):
        self.rules = rules
        self.importance = importance

    def extract_facts(self, text: str) -> list[MemoryCandidate]:
        candidates: list[MemoryCandidate] = []
        for rule in self.rules:
            match = rule.pattern.search(text)
            if not match:
                continue
            value = match.group(1).strip().rstrip(".!?")
            if value:
                candidates.append(
                    MemoryCandidate(category=rule.category, key=rule.key, value=value, importance=self.importance)
                )
        return candidates


def extract_memories_from_conversation(
    store: MemoryStore,
    *,
    user_id: str,
    chat_id: str | None,
    user_message: str,
    ai_response: str,
    extractor: FactExtractor | None = None,
) -> list[MemoryRecord]:
    # Only the user's own words are mined; ai_response is accepted for extractors that need it.
    active_extractor = extractor or PatternFactExtractor()
    try:
        candidates = active_extractor.extract_facts(user_message)
    except Exception:  # noqa: BLE001
        logger.exception("Fact extraction failed for user %s", user_id)
        return []

    saved: list[MemoryRecord] = []
    for candidate in candidates:
        try:
            record = store.save_memory(
                user_id,
                candidate.key,
                candidate.value,
                category=candidate.category,
                importance=candidate.importance,
                chat_id=chat_id,
                metadata={
                    "extracted_from": "conversation",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to save memory '%s' for user %s", candidate.key, user_id)
            continue
        saved.append(record)

    if saved:
        logger.info("Extracted %d memories for user %s", len(saved), user_id)
    return saved
