from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_ARTIFACT_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_DOCUMENT_CHARS = 50000
DEFAULT_MEMORY_MIN_IMPORTANCE = 5
DEFAULT_MEMORY_LIMIT = 20
DEFAULT_MAX_EXTRACTION_WORKERS = 4
DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly assistant. Keep your responses concise and helpful. "
    "When the user attaches files, their content appears before the question that refers to them."
)
DEFAULT_DATA_DIR = "data/chat"


@dataclass(frozen=True)
class PipelineConfig:
    max_artifact_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES
    max_document_chars: int = DEFAULT_MAX_DOCUMENT_CHARS
    memory_min_importance: int = DEFAULT_MEMORY_MIN_IMPORTANCE
    memory_limit: int = DEFAULT_MEMORY_LIMIT
    max_extraction_workers: int = DEFAULT_MAX_EXTRACTION_WORKERS
    max_image_dimension: int | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    data_dir: Path = Path(DEFAULT_DATA_DIR)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["data_dir"] = str(self.data_dir)
        return payload


def _read_int(name: str, default: int | None, *, minimum: int = 1) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s.", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring %s=%d below minimum %d; using %s.", name, value, minimum, default)
        return default
    return value


def load_pipeline_config() -> PipelineConfig:
    system_prompt = (os.getenv("CHAT_SYSTEM_PROMPT") or "").strip() or DEFAULT_SYSTEM_PROMPT
    return PipelineConfig(
        max_artifact_bytes=_read_int("CHAT_MAX_ARTIFACT_BYTES", DEFAULT_MAX_ARTIFACT_BYTES),
        max_document_chars=_read_int("CHAT_MAX_DOCUMENT_CHARS", DEFAULT_MAX_DOCUMENT_CHARS),
        memory_min_importance=_read_int("CHAT_MEMORY_MIN_IMPORTANCE", DEFAULT_MEMORY_MIN_IMPORTANCE),
        memory_limit=_read_int("CHAT_MEMORY_LIMIT", DEFAULT_MEMORY_LIMIT),
        max_extraction_workers=_read_int("CHAT_MAX_EXTRACTION_WORKERS", DEFAULT_MAX_EXTRACTION_WORKERS),
        max_image_dimension=_read_int("CHAT_MAX_IMAGE_DIMENSION", None, minimum=16),
        system_prompt=system_prompt,
        data_dir=Path(os.getenv("CHAT_DATA_DIR", DEFAULT_DATA_DIR)),
    )
