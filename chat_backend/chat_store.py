from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Sequence

from chat_backend.memory_store import atomic_write_json
from chat_backend.pipeline_config import DEFAULT_DATA_DIR
from chat_backend.schema_models import TurnPart, turn_parts_adapter, utc_now

TURNS_DIR = Path(os.getenv("CHAT_DATA_DIR", DEFAULT_DATA_DIR)) / "turns"

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def _turn_path(chat_id: str, turn_id: str) -> Path:
    for value in (chat_id, turn_id):
        if not _SAFE_ID.match(value or ""):
            raise ValueError(f"Invalid identifier '{value}'.")
    return TURNS_DIR / chat_id / f"{turn_id}.json"


def save_turn_parts(chat_id: str, turn_id: str, parts: Sequence[TurnPart]) -> Path:
    """Persist the internal part sequence as assembled, for later UI rendering."""

    path = _turn_path(chat_id, turn_id)
    payload = {
        "chat_id": chat_id,
        "turn_id": turn_id,
        "saved_at": utc_now().isoformat(),
        "parts": turn_parts_adapter.dump_python(list(parts), mode="json"),
    }
    atomic_write_json(path, payload)
    return path


def load_turn_parts(chat_id: str, turn_id: str) -> list[TurnPart]:
    path = _turn_path(chat_id, turn_id)
    if not path.exists():
        raise KeyError("turn_not_found")
    payload = json.loads(path.read_text(encoding="utf-8"))
    return turn_parts_adapter.validate_python(payload.get("parts", []))
