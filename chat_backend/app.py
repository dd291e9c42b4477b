from __future__ import annotations

import os
from uuid import uuid4

from fastapi import FastAPI, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chat_backend import chat_store, ingestion
from chat_backend.errors import ErrorKind, PipelineError
from chat_backend.llm_provider import generate_turn_reply
from chat_backend.memory_store import JsonFileMemoryRepository, MemoryStore
from chat_backend.pipeline_config import load_pipeline_config
from chat_backend.schema_models import MemoryCategory, RawFilePart, RawPart, RawTextPart, turn_parts_adapter
from chat_backend.turn_pipeline import TurnRejected, assemble_turn, extract_memories

CONFIG = load_pipeline_config()
MEMORY_STORE = MemoryStore(JsonFileMemoryRepository(CONFIG.data_dir / "memory.json"), CONFIG)

app = FastAPI(title="Chat Turn Assembly API")

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CHAT_CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

UPLOAD_STATUS_CODES = {
    ErrorKind.UNSUPPORTED_MEDIA_TYPE: 415,
    ErrorKind.OVERSIZE_ARTIFACT: 413,
    ErrorKind.EMPTY_ARTIFACT: 400,
}


class ChatTurnRequest(BaseModel):
    chat_id: str
    user_id: str
    turn_id: str = Field(default_factory=lambda: uuid4().hex)
    parts: list[RawPart]
    submit: bool = False
    provider: str | None = None
    api_key: str | None = None


class SaveMemoryRequest(BaseModel):
    key: str
    value: str
    category: MemoryCategory = MemoryCategory.CONTEXT
    importance: int = Field(default=5, ge=1, le=10)
    chat_id: str | None = None


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/config/pipeline")
def pipeline_config():
    return CONFIG.to_dict()


@app.post("/files/upload")
async def upload_file(file: UploadFile = File(...)):
    content = await file.read()
    filename = file.filename or ""
    result = ingestion.validate_upload(filename, content, file.content_type, max_bytes=CONFIG.max_artifact_bytes)

    if result.status == "error":
        return JSONResponse(
            status_code=UPLOAD_STATUS_CODES.get(result.error_kind, 400),
            content={
                "status": result.status,
                "message": result.message,
                "reason": result.error_kind.value if result.error_kind else None,
                "warnings": result.warnings,
            },
        )

    upload = ingestion.upload_artifact(filename, content, file.content_type, max_bytes=CONFIG.max_artifact_bytes)
    return {
        "status": "success",
        "message": result.message,
        "warnings": upload.warnings,
        "artifact": upload.to_dict(),
    }


@app.post("/chat/turn")
def chat_turn(request: ChatTurnRequest):
    artifacts = []
    for part in request.parts:
        if not isinstance(part, RawFilePart):
            continue
        try:
            artifacts.append(ingestion.load_artifact(part.artifact_id))
        except PipelineError as exc:
            rejected = TurnRejected(reason=exc.error_kind, message=exc.user_message)
            return JSONResponse(status_code=404, content=rejected.to_dict())

    outcome = assemble_turn(
        request.user_id,
        request.parts,
        artifacts,
        memory_store=MEMORY_STORE,
        config=CONFIG,
    )
    if isinstance(outcome, TurnRejected):
        return JSONResponse(status_code=422, content=outcome.to_dict())

    try:
        chat_store.save_turn_parts(request.chat_id, request.turn_id, outcome.turn_parts)
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"status": "error", "message": str(exc)})

    payload = outcome.to_dict()
    payload["turn_id"] = request.turn_id
    if not request.submit:
        return payload

    reply = generate_turn_reply(request.provider, request.api_key, outcome.system_prompt, outcome.provider_parts)
    payload["warnings"] = [*payload["warnings"], *reply.warnings]
    payload["reply"] = reply.raw_response if reply.status == "success" else None
    if reply.status == "success":
        user_message = "\n".join(part.text for part in request.parts if isinstance(part, RawTextPart))
        saved = extract_memories(
            request.user_id,
            request.chat_id,
            user_message,
            reply.raw_response or "",
            memory_store=MEMORY_STORE,
        )
        payload["memories_saved"] = [record.key for record in saved]
    return payload


@app.get("/chats/{chat_id}/turns/{turn_id}")
def get_turn_parts(chat_id: str, turn_id: str):
    try:
        parts = chat_store.load_turn_parts(chat_id, turn_id)
    except (KeyError, ValueError):
        return JSONResponse(status_code=404, content={"status": "error", "message": "Turn not found."})
    return {"chat_id": chat_id, "turn_id": turn_id, "parts": turn_parts_adapter.dump_python(parts, mode="json")}


@app.get("/memory/{user_id}")
def list_memories(
    user_id: str,
    category: MemoryCategory | None = None,
    min_importance: int | None = None,
    limit: int = 50,
):
    records = MEMORY_STORE.list_memories(user_id, category=category, min_importance=min_importance, limit=limit)
    return {"memories": [record.model_dump(mode="json") for record in records]}


@app.post("/memory/{user_id}")
def save_memory(user_id: str, request: SaveMemoryRequest):
    try:
        record = MEMORY_STORE.save_memory(
            user_id,
            request.key,
            request.value,
            category=request.category,
            importance=request.importance,
            chat_id=request.chat_id,
        )
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"status": "error", "message": str(exc)})
    return {"status": "success", "memory": record.model_dump(mode="json")}


@app.delete("/memory/{user_id}")
def delete_all_memories(user_id: str):
    deleted = MEMORY_STORE.delete_all_memories(user_id)
    return {"status": "success", "deleted": deleted}


@app.delete("/memory/{user_id}/{memory_id}")
def delete_memory(user_id: str, memory_id: str):
    if not MEMORY_STORE.delete_memory(user_id, memory_id):
        return JSONResponse(status_code=404, content={"status": "error", "message": "Memory not found."})
    return {"status": "success", "deleted": 1}
