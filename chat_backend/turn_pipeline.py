from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

from chat_backend.content_classifier import validate_artifact
from chat_backend.errors import ArtifactNotFound, ErrorKind, PipelineError, is_blocking
from chat_backend.memory_extraction import FactExtractor, extract_memories_from_conversation
from chat_backend.memory_store import MemoryStore
from chat_backend.message_lowering import lower_to_provider_messages
from chat_backend.part_assembler import assemble_turn_parts, build_system_prompt
from chat_backend.pipeline_config import PipelineConfig
from chat_backend.provider_adapter import adapt_provider_messages
from chat_backend.schema_models import (
    Artifact,
    ExtractedContent,
    ExtractionFailure,
    MemoryRecord,
    ProviderMessagePart,
    RawFilePart,
    RawPart,
    TextContent,
    TurnPart,
    turn_parts_adapter,
)
from chat_backend.text_extraction import extract_artifact

logger = logging.getLogger(__name__)

Lowerer = Callable[[Sequence[TurnPart]], list[dict[str, Any]]]


class PipelineState(str, Enum):
    COLLECTING = "collecting"
    EXTRACTING = "extracting"
    ASSEMBLING = "assembling"
    ADAPTING = "adapting"
    SUBMITTED = "submitted"
    REJECTED = "rejected"


@dataclass
class TurnAssembly:
    turn_parts: list[TurnPart]
    provider_parts: list[ProviderMessagePart]
    system_prompt: str
    warnings: list[str] = field(default_factory=list)
    state: PipelineState = PipelineState.SUBMITTED

    def to_dict(self) -> dict:
        return {
            "status": "success",
            "state": self.state.value,
            "turn_parts": turn_parts_adapter.dump_python(self.turn_parts, mode="json"),
            "provider_parts": [part.model_dump(mode="json") for part in self.provider_parts],
            "system_prompt": self.system_prompt,
            "warnings": self.warnings,
        }


@dataclass
class TurnRejected:
    reason: ErrorKind
    message: str
    artifact_name: str | None = None
    state: PipelineState = PipelineState.REJECTED

    def to_dict(self) -> dict:
        return {
            "status": "error",
            "state": self.state.value,
            "reason": self.reason.value,
            "message": self.message,
            "artifact_name": self.artifact_name,
        }


def _advance(state: PipelineState, user_id: str) -> PipelineState:
    logger.debug("Turn pipeline for user %s -> %s", user_id, state.value)
    return state


def _order_attachments(raw_parts: Sequence[RawPart], artifacts: Sequence[Artifact]) -> list[RawPart]:
    """Unreferenced artifacts are attached after the referenced ones, in the order given."""

    referenced = {part.artifact_id for part in raw_parts if isinstance(part, RawFilePart)}
    extra = [RawFilePart(artifact_id=artifact.artifact_id) for artifact in artifacts if artifact.artifact_id not in referenced]
    return [*raw_parts, *extra]


def _extract_all(artifacts: list[Artifact], config: PipelineConfig) -> dict[str, ExtractedContent]:
    if not artifacts:
        return {}
    workers = max(1, min(config.max_extraction_workers, len(artifacts)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extract") as executor:
        futures = {
            artifact.artifact_id: executor.submit(
                extract_artifact,
                artifact,
                max_image_dimension=config.max_image_dimension,
            )
            for artifact in artifacts
        }
        # Results are keyed by artifact so completion order never leaks into part order.
        return {artifact_id: future.result() for artifact_id, future in futures.items()}


def _load_memory_context(memory_store: MemoryStore | None, user_id: str, warnings: list[str]) -> str:
    if memory_store is None:
        return ""
    try:
        return memory_store.load_context(user_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to load memory context for user %s", user_id)
        warnings.append(f"User memory unavailable: {exc}")
        return ""


def assemble_turn(
    user_id: str,
    raw_parts: Sequence[RawPart],
    artifacts: Sequence[Artifact] = (),
    *,
    memory_store: MemoryStore | None = None,
    config: PipelineConfig | None = None,
    lowerer: Lowerer = lower_to_provider_messages,
) -> TurnAssembly | TurnRejected:
    """Turn one chat turn's text and attachments into provider-safe content.

    Any blocking attachment failure rejects the whole turn; no provider parts
    are produced in that case.
    """

    config = config or PipelineConfig()
    warnings: list[str] = []
    _advance(PipelineState.COLLECTING, user_id)

    by_id = {artifact.artifact_id: artifact for artifact in artifacts}
    ordered_parts = _order_attachments(raw_parts, artifacts)
    submitted: list[Artifact] = []
    for part in ordered_parts:
        if not isinstance(part, RawFilePart):
            continue
        artifact = by_id.get(part.artifact_id)
        try:
            if artifact is None:
                raise ArtifactNotFound(detail=part.artifact_id)
            validate_artifact(artifact.name, artifact.media_type, artifact.size_bytes, max_bytes=config.max_artifact_bytes)
        except PipelineError as exc:
            logger.warning("Rejecting turn for user %s: %s", user_id, exc)
            return TurnRejected(reason=exc.error_kind, message=exc.user_message, artifact_name=artifact.name if artifact else None)
        submitted.append(artifact)

    _advance(PipelineState.EXTRACTING, user_id)
    extracted = _extract_all(submitted, config)
    for artifact in submitted:
        content = extracted[artifact.artifact_id]
        if isinstance(content, ExtractionFailure) and is_blocking(content.reason):
            logger.warning("Rejecting turn for user %s: '%s' failed with %s", user_id, artifact.name, content.reason.value)
            return TurnRejected(
                reason=content.reason,
                message=f"{artifact.name}: {content.message}",
                artifact_name=artifact.name,
            )
        if isinstance(content, TextContent) and content.placeholder:
            warnings.append(f"No text could be extracted from '{artifact.name}'.")

    memory_context = _load_memory_context(memory_store, user_id, warnings)

    _advance(PipelineState.ASSEMBLING, user_id)
    try:
        assembled = assemble_turn_parts(
            ordered_parts,
            by_id,
            extracted,
            max_document_chars=config.max_document_chars,
        )
    except PipelineError as exc:
        logger.warning("Rejecting turn for user %s: %s", user_id, exc)
        return TurnRejected(reason=exc.error_kind, message=exc.user_message, artifact_name=exc.detail)
    warnings.extend(assembled.warnings)
    system_prompt = build_system_prompt(config.system_prompt, memory_context)

    _advance(PipelineState.ADAPTING, user_id)
    adaptation = adapt_provider_messages(lowerer(assembled.parts))
    warnings.extend(adaptation.warnings)

    state = _advance(PipelineState.SUBMITTED, user_id)
    return TurnAssembly(
        turn_parts=assembled.parts,
        provider_parts=adaptation.parts,
        system_prompt=system_prompt,
        warnings=warnings,
        state=state,
    )


def extract_memories(
    user_id: str,
    chat_id: str | None,
    user_message: str,
    ai_response: str,
    *,
    memory_store: MemoryStore,
    extractor: FactExtractor | None = None,
) -> list[MemoryRecord]:
    """Post-turn memory capture; errors are logged and never reach the caller."""

    try:
        return extract_memories_from_conversation(
            memory_store,
            user_id=user_id,
            chat_id=chat_id,
            user_message=user_message,
            ai_response=ai_response,
            extractor=extractor,
        )
    except Exception:  # noqa: BLE001
        logger.exception("Memory extraction failed for user %s", user_id)
        return []
