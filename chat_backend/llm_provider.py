from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Sequence
from urllib import error, request

from chat_backend.schema_models import ProviderImagePart, ProviderMessagePart, ProviderTextPart

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"
DEFAULT_OPENAI_MODEL = os.getenv("CHAT_OPENAI_MODEL", "gpt-4o")
DEFAULT_GEMINI_MODEL = os.getenv("CHAT_GEMINI_MODEL", "gemini-1.5-flash")
REQUEST_TIMEOUT_SECONDS = 60


@dataclass(frozen=True)
class LlmJsonResult:
    status: str
    raw_response: str | None
    warnings: list[str]


def _collect_gemini_text(response_payload: dict[str, Any]) -> str | None:
    candidates = response_payload.get("candidates") or []
    if not candidates:
        return None

    parts = (candidates[0].get("content") or {}).get("parts") or []
    extracted: list[str] = []
    for part in parts:
        text = part.get("text") if isinstance(part, dict) else None
        if isinstance(text, str) and text.strip():
            extracted.append(text.strip())

    if extracted:
        return "\n".join(extracted)
    return None


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = request.Request(url, data=body, headers=headers, method="POST")
    with request.urlopen(req, timeout=REQUEST_TIMEOUT_SECONDS) as response:
        response_body = response.read().decode("utf-8")
    return json.loads(response_body)


def _http_error_warning(provider_name: str, exc: error.HTTPError) -> str:
    response_excerpt = ""
    try:
        response_body = exc.read().decode("utf-8", errors="replace").strip()
    except Exception:
        response_body = ""

    if response_body:
        try:
            parsed = json.loads(response_body)
            if isinstance(parsed, dict):
                error_payload = parsed.get("error")
                if isinstance(error_payload, dict):
                    message = error_payload.get("message")
                    if isinstance(message, str) and message.strip():
                        response_excerpt = message.strip()
        except json.JSONDecodeError:
            response_excerpt = response_body[:200]

    if response_excerpt:
        return f"{provider_name} request failed with HTTP {exc.code}: {response_excerpt}"

    return f"{provider_name} request failed with HTTP {exc.code}."


def _collect_openai_text(content: Any) -> list[str]:
    if not isinstance(content, list):
        return []

    collected: list[str] = []
    for part in content:
        if not isinstance(part, dict):
            continue

        direct_text = part.get("text")
        if isinstance(direct_text, str) and direct_text.strip():
            collected.append(direct_text.strip())

    return collected


def _extract_openai_text(response_payload: dict[str, Any]) -> str | None:
    output_text = response_payload.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    output = response_payload.get("output")
    if isinstance(output, list):
        extracted: list[str] = []
        for item in output:
            if not isinstance(item, dict):
                continue
            extracted.extend(_collect_openai_text(item.get("content")))

        if extracted:
            return "\n".join(extracted)

    return None


def _split_data_uri(data_uri: str) -> tuple[str, str]:
    header, _, data = data_uri.partition(",")
    mime_type = header[len("data:"):].split(";", 1)[0] or "image/png"
    return mime_type, data


def build_openai_payload(
    model: str,
    system_prompt: str,
    provider_parts: Sequence[ProviderMessagePart],
    *,
    max_output_tokens: int = 1024,
) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    for part in provider_parts:
        if isinstance(part, ProviderTextPart):
            content.append({"type": "input_text", "text": part.text})
        elif isinstance(part, ProviderImagePart):
            content.append({"type": "input_image", "image_url": part.image_url})
        else:
            raise TypeError(f"Unsupported provider part: {type(part).__name__}")

    return {
        "model": model,
        "instructions": system_prompt,
        "input": [{"role": "user", "content": content}],
        "max_output_tokens": max_output_tokens,
    }


def build_gemini_payload(
    system_prompt: str,
    provider_parts: Sequence[ProviderMessagePart],
    *,
    max_output_tokens: int = 1024,
) -> dict[str, Any]:
    parts: list[dict[str, Any]] = []
    for part in provider_parts:
        if isinstance(part, ProviderTextPart):
            parts.append({"text": part.text})
        elif isinstance(part, ProviderImagePart):
            mime_type, data = _split_data_uri(part.image_url)
            parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
        else:
            raise TypeError(f"Unsupported provider part: {type(part).__name__}")

    return {
        "system_instruction": {"parts": [{"text": system_prompt}]},
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {"maxOutputTokens": max_output_tokens},
    }


def generate_turn_reply_with_openai(
    api_key: str,
    system_prompt: str,
    provider_parts: Sequence[ProviderMessagePart],
    *,
    model: str = DEFAULT_OPENAI_MODEL,
    max_output_tokens: int = 1024,
) -> LlmJsonResult:
    try:
        payload = build_openai_payload(model, system_prompt, provider_parts, max_output_tokens=max_output_tokens)
        response_payload = _post_json(
            OPENAI_RESPONSES_URL,
            payload,
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
        )
    except error.HTTPError as exc:
        return LlmJsonResult(
            status="error",
            raw_response=None,
            warnings=[_http_error_warning("OpenAI", exc)],
        )
    except Exception:
        return LlmJsonResult(
            status="error",
            raw_response=None,
            warnings=["OpenAI request failed before receiving a response."],
        )

    extracted_text = _extract_openai_text(response_payload)
    if extracted_text:
        return LlmJsonResult(status="success", raw_response=extracted_text, warnings=[])

    return LlmJsonResult(
        status="error",
        raw_response=json.dumps(response_payload),
        warnings=["OpenAI response did not contain extractable text content."],
    )


def generate_turn_reply_with_gemini(
    api_key: str,
    system_prompt: str,
    provider_parts: Sequence[ProviderMessagePart],
    *,
    model: str = DEFAULT_GEMINI_MODEL,
    max_output_tokens: int = 1024,
) -> LlmJsonResult:
    endpoint = (
        "https://generativelanguage.googleapis.com/v1beta/models/"
        f"{model}:generateContent?key={api_key}"
    )
    try:
        payload = build_gemini_payload(system_prompt, provider_parts, max_output_tokens=max_output_tokens)
        response_payload = _post_json(endpoint, payload, {"Content-Type": "application/json"})
    except error.HTTPError as exc:
        return LlmJsonResult(
            status="error",
            raw_response=None,
            warnings=[_http_error_warning("Gemini", exc)],
        )
    except Exception:
        return LlmJsonResult(
            status="error",
            raw_response=None,
            warnings=["Gemini request failed before receiving a response."],
        )

    extracted_text = _collect_gemini_text(response_payload)
    if extracted_text:
        return LlmJsonResult(status="success", raw_response=extracted_text, warnings=[])

    return LlmJsonResult(
        status="error",
        raw_response=json.dumps(response_payload),
        warnings=["Gemini response did not contain text content."],
    )


def generate_turn_reply(
    provider: str | None,
    api_key: str | None,
    system_prompt: str,
    provider_parts: Sequence[ProviderMessagePart],
) -> LlmJsonResult:
    selected_provider = (provider or os.getenv("CHAT_LLM_PROVIDER") or "openai").lower().strip()
    if selected_provider in {"openai", "chatgpt"}:
        resolved_key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not resolved_key:
            return LlmJsonResult(status="error", raw_response=None, warnings=["OPENAI_API_KEY not configured."])
        return generate_turn_reply_with_openai(resolved_key, system_prompt, provider_parts)

    if selected_provider == "gemini":
        resolved_key = (api_key or os.getenv("GEMINI_API_KEY") or "").strip()
        if not resolved_key:
            return LlmJsonResult(status="error", raw_response=None, warnings=["GEMINI_API_KEY not configured."])
        return generate_turn_reply_with_gemini(resolved_key, system_prompt, provider_parts)

    return LlmJsonResult(
        status="error",
        raw_response=None,
        warnings=[f"Unsupported provider '{selected_provider}'."],
    )
