from __future__ import annotations

import base64
import binascii
import re
from typing import Any

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def _first_candidate_parts(payload: Any) -> list[Any]:
    if not isinstance(payload, dict):
        return []
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    if not isinstance(first, dict):
        return []
    content = first.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    return parts if isinstance(parts, list) else []


def extract_text(payload: Any) -> str:
    texts = [
        part["text"]
        for part in _first_candidate_parts(payload)
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    return "".join(texts)


def extract_inline_image_b64(payload: Any) -> tuple[str, str] | None:
    for part in _first_candidate_parts(payload):
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return str(inline["data"]), str(mime)
    return None


def extract_inline_image(payload: Any) -> bytes | None:
    found = extract_inline_image_b64(payload)
    if found is None:
        return None
    try:
        return base64.b64decode(found[0], validate=True)
    except (binascii.Error, ValueError):
        return None


def to_data_uri(data_b64: str, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{data_b64}"


def extract_chat_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


def strip_code_fence(text: str) -> str:
    if not text:
        return ""
    stripped = _FENCE_OPEN.sub("", text, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


def as_chat_completion(text: str) -> dict[str, Any]:
    return {"choices": [{"message": {"content": text}}]}


def as_gemini_text_payload(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def to_chat_messages(body: Any) -> list[dict[str, str]]:
    """Flatten a Gemini request body into a system/user chat exchange."""
    if not isinstance(body, dict):
        body = {}
    messages: list[dict[str, str]] = []
    system = body.get("systemInstruction")
    if isinstance(system, dict):
        system_text = "\n".join(_part_texts(system.get("parts"))).strip()
        if system_text:
            messages.append({"role": "system", "content": system_text})
    contents = body.get("contents")
    items = contents if isinstance(contents, list) else [contents]
    lines: list[str] = []
    for item in items:
        if isinstance(item, str) and item:
            lines.append(item)
        elif isinstance(item, dict):
            lines.extend(_part_texts(item.get("parts")))
    messages.append({"role": "user", "content": "\n".join(lines).strip() or "Continue."})
    return messages


def _part_texts(parts: Any) -> list[str]:
    if not isinstance(parts, list):
        return []
    return [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]
    ]
