"""Coerce inbound chat-completion bodies into the shape the upstream accepts."""

import json
import math
from dataclasses import dataclass
from typing import Any

DEFAULT_MAX_TOKENS = 512

VALID_ROLES = frozenset({"system", "user", "assistant", "tool", "function"})
ROLE_MAPPINGS = {
    "developer": "system",
    "model": "assistant",
}


@dataclass(frozen=True)
class NormalizedRequest:
    body: bytes
    stream_requested: bool
    max_tokens: int
    payload: dict[str, Any] | None = None


def normalize_role(role: object) -> str:
    if not isinstance(role, str):
        return "user"
    if role in VALID_ROLES:
        return role
    return ROLE_MAPPINGS.get(role, "user")


def normalize_message_roles(messages: list[Any]) -> list[Any]:
    """Return messages with canonical roles, or the same list object if nothing changed."""
    normalized: list[Any] = []
    has_changes = False
    for message in messages:
        if not isinstance(message, dict):
            normalized.append(message)
            continue
        role = message.get("role")
        mapped = normalize_role(role)
        if mapped == role:
            normalized.append(message)
            continue
        has_changes = True
        normalized.append({**message, "role": mapped})
    return normalized if has_changes else messages


def effective_max_tokens(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return DEFAULT_MAX_TOKENS
    if not math.isfinite(value) or value == 0:
        return DEFAULT_MAX_TOKENS
    return int(value)


def encode_body(payload: dict[str, Any]) -> bytes:
    try:
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates only survive as \u escapes.
        return json.dumps(payload, separators=(",", ":")).encode("ascii")


def normalize_request(raw: bytes) -> NormalizedRequest:
    """Sanitize a raw request body.

    Malformed or non-object JSON is forwarded untouched with no stream intent and
    the default token budget.
    """
    try:
        parsed = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return NormalizedRequest(body=raw, stream_requested=False, max_tokens=DEFAULT_MAX_TOKENS)
    if not isinstance(parsed, dict):
        return NormalizedRequest(body=raw, stream_requested=False, max_tokens=DEFAULT_MAX_TOKENS)

    stream_requested = parsed.get("stream") is True
    parsed["stream"] = False
    messages = parsed.get("messages")
    if isinstance(messages, list):
        parsed["messages"] = normalize_message_roles(messages)

    return NormalizedRequest(
        body=encode_body(parsed),
        stream_requested=stream_requested,
        max_tokens=effective_max_tokens(parsed.get("max_tokens")),
        payload=parsed,
    )
