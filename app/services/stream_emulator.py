"""Replay a complete chat completion as an OpenAI-style event stream.

The upstream answers in one piece, so the stream carries whole-message chunks:
a role event, the full content, the full tool-call array, then a terminal event
per choice.
"""

import json
import math
from collections.abc import Callable
from time import time
from typing import Any
from uuid import uuid4

from app.models.openai import ChatCompletionChunk, ChunkChoice

DONE_FRAME = "data: [DONE]\n\n"


def sse_frame(data: str) -> str:
    return f"data: {data}\n\n"


def _single_line(body: str, payload: object) -> str:
    if payload is not None:
        return json.dumps(payload, separators=(",", ":"))
    return " ".join(body.splitlines())


def _chunk_frame(chunk: ChatCompletionChunk) -> str:
    return sse_frame(json.dumps(chunk.model_dump(), separators=(",", ":")))


def _envelope(
    payload: dict[str, Any],
    now: Callable[[], float],
    id_factory: Callable[[], str],
) -> tuple[str, int, str]:
    raw_id = payload.get("id")
    chunk_id = raw_id if isinstance(raw_id, str) and raw_id else id_factory()

    raw_created = payload.get("created")
    if (
        isinstance(raw_created, int | float)
        and not isinstance(raw_created, bool)
        and math.isfinite(raw_created)
    ):
        created = int(raw_created)
    else:
        created = int(now())

    raw_model = payload.get("model")
    model = raw_model if isinstance(raw_model, str) and raw_model else "unknown"
    return chunk_id, created, model


def _choice_events(position: int, choice: dict[str, Any]) -> list[ChunkChoice]:
    message = choice.get("message")
    if not isinstance(message, dict):
        message = choice.get("delta")
    if not isinstance(message, dict):
        message = {}

    raw_index = choice.get("index")
    index = position
    if isinstance(raw_index, int) and not isinstance(raw_index, bool):
        index = raw_index

    role = message.get("role")
    events = [
        ChunkChoice(
            index=index,
            delta={"role": role if isinstance(role, str) and role else "assistant"},
        )
    ]

    content = message.get("content")
    if isinstance(content, str) and content:
        events.append(ChunkChoice(index=index, delta={"content": content}))

    tool_calls = message.get("tool_calls")
    has_tool_calls = isinstance(tool_calls, list) and len(tool_calls) > 0
    if has_tool_calls:
        events.append(ChunkChoice(index=index, delta={"tool_calls": tool_calls}))

    if has_tool_calls:
        finish_reason = "tool_calls"
    else:
        raw_finish = choice.get("finish_reason")
        finish_reason = raw_finish if isinstance(raw_finish, str) and raw_finish else "stop"
    events.append(ChunkChoice(index=index, delta={}, finish_reason=finish_reason))
    return events


def emulate_stream(
    body: str,
    now: Callable[[], float] = time,
    id_factory: Callable[[], str] | None = None,
) -> list[str]:
    """Turn one JSON completion body into SSE frames ending with ``data: [DONE]``.

    Bodies that do not parse, or carry no usable choices, are relayed as a single
    raw ``data:`` frame before the terminator.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    usable: list[dict[str, Any]] = []
    if isinstance(payload, dict) and isinstance(payload.get("choices"), list):
        usable = [choice for choice in payload["choices"] if isinstance(choice, dict)]
    if not isinstance(payload, dict) or not usable:
        return [sse_frame(_single_line(body, payload)), DONE_FRAME]

    chunk_id, created, model = _envelope(
        payload, now, id_factory or (lambda: f"chatcmpl-{uuid4().hex}")
    )

    frames: list[str] = []
    for position, choice in enumerate(usable):
        for event in _choice_events(position, choice):
            frames.append(
                _chunk_frame(
                    ChatCompletionChunk(id=chunk_id, created=created, model=model, choices=[event])
                )
            )
    frames.append(DONE_FRAME)
    return frames
