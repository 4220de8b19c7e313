import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from jsonschema import ValidationError, validate

from app.config.settings import Settings

logger = logging.getLogger("gateway.capture")

CAPTURE_RECORD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["kind", "at"],
    "properties": {
        "kind": {"enum": ["request", "response", "error"]},
        "requestId": {"type": "string"},
        "at": {"type": "string"},
        "method": {"type": "string"},
        "target": {"type": "string"},
        "estimated_micros": {"type": "integer", "minimum": 0},
        "duration_ms": {"type": "integer", "minimum": 0},
        "status": {"type": "integer"},
        "headers": {"type": "object", "additionalProperties": {"type": "string"}},
        "message": {"type": "string"},
        "source": {"type": "object"},
    },
}


class CaptureValidationError(Exception):
    """Raised when a capture record does not match the record schema."""


class CaptureWriter(Protocol):
    def write(self, record: dict[str, Any]) -> None:
        """Persist one capture record; must never raise."""


class NoopCaptureWriter:
    def write(self, record: dict[str, Any]) -> None:
        _ = record


class FileCaptureWriter:
    def __init__(self, path: Path):
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, record: dict[str, Any]) -> None:
        try:
            self._append(record)
        except (OSError, TypeError, ValueError, CaptureValidationError) as exc:
            logger.debug("capture_write_failed", extra={"error": str(exc)})

    def _append(self, record: dict[str, Any]) -> None:
        payload = dict(record)
        payload.setdefault("at", datetime.now(UTC).isoformat())
        try:
            validate(instance=payload, schema=CAPTURE_RECORD_SCHEMA)
        except ValidationError as exc:
            raise CaptureValidationError(exc.message) from exc

        line = json.dumps(payload, ensure_ascii=True, default=str)
        with self._path.open("a", encoding="utf-8") as file_handle:
            file_handle.write(line + "\n")


def build_capture_writer(settings: Settings) -> CaptureWriter:
    if not settings.capture_enabled:
        return NoopCaptureWriter()
    try:
        return FileCaptureWriter(settings.capture_file)
    except OSError as exc:
        logger.warning("capture_disabled", extra={"error": str(exc)})
        return NoopCaptureWriter()


def parse_json_if_possible(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text
