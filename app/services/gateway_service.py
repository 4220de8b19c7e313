import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from time import perf_counter

from app.capture.writer import CaptureWriter, NoopCaptureWriter, parse_json_if_possible
from app.config.settings import Settings
from app.core.errors import AppError
from app.payment.base import PaymentAuthority
from app.services.forwarder import UpstreamForwarder, build_outbound_headers
from app.services.normalizer import normalize_request
from app.services.pricing import estimate_amount_micros
from app.services.stream_emulator import emulate_stream

logger = logging.getLogger("gateway.chat")


@dataclass(frozen=True)
class GatewayReply:
    status_code: int
    media_type: str
    body: str = ""
    frames: tuple[str, ...] | None = None


class GatewayService:
    def __init__(
        self,
        settings: Settings,
        payment_authority: PaymentAuthority,
        capture_writer: CaptureWriter | None = None,
    ):
        self._settings = settings
        self._forwarder = UpstreamForwarder(settings, payment_authority)
        self._capture = capture_writer or NoopCaptureWriter()

    def health(self) -> dict[str, str]:
        return {
            "status": "ok",
            "service": self._settings.service_name,
            "payment_mode": self._settings.payment_mode_normalized,
        }

    async def handle_chat_completion(
        self,
        request_id: str,
        raw_body: bytes,
        inbound_headers: Mapping[str, str],
    ) -> GatewayReply:
        started = perf_counter()
        try:
            return await self._handle(request_id, raw_body, inbound_headers, started)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            self._capture.write(
                {
                    "kind": "error",
                    "requestId": request_id,
                    "at": _now_iso(),
                    "message": message,
                }
            )
            logger.exception("chat_failed", extra={"request_id": request_id, "error": message})
            raise AppError(502, message) from exc

    async def _handle(
        self,
        request_id: str,
        raw_body: bytes,
        inbound_headers: Mapping[str, str],
        started: float,
    ) -> GatewayReply:
        normalized = normalize_request(raw_body)
        amount_micros = estimate_amount_micros(
            self._settings.default_amount_usd,
            normalized.max_tokens,
            self._settings.min_amount_micros,
        )
        outbound_headers = build_outbound_headers(inbound_headers, self._settings.user_agent)
        model = normalized.payload.get("model") if normalized.payload else None

        self._capture.write(
            {
                "kind": "request",
                "requestId": request_id,
                "at": _now_iso(),
                "source": {
                    "user_agent": inbound_headers.get("user-agent"),
                    "session_id": inbound_headers.get("x-session-id"),
                },
                "method": "POST",
                "target": self._forwarder.upstream_url,
                "estimated_micros": amount_micros,
                "headers": outbound_headers,
                "body": parse_json_if_possible(normalized.body.decode("utf-8", errors="replace")),
            }
        )

        upstream = await self._forwarder.forward(
            normalized,
            outbound_headers,
            amount_micros,
            idempotency_key=inbound_headers.get("idempotency-key"),
        )

        latency_ms = int((perf_counter() - started) * 1000)
        self._capture.write(
            {
                "kind": "response",
                "requestId": request_id,
                "at": _now_iso(),
                "duration_ms": latency_ms,
                "status": upstream.status_code,
                "headers": dict(upstream.headers.items()),
                "body": parse_json_if_possible(upstream.body),
            }
        )
        logger.info(
            "chat_completed",
            extra={
                "request_id": request_id,
                "model": model if isinstance(model, str) else None,
                "stream": normalized.stream_requested,
                "status_code": upstream.status_code,
                "amount_micros": amount_micros,
                "latency_ms": latency_ms,
                "chain": self._settings.resolved_chain,
            },
        )

        if normalized.stream_requested and upstream.ok:
            return GatewayReply(
                status_code=200,
                media_type="text/event-stream",
                frames=tuple(emulate_stream(upstream.body)),
            )
        return GatewayReply(
            status_code=upstream.status_code,
            media_type=upstream.media_type,
            body=upstream.body,
        )


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()
