import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.config.settings import Settings
from app.payment.base import (
    HTTPTarget,
    PaymentAuthority,
    PaymentContext,
    PaymentError,
    PaymentIntent,
    RequestEnvelope,
    Transaction,
    classify_payment_error,
)
from app.services.normalizer import NormalizedRequest
from app.services.pricing import micros_to_usd

logger = logging.getLogger("gateway.payment")

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
HOP_BY_HOP_HEADERS = frozenset({"host", "content-length", "connection"})
PAYMENT_TASK = "upstream_inference_via_metered_gateway"
PAYMENT_REASONING = "Pay for upstream chat-completion inference requested by the client"


@dataclass
class UpstreamResponse:
    status_code: int
    body: str
    headers: httpx.Headers = field(
        default_factory=lambda: httpx.Headers({"content-type": "application/json"})
    )

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def media_type(self) -> str:
        return self.headers.get("content-type", "application/json")


def build_outbound_headers(inbound: Mapping[str, str], user_agent: str) -> dict[str, str]:
    headers = httpx.Headers()
    for key, value in inbound.items():
        if key.lower() in HOP_BY_HOP_HEADERS:
            continue
        headers[key] = value
    if "content-type" not in headers:
        headers["content-type"] = "application/json"
    headers["user-agent"] = user_agent
    return {key: value for key, value in headers.items()}


class UpstreamForwarder:
    def __init__(self, settings: Settings, payment_authority: PaymentAuthority):
        self._settings = settings
        self._payment_authority = payment_authority
        self._upstream_url = f"{settings.resolved_upstream_api_base}{CHAT_COMPLETIONS_PATH}"

    @property
    def upstream_url(self) -> str:
        return self._upstream_url

    def build_intent(
        self,
        normalized: NormalizedRequest,
        outbound_headers: dict[str, str],
        amount_micros: int,
        idempotency_key: str | None = None,
    ) -> PaymentIntent:
        body: Any = normalized.payload
        if body is None:
            try:
                body = json.loads(normalized.body)
            except (ValueError, UnicodeDecodeError):
                body = None
        return PaymentIntent(
            transaction=Transaction(
                recipient=self._upstream_url,
                amount=micros_to_usd(amount_micros, self._settings.min_amount_micros),
                chain=self._settings.resolved_chain,
                asset=self._settings.resolved_asset,
            ),
            request_body=RequestEnvelope(
                http=HTTPTarget(url=self._upstream_url, method="POST", headers=outbound_headers),
                body=body,
            ),
            context=PaymentContext(
                current_task=PAYMENT_TASK,
                reasoning_process=PAYMENT_REASONING,
            ),
            idempotency_key=idempotency_key,
        )

    async def forward(
        self,
        normalized: NormalizedRequest,
        outbound_headers: dict[str, str],
        amount_micros: int,
        idempotency_key: str | None = None,
    ) -> UpstreamResponse:
        intent = self.build_intent(normalized, outbound_headers, amount_micros, idempotency_key)
        try:
            # A client disconnect must not abandon a payment that is already in flight.
            result = await asyncio.shield(self._payment_authority.pay(intent))
        except PaymentError as exc:
            status_code = classify_payment_error(exc.message)
            logger.warning(
                "payment_failed",
                extra={"status_code": status_code, "error": exc.message},
            )
            return UpstreamResponse(
                status_code=status_code,
                body=json.dumps({"error": exc.message}),
            )

        merchant_response: Any = result
        if isinstance(result, dict) and "merchant_response" in result:
            merchant_response = result["merchant_response"]
        if merchant_response is None:
            merchant_response = {}
        return UpstreamResponse(status_code=200, body=json.dumps(merchant_response))
