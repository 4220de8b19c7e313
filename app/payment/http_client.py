"""HTTP client for the credit-backed payment service."""

import json
import logging
from typing import Any

import httpx

from app.payment.base import PaymentError, PaymentIntent

logger = logging.getLogger("gateway.payment")

PAY_PATH = "/v1/transaction/pay"


class HTTPPaymentAuthority:
    """Pays for a request and relays it to the merchant through the payment service."""

    def __init__(
        self,
        service_url: str,
        api_token: str,
        timeout_s: float = 120.0,
        agent: str | None = None,
        agent_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        token = api_token.strip()
        if not token:
            raise RuntimeError("GATEWAY_PAYMENT_API_TOKEN is required when payment_mode=credit")
        self._service_url = service_url.rstrip("/")
        self._api_token = token
        self._timeout = timeout_s
        self._agent = agent
        self._agent_id = agent_id
        self._transport = transport

    async def pay(self, intent: PaymentIntent) -> dict[str, Any]:
        url = f"{self._service_url}{PAY_PATH}"
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        if intent.idempotency_key:
            headers["Idempotency-Key"] = intent.idempotency_key

        body = intent.pay_payload()
        if self._agent:
            body["agent"] = self._agent
        if self._agent_id:
            body["agent_id"] = self._agent_id

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, content=json.dumps(body), headers=headers)
        except httpx.TimeoutException as exc:
            raise PaymentError(f"Payment service timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise PaymentError(f"Payment service unreachable: {exc}") from exc

        self._raise_for_status(resp)

        try:
            result = resp.json()
        except ValueError as exc:
            raise PaymentError("Payment service returned a non-JSON response") from exc
        if not isinstance(result, dict):
            return {"merchant_response": result}
        return result

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        detail = HTTPPaymentAuthority._error_detail(resp)
        logger.warning(
            "payment_rejected",
            extra={"status_code": resp.status_code, "error": detail},
        )
        raise PaymentError(f"Payment API Error: {resp.status_code} - {detail}")

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        try:
            parsed = resp.json()
        except ValueError:
            return resp.text.strip() or resp.reason_phrase
        if isinstance(parsed, dict):
            for key in ("error", "message", "detail"):
                value = parsed.get(key)
                if isinstance(value, str) and value:
                    return value
                if isinstance(value, dict):
                    nested = value.get("message")
                    if isinstance(nested, str) and nested:
                        return nested
        return resp.text.strip() or resp.reason_phrase
