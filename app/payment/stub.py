from time import time
from typing import Any
from uuid import uuid4

from app.payment.base import PaymentError, PaymentIntent


class StubPaymentAuthority:
    """Charges nothing and answers with a canned completion; for local development."""

    async def pay(self, intent: PaymentIntent) -> dict[str, Any]:
        body = intent.request_body.body if isinstance(intent.request_body.body, dict) else {}
        model = str(body.get("model") or "stub-model")
        self._maybe_raise_payment_error(model)

        messages = body.get("messages")
        if not isinstance(messages, list):
            messages = []
        last_user_message = next(
            (
                m["content"]
                for m in reversed(messages)
                if isinstance(m, dict)
                and m.get("role") == "user"
                and isinstance(m.get("content"), str)
            ),
            "",
        )
        answer = f"Stub response: {last_user_message[:120]}"
        completion_tokens = max(len(answer.split()), 1)
        return {
            "status": "success",
            "tx_hash": f"stub-{uuid4().hex}",
            "chain": intent.transaction.chain,
            "amount_charged": 0.0,
            "merchant_response": {
                "id": f"chatcmpl-{uuid4().hex}",
                "object": "chat.completion",
                "created": int(time()),
                "model": model,
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": answer},
                        "finish_reason": "stop",
                    }
                ],
                "usage": {
                    "prompt_tokens": 1,
                    "completion_tokens": completion_tokens,
                    "total_tokens": completion_tokens + 1,
                },
            },
        }

    @staticmethod
    def _maybe_raise_payment_error(model: str) -> None:
        if model.startswith("error-402"):
            raise PaymentError("Payment API Error: 402 - insufficient balance")
        if model.startswith("error-403"):
            raise PaymentError("prequalification_pending: agent is not yet approved")
