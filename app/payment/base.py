import re
from typing import Any, Protocol

from pydantic import BaseModel, Field

_EMBEDDED_STATUS = re.compile(r"\b([2-5]\d{2})\s*-")
_PAYMENT_REQUIRED = re.compile(r"payment required", re.IGNORECASE)
_PREQUALIFICATION_PENDING = re.compile(r"prequalification_pending", re.IGNORECASE)
_UNAUTHORIZED = re.compile(r"unauthorized", re.IGNORECASE)


class PaymentError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def classify_payment_error(message: str) -> int:
    """Infer an HTTP status from a payment authority failure message.

    The payment service reports failures as free text, so this is best-effort
    pattern matching: an embedded ``"<code> -"`` wins, then known phrases,
    and anything unrecognised maps to 502.
    """
    match = _EMBEDDED_STATUS.search(message)
    if match:
        return int(match.group(1))
    if _PAYMENT_REQUIRED.search(message):
        return 402
    if _PREQUALIFICATION_PENDING.search(message):
        return 403
    if _UNAUTHORIZED.search(message):
        return 401
    return 502


class Transaction(BaseModel):
    recipient: str
    amount: float = Field(gt=0)
    chain: str
    asset: str


class HTTPTarget(BaseModel):
    url: str
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)


class RequestEnvelope(BaseModel):
    http: HTTPTarget
    body: Any = None


class PaymentContext(BaseModel):
    current_task: str
    reasoning_process: str


class PaymentIntent(BaseModel):
    transaction: Transaction
    request_body: RequestEnvelope
    context: PaymentContext
    idempotency_key: str | None = None

    def pay_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"idempotency_key"})


class PaymentAuthority(Protocol):
    async def pay(self, intent: PaymentIntent) -> dict[str, Any]:
        """Authorize payment for the intent and return the merchant's raw result."""
