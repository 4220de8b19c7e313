import copy
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.config.settings import Settings, clear_settings_cache
from app.main import create_app
from app.payment.base import PaymentError, PaymentIntent

MOCK_COMPLETION: dict[str, Any] = {
    "id": "chatcmpl-mock",
    "object": "chat.completion",
    "created": 1_700_000_000,
    "model": "gpt-4o",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "hello"},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
}


class RecordingPaymentAuthority:
    """Payment authority double that records every intent it is asked to pay."""

    def __init__(self, result: Any = None, error: str | None = None):
        self.result = result
        self.error = error
        self.intents: list[PaymentIntent] = []

    async def pay(self, intent: PaymentIntent) -> Any:
        self.intents.append(intent)
        if self.error is not None:
            raise PaymentError(self.error)
        return self.result


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        payment_mode="credit",
        payment_api_token="test-token",
        chain="BASE",
        asset="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        upstream_api_base="https://upstream.example/api",
        capture_file=tmp_path / "capture.jsonl",
    )


@pytest.fixture
def mock_completion() -> dict[str, Any]:
    return copy.deepcopy(MOCK_COMPLETION)


@pytest.fixture
def payment_authority() -> RecordingPaymentAuthority:
    return RecordingPaymentAuthority(
        result={
            "status": "success",
            "tx_hash": "mock-tx-hash",
            "merchant_response": copy.deepcopy(MOCK_COMPLETION),
        }
    )


@pytest.fixture
def client(settings: Settings, payment_authority: RecordingPaymentAuthority) -> TestClient:
    app = create_app(settings, payment_authority=payment_authority)
    return TestClient(app)


@pytest.fixture
def make_client(
    settings: Settings,
) -> Callable[..., tuple[TestClient, RecordingPaymentAuthority]]:
    def _make(
        result: Any = None, error: str | None = None
    ) -> tuple[TestClient, RecordingPaymentAuthority]:
        authority = RecordingPaymentAuthority(result=result, error=error)
        return TestClient(create_app(settings, payment_authority=authority)), authority

    return _make


@pytest.fixture
def stub_client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[TestClient]:
    monkeypatch.setenv("GATEWAY_PAYMENT_MODE", "stub")
    monkeypatch.setenv("GATEWAY_CAPTURE_ENABLED", "true")
    monkeypatch.setenv("GATEWAY_CAPTURE_FILE", str(tmp_path / "capture.jsonl"))
    clear_settings_cache()
    app = create_app()
    yield TestClient(app)
    clear_settings_cache()
