import json

from fastapi.testclient import TestClient

from app.main import create_app


def _request(stream: bool | None = None) -> dict[str, object]:
    body: dict[str, object] = {
        "model": "gpt-4o",
        "messages": [
            {"role": "developer", "content": "sys"},
            {"role": "user", "content": "hi"},
        ],
        "max_tokens": 32,
    }
    if stream is not None:
        body["stream"] = stream
    return body


def test_non_streaming_returns_upstream_json_verbatim(
    client, payment_authority, mock_completion
) -> None:
    response = client.post("/v1/chat/completions", json=_request())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.headers["x-request-id"]
    assert response.json() == mock_completion

    intent = payment_authority.intents[0]
    assert intent.request_body.body["messages"][0]["role"] == "system"
    assert intent.request_body.body["stream"] is False


def test_stream_false_behaves_like_absent(client, mock_completion) -> None:
    response = client.post("/v1/chat/completions", json=_request(stream=False))
    assert response.status_code == 200
    assert response.json() == mock_completion


def test_payment_intent_carries_transaction_and_envelope(client, payment_authority) -> None:
    client.post(
        "/v1/chat/completions",
        json=_request(),
        headers={"Idempotency-Key": "idem-42", "Authorization": "Bearer client-key"},
    )

    intent = payment_authority.intents[0]
    assert intent.transaction.recipient == "https://upstream.example/api/v1/chat/completions"
    assert intent.transaction.chain == "BASE"
    assert intent.transaction.asset == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    # 0.1 USD default plus 32 tokens at 8 micro-units each
    assert intent.transaction.amount == 0.100256
    assert intent.request_body.http.url == intent.transaction.recipient
    assert intent.idempotency_key == "idem-42"

    headers = intent.request_body.http.headers
    assert "host" not in headers
    assert "content-length" not in headers
    assert "connection" not in headers
    assert headers["content-type"] == "application/json"
    assert headers["authorization"] == "Bearer client-key"
    assert headers["user-agent"].startswith("metered-inference-gateway/")


def test_malformed_json_is_forwarded_to_payment_authority(client, payment_authority) -> None:
    raw = b'{"model": "gpt-4o", "messages": [ oops'
    response = client.post(
        "/v1/chat/completions",
        content=raw,
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    assert len(payment_authority.intents) == 1
    intent = payment_authority.intents[0]
    assert intent.request_body.body is None
    # Default 512-token budget applies when the body cannot be read
    assert intent.transaction.amount == 0.104096


def test_lone_surrogate_body_still_reaches_payment_authority(client, payment_authority) -> None:
    raw = b'{"model":"gpt-4o","messages":[{"role":"developer","content":"\\ud800"}]}'
    response = client.post(
        "/v1/chat/completions",
        content=raw,
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    assert len(payment_authority.intents) == 1
    message = payment_authority.intents[0].request_body.body["messages"][0]
    assert message == {"role": "system", "content": "\ud800"}


def test_payment_result_without_merchant_response_is_relayed_whole(make_client) -> None:
    client, _ = make_client(result={"id": "plain", "choices": []})
    response = client.post("/v1/chat/completions", json=_request())
    assert response.json() == {"id": "plain", "choices": []}


def test_each_request_builds_its_own_intent(client, payment_authority) -> None:
    client.post("/v1/chat/completions", json=_request())
    client.post("/v1/chat/completions", json=_request())
    assert len(payment_authority.intents) == 2
    assert payment_authority.intents[0] is not payment_authority.intents[1]


def test_unexpected_failure_maps_to_502(settings) -> None:
    class _BrokenAuthority:
        async def pay(self, intent):
            raise ConnectionResetError("socket hang up")

    client = TestClient(create_app(settings, payment_authority=_BrokenAuthority()))
    response = client.post("/v1/chat/completions", content=json.dumps(_request()))
    assert response.status_code == 502
    assert response.json() == {"error": "socket hang up"}
