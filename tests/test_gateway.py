import json

import httpx
import pytest

from neurobridge.gateway import (
    GatewayAuthError,
    GatewayBillingError,
    GatewayConfigError,
    GatewayEmptyResponseError,
    GatewayRateLimitError,
    GatewayRequestError,
    LLMGateway,
)

MESSAGES = [{"role": "user", "content": "Say hello"}]


def _completion(content):
    return {
        "id": "gen-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "openai/gpt-4-turbo",
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
    }


def _gateway(status_code, body, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return LLMGateway(api_key="test-key", base_url="https://gateway.test/api/v1", http_client=client)


def test_complete_returns_message_content_and_sends_headers():
    seen = []
    gateway = _gateway(200, _completion("Hello there"), seen)

    assert gateway.complete(MESSAGES, model="test/model", temperature=0.2, max_tokens=50) == "Hello there"

    request = seen[0]
    assert request.url.path == "/api/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer test-key"
    assert "x-title" in request.headers
    assert "http-referer" in request.headers
    body = json.loads(request.content)
    assert body["model"] == "test/model"
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 50
    assert body["messages"] == MESSAGES


def test_missing_key_is_a_config_error():
    gateway = LLMGateway(api_key="")

    assert not gateway.configured
    with pytest.raises(GatewayConfigError, match="OPENROUTER_API_KEY"):
        gateway.complete(MESSAGES)


def test_rate_limit_and_auth_failures_are_distinct():
    with pytest.raises(GatewayRateLimitError, match="Wait 60 seconds") as rate_limited:
        _gateway(429, {"error": {"message": "slow down"}}).complete(MESSAGES)
    with pytest.raises(GatewayAuthError, match="Invalid API key") as unauthorized:
        _gateway(401, {"error": {"message": "bad key"}}).complete(MESSAGES)

    assert rate_limited.value.status_code == 429
    assert unauthorized.value.status_code == 401
    assert str(rate_limited.value) != str(unauthorized.value)


@pytest.mark.parametrize("status_code", [402, 403])
def test_billing_failures(status_code):
    with pytest.raises(GatewayBillingError, match="Insufficient credits") as exc_info:
        _gateway(status_code, {"error": {"message": "no credits"}}).complete(MESSAGES)

    assert exc_info.value.status_code == status_code


def test_other_failures_carry_server_message():
    with pytest.raises(GatewayRequestError, match="Upstream model overloaded") as exc_info:
        _gateway(500, {"error": {"message": "Upstream model overloaded"}}).complete(MESSAGES)

    assert exc_info.value.status_code == 500


def test_other_failures_without_message_report_status():
    with pytest.raises(GatewayRequestError, match="API request failed: 503"):
        _gateway(503, {"error": {}}).complete(MESSAGES)


def test_empty_content_is_an_error():
    with pytest.raises(GatewayEmptyResponseError):
        _gateway(200, _completion("   ")).complete(MESSAGES)
