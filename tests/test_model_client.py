from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from flashfusion.model_client import GeminiClient
from flashfusion.tools import TOOL_DECLARATIONS


def _client(handler, **kwargs) -> GeminiClient:
    return GeminiClient(api_key="k-123", transport=httpx.MockTransport(handler), **kwargs)


def _generate(client: GeminiClient, **kwargs):
    params = dict(model="gemini-3-flash-preview", system="sys", user="hi", tools=TOOL_DECLARATIONS, temperature=0.45)
    params.update(kwargs)
    return asyncio.run(client.generate(**params))


def test_request_shape_and_response_parsing():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {
                        "content": {
                            "role": "model",
                            "parts": [
                                {"text": "thinking...", "thought": True},
                                {"text": "Routing via "},
                                {"text": "Zapier."},
                                {"functionCall": {"name": "triggerSimulationEvent", "args": {"eventType": "SWITCH_TRANSIT"}}},
                            ],
                        }
                    }
                ],
                "modelVersion": "gemini-3-pro-preview-001",
            },
        )

    res = _generate(_client(handler), model="gemini-3-pro-preview", thinking_budget=16384, temperature=0.75)
    assert seen["url"].endswith("/models/gemini-3-pro-preview:generateContent")
    assert seen["key"] == "k-123"
    body = seen["body"]
    assert body["systemInstruction"]["parts"][0]["text"] == "sys"
    assert body["contents"][0]["parts"][0]["text"] == "hi"
    assert body["generationConfig"] == {"temperature": 0.75, "thinkingConfig": {"thinkingBudget": 16384}}
    assert body["tools"][0]["functionDeclarations"][0]["name"] == "navigateToSection"

    assert res.text == "Routing via Zapier."
    assert res.tool_calls == [{"name": "triggerSimulationEvent", "args": {"eventType": "SWITCH_TRANSIT"}}]
    assert res.model == "gemini-3-pro-preview-001"
    assert res.latency_ms is not None and res.latency_ms >= 0


def test_no_thinking_config_for_flash():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": []})

    res = _generate(_client(handler))
    assert "thinkingConfig" not in seen["body"]["generationConfig"]
    assert res.text == "" and res.tool_calls == []


def test_http_errors_raise_status_error():
    client = _client(lambda request: httpx.Response(429, json={"error": {"code": 429}}))
    with pytest.raises(httpx.HTTPStatusError) as info:
        _generate(client)
    assert info.value.response.status_code == 429


def test_missing_api_key_raises_oserror():
    client = GeminiClient(api_key=None)
    with pytest.raises(OSError):
        _generate(client)


def test_dry_run_returns_stub_tool_calls_without_network():
    def handler(request):  # pragma: no cover - must not be called
        raise AssertionError("network used in dry run")

    client = GeminiClient(api_key=None, dry_run=True, transport=httpx.MockTransport(handler))
    res = _generate(client, user="reset then fail ops and show me")
    names = [c["name"] for c in res.tool_calls]
    assert names == ["triggerSimulationEvent", "triggerSimulationEvent", "navigateToSection"]
    assert res.tool_calls[1]["args"] == {"eventType": "FAIL_DISTRICT", "targetId": "OPS"}
    assert res.text.startswith("DRY_RUN: ")


def test_dry_run_plain_question_has_no_tool_calls():
    res = _generate(GeminiClient(dry_run=True), user="Why use Supabase RLS?")
    assert res.tool_calls == []
