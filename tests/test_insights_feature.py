import asyncio
import json
from datetime import datetime

import httpx
import pytest

from chatlens.insights import service
from chatlens.memory.schema import Message
from chatlens.utils.dates import now_ms

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _messages():
    return [
        Message(id="2", text="@Ann try checking imports", sender="Bob", timestamp=now_ms(NOW) + 61_000, chat_id="c1"),
        Message(id="1", text="getting a value error", sender="Ann", timestamp=now_ms(NOW), chat_id="c1"),
    ]


def _gemini_cfg(**overrides):
    cfg = {"enabled": True, "provider": "gemini", "model": "gemini-2.0-flash", "api_key": "g-key"}
    cfg.update(overrides)
    return cfg


def _run(prompt, cfg, handler):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await service.generate_answer(prompt, cfg, client=client)

    return asyncio.run(scenario())


def test_transcript_is_chronological():
    transcript = service.build_transcript(_messages())
    assert transcript.splitlines() == [
        "[12:00:00] Ann: getting a value error",
        "[12:01:01] Bob: @Ann try checking imports",
    ]


def test_prompt_layout():
    prompt = service.build_prompt("List open issues", _messages(), "Python Batch", now=NOW)
    assert prompt.startswith('Given these chat messages from "Python Batch" for today (10/03/2026):\n\n[12:00:00] Ann')
    assert "\n\nTask: List open issues\n\n" in prompt


def test_gemini_request_shape_and_answer():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Two open issues."}]}}]})

    answer = _run("the prompt", _gemini_cfg(), handler)

    assert answer == "Two open issues."
    assert "/models/gemini-2.0-flash:generateContent" in captured["url"]
    assert "key=g-key" in captured["url"]
    assert captured["body"] == {"contents": [{"parts": [{"text": "the prompt"}]}]}


def test_missing_key_is_a_credential_error(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(service.AICredentialError, match="Please set your Gemini API key"):
        _run("p", _gemini_cfg(api_key=""), handler)


def test_env_key_fallback(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    runtime = service.resolve_runtime({"provider": "gemini", "api_key": ""})
    assert runtime["api_key"] == "from-env"
    assert runtime["model"] == "gemini-2.0-flash"


def test_invalid_key_response_is_a_credential_error():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "API key not valid. Please pass a valid API key."}})

    with pytest.raises(service.AICredentialError, match="Invalid API key"):
        _run("p", _gemini_cfg(), handler)


def test_non_success_status_is_a_generic_failure():
    def handler(request):
        return httpx.Response(500, json={"error": {"message": "backend overloaded"}})

    with pytest.raises(service.AIServiceError) as exc:
        _run("p", _gemini_cfg(), handler)

    assert not isinstance(exc.value, service.AICredentialError)
    assert str(exc.value) == "Failed to generate insight: backend overloaded"


def test_malformed_payload_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(service.AIServiceError, match="Invalid response format"):
        _run("p", _gemini_cfg(), handler)


def test_empty_answer_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "   "}]}}]})

    with pytest.raises(service.AIServiceError):
        _run("p", _gemini_cfg(), handler)


def test_network_failure_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(service.AIServiceError, match="Failed to generate insight"):
        _run("p", _gemini_cfg(), handler)


def test_openai_and_ollama_providers():
    def openai_handler(request):
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(200, json={"choices": [{"message": {"content": "from openai"}}]})

    def ollama_handler(request):
        assert request.url.path == "/api/generate"
        assert json.loads(request.content)["stream"] is False
        return httpx.Response(200, json={"response": "from ollama"})

    assert _run("p", {"provider": "openai", "api_key": "sk-test"}, openai_handler) == "from openai"
    assert _run("p", {"provider": "ollama", "model": "llama3.2:3b"}, ollama_handler) == "from ollama"


def test_disabled_and_unknown_provider():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(service.AIServiceError, match="disabled"):
        _run("p", _gemini_cfg(enabled=False), handler)
    with pytest.raises(service.AIServiceError, match="Unsupported AI provider"):
        _run("p", {"provider": "mystery", "api_key": "x"}, handler)
