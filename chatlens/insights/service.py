"""
Generative-AI collaborator for open-ended prompts.

Builds a transcript of today's messages for the active conversation, sends it
with the user's task to the configured provider, and returns the provider's
text answer. The message store is never touched here.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional, Sequence

import httpx

from chatlens.memory.schema import Message
from chatlens.utils.dates import time_label

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = {"gemini", "openai", "ollama"}
PROVIDER_LABELS = {"gemini": "Gemini", "openai": "OpenAI", "ollama": "Ollama"}
DEFAULT_TIMEOUT_SECONDS = 30.0

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class AIServiceError(RuntimeError):
    pass


class AICredentialError(AIServiceError):
    pass


def _normalize_provider(value: Any) -> str:
    provider = str(value or "gemini").strip().lower()
    aliases = {
        "google": "gemini",
        "google-gemini": "gemini",
        "oai": "openai",
        "chatgpt": "openai",
        "local": "ollama",
    }
    return aliases.get(provider, provider)


def resolve_runtime(ai_cfg: dict) -> dict:
    provider = _normalize_provider(ai_cfg.get("provider"))
    api_key = (ai_cfg.get("api_key") or "").strip()
    if not api_key:
        if provider == "gemini":
            api_key = os.environ.get("GEMINI_API_KEY", "")
        elif provider == "openai":
            api_key = os.environ.get("OPENAI_API_KEY", "")

    model = (ai_cfg.get("model") or "").strip()
    if not model:
        if provider == "gemini":
            model = "gemini-2.0-flash"
        elif provider == "openai":
            model = "gpt-4o-mini"
        else:
            model = os.environ.get("OLLAMA_MODEL", "llama3.2:3b")

    api_base_url = (ai_cfg.get("api_base_url") or "").strip()
    if not api_base_url and provider == "ollama":
        api_base_url = os.environ.get("OLLAMA_BASE_URL", "http://127.0.0.1:11434")

    try:
        timeout = float(ai_cfg.get("timeout_seconds") or DEFAULT_TIMEOUT_SECONDS)
    except (TypeError, ValueError):
        timeout = DEFAULT_TIMEOUT_SECONDS

    return {
        "enabled": bool(ai_cfg.get("enabled", True)),
        "provider": provider,
        "api_key": api_key,
        "model": model,
        "api_base_url": api_base_url,
        "timeout": timeout,
    }


def build_transcript(messages: Sequence[Message]) -> str:
    ordered = sorted(messages, key=lambda m: m.timestamp)
    return "\n".join(f"[{time_label(m.timestamp)}] {m.sender}: {m.text}" for m in ordered)


def build_prompt(task: str, messages: Sequence[Message], title: str, now: Optional[datetime] = None) -> str:
    day = (now or datetime.now()).strftime("%d/%m/%Y")
    return (
        f'Given these chat messages from "{title}" for today ({day}):\n\n'
        f"{build_transcript(messages)}\n\n"
        f"Task: {task}\n\n"
        "Provide a clear and concise response. If there are no relevant items matching the task, "
        "please indicate that."
    )


def _error_detail(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        return (res.text or "").strip()[:180]
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or "").strip()
        if isinstance(err, str):
            return err.strip()
        return str(payload.get("message") or "").strip()
    return ""


def _raise_for_status(res: httpx.Response, provider: str):
    if res.status_code < 400:
        return
    detail = _error_detail(res) or f"{provider} request failed ({res.status_code})"
    if res.status_code in (401, 403) or "api key" in detail.lower():
        raise AICredentialError(f"Invalid API key. Please check your {provider} API key and try again.")
    raise AIServiceError(f"Failed to generate insight: {detail}")


def _json_payload(res: httpx.Response) -> dict:
    try:
        data = res.json()
    except ValueError as e:
        raise AIServiceError("Invalid response format from AI provider") from e
    if not isinstance(data, dict):
        raise AIServiceError("Invalid response format from AI provider")
    return data


async def _call_gemini(prompt: str, runtime: dict, client: httpx.AsyncClient) -> str:
    base = (runtime.get("api_base_url") or GEMINI_BASE_URL).rstrip("/")
    url = f"{base}/models/{runtime.get('model')}:generateContent"
    body = {"contents": [{"parts": [{"text": prompt}]}]}
    res = await client.post(url, params={"key": runtime.get("api_key")}, json=body)
    _raise_for_status(res, "Gemini")
    data = _json_payload(res)
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise AIServiceError("Invalid response format from Gemini API") from e
    return str(text or "")


async def _call_openai(prompt: str, runtime: dict, client: httpx.AsyncClient) -> str:
    base = (runtime.get("api_base_url") or "https://api.openai.com/v1").rstrip("/")
    headers = {"Content-Type": "application/json", "Authorization": f"Bearer {runtime.get('api_key')}"}
    body = {
        "model": runtime.get("model"),
        "temperature": 0.3,
        "messages": [{"role": "user", "content": prompt}],
    }
    res = await client.post(f"{base}/chat/completions", headers=headers, json=body)
    _raise_for_status(res, "OpenAI")
    data = _json_payload(res)
    try:
        return str(data["choices"][0]["message"]["content"] or "")
    except (KeyError, IndexError, TypeError) as e:
        raise AIServiceError("Invalid response format from OpenAI API") from e


async def _call_ollama(prompt: str, runtime: dict, client: httpx.AsyncClient) -> str:
    base = (runtime.get("api_base_url") or "http://127.0.0.1:11434").rstrip("/")
    body = {
        "model": runtime.get("model"),
        "prompt": prompt,
        "stream": False,
        "options": {"temperature": 0.3},
    }
    res = await client.post(f"{base}/api/generate", json=body)
    _raise_for_status(res, "Ollama")
    return str(_json_payload(res).get("response") or "")


_PROVIDER_CALLS = {
    "gemini": _call_gemini,
    "openai": _call_openai,
    "ollama": _call_ollama,
}


async def generate_answer(
    prompt: str,
    ai_cfg: dict,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Send ``prompt`` to the configured provider. Raises AIServiceError / AICredentialError."""
    runtime = resolve_runtime(ai_cfg or {})
    provider = runtime["provider"]
    if not runtime["enabled"]:
        raise AIServiceError("AI analysis is disabled in settings")
    if provider not in SUPPORTED_PROVIDERS:
        raise AIServiceError(f"Unsupported AI provider: {provider}")
    if provider in ("gemini", "openai") and not runtime["api_key"]:
        raise AICredentialError(f"Please set your {PROVIDER_LABELS[provider]} API key in the settings")

    call = _PROVIDER_CALLS[provider]
    try:
        if client is not None:
            text = await call(prompt, runtime, client)
        else:
            async with httpx.AsyncClient(timeout=runtime["timeout"]) as owned:
                text = await call(prompt, runtime, owned)
    except AIServiceError:
        raise
    except httpx.TimeoutException as e:
        raise AIServiceError(f"Failed to generate insight: request timed out after {runtime['timeout']:.0f}s") from e
    except httpx.HTTPError as e:
        raise AIServiceError(f"Failed to generate insight: {e}") from e

    if not text.strip():
        raise AIServiceError("Invalid response format from AI provider: empty answer")
    logger.info(f"AI answer received from {provider} ({len(text)} chars)")
    return text
