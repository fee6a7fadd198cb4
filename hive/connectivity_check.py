"""
connectivity_check.py — One-shot "does this API key work?" probe per provider.

Used only at registration time: a passing check unlocks the register action
for that (provider, key) pair. A failing check never raises; it just leaves
registration disabled.

  Google     — generateContent on gemini-1.5-flash; passes if `candidates` returned
  OpenAI     — GET /v1/models; passes on HTTP 200
  Anthropic  — one-token message via the anthropic SDK
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import anthropic
import httpx
from loguru import logger

from hive_models import Provider

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
ANTHROPIC_PROBE_MODEL = "claude-haiku-4-5-20251001"
PROBE_PROMPT = "Respond with 'Success'."
DEFAULT_TIMEOUT = 10.0


@dataclass
class ConnectivityResult:
    provider: Provider
    ok:       bool
    detail:   str = ""

    def to_dict(self) -> dict:
        return {"provider": self.provider.value, "ok": self.ok, "detail": self.detail}


class ConnectivityChecker:

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    async def check(self, provider: Provider, api_key: str) -> ConnectivityResult:
        provider = Provider.parse(provider)
        if not (api_key or "").strip():
            return ConnectivityResult(provider, False, "API key is empty")
        probe = {
            Provider.GOOGLE: self._check_google,
            Provider.OPENAI: self._check_openai,
            Provider.ANTHROPIC: self._check_anthropic,
        }[provider]
        try:
            result = await probe(api_key.strip())
        except Exception as exc:
            logger.warning(f"Connectivity check for {provider.label} failed: {exc}")
            return ConnectivityResult(provider, False, str(exc))
        logger.info(f"Connectivity check for {provider.label}: {'ok' if result.ok else 'failed'}")
        return result

    async def _check_google(self, api_key: str) -> ConnectivityResult:
        body = {"contents": [{"parts": [{"text": PROBE_PROMPT}]}]}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(GEMINI_URL, params={"key": api_key}, json=body)
            data = resp.json()
        ok = isinstance(data, dict) and bool(data.get("candidates"))
        detail = "" if ok else _error_message(data) or f"HTTP {resp.status_code}"
        return ConnectivityResult(Provider.GOOGLE, ok, detail)

    async def _check_openai(self, api_key: str) -> ConnectivityResult:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.get(OPENAI_MODELS_URL, headers={"Authorization": f"Bearer {api_key}"})
        ok = resp.status_code == 200
        return ConnectivityResult(Provider.OPENAI, ok, "" if ok else f"HTTP {resp.status_code}")

    async def _check_anthropic(self, api_key: str) -> ConnectivityResult:
        client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self._timeout)
        await client.messages.create(
            model=ANTHROPIC_PROBE_MODEL,
            max_tokens=1,
            messages=[{"role": "user", "content": PROBE_PROMPT}],
        )
        return ConnectivityResult(Provider.ANTHROPIC, True)


def _error_message(data: object) -> Optional[str]:
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message")
    return None
