# src/avatutor/adapters/llm/gemini_api.py
from __future__ import annotations
import json
import time
from typing import Any, AsyncIterator
import httpx
from avatutor.adapters.base import LLMAdapter
from avatutor.core.config import settings
from avatutor.core.errors import MalformedResponseError, ProviderError
from avatutor.core.registry import register
from avatutor.core.types import AdapterCapabilities, HealthStatus


@register("gemini")
class GeminiAdapter(LLMAdapter):
    """Streams text from Gemini generateContent (SSE, alt=sse)."""

    _BASE = "https://generativelanguage.googleapis.com/v1beta"

    def _model(self) -> str:
        return self.config.get("model", "gemini-1.5-flash")

    async def infer_stream(self, prompt: str, context: dict[str, Any]) -> AsyncIterator[str]:
        url = f"{self._BASE}/models/{self._model()}:streamGenerateContent"
        params = {"alt": "sse", "key": settings.gemini_api_key}
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.config.get("temperature", 0.8),
                "maxOutputTokens": self.config.get("max_output_tokens", 512),
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self.config.get("timeout_s", 30)) as client:
                async with client.stream("POST", url, params=params, json=payload) as resp:
                    resp.raise_for_status()
                    async for raw_line in resp.aiter_lines():
                        line = raw_line.strip()
                        if not line.startswith("data: "):
                            continue
                        for text in self._parse_event(line[6:]):
                            yield text
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, str(exc) or type(exc).__name__) from exc

    def _parse_event(self, data: str) -> list[str]:
        try:
            event = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(self.name, f"unparseable stream chunk: {exc}") from exc
        candidates = event.get("candidates") or []
        if not candidates:
            # Safety blocks come back as promptFeedback with no candidates.
            feedback = event.get("promptFeedback", {}).get("blockReason")
            if feedback:
                raise MalformedResponseError(self.name, f"prompt blocked: {feedback}")
            return []
        parts = candidates[0].get("content", {}).get("parts", [])
        return [p["text"] for p in parts if p.get("text")]

    async def health(self) -> HealthStatus:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                r = await client.get(
                    f"{self._BASE}/models/{self._model()}",
                    params={"key": settings.gemini_api_key},
                )
            return HealthStatus(
                healthy=r.status_code == 200,
                latency_ms=(time.monotonic() - t0) * 1000,
            )
        except httpx.HTTPError as exc:
            return HealthStatus(
                healthy=False,
                latency_ms=(time.monotonic() - t0) * 1000,
                detail=str(exc),
            )

    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supports_streaming=True,
            max_text_length=30000,
            supported_languages=["english", "spanish", "japanese"],
        )
