# src/avatutor/adapters/llm/openai_api.py
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


@register("openai_chat")
class OpenAIChatAdapter(LLMAdapter):
    """Streams text from OpenAI Chat Completions (SSE)."""

    _BASE = "https://api.openai.com/v1"

    async def infer_stream(self, prompt: str, context: dict[str, Any]) -> AsyncIterator[str]:
        headers = {"Authorization": f"Bearer {settings.openai_api_key}"}
        payload = {
            "model": self.config.get("model", "gpt-4o-mini"),
            "stream": True,
            "temperature": self.config.get("temperature", 0.8),
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.config.get("timeout_s", 30)) as client:
                async with client.stream(
                    "POST",
                    f"{self._BASE}/chat/completions",
                    headers=headers,
                    json=payload,
                ) as resp:
                    resp.raise_for_status()
                    async for raw_line in resp.aiter_lines():
                        line = raw_line.strip()
                        if not line or line == "data: [DONE]":
                            continue
                        if line.startswith("data: "):
                            try:
                                delta = json.loads(line[6:])
                                token = delta["choices"][0]["delta"].get("content") or ""
                            except (json.JSONDecodeError, KeyError, IndexError) as exc:
                                raise MalformedResponseError(
                                    self.name, f"unparseable stream chunk: {exc}"
                                ) from exc
                            if token:
                                yield token
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, str(exc) or type(exc).__name__) from exc

    async def health(self) -> HealthStatus:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                r = await client.get(
                    f"{self._BASE}/models",
                    headers={"Authorization": f"Bearer {settings.openai_api_key}"},
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
            max_text_length=100000,
            supported_languages=["english", "spanish", "japanese"],
        )
