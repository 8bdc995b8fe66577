# src/avatutor/adapters/llm/mock_llm.py
from __future__ import annotations

import asyncio
import re
from typing import Any, AsyncIterator

from avatutor.adapters.base import LLMAdapter
from avatutor.core.errors import MalformedResponseError, ProviderError
from avatutor.core.registry import register
from avatutor.core.types import AdapterCapabilities, HealthStatus


_WORDS = re.compile(r"\S+\s*")


@register("mock_llm")
class MockLLMAdapter(LLMAdapter):
    """
    Deterministic word-streaming adapter for offline/integration testing.

    Config keys:
      response     fixed reply text (otherwise echoes context["message"])
      script       list of replies, consumed one per call (last one repeats)
      fail_times   raise ProviderError for the first N calls
      always_fail  raise ProviderError on every call
      malformed    raise MalformedResponseError on every call
      fail_after_words  raise ProviderError after streaming N words
      delay_s      sleep between streamed words
      first_delay_s  sleep before the first word (simulates provider latency)
    """

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        self.calls = 0
        self.prompts: list[str] = []

    def _reply_for(self, context: dict[str, Any]) -> str:
        script = self.config.get("script")
        if script:
            return script[min(self.calls - 1, len(script) - 1)]
        if "response" in self.config:
            return self.config["response"]
        message = (context.get("message") or "").strip()
        return (
            f"Great question! You said: {message}. "
            f"Let us practice that together, one step at a time."
        )

    async def infer_stream(self, prompt: str, context: dict[str, Any]) -> AsyncIterator[str]:
        self.calls += 1
        self.prompts.append(prompt)
        if self.config.get("always_fail") or self.calls <= self.config.get("fail_times", 0):
            raise ProviderError(self.name, f"injected failure on call {self.calls}")
        if self.config.get("malformed"):
            raise MalformedResponseError(self.name, "injected malformed response")

        if self.config.get("first_delay_s"):
            await asyncio.sleep(self.config["first_delay_s"])
        delay = self.config.get("delay_s", 0.0)
        fail_after = self.config.get("fail_after_words")
        for count, word in enumerate(_WORDS.findall(self._reply_for(context))):
            if fail_after is not None and count >= fail_after:
                raise ProviderError(self.name, f"stream dropped after {count} words")
            yield word
            await asyncio.sleep(delay)

    async def health(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.1, detail="mock llm")

    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supports_streaming=True,
            max_text_length=100000,
            supported_languages=["english", "spanish", "japanese"],
        )
