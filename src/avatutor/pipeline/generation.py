# src/avatutor/pipeline/generation.py
from __future__ import annotations
import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from avatutor.adapters.base import LLMAdapter
from avatutor.core.config import GenerationConfig, settings
from avatutor.core.errors import MalformedResponseError, ProviderError
from avatutor.core.logging import get_logger

log = get_logger(__name__)

_SENTENCE_ENDS = frozenset(".!?。！？\n")

ChunkCallback = Callable[[str], Awaitable[None]]
CancelCheck = Callable[[], bool]


@dataclass
class GenerationResult:
    text: str
    fallback: bool = False
    is_error: bool = False
    provider: str | None = None
    attempts: int = 0
    cancelled: bool = False
    truncated: bool = False


def sentence_end(text: str, min_chars: int = 10) -> int:
    """Index just past the first terminator closing a chunk of at least min_chars, else 0."""
    for i, ch in enumerate(text):
        if ch in _SENTENCE_ENDS and len(text[: i + 1].strip()) >= min_chars:
            return i + 1
    return 0


def split_sentences(text: str, min_chars: int = 10) -> list[str]:
    """
    Cut text after sentence terminators, never producing a chunk shorter than
    min_chars (except the tail). Chunks are exact slices: joining them gives
    back the input.
    """
    chunks: list[str] = []
    while text:
        end = sentence_end(text, min_chars)
        if not end:
            chunks.append(text)
            break
        chunks.append(text[:end])
        text = text[end:]
    return chunks


class GenerationStreamManager:
    """
    Drives one generation through primary → secondary → canned text.

    Provider output is forwarded sentence by sentence while the provider is
    still streaming, each chunk paced by `pacing_ms`. Retries and failover
    only happen while nothing has reached the client; once a chunk is out, a
    provider failure ends the reply with what was already received.
    """

    def __init__(
        self,
        primary: LLMAdapter,
        secondary: LLMAdapter | None = None,
        config: GenerationConfig | None = None,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.config = config or settings.generation

    @property
    def providers(self) -> list[LLMAdapter]:
        return [p for p in (self.primary, self.secondary) if p is not None]

    def backoff_s(self, attempt: int) -> float:
        return min(self.config.backoff_max_s, self.config.backoff_base_s * (2**attempt))

    async def stream(
        self,
        prompt: str,
        on_chunk: ChunkCallback,
        *,
        is_cancelled: CancelCheck,
        context: dict[str, Any] | None = None,
        fallback_text: str = "Let me think about that for a moment.",
        error_text: str = "Sorry, something went wrong on my side.",
    ) -> GenerationResult:
        context = context or {}
        attempts = 0
        last_malformed = False
        providers = self.providers

        for index, provider in enumerate(providers):
            for attempt in range(self.config.max_retries + 1):
                if is_cancelled():
                    return GenerationResult(text="", cancelled=True, attempts=attempts)
                attempts += 1
                delivered: list[str] = []
                try:
                    finished = await self._forward(provider, prompt, context, on_chunk, is_cancelled, delivered)
                except ProviderError as exc:
                    if delivered:
                        log.warning(
                            "provider failed mid-reply, keeping partial text",
                            provider=provider.name,
                            chunks=len(delivered),
                            error=str(exc),
                        )
                        return GenerationResult(
                            text="".join(delivered),
                            provider=provider.name,
                            attempts=attempts,
                            cancelled=is_cancelled(),
                            truncated=True,
                        )
                    if isinstance(exc, MalformedResponseError):
                        log.warning("malformed provider output", provider=provider.name, error=str(exc))
                        last_malformed = True
                        break
                    last_malformed = False
                    if attempt < self.config.max_retries:
                        delay = self.backoff_s(attempt)
                        log.warning(
                            "provider error, retrying",
                            provider=provider.name,
                            attempt=attempt + 1,
                            delay_s=delay,
                            error=str(exc),
                        )
                        await asyncio.sleep(delay)
                        continue
                    log.warning("provider retries exhausted", provider=provider.name, error=str(exc))
                    break

                return GenerationResult(
                    text="".join(delivered),
                    provider=provider.name,
                    attempts=attempts,
                    cancelled=not finished,
                )

            if index + 1 < len(providers):
                log.info("failing over", from_provider=provider.name, to_provider=providers[index + 1].name)

        if last_malformed:
            log.error("generation failed: unusable provider output", attempts=attempts)
            result = GenerationResult(text=error_text, is_error=True, attempts=attempts)
        else:
            log.warning("all providers failed, using fallback text", attempts=attempts)
            result = GenerationResult(text=fallback_text, fallback=True, attempts=attempts)
        delivered = []
        for chunk in split_sentences(result.text, self.config.min_chunk_chars):
            if not await self._send(chunk, on_chunk, is_cancelled, delivered):
                result.cancelled = True
                break
        return result

    async def _forward(
        self,
        provider: LLMAdapter,
        prompt: str,
        context: dict[str, Any],
        on_chunk: ChunkCallback,
        is_cancelled: CancelCheck,
        delivered: list[str],
    ) -> bool:
        """
        Relay one provider attempt as whole sentences. Returns False if the
        turn was cancelled. Every chunk handed to on_chunk is appended to
        `delivered`, so a caller seeing an exception with `delivered` empty
        knows the client saw nothing from this attempt.
        """
        min_chars = self.config.min_chunk_chars
        pending = ""
        try:
            async with aclosing(provider.infer_stream(prompt, context)) as stream:
                async for piece in stream:
                    if is_cancelled():
                        return False
                    pending += piece
                    if not delivered:
                        pending = pending.lstrip()
                    end = sentence_end(pending, min_chars)
                    while end:
                        if not await self._send(pending[:end], on_chunk, is_cancelled, delivered):
                            return False
                        pending = pending[end:]
                        end = sentence_end(pending, min_chars)
        except ProviderError:
            # what the client already has stays; the received tail goes with it
            tail = pending.rstrip()
            if delivered and tail:
                await self._send(tail, on_chunk, is_cancelled, delivered)
            raise

        tail = pending.rstrip()
        if tail and not await self._send(tail, on_chunk, is_cancelled, delivered):
            return False
        if not delivered:
            raise MalformedResponseError(provider.name, "empty completion")
        return True

    async def _send(
        self, chunk: str, on_chunk: ChunkCallback, is_cancelled: CancelCheck, delivered: list[str]
    ) -> bool:
        if is_cancelled():
            return False
        pacing_s = self.config.pacing_ms / 1000
        if pacing_s > 0:
            await asyncio.sleep(pacing_s)
            if is_cancelled():
                return False
        await on_chunk(chunk)
        delivered.append(chunk)
        return True
