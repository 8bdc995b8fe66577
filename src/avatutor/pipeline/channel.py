# src/avatutor/pipeline/channel.py
from __future__ import annotations
import asyncio
from typing import AsyncIterator
from avatutor.core.logging import get_logger
from avatutor.core.types import OutboundEvent

log = get_logger(__name__)


class Channel:
    """
    Per-connection outbound queue. The orchestrator only ever talks to this;
    the WebSocket route drains it.

    emit()        awaits when full (backpressure on the turn)
    emit_nowait() drops when full (advisory traffic such as idle poses)
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._q: asyncio.Queue[OutboundEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: OutboundEvent) -> None:
        if self._closed:
            return
        await self._q.put(event)

    def emit_nowait(self, event: OutboundEvent) -> bool:
        if self._closed:
            return False
        try:
            self._q.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("channel full, advisory event dropped", event_type=getattr(event, "type", None))
            return False

    async def get(self) -> OutboundEvent | None:
        """Next event, or None once the channel has been closed and emptied."""
        return await self._q.get()

    async def drain(self) -> AsyncIterator[OutboundEvent]:
        while True:
            event = await self._q.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        """Stop accepting events and wake the drainer."""
        if self._closed:
            return
        self._closed = True
        try:
            self._q.put_nowait(None)
        except asyncio.QueueFull:
            # drainer is behind; make room for the sentinel
            self._q.get_nowait()
            self._q.put_nowait(None)

    def drain_nowait(self) -> list[OutboundEvent]:
        """Everything queued right now, without waiting."""
        events: list[OutboundEvent] = []
        while not self._q.empty():
            event = self._q.get_nowait()
            if event is not None:
                events.append(event)
        return events

    def qsize(self) -> int:
        return self._q.qsize()
