# src/avatutor/pipeline/idle.py
from __future__ import annotations
import asyncio
from datetime import datetime
from avatutor.control.animation import AnimationStateMachine
from avatutor.core.config import AnimationConfig, settings
from avatutor.core.logging import bind_trace, get_logger
from avatutor.core.types import SessionState, VrmIdleEvent, utcnow
from avatutor.pipeline.session import Session

log = get_logger(__name__)


class IdleAnimator:
    """
    Background ticker per session: decays emotion and, while no turn is
    generating, pushes idle poses. Idle events are advisory and dropped when
    the channel is full.
    """

    def __init__(self, machine: AnimationStateMachine, config: AnimationConfig | None = None) -> None:
        self.machine = machine
        self.config = config or settings.animation

    def start(self, session: Session) -> asyncio.Task[None]:
        if session.idle_task and not session.idle_task.done():
            return session.idle_task
        session.idle_task = asyncio.create_task(self._loop(session))
        return session.idle_task

    async def stop(self, session: Session) -> None:
        task = session.idle_task
        session.idle_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _loop(self, session: Session) -> None:
        bind_trace(session.id)
        log.debug("idle loop started", tick_s=self.config.idle_tick_s)
        try:
            while True:
                await asyncio.sleep(self.config.idle_tick_s)
                self.tick(session, utcnow())
        except asyncio.CancelledError:
            log.debug("idle loop stopped")
            raise

    def tick(self, session: Session, now: datetime) -> VrmIdleEvent | None:
        session.emotion = self.machine.decay(session.emotion, now)
        if session.state is not SessionState.IDLE or session.channel is None:
            return None
        frame = self.machine.idle_tick(session.animation, now)
        session.animation = frame.animation
        if not frame.changed:
            return None
        event = VrmIdleEvent(blendshapes=frame.blendshapes, blink=frame.blink)
        session.channel.emit_nowait(event)
        return event
