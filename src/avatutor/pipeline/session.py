# src/avatutor/pipeline/session.py
from __future__ import annotations
import asyncio
from avatutor.control.characters import CharacterProfile
from avatutor.control.prompt import history_cost
from avatutor.core.errors import SessionNotFound
from avatutor.core.logging import get_logger
from avatutor.core.types import (
    AnimationState,
    EmotionState,
    FinalizedTurn,
    SessionRecord,
    SessionState,
    Turn,
    TurnStatus,
    utcnow,
)
from avatutor.pipeline.channel import Channel
from avatutor.pipeline.monitor import LatencyMonitor
from avatutor.pipeline.voice import VoiceCoordinator

log = get_logger(__name__)


class Session:
    """Live runtime for one (user, character) conversation bound to a channel."""

    def __init__(
        self,
        record: SessionRecord,
        profile: CharacterProfile,
        channel: Channel | None,
        emotion: EmotionState,
        animation: AnimationState,
        voice: VoiceCoordinator,
        monitor: LatencyMonitor,
    ) -> None:
        self.id = record.session_id
        self.record = record
        self.profile = profile
        self.channel = channel
        self.emotion = emotion
        self.animation = animation
        self.voice = voice
        self.monitor = monitor
        # held only while admitting a turn, never during generation
        self.admission = asyncio.Lock()
        self.current_turn: Turn | None = None
        self.current_turn_task: asyncio.Task[None] | None = None
        self.idle_task: asyncio.Task[None] | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.record.key

    @property
    def state(self) -> SessionState:
        return self.record.state

    def transition(self, state: SessionState) -> None:
        self.record.state = state

    @property
    def is_generating(self) -> bool:
        turn = self.current_turn
        return turn is not None and turn.status is TurnStatus.GENERATING

    async def cancel_current_turn(self, force: bool = False) -> Turn | None:
        """
        Supersede the current turn. A generating turn is flagged cancelled and its
        task cancelled; a turn past its response is left to finish its
        bookkeeping (unless force). Returns only once the task is done.
        """
        turn, task = self.current_turn, self.current_turn_task
        cancelled: Turn | None = None
        if turn is not None and (turn.status in (TurnStatus.PENDING, TurnStatus.GENERATING) or force):
            if turn.status is not TurnStatus.FINALIZED:
                turn.status = TurnStatus.CANCELLED
                cancelled = turn
                log.info("turn cancelled", turn_id=turn.turn_id)
            if task and not task.done():
                task.cancel()
        if task and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.current_turn = None
        self.current_turn_task = None
        self.transition(SessionState.IDLE)
        return cancelled

    def append_history(self, turn: Turn, max_turns: int, max_tokens: int) -> FinalizedTurn:
        """Store a frozen copy; oldest turns go first when over either limit."""
        frozen = turn.finalized_copy()
        history = self.record.history
        history.append(frozen)
        if len(history) > max_turns:
            del history[: len(history) - max_turns]
        while history and history_cost(history, self.profile) > max_tokens:
            history.pop(0)
        self.record.updated_at = utcnow()
        return frozen


class SessionManager:
    """Registry of live sessions, by id and by (user, character)."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._by_key: dict[tuple[str, str], str] = {}

    def add(self, session: Session) -> Session:
        self._sessions[session.id] = session
        self._by_key[session.key] = session.id
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_or_404(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def find(self, user_id: str, character_id: str) -> Session | None:
        session_id = self._by_key.get((user_id, character_id))
        return self._sessions.get(session_id) if session_id else None

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None and self._by_key.get(session.key) == session_id:
            del self._by_key[session.key]

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self):
        return iter(list(self._sessions.values()))
