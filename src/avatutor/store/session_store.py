# src/avatutor/store/session_store.py
from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from avatutor.core.types import AnimationState, EmotionState, SessionRecord, utcnow

Key = tuple[str, str]  # (user_id, character_id)


class SessionStore(ABC):
    """
    Persistence for per-(user, character) records. Implementations must hand
    back copies: callers mutate what they get and upsert it explicitly.
    """

    @abstractmethod
    async def get_session(self, user_id: str, character_id: str) -> SessionRecord | None: ...

    @abstractmethod
    async def upsert_session(self, record: SessionRecord) -> SessionRecord: ...

    @abstractmethod
    async def get_emotion(self, user_id: str, character_id: str) -> EmotionState | None: ...

    @abstractmethod
    async def upsert_emotion(
        self, user_id: str, character_id: str, state: EmotionState
    ) -> EmotionState: ...

    @abstractmethod
    async def get_animation(self, user_id: str, character_id: str) -> AnimationState | None: ...

    @abstractmethod
    async def upsert_animation(
        self, user_id: str, character_id: str, state: AnimationState
    ) -> AnimationState: ...

    async def get_or_create_session(
        self, user_id: str, character_id: str, language: str
    ) -> SessionRecord:
        record = await self.get_session(user_id, character_id)
        if record is None:
            record = SessionRecord(user_id=user_id, character_id=character_id, language=language)
            record = await self.upsert_session(record)
        return record


class InMemorySessionStore(SessionStore):
    """Process-local store. Records are validated and deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._sessions: dict[Key, SessionRecord] = {}
        self._emotions: dict[Key, EmotionState] = {}
        self._animations: dict[Key, AnimationState] = {}
        self._lock = asyncio.Lock()

    async def get_session(self, user_id: str, character_id: str) -> SessionRecord | None:
        record = self._sessions.get((user_id, character_id))
        return record.model_copy(deep=True) if record else None

    async def upsert_session(self, record: SessionRecord) -> SessionRecord:
        stored = SessionRecord.model_validate(record.model_dump())
        stored.updated_at = utcnow()
        async with self._lock:
            self._sessions[stored.key] = stored
        return stored.model_copy(deep=True)

    async def get_emotion(self, user_id: str, character_id: str) -> EmotionState | None:
        state = self._emotions.get((user_id, character_id))
        return state.model_copy(deep=True) if state else None

    async def upsert_emotion(
        self, user_id: str, character_id: str, state: EmotionState
    ) -> EmotionState:
        stored = EmotionState.model_validate(state.model_dump())
        async with self._lock:
            self._emotions[(user_id, character_id)] = stored
        return stored.model_copy(deep=True)

    async def get_animation(self, user_id: str, character_id: str) -> AnimationState | None:
        state = self._animations.get((user_id, character_id))
        return state.model_copy(deep=True) if state else None

    async def upsert_animation(
        self, user_id: str, character_id: str, state: AnimationState
    ) -> AnimationState:
        stored = AnimationState.model_validate(state.model_dump())
        async with self._lock:
            self._animations[(user_id, character_id)] = stored
        return stored.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._sessions)
