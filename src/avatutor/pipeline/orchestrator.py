# src/avatutor/pipeline/orchestrator.py
from __future__ import annotations
import asyncio
import random
import time
from typing import Any
from avatutor.adapters.base import LLMAdapter, TTSAdapter
from avatutor.control.animation import AnimationStateMachine
from avatutor.control.characters import get_character, has_character
from avatutor.control.emotion import classify
from avatutor.control.prompt import PromptBuilder
from avatutor.core.config import (
    AnimationConfig,
    GenerationConfig,
    OrchestratorConfig,
    PromptBudget,
    VoiceConfig,
    settings,
)
from avatutor.core.errors import InvalidMessage, SessionBusy
from avatutor.core.logging import bind_trace, clear_trace, get_logger
from avatutor.core.types import (
    AnimationState,
    CharacterResponseEvent,
    CharacterStreamEvent,
    CharacterSwitchedEvent,
    CharacterThinkingEvent,
    ConnectionStatusEvent,
    ConversationClearedEvent,
    ConversationHistoryEvent,
    EmotionLabel,
    EmotionState,
    ErrorEvent,
    FinalizedTurn,
    LanguageFeedbackEvent,
    OutboundEvent,
    PerformanceMetricsEvent,
    SessionState,
    StreamWarningEvent,
    Turn,
    TurnStatus,
    VrmAnimationEvent,
    utcnow,
)
from avatutor.language.analyzer import LanguageMixAnalyzer, needs_feedback
from avatutor.pipeline.channel import Channel
from avatutor.pipeline.generation import GenerationStreamManager
from avatutor.pipeline.idle import IdleAnimator
from avatutor.pipeline.monitor import LatencyMonitor
from avatutor.pipeline.session import Session, SessionManager
from avatutor.pipeline.voice import VoiceCoordinator
from avatutor.store.session_store import InMemorySessionStore, SessionStore

log = get_logger(__name__)

_LEARNING_WORDS_LIMIT = 50
_LEARNING_GRAMMAR_LIMIT = 10


class Orchestrator:
    """
    Turns learner messages into ordered outbound events, one session at a time.

    Per turn:  thinking → stream chunks → stream complete → response →
               animation (+ voice, gated on the response) → feedback → metrics
    """

    def __init__(
        self,
        llm: LLMAdapter,
        tts: TTSAdapter,
        store: SessionStore | None = None,
        secondary_llm: LLMAdapter | None = None,
        *,
        config: OrchestratorConfig | None = None,
        generation: GenerationConfig | None = None,
        animation: AnimationConfig | None = None,
        prompt: PromptBudget | None = None,
        voice: VoiceConfig | None = None,
        characters: dict[str, dict[str, Any]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.llm = llm
        self.secondary_llm = secondary_llm
        self.tts = tts
        self.store = store or InMemorySessionStore()
        self.config = config or settings.orchestrator
        self.prompt_budget = prompt or settings.prompt
        self.voice_config = voice or settings.voice
        self.characters = settings.characters if characters is None else characters
        self.sessions = SessionManager()
        self.prompts = PromptBuilder(self.prompt_budget)
        self.generator = GenerationStreamManager(llm, secondary_llm, generation)
        self.machine = AnimationStateMachine(animation, rng)
        self.idle = IdleAnimator(self.machine, animation)
        self.analyzer = LanguageMixAnalyzer()

    # ── Session lifecycle ─────────────────────────────────────────────────────

    async def open_session(
        self,
        user_id: str,
        character_id: str | None = None,
        channel: Channel | None = None,
        language: str | None = None,
    ) -> Session:
        character_id = character_id or self.config.default_character
        existing = self.sessions.find(user_id, character_id)
        if existing is not None:
            await self.close_session(existing.id)

        profile = get_character(character_id, self.characters)
        record = await self.store.get_or_create_session(user_id, character_id, profile.language)
        record.is_active = True
        record.state = SessionState.IDLE
        if language:
            record.language = language
        tip = profile.culture.tip
        if tip and tip not in record.learning_context.cultural_references:
            record.learning_context.cultural_references.append(tip)
        record = await self.store.upsert_session(record)

        emotion = await self.store.get_emotion(user_id, character_id) or EmotionState()
        animation = await self.store.get_animation(user_id, character_id) or AnimationState(
            gesture_frequency=profile.gesture_frequency
        )
        session = Session(
            record=record,
            profile=profile,
            channel=channel,
            emotion=emotion,
            animation=animation,
            voice=VoiceCoordinator(self.tts, self.voice_config),
            monitor=LatencyMonitor(slow_ms=self.config.slow_response_ms),
        )
        self.sessions.add(session)
        self.idle.start(session)
        log.info(
            "session opened",
            session_id=session.id,
            user_id=user_id,
            character=character_id,
            history=len(record.history),
        )
        return session

    async def close_session(self, session_id: str) -> None:
        session = self.sessions.get_or_404(session_id)
        await session.cancel_current_turn(force=True)
        await self.idle.stop(session)
        await session.voice.cancel_all()
        session.channel = None
        session.record.is_active = False
        session.transition(SessionState.IDLE)
        await self._persist(session)
        self.sessions.close(session_id)
        log.info("session closed", session_id=session_id)

    async def shutdown(self) -> None:
        for session in self.sessions:
            await self.close_session(session.id)

    # ── Turns ─────────────────────────────────────────────────────────────────

    async def handle_message(self, session_id: str, text: str) -> Turn:
        """
        Admit a new turn. Supersedes a generating turn when interruption is
        allowed, otherwise raises SessionBusy. Returns once `character_thinking`
        is queued; the rest of the turn runs in the session's turn task.
        """
        session = self.sessions.get_or_404(session_id)
        text = (text or "").strip()
        if not text:
            raise InvalidMessage("Message text is empty")

        async with session.admission:
            current = session.current_turn
            if current is not None and current.status is TurnStatus.GENERATING:
                if not self.config.allow_interrupt:
                    raise SessionBusy(session.id, current.turn_id)
                log.info("interrupting turn", session_id=session.id, turn_id=current.turn_id)
            await session.cancel_current_turn()

            turn = Turn(input_text=text, status=TurnStatus.GENERATING)
            session.current_turn = turn
            session.transition(SessionState.GENERATING)
            log.info("turn accepted", session_id=session.id, turn_id=turn.turn_id, chars=len(text))
            await self._emit(session, CharacterThinkingEvent(turn_id=turn.turn_id))
            session.current_turn_task = asyncio.create_task(self._run_turn(session, turn))
        return turn

    async def wait_for_turn(self, session_id: str) -> None:
        """Block until the session's current turn task (if any) is done."""
        session = self.sessions.get_or_404(session_id)
        task = session.current_turn_task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def _run_turn(self, session: Session, turn: Turn) -> None:
        bind_trace(session.id, turn.turn_id)
        loop = asyncio.get_running_loop()
        started = time.monotonic()
        gate: asyncio.Future[bool] = loop.create_future()
        watchdog = asyncio.create_task(self._watchdog(session, turn, started))
        profile = session.profile

        async def on_chunk(chunk: str) -> None:
            await self._emit(session, CharacterStreamEvent(text=chunk, turn_id=turn.turn_id))

        try:
            mood = classify(turn.input_text)
            log.debug("learner mood", emotion=mood[0].value, intensity=mood[1])
            prompt = self.prompts.build(session.record, profile, turn.input_text, mood)
            result = await self.generator.stream(
                prompt,
                on_chunk,
                is_cancelled=lambda: turn.is_cancelled,
                context={
                    "message": turn.input_text,
                    "character": profile.id,
                    "language": session.record.language,
                },
                fallback_text=profile.fallback_for(turn.input_text),
                error_text=profile.error_message("ai_failure"),
            )
            if result.cancelled or turn.is_cancelled:
                log.info("turn stopped after cancellation")
                return
            if result.truncated:
                session.monitor.record_error("stream_truncated")

            await self._emit(
                session, CharacterStreamEvent(text="", is_complete=True, turn_id=turn.turn_id)
            )
            label, intensity = classify(result.text)
            turn.output_text = result.text
            turn.fallback = result.fallback
            turn.is_error = result.is_error
            turn.provider = result.provider
            turn.emotion = label
            turn.intensity = intensity
            turn.completed_at = utcnow()
            turn.latency_ms = (time.monotonic() - started) * 1000
            # past this point a newer message waits for bookkeeping instead of cancelling
            turn.status = TurnStatus.FINALIZED

            if self.config.auto_voice and session.channel is not None:
                session.voice.start(
                    session.channel,
                    voice_id=profile.voice_id,
                    text=result.text,
                    emotion=label,
                    intensity=intensity,
                    turn_id=turn.turn_id,
                    gate=gate,
                )
            await self._emit(
                session,
                CharacterResponseEvent(
                    text=result.text,
                    emotion=label,
                    is_error=result.is_error,
                    fallback=result.fallback,
                    turn_id=turn.turn_id,
                ),
            )
            _release(gate, True)

            await self._animate(session, turn, label, intensity)
            if result.is_error:
                session.monitor.record_error("generation_failed")
                await self._emit(
                    session,
                    ErrorEvent(
                        message="The tutor could not produce a reply",
                        error_type="generation_failed",
                        turn_id=turn.turn_id,
                    ),
                )

            await self._language_feedback(session, turn)
            await self._complete(session, turn)
        except asyncio.CancelledError:
            if turn.status is not TurnStatus.FINALIZED:
                turn.status = TurnStatus.CANCELLED
            raise
        except Exception as exc:
            log.exception("turn failed", error=repr(exc))
            if not turn.is_cancelled:
                await self._fail_turn(session, turn, exc, started, responded=gate.done())
        finally:
            watchdog.cancel()
            _release(gate, False)
            session.transition(SessionState.IDLE)
            clear_trace()

    async def _animate(self, session: Session, turn: Turn, label: EmotionLabel, intensity: float) -> None:
        transition = self.machine.apply(
            session.emotion, session.animation, label, intensity, utcnow(), session.profile
        )
        session.emotion = transition.emotion
        session.animation = transition.animation
        cue = transition.cue
        await self._emit(
            session,
            VrmAnimationEvent(
                emotion=cue.emotion,
                animation=cue.animation,
                duration=cue.duration_ms,
                gesture=cue.gesture,
                intensity=cue.intensity,
                blendshapes=cue.blendshapes,
                turn_id=turn.turn_id,
            ),
        )

    async def _language_feedback(self, session: Session, turn: Turn) -> None:
        mix = self.analyzer.analyze(turn.input_text, session.record.language, turn.turn_id)
        turn.language_mix = mix
        learning = session.record.learning_context
        _remember(learning.grammar_points, mix.corrections, _LEARNING_GRAMMAR_LIMIT)
        if not needs_feedback(mix):
            return
        _remember(learning.new_words, mix.new_words, _LEARNING_WORDS_LIMIT)
        await self._emit(
            session,
            LanguageFeedbackEvent(
                pattern=mix.pattern,
                secondary_languages=list(mix.secondary_languages),
                corrections=list(mix.corrections),
                segments=list(mix.segments),
                turn_id=turn.turn_id,
            ),
        )

    async def _complete(self, session: Session, turn: Turn) -> None:
        session.append_history(
            turn, self.config.history_max_turns, self.prompt_budget.history_tokens
        )
        await self._persist(session)
        latency = turn.latency_ms or 0.0
        slow = session.monitor.record(latency)
        log.info(
            "turn finalized",
            latency_ms=round(latency, 1),
            provider=turn.provider,
            fallback=turn.fallback,
            is_error=turn.is_error,
        )
        await self._emit(
            session,
            PerformanceMetricsEvent(
                response_time=round(latency, 1), is_slow_response=slow, turn_id=turn.turn_id
            ),
        )

    async def _fail_turn(
        self, session: Session, turn: Turn, exc: Exception, started: float, responded: bool
    ) -> None:
        apology = session.profile.error_message("ai_failure")
        if not responded:
            turn.output_text = apology
            turn.is_error = True
            turn.emotion = EmotionLabel.SAD
            turn.completed_at = utcnow()
            turn.latency_ms = (time.monotonic() - started) * 1000
            turn.status = TurnStatus.FINALIZED
            await self._emit(
                session,
                CharacterResponseEvent(
                    text=apology, emotion=EmotionLabel.SAD, is_error=True, turn_id=turn.turn_id
                ),
            )
        session.monitor.record_error("turn_error")
        await self._emit(
            session,
            ErrorEvent(message=f"Turn failed: {exc}", error_type="turn_error", turn_id=turn.turn_id),
        )
        try:
            session.append_history(
                turn, self.config.history_max_turns, self.prompt_budget.history_tokens
            )
            await self._persist(session)
        except Exception:
            log.exception("could not record failed turn")

    async def _watchdog(self, session: Session, turn: Turn, started: float) -> None:
        await asyncio.sleep(self.config.stream_warning_ms / 1000)
        if turn.status is TurnStatus.GENERATING:
            elapsed = (time.monotonic() - started) * 1000
            log.warning("turn still generating", elapsed_ms=round(elapsed, 1))
            await self._emit(
                session,
                StreamWarningEvent(
                    message="Response is taking longer than expected",
                    duration=round(elapsed, 1),
                    turn_id=turn.turn_id,
                ),
            )

    # ── Client requests ───────────────────────────────────────────────────────

    async def switch_character(
        self, session_id: str, character_id: str, language: str | None = None
    ) -> Session:
        session = self.sessions.get_or_404(session_id)
        if not has_character(character_id):
            raise InvalidMessage(f"Unknown character '{character_id}'")
        channel = session.channel
        user_id = session.record.user_id
        await self.close_session(session_id)
        new_session = await self.open_session(user_id, character_id, channel, language)
        await self._emit(
            new_session,
            CharacterSwitchedEvent(
                character_id=character_id,
                name=new_session.profile.name,
                session_id=new_session.id,
            ),
        )
        return new_session

    def request_voice(
        self, session_id: str, text: str, emotion: EmotionLabel = EmotionLabel.NEUTRAL
    ) -> asyncio.Task[None] | None:
        session = self.sessions.get_or_404(session_id)
        text = (text or "").strip()
        if not text:
            raise InvalidMessage("Voice text is empty")
        if session.channel is None:
            return None
        return session.voice.start(
            session.channel,
            voice_id=session.profile.voice_id,
            text=text,
            emotion=emotion,
            intensity=session.emotion.intensity,
        )

    async def clear_conversation(self, session_id: str) -> None:
        session = self.sessions.get_or_404(session_id)
        session.record.history.clear()
        await self._persist(session)
        log.info("conversation cleared", session_id=session_id)
        await self._emit(session, ConversationClearedEvent(session_id=session_id))

    async def get_history(self, session_id: str) -> list[FinalizedTurn]:
        session = self.sessions.get_or_404(session_id)
        history = list(session.record.history)
        await self._emit(
            session, ConversationHistoryEvent(turns=[_history_entry(t) for t in history])
        )
        return history

    async def reconnect(self, session_id: str) -> None:
        session = self.sessions.get_or_404(session_id)
        await self._emit(session, ConnectionStatusEvent(connected=True))

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _emit(self, session: Session, event: OutboundEvent) -> None:
        if session.channel is not None:
            await session.channel.emit(event)

    async def _persist(self, session: Session) -> None:
        user_id, character_id = session.key
        session.record = await self.store.upsert_session(session.record)
        await self.store.upsert_emotion(user_id, character_id, session.emotion)
        await self.store.upsert_animation(user_id, character_id, session.animation)


def _release(gate: asyncio.Future[bool], value: bool) -> None:
    if not gate.done():
        gate.set_result(value)


def _remember(bucket: list[str], items: tuple[str, ...], limit: int) -> None:
    """Append unseen items, keeping only the newest `limit`."""
    for item in items:
        if item not in bucket:
            bucket.append(item)
    if len(bucket) > limit:
        del bucket[: len(bucket) - limit]


def _history_entry(turn: FinalizedTurn) -> dict[str, Any]:
    return {
        "turnId": turn.turn_id,
        "userMessage": turn.input_text,
        "characterResponse": turn.output_text,
        "emotion": turn.emotion.value,
        "isError": turn.is_error,
        "fallback": turn.fallback,
        "timestamp": (turn.completed_at or turn.started_at).isoformat(),
    }
