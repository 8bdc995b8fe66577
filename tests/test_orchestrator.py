# tests/test_orchestrator.py
"""
End-to-end turn handling with mock providers: event order, failure paths,
interruption, and the client requests that operate on a live session.
"""

import asyncio

import pytest
from conftest import for_turn, make_orchestrator, types_of

from avatutor.core.errors import InvalidMessage, SessionBusy, SessionNotFound
from avatutor.core.types import EmotionLabel, SessionState, TurnStatus, utcnow
from avatutor.pipeline.channel import Channel


async def _finish(orch, session) -> list:
    """Wait for the turn and any voice work, then collect everything emitted."""
    await orch.wait_for_turn(session.id)
    await session.voice.join()
    return session.channel.drain_nowait()


# ── Happy path ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_hello_turn_event_order(channel):
    orch = make_orchestrator(llm={"response": "Hi there! ¡Qué bueno verte!"})
    session = await orch.open_session("u1", "maria", channel)

    turn = await orch.handle_message(session.id, "Hello")
    events = for_turn(await _finish(orch, session), turn.turn_id)
    types = types_of(events)

    assert types[0] == "character_thinking"
    # voice runs in the background, so it may land after the metrics
    assert [t for t in types if t != "voice_audio"][-1] == "performance_metrics"
    response_at = types.index("character_response")
    streams = [e for e in events if e.type == "character_stream"]
    # every chunk, then the completion marker, then the response
    assert types[1:response_at] == ["character_stream"] * len(streams)
    assert streams[-1].is_complete is True
    assert streams[-1].text == ""
    assert all(not s.is_complete for s in streams[:-1])
    # voice never precedes the response it speaks
    assert types.index("voice_audio") > response_at
    assert types.index("vrm_animation") > response_at

    response = events[response_at]
    assert response.text == "".join(s.text for s in streams)
    assert response.text == "Hi there! ¡Qué bueno verte!"
    assert response.emotion == EmotionLabel.HAPPY
    assert response.is_error is False
    assert response.fallback is False
    await orch.shutdown()


@pytest.mark.asyncio
async def test_turn_is_recorded_in_history_and_store(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    await _finish(orch, session)

    assert turn.status is TurnStatus.FINALIZED
    assert [t.turn_id for t in session.record.history] == [turn.turn_id]
    stored = await orch.store.get_session("u1", "maria")
    assert stored.history[0].input_text == "Hello"
    assert session.state is SessionState.IDLE
    await orch.shutdown()


@pytest.mark.asyncio
async def test_prompt_includes_previous_turn(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    await orch.handle_message(session.id, "Hello")
    await _finish(orch, session)
    await orch.handle_message(session.id, "Tell me more")
    await _finish(orch, session)

    last_prompt = orch.llm.prompts[-1]
    assert "Learner: Hello" in last_prompt
    assert last_prompt.endswith("Learner: Tell me more\nMaría:")
    await orch.shutdown()


# ── Failure paths ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_both_providers_fail_streams_fallback(channel):
    orch = make_orchestrator(llm={"always_fail": True}, secondary={"always_fail": True})
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    events = for_turn(await _finish(orch, session), turn.turn_id)

    response = next(e for e in events if e.type == "character_response")
    assert response.fallback is True
    assert response.is_error is False
    assert response.text == session.profile.fallback_statement
    streamed = "".join(e.text for e in events if e.type == "character_stream")
    assert streamed == response.text
    assert "error" not in types_of(events)
    assert session.record.history[-1].fallback is True
    await orch.shutdown()


@pytest.mark.asyncio
async def test_malformed_output_is_an_error_turn(channel):
    orch = make_orchestrator(llm={"malformed": True})
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    events = for_turn(await _finish(orch, session), turn.turn_id)

    response = next(e for e in events if e.type == "character_response")
    assert response.is_error is True
    assert response.text == session.profile.error_message("ai_failure")
    error = next(e for e in events if e.type == "error")
    assert error.error_type == "generation_failed"
    assert types_of(events).index("error") > types_of(events).index("character_response")
    await orch.shutdown()


@pytest.mark.asyncio
async def test_tts_failure_does_not_break_turn(channel):
    orch = make_orchestrator(tts={"fail": True})
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    types = types_of(for_turn(await _finish(orch, session), turn.turn_id))

    assert "character_response" in types
    assert "voice_audio" not in types
    assert "error" not in types
    await orch.shutdown()


@pytest.mark.asyncio
async def test_slow_turn_is_flagged(channel):
    orch = make_orchestrator(llm={"first_delay_s": 0.02}, slow_response_ms=1)
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    events = for_turn(await _finish(orch, session), turn.turn_id)

    metrics = next(e for e in events if e.type == "performance_metrics")
    assert metrics.is_slow_response is True
    assert metrics.response_time >= 20
    await orch.shutdown()


@pytest.mark.asyncio
async def test_long_generation_emits_stream_warning(channel):
    orch = make_orchestrator(llm={"first_delay_s": 0.2}, stream_warning_ms=50)
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    types = types_of(for_turn(await _finish(orch, session), turn.turn_id))

    assert types.index("stream_warning") < types.index("character_response")
    await orch.shutdown()


# ── Interruption & admission ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_new_message_interrupts_generating_turn(channel):
    orch = make_orchestrator(llm={"first_delay_s": 0.3})
    session = await orch.open_session("u1", "maria", channel)

    first = await orch.handle_message(session.id, "first message")
    await asyncio.sleep(0.1)
    second = await orch.handle_message(session.id, "second message")
    events = await _finish(orch, session)

    assert first.status is TurnStatus.CANCELLED
    assert types_of(for_turn(events, first.turn_id)) == ["character_thinking"]
    assert "character_response" in types_of(for_turn(events, second.turn_id))
    # nothing from the superseded turn after the new one starts
    second_start = next(i for i, e in enumerate(events) if getattr(e, "turn_id", None) == second.turn_id)
    assert all(getattr(e, "turn_id", None) != first.turn_id for e in events[second_start:])
    assert [t.turn_id for t in session.record.history] == [second.turn_id]
    await orch.shutdown()


@pytest.mark.asyncio
async def test_concurrent_messages_yield_one_response(channel):
    orch = make_orchestrator(llm={"first_delay_s": 0.05})
    session = await orch.open_session("u1", "maria", channel)

    a, b = await asyncio.gather(
        orch.handle_message(session.id, "uno"),
        orch.handle_message(session.id, "dos"),
    )
    events = await _finish(orch, session)

    responses = [e for e in events if e.type == "character_response"]
    assert len(responses) == 1
    assert responses[0].turn_id == b.turn_id
    assert a.status is TurnStatus.CANCELLED
    assert len(session.record.history) == 1
    await orch.shutdown()


@pytest.mark.asyncio
async def test_busy_session_refuses_when_interrupt_disabled(channel):
    orch = make_orchestrator(llm={"first_delay_s": 0.2}, allow_interrupt=False)
    session = await orch.open_session("u1", "maria", channel)

    first = await orch.handle_message(session.id, "first")
    with pytest.raises(SessionBusy):
        await orch.handle_message(session.id, "second")
    await _finish(orch, session)

    assert first.status is TurnStatus.FINALIZED
    assert len(session.record.history) == 1
    await orch.shutdown()


@pytest.mark.asyncio
async def test_finished_turn_is_not_cancelled_by_next_message(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    first = await orch.handle_message(session.id, "first")
    await orch.wait_for_turn(session.id)
    await orch.handle_message(session.id, "second")
    await _finish(orch, session)

    assert first.status is TurnStatus.FINALIZED
    assert len(session.record.history) == 2
    await orch.shutdown()


@pytest.mark.asyncio
async def test_late_voice_keeps_its_turn_id(channel):
    orch = make_orchestrator(tts={"delay_s": 0.2})
    session = await orch.open_session("u1", "maria", channel)
    first = await orch.handle_message(session.id, "first")
    await orch.wait_for_turn(session.id)
    # first turn is done but its speech is still being synthesized
    second = await orch.handle_message(session.id, "second")
    events = await _finish(orch, session)

    second_thinking = next(
        i for i, e in enumerate(events)
        if e.type == "character_thinking" and e.turn_id == second.turn_id
    )
    first_voice = next(
        i for i, e in enumerate(events) if e.type == "voice_audio" and e.turn_id == first.turn_id
    )
    assert first_voice > second_thinking
    voices = [e.turn_id for e in events if e.type == "voice_audio"]
    assert sorted(voices) == sorted([first.turn_id, second.turn_id])
    await orch.shutdown()


@pytest.mark.asyncio
async def test_provider_drop_mid_reply_keeps_streamed_text(channel):
    orch = make_orchestrator(
        llm={"response": "Primera frase aquí. Segunda frase por aquí.", "fail_after_words": 4},
        secondary={"response": "Never spliced in."},
    )
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hola")
    events = for_turn(await _finish(orch, session), turn.turn_id)

    response = next(e for e in events if e.type == "character_response")
    streamed = "".join(e.text for e in events if e.type == "character_stream")
    assert response.text == streamed == "Primera frase aquí. Segunda"
    assert response.fallback is False
    assert "error" not in types_of(events)
    assert orch.secondary_llm.calls == 0
    await orch.shutdown()


@pytest.mark.asyncio
async def test_empty_message_rejected(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    with pytest.raises(InvalidMessage):
        await orch.handle_message(session.id, "   ")
    assert channel.drain_nowait() == []
    await orch.shutdown()


@pytest.mark.asyncio
async def test_unknown_session():
    orch = make_orchestrator()
    with pytest.raises(SessionNotFound):
        await orch.handle_message("missing", "Hola")


# ── Language feedback ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_mixed_message_feeds_learning_context(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Me gusta el book")
    events = for_turn(await _finish(orch, session), turn.turn_id)

    feedback = next(e for e in events if e.type == "language_feedback")
    assert feedback.pattern.value == "borrowing"
    assert feedback.secondary_languages == ["english"]
    assert "book" in session.record.learning_context.new_words

    await orch.handle_message(session.id, "Otra vez")
    await _finish(orch, session)
    assert "Vocabulary in play: book" in orch.llm.prompts[-1]
    await orch.shutdown()


@pytest.mark.asyncio
async def test_corrections_become_grammar_notes(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Como estas?")
    events = for_turn(await _finish(orch, session), turn.turn_id)

    # a lone punctuation slip is remembered but not reported
    assert "language_feedback" not in types_of(events)
    grammar = session.record.learning_context.grammar_points
    assert grammar == ["Spanish questions open with ¿: ¿Como estas?"]

    await orch.handle_message(session.id, "Otra vez")
    await _finish(orch, session)
    assert "- Grammar: Spanish questions open with ¿" in orch.llm.prompts[-1]
    await orch.shutdown()


@pytest.mark.asyncio
async def test_learner_mood_reaches_prompt(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    await orch.handle_message(session.id, "No entiendo nada")
    await _finish(orch, session)

    prompt = orch.llm.prompts[-1]
    assert "The learner seems confused" in prompt
    assert "Respond with warmth and enthusiasm." in prompt
    await orch.shutdown()


@pytest.mark.asyncio
async def test_cultural_tip_seeded_once_per_character(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    tip = session.profile.culture.tip
    assert session.record.learning_context.cultural_references == [tip]

    await orch.handle_message(session.id, "Hola")
    await _finish(orch, session)
    assert f"- Culture: {tip}" in orch.llm.prompts[-1]

    reopened = await orch.open_session("u1", "maria", Channel())
    assert reopened.record.learning_context.cultural_references == [tip]
    await orch.shutdown()


@pytest.mark.asyncio
async def test_plain_primary_message_has_no_feedback(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hola amigo")
    types = types_of(for_turn(await _finish(orch, session), turn.turn_id))
    assert "language_feedback" not in types
    await orch.shutdown()


# ── Client requests ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_history_and_clear(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    await orch.handle_message(session.id, "Hello")
    await _finish(orch, session)

    history = await orch.get_history(session.id)
    event = channel.drain_nowait()[-1]
    assert event.type == "conversation_history"
    assert len(history) == 1
    assert event.turns[0]["userMessage"] == "Hello"
    assert event.turns[0]["turnId"] == history[0].turn_id

    await orch.clear_conversation(session.id)
    assert channel.drain_nowait()[-1].type == "conversation_cleared"
    assert session.record.history == []
    stored = await orch.store.get_session("u1", "maria")
    assert stored.history == []
    await orch.shutdown()


@pytest.mark.asyncio
async def test_switch_character(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    new_session = await orch.switch_character(session.id, "akira")

    switched = channel.drain_nowait()[-1]
    assert switched.type == "character_switched"
    assert switched.name == "Akira"
    assert switched.session_id == new_session.id
    assert new_session.channel is channel
    assert new_session.record.language == "japanese"
    with pytest.raises(SessionNotFound):
        orch.sessions.get_or_404(session.id)
    await orch.shutdown()


@pytest.mark.asyncio
async def test_switch_to_unknown_character(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    with pytest.raises(InvalidMessage):
        await orch.switch_character(session.id, "nobody")
    assert orch.sessions.get(session.id) is session
    await orch.shutdown()


@pytest.mark.asyncio
async def test_request_voice(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    await orch.request_voice(session.id, "¡Hola!", EmotionLabel.HAPPY)
    event = channel.drain_nowait()[-1]
    assert event.type == "voice_audio"
    assert event.text == "¡Hola!"
    assert event.turn_id is None
    with pytest.raises(InvalidMessage):
        orch.request_voice(session.id, "")
    await orch.shutdown()


@pytest.mark.asyncio
async def test_reconnect_reports_status(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)
    await orch.reconnect(session.id)
    assert channel.drain_nowait()[-1].type == "connection_status"
    await orch.shutdown()


# ── Session lifecycle ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_close_deactivates_and_reopen_restores_history():
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", Channel(maxsize=512))
    await orch.handle_message(session.id, "Hello")
    await _finish(orch, session)
    await orch.close_session(session.id)

    stored = await orch.store.get_session("u1", "maria")
    assert stored.is_active is False
    assert len(orch.sessions) == 0

    reopened = await orch.open_session("u1", "maria", Channel(maxsize=512))
    assert reopened.record.is_active is True
    assert len(reopened.record.history) == 1
    await orch.shutdown()


@pytest.mark.asyncio
async def test_reopen_replaces_live_session():
    orch = make_orchestrator()
    old_channel, new_channel = Channel(), Channel()
    first = await orch.open_session("u1", "maria", old_channel)
    second = await orch.open_session("u1", "maria", new_channel)

    assert len(orch.sessions) == 1
    assert orch.sessions.find("u1", "maria") is second
    assert first.channel is None
    await orch.shutdown()


@pytest.mark.asyncio
async def test_close_mid_turn_emits_nothing_more(channel):
    orch = make_orchestrator(llm={"first_delay_s": 0.3})
    session = await orch.open_session("u1", "maria", channel)
    turn = await orch.handle_message(session.id, "Hello")
    await asyncio.sleep(0.05)
    await orch.close_session(session.id)

    assert turn.status is TurnStatus.CANCELLED
    assert types_of(channel.drain_nowait()) == ["character_thinking"]


# ── Idle animation ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_idle_tick_only_while_idle(channel):
    orch = make_orchestrator()
    session = await orch.open_session("u1", "maria", channel)

    event = orch.idle.tick(session, utcnow())
    assert event is not None
    assert event.blink is True
    assert channel.drain_nowait()[-1].type == "vrm_idle"

    session.transition(SessionState.GENERATING)
    assert orch.idle.tick(session, utcnow()) is None
    assert channel.drain_nowait() == []
    await orch.shutdown()
