# src/avatutor/api/routes.py
from __future__ import annotations
import asyncio
import json
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from avatutor.api.schemas import (
    CharactersResponse,
    CharacterSummary,
    HealthResponse,
    ModelsResponse,
)
from avatutor.control.characters import get_character, list_characters
from avatutor.core.config import settings
from avatutor.core.errors import InvalidMessage, SessionBusy, SessionNotFound
from avatutor.core.logging import get_logger
from avatutor.core.types import (
    ClearConversationEvent,
    ConnectionStatusEvent,
    ErrorEvent,
    GetHistoryEvent,
    ReconnectEvent,
    RequestVoiceEvent,
    SendMessageEvent,
    SwitchCharacterEvent,
)
from avatutor.pipeline.channel import Channel

log = get_logger(__name__)

router = APIRouter()

# Set by main.py at startup
_orchestrator = None


def set_orchestrator(orch) -> None:
    global _orchestrator
    _orchestrator = orch


def get_orchestrator():
    return _orchestrator


_INBOUND = {
    "switch_character": SwitchCharacterEvent,
    "send_message": SendMessageEvent,
    "request_voice": RequestVoiceEvent,
    "clear_conversation": ClearConversationEvent,
    "get_history": GetHistoryEvent,
    "reconnect": ReconnectEvent,
}


# ── Real-time WebSocket ───────────────────────────────────────────────────────


@router.websocket("/v1/ws/{user_id}")
async def conversation_stream(
    ws: WebSocket,
    user_id: str,
    character: str | None = None,
    language: str | None = None,
):
    orch = get_orchestrator()
    await ws.accept()

    channel = Channel(maxsize=orch.config.outbound_queue_size)
    session = await orch.open_session(user_id, character, channel, language)
    session_id = session.id
    await channel.emit(ConnectionStatusEvent(connected=True))

    # ── Outbound: relay channel events to the client ──────────────────────────
    async def send_loop() -> None:
        async for event in channel.drain():
            try:
                await ws.send_text(event.to_wire())
            except (WebSocketDisconnect, RuntimeError):
                return

    async def reject(message: str, error_type: str) -> None:
        await channel.emit(ErrorEvent(message=message, error_type=error_type))

    # ── Inbound: dispatch client events to the orchestrator ───────────────────
    async def recv_loop() -> None:
        nonlocal session_id
        try:
            async for raw in ws.iter_text():
                try:
                    evt = _parse_inbound(raw)
                except ValueError as exc:
                    await reject(str(exc), "bad_request")
                    continue
                try:
                    if isinstance(evt, SendMessageEvent):
                        await orch.handle_message(session_id, evt.text)
                    elif isinstance(evt, SwitchCharacterEvent):
                        new_session = await orch.switch_character(
                            session_id, evt.character_id, evt.language
                        )
                        session_id = new_session.id
                    elif isinstance(evt, RequestVoiceEvent):
                        orch.request_voice(session_id, evt.text, evt.emotion)
                    elif isinstance(evt, ClearConversationEvent):
                        await orch.clear_conversation(session_id)
                    elif isinstance(evt, GetHistoryEvent):
                        await orch.get_history(session_id)
                    elif isinstance(evt, ReconnectEvent):
                        await orch.reconnect(session_id)
                except SessionBusy as exc:
                    await reject(str(exc), "session_busy")
                except SessionNotFound as exc:
                    await reject(str(exc), "session_not_found")
                except InvalidMessage as exc:
                    await reject(str(exc), "invalid_input")
        except WebSocketDisconnect:
            pass

    send_task = asyncio.create_task(send_loop())
    recv_task = asyncio.create_task(recv_loop())

    try:
        await recv_task  # exits on disconnect
    finally:
        try:
            await orch.close_session(session_id)
        except SessionNotFound:
            pass
        channel.close()
        send_task.cancel()
        log.info("connection closed", user_id=user_id)


# ── Utility endpoints ─────────────────────────────────────────────────────────


@router.get("/v1/health", response_model=HealthResponse)
async def health():
    orch = get_orchestrator()
    return HealthResponse(
        llm=await orch.llm.health(),
        secondary_llm=await orch.secondary_llm.health() if orch.secondary_llm else None,
        tts=await orch.tts.health(),
        sessions=len(orch.sessions),
    )


@router.get("/v1/models", response_model=ModelsResponse)
async def models():
    orch = get_orchestrator()
    return ModelsResponse(
        llm=orch.llm.capabilities(),
        secondary_llm=orch.secondary_llm.capabilities() if orch.secondary_llm else None,
        tts=orch.tts.capabilities(),
    )


@router.get("/v1/characters", response_model=CharactersResponse)
async def characters():
    profiles = [get_character(cid, settings.characters) for cid in list_characters()]
    return CharactersResponse(
        characters=[
            CharacterSummary(id=p.id, name=p.name, language=p.language, description=p.describe())
            for p in profiles
        ]
    )


# ── Helpers ───────────────────────────────────────────────────────────────────


def _parse_inbound(raw: str):
    """Typed inbound event, or ValueError describing what was wrong with it."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    event_type = data.get("type")
    model = _INBOUND.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        raise ValueError(f"Unknown event type: {event_type!r}")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid '{event_type}' payload: {exc.errors()[0]['msg']}") from exc
