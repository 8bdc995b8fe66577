# src/avatutor/api/main.py
from __future__ import annotations
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from avatutor.core.config import settings
from avatutor.core.logging import configure_logging, get_logger
import avatutor.core.registry as registry

# Import adapters to trigger @register decorators
import avatutor.adapters.llm  # noqa: F401
import avatutor.adapters.tts  # noqa: F401

from avatutor.pipeline.orchestrator import Orchestrator
from avatutor.store.session_store import InMemorySessionStore
from avatutor.api.routes import router, set_orchestrator

log = get_logger(__name__)


def build_orchestrator() -> Orchestrator:
    """Instantiate the configured providers and wire them into an orchestrator."""
    llm_cfg = settings.component("llm")
    tts_cfg = settings.component("tts")

    llm_name = llm_cfg.primary or "mock_llm"
    tts_name = tts_cfg.primary or "mock_tts"
    llm = registry.create(llm_name, llm_cfg.options_for(llm_name))
    secondary = (
        registry.create(llm_cfg.secondary, llm_cfg.options_for(llm_cfg.secondary))
        if llm_cfg.secondary
        else None
    )
    tts = registry.create(tts_name, tts_cfg.options_for(tts_name))
    return Orchestrator(llm=llm, tts=tts, store=InMemorySessionStore(), secondary_llm=secondary)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.app.log_level)
    log.info("avatutor starting", profile=settings.profile)

    orch = build_orchestrator()
    adapters = [a for a in (orch.llm, orch.secondary_llm, orch.tts) if a is not None]
    for adapter in adapters:
        await adapter.load()
    log.info(
        "adapters loaded",
        llm=orch.llm.name,
        secondary_llm=orch.secondary_llm.name if orch.secondary_llm else None,
        tts=orch.tts.name,
    )

    Path(settings.app.audio_dir).mkdir(parents=True, exist_ok=True)
    set_orchestrator(orch)

    log.info("avatutor ready", host=settings.app.host, port=settings.app.port)
    yield

    # Cleanup
    log.info("avatutor shutting down")
    await orch.shutdown()
    for adapter in adapters:
        await adapter.close()


app = FastAPI(
    title="Avatutor",
    version="0.1.0",
    description="Character conversation orchestrator for an animated language tutor",
    lifespan=lifespan,
)

app.include_router(router)

# Synthesized speech, served where TTS adapters say it lives
app.mount(
    settings.app.audio_url_prefix,
    StaticFiles(directory=settings.app.audio_dir, check_dir=False),
    name="audio",
)
