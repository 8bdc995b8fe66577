# src/avatutor/core/config.py
from __future__ import annotations
import os
from pathlib import Path
from typing import Any
import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base; override wins on conflicts."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class AppConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    audio_dir: str = "public/audio"
    audio_url_prefix: str = "/audio"


class ComponentConfig(BaseModel):
    primary: str = ""
    secondary: str = ""
    model_config = {"extra": "allow"}

    def options_for(self, name: str) -> dict[str, Any]:
        """Per-provider options live under a key named after the provider."""
        extra = self.model_extra or {}
        opts = extra.get(name, {})
        return dict(opts) if isinstance(opts, dict) else {}


class PromptBudget(BaseModel):
    total_tokens: int = Field(2048, gt=0)
    personality_tokens: int = Field(512, ge=0)
    history_tokens: int = Field(1024, ge=0)
    learning_tokens: int = Field(256, ge=0)


class GenerationConfig(BaseModel):
    max_retries: int = Field(2, ge=0)
    backoff_base_s: float = Field(0.5, ge=0.0)
    backoff_max_s: float = Field(4.0, ge=0.0)
    pacing_ms: float = Field(120.0, ge=0.0)
    min_chunk_chars: int = Field(10, ge=1)


class OrchestratorConfig(BaseModel):
    allow_interrupt: bool = True
    slow_response_ms: float = 5000.0
    stream_warning_ms: float = 30000.0
    history_max_turns: int = Field(20, ge=1)
    outbound_queue_size: int = Field(64, ge=1)
    auto_voice: bool = True
    default_character: str = "maria"


class AnimationConfig(BaseModel):
    snap_threshold: float = Field(0.5, ge=0.0, le=1.0)
    blend_rate: float = Field(0.5, gt=0.0, le=1.0)
    idle_window_s: float = 5.0
    idle_tick_s: float = 0.5
    idle_blend: float = Field(0.2, gt=0.0, le=1.0)
    blink_interval_s: float = 2.5
    gesture_duration_ms: int = 1500
    emotion_history_limit: int = Field(20, ge=1)


class VoiceConfig(BaseModel):
    bitrate_kbps: int = Field(128, gt=0)
    viseme_window_ms: int = Field(200, gt=0)
    visemes: list[str] = Field(default_factory=lambda: ["A", "E", "I", "O", "U"])


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AVATUTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Loaded from YAML
    app: AppConfig = Field(default_factory=AppConfig)
    components: dict[str, ComponentConfig] = Field(default_factory=dict)
    prompt: PromptBudget = Field(default_factory=PromptBudget)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    animation: AnimationConfig = Field(default_factory=AnimationConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    characters: dict[str, dict[str, Any]] = Field(default_factory=dict)

    # API keys: accept both bare name (OPENAI_API_KEY) and prefixed (AVATUTOR_OPENAI_API_KEY)
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AVATUTOR_OPENAI_API_KEY", "OPENAI_API_KEY", "openai_api_key"
        ),
    )
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AVATUTOR_GEMINI_API_KEY", "GEMINI_API_KEY", "gemini_api_key"
        ),
    )
    elevenlabs_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AVATUTOR_ELEVENLABS_API_KEY", "ELEVENLABS_API_KEY", "elevenlabs_api_key"
        ),
    )

    profile: str = "offline"

    def component(self, name: str) -> ComponentConfig:
        return self.components.get(name) or ComponentConfig()

    @model_validator(mode="before")
    @classmethod
    def load_yaml(cls, values: dict) -> dict:
        profile = os.getenv("AVATUTOR_PROFILE", values.get("profile", "offline"))
        # Look for config relative to cwd or project root
        for search_root in [Path.cwd(), Path(__file__).resolve().parents[3]]:
            base_path = search_root / "config" / "base.yaml"
            if base_path.exists():
                cfg: dict = yaml.safe_load(base_path.read_text()) or {}
                profile_path = search_root / "config" / "profiles" / f"{profile}.yaml"
                if profile_path.exists():
                    profile_data = yaml.safe_load(profile_path.read_text()) or {}
                    if profile_data:
                        cfg = deep_merge(cfg, profile_data)
                # YAML values have lowest priority, env vars override them
                return {**cfg, **values}
        # No config found, use defaults
        return values


# Module-level singleton; imported everywhere
settings = Settings()
