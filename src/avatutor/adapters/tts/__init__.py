"""TTS adapter implementations."""

from avatutor.adapters.tts.elevenlabs_tts import ElevenLabsTTSAdapter
from avatutor.adapters.tts.mock_tts import MockTTSAdapter

__all__ = ["ElevenLabsTTSAdapter", "MockTTSAdapter"]
