"""Adapter implementations for LLM and TTS providers."""

from avatutor.adapters.base import AdapterBase, LLMAdapter, TTSAdapter

__all__ = ["AdapterBase", "LLMAdapter", "TTSAdapter"]
