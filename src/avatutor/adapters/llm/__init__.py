"""LLM adapter implementations."""

from avatutor.adapters.llm.openai_api import OpenAIChatAdapter
from avatutor.adapters.llm.gemini_api import GeminiAdapter
from avatutor.adapters.llm.mock_llm import MockLLMAdapter

__all__ = ["OpenAIChatAdapter", "GeminiAdapter", "MockLLMAdapter"]
