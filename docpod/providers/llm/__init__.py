"""LLM provider implementations (OpenAI-compatible chat completions)."""

from docpod.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
