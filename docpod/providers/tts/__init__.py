"""Text-to-speech provider implementations."""

from docpod.providers.tts.openai_tts_provider import OpenAITTSProvider

__all__ = ["OpenAITTSProvider"]
