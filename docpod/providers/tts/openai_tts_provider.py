"""OpenAI-compatible text-to-speech provider adapter.

Wraps ``client.audio.speech.create`` to implement :class:`ITTSProvider`.
Scripts longer than the endpoint's input limit are split on sentence
boundaries and the MP3 segments concatenated (MP3 frames are
self-delimiting, so byte concatenation plays back as one stream).
"""

from __future__ import annotations

import re

import openai
import structlog

from docpod.config.settings import Settings
from docpod.interfaces.tts_provider import AudioClip, ITTSProvider
from docpod.utils.errors import TTSError

logger = structlog.get_logger(logger_name=__name__)

# Hard input limit of the speech endpoint, in characters.
_MAX_INPUT_CHARS = 4096

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _split_for_tts(text: str, limit: int = _MAX_INPUT_CHARS) -> list[str]:
    """Split *text* into pieces no longer than *limit*, preferring sentence ends."""
    if len(text) <= limit:
        return [text]
    pieces: list[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(text):
        while len(sentence) > limit:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(sentence[:limit])
            sentence = sentence[limit:]
        candidate = f"{current} {sentence}".strip() if current else sentence
        if len(candidate) > limit:
            pieces.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


class OpenAITTSProvider(ITTSProvider):
    """Speech synthesis via an OpenAI-compatible ``/audio/speech`` endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.tts_timeout_seconds, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_tts_model
        self._default_voice = settings.podcast_voice

    async def synthesize(self, text: str, voice: str | None = None) -> AudioClip:
        if not text.strip():
            raise TTSError(message="Nothing to synthesize", provider_name=self.get_provider_name())

        voice = voice or self._default_voice
        segments: list[bytes] = []
        for piece in _split_for_tts(text):
            try:
                response = await self._client.audio.speech.create(
                    model=self._model,
                    voice=voice,
                    input=piece,
                    response_format="mp3",
                )
            except openai.APIError as exc:
                raise TTSError(
                    message=f"Speech API error: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            segments.append(response.content)

        audio = b"".join(segments)
        logger.info(
            "tts_synthesized",
            model=self._model,
            voice=voice,
            segments=len(segments),
            bytes=len(audio),
        )
        return AudioClip(data=audio, content_type="audio/mpeg")

    def get_provider_name(self) -> str:
        return "openai_tts"

    def is_available(self) -> bool:
        return bool(self._api_key)
