"""Abstract base class for text-to-speech providers.

The podcast workflow hands a finished script to this contract and stores
whatever audio comes back.  Encoding and voice catalogues are the
provider's concern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class AudioClip:
    """Synthesized audio returned by a TTS provider."""

    data: bytes
    content_type: str = "audio/mpeg"
    # Providers that know the exact length report it; otherwise the
    # workflow estimates from the byte count.
    duration_seconds: float | None = None


# Concrete implementation: OpenAITTSProvider
# Located in: docpod/providers/tts/
class ITTSProvider(ABC):
    """Contract for speech synthesis used by the podcast workflow."""

    @abstractmethod
    async def synthesize(self, text: str, voice: str | None = None) -> AudioClip:
        """Render *text* as speech.

        Raises
        ------
        docpod.utils.errors.TTSError
            If synthesis fails or times out.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has the credentials it needs."""
