"""Abstract interfaces (ports) for every external collaborator docpod uses."""

from docpod.interfaces.artifact_store import IArtifactStore
from docpod.interfaces.cache_provider import ICacheProvider
from docpod.interfaces.embedding_provider import IEmbeddingProvider
from docpod.interfaces.llm_provider import ILLMProvider
from docpod.interfaces.object_store import IObjectStore, content_ref
from docpod.interfaces.registry_provider import IRegistryProvider
from docpod.interfaces.tts_provider import AudioClip, ITTSProvider

__all__ = [
    "AudioClip",
    "IArtifactStore",
    "ICacheProvider",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IObjectStore",
    "IRegistryProvider",
    "ITTSProvider",
    "content_ref",
]
