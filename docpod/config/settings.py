"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority
# order):
#
#   1. **Environment variables** - e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field name `openai_api_key` maps to env var `OPENAI_API_KEY`.
# Defaults below apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docpod application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Inference (OpenAI-compatible endpoint) ===
    # Empty key = "not configured" → main.py falls back to the offline
    # hashing embedder and refuses to build the LLM.
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_text_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    openai_embedding_dimension: int = 384
    openai_tts_model: str = "tts-1"
    llm_timeout_seconds: float = 60.0

    # === Embedding batching / retry ===
    embedding_batch_size: int = 20
    embedding_max_retries: int = 3
    embedding_retry_delay: float = 5.0
    embedding_timeout_seconds: float = 30.0

    # === Ingestion / retrieval ===
    chunk_max_size: int = 1000
    retriever_top_k: int = 3
    storage_concurrency: int = 8

    # === Podcast workflow ===
    podcast_enabled_audio: bool = False
    podcast_voice: str = "alloy"
    podcast_question_count: int = 5
    podcast_custom_question_count: int = 3
    podcast_timeout_seconds: float = 300.0
    podcast_question_concurrency: int = 3
    tts_timeout_seconds: float = 120.0

    # === Persistence ===
    # "filesystem" (default), "memory" (ephemeral) or "http" (remote gateway).
    storage_backend: str = "filesystem"
    storage_dir: str = "data/objects"
    storage_gateway_url: str = ""
    storage_gateway_token: str = ""
    storage_timeout_seconds: float = 30.0
    registry_db_path: str = "data/registry.db"
    artifact_db_path: str = "data/artifacts.db"

    # === Q&A cache ===
    qa_cache_ttl_seconds: int = 3600

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def has_inference_api(self) -> bool:
        """Return ``True`` when an OpenAI-compatible API key is configured."""
        return bool(self.openai_api_key)
