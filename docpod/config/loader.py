"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the values
# pydantic-settings resolved from .env / the environment on top.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from docpod.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "embedding": {
            "model": settings.openai_embedding_model,
            "dimension": settings.openai_embedding_dimension,
            "batch_size": settings.embedding_batch_size,
            "max_retries": settings.embedding_max_retries,
            "retry_delay": settings.embedding_retry_delay,
        },
        "ingestion": {
            "chunk_max_size": settings.chunk_max_size,
        },
        "storage": {
            "backend": settings.storage_backend,
            "dir": settings.storage_dir,
        },
        "retrieval": {
            "top_k": settings.retriever_top_k,
        },
        "podcast": {
            "question_count": settings.podcast_question_count,
            "custom_question_count": settings.podcast_custom_question_count,
            "timeout_seconds": settings.podcast_timeout_seconds,
            "voice": settings.podcast_voice,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
