"""docpod FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

Also exposes :func:`build_components` so the CLI can assemble the same
object graph without starting a web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from docpod import __version__
from docpod.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docpod.api.routes import router as api_router
from docpod.config.loader import load_config
from docpod.config.settings import Settings
from docpod.interfaces.embedding_provider import IEmbeddingProvider
from docpod.interfaces.object_store import IObjectStore
from docpod.pipeline.podcast_workflow import PodcastWorkflow
from docpod.pipeline.progress_tracker import ProgressTracker
from docpod.providers.artifact.sqlite_artifact_provider import SQLiteArtifactProvider
from docpod.providers.cache.memory_cache import MemoryCacheProvider
from docpod.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from docpod.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from docpod.providers.llm.openai_provider import OpenAILLMProvider
from docpod.providers.registry.sqlite_registry_provider import SQLiteRegistryProvider
from docpod.providers.storage.filesystem_object_store import FileSystemObjectStore
from docpod.providers.storage.http_object_store import HTTPObjectStore
from docpod.providers.storage.memory_object_store import MemoryObjectStore
from docpod.providers.tts.openai_tts_provider import OpenAITTSProvider
from docpod.services.ingestion.chunker import TextChunker
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.services.ingestion.ingestion_service import IngestionService
from docpod.services.ingestion.text_extractor import TextExtractor
from docpod.services.qa_service import QAService
from docpod.services.retriever import Retriever
from docpod.utils.errors import ConfigurationError
from docpod.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_object_store(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IObjectStore:
    """Select the object store named by ``storage_backend``."""
    backend = app_settings.storage_backend.lower()
    if backend == "memory":
        return MemoryObjectStore()
    if backend == "filesystem":
        return FileSystemObjectStore(root=Path(app_settings.storage_dir))
    if backend == "http":
        if not app_settings.storage_gateway_url:
            raise ConfigurationError(
                message="STORAGE_BACKEND=http requires STORAGE_GATEWAY_URL",
                provider_name="http_store",
            )
        return HTTPObjectStore(
            http_client=http_client,
            base_url=app_settings.storage_gateway_url,
            api_token=app_settings.storage_gateway_token,
        )
    raise ConfigurationError(message=f"Unknown storage backend: {app_settings.storage_backend}")


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Prefer the OpenAI-compatible endpoint; fall back to local hashed vectors.

    The fallback keeps ingestion and retrieval usable offline.  Its vectors
    have the same dimension as the configured model, but are not
    comparable with it, so documents should be reprocessed after switching.
    """
    if app_settings.openai_api_key:
        provider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider
    return HashingEmbeddingProvider(dimension=app_settings.openai_embedding_dimension)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings, app_config: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components to be stored on ``app.state``
    (or used directly by the CLI).  The LLM-backed services (Q&A and the
    podcast workflow) are ``None`` when no inference API key is configured.
    """
    app_config = app_config or {}

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.storage_timeout_seconds)

    # -- Storage --
    object_store = _build_object_store(app_settings, http_client)
    registry = DocumentRegistry(SQLiteRegistryProvider(db_path=app_settings.registry_db_path))
    artifact_store = SQLiteArtifactProvider(db_path=app_settings.artifact_db_path)

    # -- Embeddings / ingestion / retrieval --
    embedding_provider = _build_embedding_provider(app_settings)
    ingestion_service = IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(max_size=app_settings.chunk_max_size),
        embedding_provider=embedding_provider,
        object_store=object_store,
        registry=registry,
        storage_concurrency=app_settings.storage_concurrency,
    )
    retriever = Retriever(
        registry=registry,
        object_store=object_store,
        embedding_provider=embedding_provider,
        concurrency=app_settings.storage_concurrency,
    )

    # -- Cache / progress --
    cache = MemoryCacheProvider(ttl=app_settings.qa_cache_ttl_seconds)
    progress_tracker = ProgressTracker()

    # -- LLM-backed services --
    llm = None
    tts = None
    qa_service = None
    podcast_workflow = None
    if app_settings.has_inference_api():
        llm = OpenAILLMProvider(settings=app_settings)
        qa_service = QAService(llm=llm, retriever=retriever, cache=cache)
        if app_settings.podcast_enabled_audio:
            tts = OpenAITTSProvider(settings=app_settings)
        podcast_workflow = PodcastWorkflow(
            qa_service=qa_service,
            retriever=retriever,
            llm=llm,
            artifact_store=artifact_store,
            object_store=object_store,
            progress_tracker=progress_tracker,
            tts_provider=tts,
            question_count=app_settings.podcast_question_count,
            custom_question_count=app_settings.podcast_custom_question_count,
            question_concurrency=app_settings.podcast_question_concurrency,
            timeout_seconds=app_settings.podcast_timeout_seconds,
            voice=app_settings.podcast_voice,
        )

    provider_registry: dict[str, Any] = {
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "llm": llm is not None and llm.is_available(),
        "tts": tts is not None and tts.is_available(),
        "storage": object_store.get_provider_name(),
    }

    api_config = app_config.get("api", {}) or {}

    return {
        "http_client": http_client,
        "object_store": object_store,
        "registry": registry,
        "artifact_store": artifact_store,
        "embedding_provider": embedding_provider,
        "ingestion_service": ingestion_service,
        "retriever": retriever,
        "cache": cache,
        "progress_tracker": progress_tracker,
        "qa_service": qa_service,
        "podcast_workflow": podcast_workflow,
        "provider_registry": provider_registry,
        "max_upload_bytes": int(api_config.get("max_upload_bytes", 20 * 1024 * 1024)),
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create the SQLite tables the registry and artifact store need."""
    await components["registry"].initialize()
    await components["artifact_store"].initialize()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = build_components(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await initialize_components(components)

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        providers=components["provider_registry"],
    )

    yield

    # -- Shutdown: close shared httpx client --
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="docpod API",
        version=__version__,
        description=(
            "Upload a document, ask grounded questions about it, and turn it "
            "into a narrated podcast script."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=(config.get("api") or {}).get("cors_origins"))

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "docpod.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
