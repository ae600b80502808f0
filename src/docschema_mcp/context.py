"""Application context management for docschema-mcp."""

from functools import lru_cache

from docschema_mcp.normalization import NormalizationAnalyzer, NormalizationEngine
from docschema_mcp.registry import SchemaRegistry
from docschema_mcp.sampling import DocumentSampler
from docschema_mcp.schema_store import SchemaStore
from docschema_mcp.settings import get_settings
from docschema_mcp.store import DocumentStore, MemoryDocumentStore


@lru_cache
def get_store() -> DocumentStore:
    """Get the cached document store for the configured backend."""
    settings = get_settings()
    if settings.backend == "memory":
        return MemoryDocumentStore()

    from docschema_mcp.firestore_store import FirestoreDocumentStore

    return FirestoreDocumentStore.from_project(settings.project_id, settings.database)


@lru_cache
def get_sampler() -> DocumentSampler:
    """Get the cached document sampler."""
    settings = get_settings()
    return DocumentSampler(
        get_store(),
        recent_field=settings.recent_field,
        updated_field=settings.updated_field,
    )


@lru_cache
def get_registry() -> SchemaRegistry:
    """Get the cached schema registry."""
    settings = get_settings()
    store = get_store()
    return SchemaRegistry(
        store,
        SchemaStore(store, settings.schemas_collection),
        get_sampler(),
        sample_size=settings.sample_size,
    )


@lru_cache
def get_analyzer() -> NormalizationAnalyzer:
    """Get the cached normalization analyzer."""
    return NormalizationAnalyzer(get_store(), get_registry(), get_sampler())


@lru_cache
def get_engine() -> NormalizationEngine:
    """Get the cached normalization engine."""
    settings = get_settings()
    return NormalizationEngine(
        get_store(),
        get_registry(),
        fetch_limit=settings.normalize_fetch_limit,
        pause_seconds=settings.batch_pause,
        backups_collection=settings.backups_collection,
    )


def reset_context() -> None:
    """Clear every cached component, including settings."""
    for getter in (get_engine, get_analyzer, get_registry, get_sampler, get_store):
        getter.cache_clear()
    get_settings.cache_clear()
