"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from gestao.config import Settings, get_settings
from gestao.db import EntityStore, InMemoryEntityStore, SqlEntityStore
from gestao.queue import InMemoryJobQueue, JobQueue, RedisJobQueue

_store: EntityStore | None = None
_queue_client: JobQueue | None = None


def get_store() -> EntityStore:
    """
    Return a singleton store so records persist across requests.
    """
    global _store
    if _store:
        return _store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _store = InMemoryEntityStore()
    else:
        _store = SqlEntityStore(settings.database_url)
    return _store


def get_queue_client() -> JobQueue:
    """
    Return a singleton queue client for dispatching sync jobs to workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if uses_shared_queue(settings):
        _queue_client = RedisJobQueue(
            url=settings.redis_url,
            prefix=settings.redis_queue_prefix,
        )
    else:
        _queue_client = InMemoryJobQueue()
    return _queue_client


def uses_shared_queue(settings: Optional[Settings] = None) -> bool:
    """True when queued jobs reach a worker running in another process."""
    settings = settings or get_settings()
    return bool(settings.redis_url) and not settings.use_in_memory_backends
