"""
Job queue between the API and the background worker.

Every queued message carries the SyncJob ``tipo`` next to its id so the worker
can route it. Redis keeps one list per tipo under a common prefix
(``gestao:jobs:sincronizar_comissoes``); the in-memory queue only works when
producer and consumer share the process.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Protocol, Sequence

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class QueuedJob(NamedTuple):
    tipo: str
    job_id: str


class JobQueue(Protocol):
    def enqueue(self, tipo: str, job_id: str) -> None:
        ...

    def dequeue(
        self, tipos: Sequence[str], *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueuedJob]:
        ...


@dataclass
class InMemoryJobQueue:
    """FIFO across tipos, for tests and single-process runs."""

    items: list[QueuedJob] = field(default_factory=list)

    def enqueue(self, tipo: str, job_id: str) -> None:
        self.items.append(QueuedJob(tipo, job_id))

    def dequeue(
        self, tipos: Sequence[str], *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueuedJob]:
        for index, item in enumerate(self.items):
            if item.tipo in tipos:
                return self.items.pop(index)
        return None


@dataclass
class RedisJobQueue:
    url: str
    prefix: str = "gestao:jobs"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def key(self, tipo: str) -> str:
        return f"{self.prefix}:{tipo}"

    def enqueue(self, tipo: str, job_id: str) -> None:
        self.client.rpush(self.key(tipo), job_id)

    def dequeue(
        self, tipos: Sequence[str], *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueuedJob]:
        keys = {self.key(tipo): tipo for tipo in tipos}
        try:
            if block:
                result = self.client.blpop(list(keys), timeout=timeout or 0)
                if result is None:
                    return None
                key, job_id = result
                return QueuedJob(keys[_texto(key)], _texto(job_id))
            for key, tipo in keys.items():
                job_id = self.client.lpop(key)
                if job_id is not None:
                    return QueuedJob(tipo, _texto(job_id))
            return None
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; the worker polls again.
            logger.warning("Redis connection lost, reconnecting")
            self.client = redis.Redis.from_url(self.url)
            return None


def _texto(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value
