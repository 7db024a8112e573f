"""
Worker loop that drains queued SyncJob ids.

Run under systemd/supervisor with ``python -m gestao.worker``.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from gestao.db import EntityStore
from gestao.dependencies import get_queue_client, get_store, uses_shared_queue
from gestao.queue import JobQueue
from gestao.sync_jobs import executar_sync_worker
from gestao.types import SYNC_COMISSOES, Entity, SyncJobStatus

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

HANDLERS: dict[str, Callable[[EntityStore, str], dict]] = {
    SYNC_COMISSOES: executar_sync_worker,
}


def process_next(
    *,
    store: Optional[EntityStore] = None,
    queue: Optional[JobQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and run one job from the queue. Returns True if a job was processed.
    """
    store = store or get_store()
    queue = queue or get_queue_client()

    queued = queue.dequeue(tuple(HANDLERS), block=block, timeout=timeout)
    if not queued:
        return False
    job_id = queued.job_id

    job = store.get(Entity.SYNC_JOB, job_id)
    if not job:
        logger.warning("Received job_id %s from queue but no record found", job_id)
        return False
    if job.get("status") != SyncJobStatus.PENDENTE.value:
        logger.info("[%s] Skipping job in status %s", job_id, job.get("status"))
        return False
    if job.get("tipo") != queued.tipo:
        logger.warning("[%s] Queued as %s but record is %s", job_id, queued.tipo, job.get("tipo"))
        return False

    try:
        HANDLERS[queued.tipo](store, job_id)
    except Exception:
        # The job is already marked as failed; keep the loop alive.
        logger.error("[%s] Job failed", job_id)
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple polling loop that blocks on the queue.
    """
    store = get_store()
    queue = get_queue_client()
    logger.info("Worker started (%s)", queue.__class__.__name__)
    if not uses_shared_queue():
        logger.warning("No Redis queue configured; only jobs queued by this process will run")
    while True:
        processed = process_next(store=store, queue=queue, block=True, timeout=5)
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    run_loop()
