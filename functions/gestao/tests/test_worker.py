import unittest
from datetime import date
from unittest.mock import patch

from redis import exceptions as redis_exceptions

from gestao.db import InMemoryEntityStore, RecordNotFound
from gestao.errors import RegraNegocioError
from gestao.queue import InMemoryJobQueue, QueuedJob, RedisJobQueue
from gestao.sync_jobs import (
    SyncEmAndamento,
    despachar_sincronizacao,
    executar_sync_worker,
    precisa_sync,
)
from gestao.types import Entity
from gestao.worker import process_next

ADMIN = {"email": "admin@jc.com", "role": "admin"}


def no_sleep(_seconds):
    return None


class SyncJobTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryEntityStore()
        self.store.create(Entity.USER, dict(ADMIN))
        self.queue = InMemoryJobQueue()

    def _pago(self, **overrides):
        data = {
            "numero_pedido": 1,
            "status": "pago",
            "total_pago": 1000,
            "saldo_restante": 0,
            "data_pagamento": "2026-02-10",
        }
        data.update(overrides)
        return self.store.create(Entity.PEDIDO, data)

    def test_dispatch_enqueues_pending_job(self):
        job = despachar_sincronizacao(self.store, ADMIN, queue=self.queue)
        self.assertEqual(job["status"], "pendente")
        self.assertEqual(job["tipo"], "sincronizar_comissoes")
        self.assertEqual(job["solicitado_por"], "admin@jc.com")
        self.assertEqual(self.queue.items, [QueuedJob("sincronizar_comissoes", job["id"])])

    def test_dispatch_refuses_while_running(self):
        running = self.store.create(
            Entity.SYNC_JOB, {"tipo": "sincronizar_comissoes", "status": "processando"}
        )
        with self.assertRaises(SyncEmAndamento) as ctx:
            despachar_sincronizacao(self.store, ADMIN, queue=self.queue)
        self.assertEqual(ctx.exception.job_id, running["id"])
        self.assertEqual(self.queue.items, [])

    def test_precisa_sync(self):
        self.assertTrue(precisa_sync({"updated_date": "2026-02-01T00:00:00+00:00"}))
        self.assertFalse(
            precisa_sync(
                {
                    "comissao_last_sync": "2026-02-01T00:00:00+00:00",
                    "updated_date": "2026-02-01T00:00:00+00:00",
                }
            )
        )
        self.assertTrue(
            precisa_sync(
                {
                    "comissao_last_sync": "2026-02-01T00:00:00+00:00",
                    "updated_date": "2026-02-02T00:00:00Z",
                }
            )
        )

    def test_worker_processes_only_changed_orders(self):
        novo = self._pago()
        self._pago(
            numero_pedido=2,
            comissao_last_sync="2026-01-01T00:00:00+00:00",
            updated_date="2026-01-01T00:00:00+00:00",
        )
        job = despachar_sincronizacao(self.store, ADMIN)

        result = executar_sync_worker(self.store, job["id"], hoje=date(2026, 3, 1), sleep=no_sleep)
        self.assertEqual(
            result["resultado"],
            {"criados": 1, "atualizados": 0, "ignorados": 0, "erros": 0, "total": 1},
        )

        finished = self.store.get(Entity.SYNC_JOB, job["id"])
        self.assertEqual(finished["status"], "concluido")
        self.assertIsNotNone(finished["iniciado_em"])
        self.assertIsNotNone(finished["concluido_em"])

        pedido = self.store.get(Entity.PEDIDO, novo["id"])
        self.assertEqual(pedido["comissao_last_sync"], pedido["updated_date"])
        self.assertFalse(precisa_sync(pedido))
        self.assertTrue(pedido["comissao_entry_id"])

        aviso = self.store.filter(Entity.NOTIFICACAO, {"tipo": "sincronizacao_comissoes"})
        self.assertEqual(len(aviso), 1)
        self.assertEqual(aviso[0]["destinatario_email"], "admin@jc.com")
        self.assertEqual(aviso[0]["link"], "/Comissoes")
        self.assertEqual(aviso[0]["prioridade"], "media")

        # A second run finds nothing new.
        segundo = despachar_sincronizacao(self.store, ADMIN)
        again = executar_sync_worker(self.store, segundo["id"], sleep=no_sleep)
        self.assertEqual(again["resultado"]["total"], 0)

    def test_worker_marks_job_failed(self):
        job = despachar_sincronizacao(self.store, ADMIN)
        with patch("gestao.sync_jobs.candidatos_sync", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                executar_sync_worker(self.store, job["id"], sleep=no_sleep)

        failed = self.store.get(Entity.SYNC_JOB, job["id"])
        self.assertEqual(failed["status"], "erro")
        self.assertEqual(failed["erro_mensagem"], "boom")
        aviso = self.store.filter(Entity.NOTIFICACAO, {"tipo": "sincronizacao_comissoes"})
        self.assertEqual(aviso[0]["prioridade"], "alta")

    def test_worker_validates_job(self):
        with self.assertRaises(RegraNegocioError):
            executar_sync_worker(self.store, None)
        with self.assertRaises(RecordNotFound):
            executar_sync_worker(self.store, "missing")


class WorkerTests(unittest.TestCase):
    def test_process_once_runs_job(self):
        store = InMemoryEntityStore()
        queue = InMemoryJobQueue()
        job = despachar_sincronizacao(store, ADMIN, queue=queue)

        processed = process_next(store=store, queue=queue, block=False)
        self.assertTrue(processed)
        self.assertEqual(store.get(Entity.SYNC_JOB, job["id"])["status"], "concluido")

    def test_process_once_no_jobs(self):
        processed = process_next(store=InMemoryEntityStore(), queue=InMemoryJobQueue(), block=False)
        self.assertFalse(processed)

    def test_process_skips_unknown_and_finished_jobs(self):
        store = InMemoryEntityStore()
        queue = InMemoryJobQueue()
        queue.enqueue("sincronizar_comissoes", "missing")
        self.assertFalse(process_next(store=store, queue=queue, block=False))

        done = store.create(Entity.SYNC_JOB, {"tipo": "sincronizar_comissoes", "status": "concluido"})
        queue.enqueue("sincronizar_comissoes", done["id"])
        self.assertFalse(process_next(store=store, queue=queue, block=False))

    def test_failed_job_does_not_stop_worker(self):
        store = InMemoryEntityStore()
        queue = InMemoryJobQueue()
        job = despachar_sincronizacao(store, ADMIN, queue=queue)
        with patch("gestao.sync_jobs.candidatos_sync", side_effect=RuntimeError("boom")):
            self.assertTrue(process_next(store=store, queue=queue, block=False))
        self.assertEqual(store.get(Entity.SYNC_JOB, job["id"])["status"], "erro")

    def test_only_registered_tipos_are_routed(self):
        store = InMemoryEntityStore()
        queue = InMemoryJobQueue()
        queue.enqueue("importar_planilha", "x1")
        self.assertFalse(process_next(store=store, queue=queue, block=False))
        self.assertEqual(queue.items, [QueuedJob("importar_planilha", "x1")])

        other = store.create(Entity.SYNC_JOB, {"tipo": "importar_planilha", "status": "pendente"})
        queue.enqueue("sincronizar_comissoes", other["id"])
        self.assertFalse(process_next(store=store, queue=queue, block=False))
        self.assertEqual(store.get(Entity.SYNC_JOB, other["id"])["status"], "pendente")


class RedisJobQueueTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("gestao.queue.redis.Redis.from_url")
        self.from_url = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.from_url.return_value
        self.queue = RedisJobQueue(url="redis://localhost:6379/0")

    def test_enqueue_uses_one_list_per_tipo(self):
        self.queue.enqueue("sincronizar_comissoes", "job-1")
        self.client.rpush.assert_called_once_with("gestao:jobs:sincronizar_comissoes", "job-1")

    def test_blocking_dequeue_maps_key_back_to_tipo(self):
        self.client.blpop.return_value = (b"gestao:jobs:sincronizar_comissoes", b"job-1")
        queued = self.queue.dequeue(["sincronizar_comissoes"], timeout=5)
        self.assertEqual(queued, QueuedJob("sincronizar_comissoes", "job-1"))
        self.client.blpop.assert_called_once_with(["gestao:jobs:sincronizar_comissoes"], timeout=5)

        self.client.blpop.return_value = None
        self.assertIsNone(self.queue.dequeue(["sincronizar_comissoes"], timeout=5))

    def test_non_blocking_dequeue(self):
        self.client.lpop.side_effect = [None, b"job-2"]
        queued = self.queue.dequeue(["a", "b"], block=False)
        self.assertEqual(queued, QueuedJob("b", "job-2"))

    def test_reconnects_after_connection_error(self):
        self.client.blpop.side_effect = redis_exceptions.ConnectionError("reset")
        self.assertIsNone(self.queue.dequeue(["sincronizar_comissoes"], timeout=1))
        self.assertEqual(self.from_url.call_count, 2)


if __name__ == "__main__":
    unittest.main()
