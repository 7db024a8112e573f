"""
SyncJob records: dispatching a commission sync and executing it.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, Optional

from gestao.comissoes import (
    ResolvedorCompetencia,
    ResultadoSync,
    candidatos_sync,
    indexar_por_pedido,
    processar_em_lotes,
    processar_pedido,
)
from gestao.config import get_settings
from gestao.db import EntityStore, RecordNotFound
from gestao.errors import RegraNegocioError
from gestao.formatters import parse_datetime
from gestao.notificacoes import criar_notificacao_evento
from gestao.queue import JobQueue
from gestao.types import SYNC_COMISSOES, Entity, PedidoStatus, Prioridade, SyncJobStatus

logger = logging.getLogger(__name__)


class SyncEmAndamento(Exception):
    """A sync job of the same kind is already being processed."""

    def __init__(self, job_id: str):
        super().__init__(f"Sincronização já em andamento: {job_id}")
        self.job_id = job_id


def job_em_execucao(store: EntityStore, tipo: str = SYNC_COMISSOES) -> Optional[dict]:
    running = store.filter(
        Entity.SYNC_JOB, {"tipo": tipo, "status": SyncJobStatus.PROCESSANDO.value}
    )
    return running[0] if running else None


def despachar_sincronizacao(
    store: EntityStore, user: Mapping[str, Any], queue: Optional[JobQueue] = None
) -> dict:
    """Create a pending job and push it to the queue when one is given."""
    running = job_em_execucao(store)
    if running:
        raise SyncEmAndamento(running["id"])

    job = store.create(
        Entity.SYNC_JOB,
        {
            "tipo": SYNC_COMISSOES,
            "status": SyncJobStatus.PENDENTE.value,
            "solicitado_por": user.get("email"),
            "iniciado_em": None,
            "concluido_em": None,
            "resultado": None,
            "erro_mensagem": None,
        },
    )
    if queue is not None:
        queue.enqueue(SYNC_COMISSOES, job["id"])
    logger.info("[%s] SyncJob criado por %s", job["id"], user.get("email"))
    return job


def precisa_sync(pedido: Mapping[str, Any]) -> bool:
    """True when the order changed after its last commission sync."""
    ultima = parse_datetime(pedido.get("comissao_last_sync"))
    if not ultima:
        return True
    alterado = parse_datetime(pedido.get("updated_date"))
    return bool(alterado and alterado > ultima)


def _notificar(store: EntityStore, job: Mapping[str, Any], titulo: str, mensagem: str, prioridade: str) -> None:
    email = job.get("solicitado_por")
    if not email:
        return
    criar_notificacao_evento(
        store,
        tipo="sincronizacao_comissoes",
        titulo=titulo,
        mensagem=mensagem,
        entidade_referencia=Entity.SYNC_JOB.value,
        entidade_id=job["id"],
        link="/Comissoes",
        prioridade=prioridade,
        destinatario_email=email,
    )


def executar_sync_worker(
    store: EntityStore,
    job_id: Optional[str],
    hoje: Optional[date] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """
    Run a queued commission sync over orders changed since their last sync.

    The job ends ``concluido`` with counters, or ``erro`` with the message when
    the run itself fails; in both cases the requester is notified.
    """
    if not job_id:
        raise RegraNegocioError("job_id é obrigatório")
    job = store.get(Entity.SYNC_JOB, job_id)
    if not job:
        raise RecordNotFound(Entity.SYNC_JOB.value, job_id)

    settings = get_settings()
    hoje = hoje or date.today()
    inicio = time.monotonic()
    job = store.update(
        Entity.SYNC_JOB,
        job_id,
        {
            "status": SyncJobStatus.PROCESSANDO.value,
            "iniciado_em": datetime.now(timezone.utc).isoformat(),
        },
    )

    try:
        pedidos_pagos = store.filter(Entity.PEDIDO, {"status": PedidoStatus.PAGO.value})
        entries = store.list(Entity.COMMISSION_ENTRY)
        entry_por_pedido = indexar_por_pedido(entries)
        candidatos = [
            p for p in candidatos_sync(pedidos_pagos, entry_por_pedido) if precisa_sync(p)
        ]
        logger.info(
            "[%s] Delta: %d de %d pedidos pagos", job_id, len(candidatos), len(pedidos_pagos)
        )

        resultado = ResultadoSync()
        resolvedor = ResolvedorCompetencia(entries, hoje)
        processar_em_lotes(
            candidatos,
            lambda pedido: processar_pedido(
                store,
                pedido,
                entry_por_pedido,
                resolvedor,
                resultado,
                observacao="Sincronização em segundo plano",
                marcar_sync=True,
            ),
            batch_size=settings.sync_batch_size,
            delay_item=settings.sync_delay_item_seconds,
            delay_batch=settings.sync_delay_batch_seconds,
            sleep=sleep,
        )

        contadores = resultado.contadores(len(candidatos))
        job = store.update(
            Entity.SYNC_JOB,
            job_id,
            {
                "status": SyncJobStatus.CONCLUIDO.value,
                "concluido_em": datetime.now(timezone.utc).isoformat(),
                "resultado": contadores,
            },
        )
        duracao = time.monotonic() - inicio
        logger.info("[%s] Concluído em %.1fs: %s", job_id, duracao, contadores)

        _notificar(
            store,
            job,
            "Sincronização de comissões concluída",
            (
                f"{contadores['criados']} criadas, {contadores['atualizados']} atualizadas, "
                f"{contadores['ignorados']} ignoradas, {contadores['erros']} erros."
            ),
            Prioridade.ALTA.value if contadores["erros"] else Prioridade.MEDIA.value,
        )
        return {"success": True, "job_id": job_id, "resultado": contadores}

    except Exception as exc:
        logger.exception("[%s] Falha na sincronização: %s", job_id, exc)
        job = store.update(
            Entity.SYNC_JOB,
            job_id,
            {
                "status": SyncJobStatus.ERRO.value,
                "concluido_em": datetime.now(timezone.utc).isoformat(),
                "erro_mensagem": str(exc),
            },
        )
        _notificar(
            store,
            job,
            "Erro na sincronização de comissões",
            f"A sincronização falhou: {exc}",
            Prioridade.ALTA.value,
        )
        raise
