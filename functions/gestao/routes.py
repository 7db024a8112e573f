"""
HTTP routes for the backend API.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from gestao import comissoes, notificacoes, pedidos, ports, presenca, relatorios, sync_jobs
from gestao.auth import require_admin, require_user
from gestao.config import get_settings
from gestao.db import EntityStore
from gestao.dependencies import get_queue_client, get_store, uses_shared_queue
from gestao.permissoes import (
    MODULOS_CONFIG,
    PERMISSOES_DESCRICOES,
    criar_permissoes_default,
    exigir_permissao,
)
from gestao.schemas import (
    AnteciparRequest,
    AtualizarComissaoRequest,
    DispatchResponse,
    FecharMesRequest,
    FecharMesResponse,
    GerarComissaoRequest,
    HeartbeatRequest,
    LiquidacaoPendenteRequest,
    NotificacaoEventoRequest,
    NotificacaoEventoResponse,
    NotificacaoRequest,
    PagamentoRequest,
    PermissoesResponse,
    PortCreateRequest,
    PostergarRequest,
    PresencaResponse,
    RelatorioRequest,
    RoutineResponse,
    SyncJobResponse,
    SyncWorkerRequest,
)
from gestao.types import Entity

logger = logging.getLogger(__name__)

router = APIRouter()


# PORTs

@router.post("/atualizar_status_ports", response_model=RoutineResponse)
def atualizar_status_ports(
    store: EntityStore = Depends(get_store), user: dict = Depends(require_admin)
):
    return ports.atualizar_status_ports(store)


@router.post("/reconciliar_ports", response_model=RoutineResponse)
def reconciliar_ports(
    store: EntityStore = Depends(get_store), user: dict = Depends(require_admin)
):
    return ports.reconciliar_ports(store)


@router.post("/ports", status_code=201)
def criar_port(
    payload: PortCreateRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return ports.criar_port(store, payload.model_dump())


# Pedidos

@router.post("/limpar_residuos")
def limpar_residuos(store: EntityStore = Depends(get_store), user: dict = Depends(require_user)):
    return pedidos.limpar_residuos(store)


@router.post("/monitorar_pedidos_atrasados")
def monitorar_pedidos_atrasados(
    store: EntityStore = Depends(get_store), user: dict = Depends(require_user)
):
    return pedidos.monitorar_pedidos_atrasados(store)


@router.post("/pedidos/{pedido_id}/pagamentos")
def registrar_pagamento(
    pedido_id: str,
    payload: PagamentoRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return pedidos.registrar_pagamento(store, pedido_id, payload.valor)


# Notificações

@router.post("/criar_notificacao")
def criar_notificacao(
    payload: NotificacaoRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_admin),
):
    return {"success": True, "notificacao": notificacoes.criar_notificacao(store, payload.model_dump())}


@router.post("/criar_notificacao_evento", response_model=NotificacaoEventoResponse)
def criar_notificacao_evento(
    payload: NotificacaoEventoRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return notificacoes.criar_notificacao_evento(store, **payload.model_dump())


@router.post("/notificar_liquidacao_pendente")
def notificar_liquidacao_pendente(
    payload: LiquidacaoPendenteRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return notificacoes.notificar_liquidacao_pendente(store, payload.liquidacao_id)


@router.get("/notificacoes")
def listar_notificacoes(
    nao_lidas: bool = Query(False),
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return {"notificacoes": notificacoes.listar(store, user, apenas_nao_lidas=nao_lidas)}


@router.post("/notificacoes/{notificacao_id}/lida")
def marcar_notificacao_lida(
    notificacao_id: str,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return notificacoes.marcar_lida(store, notificacao_id, user)


# Presença

@router.post("/presenca/heartbeat", response_model=PresencaResponse)
def presenca_heartbeat(
    payload: Optional[HeartbeatRequest] = None,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return presenca.heartbeat(store, user, plataforma=payload.plataforma if payload else None)


@router.post("/presenca/offline", response_model=PresencaResponse)
def presenca_offline(store: EntityStore = Depends(get_store), user: dict = Depends(require_user)):
    return presenca.offline(store, user)


@router.get("/presenca/online")
def presenca_online(store: EntityStore = Depends(get_store), user: dict = Depends(require_user)):
    return {"online": presenca.listar_online(store)}


# Comissões

@router.post("/gerar_comissao_automatica")
def gerar_comissao_automatica(
    payload: GerarComissaoRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return comissoes.gerar_comissao_automatica(store, payload.pedido_id)


@router.post("/sincronizar_comissoes")
def sincronizar_comissoes(
    store: EntityStore = Depends(get_store), user: dict = Depends(require_admin)
):
    return comissoes.sincronizar_comissoes(store)


@router.post("/atualizar_comissao")
def atualizar_comissao(
    payload: AtualizarComissaoRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_admin),
):
    if payload.action == "atualizar_base":
        return comissoes.atualizar_base(
            store, payload.entry_id, payload.valor_base, payload.percentual
        )
    if payload.action == "transferir":
        return comissoes.transferir(
            store,
            payload.novo_representante_codigo,
            entry_id=payload.entry_id,
            pedido_id=payload.pedido_id,
        )
    raise HTTPException(
        status_code=400,
        detail=f"action inválida: {payload.action}. Use 'atualizar_base' ou 'transferir'",
    )


@router.post("/comissoes/postergar")
def postergar_comissao(
    payload: PostergarRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(exigir_permissao("Comissoes", "editar")),
):
    return comissoes.postergar(store, payload.entry_id, user.get("email"))


@router.post("/comissoes/antecipar")
def antecipar_comissoes(
    payload: AnteciparRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(exigir_permissao("Comissoes", "editar")),
):
    return comissoes.antecipar(store, payload.entry_ids, payload.mes_competencia, user.get("email"))


@router.post("/comissoes/fechar_mes", response_model=FecharMesResponse)
def fechar_mes(
    payload: FecharMesRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(exigir_permissao("Comissoes", "fechar")),
):
    return comissoes.fechar_mes(store, payload.mes_competencia)


@router.get("/comissoes/resumo/{codigo}")
def resumo_representante(
    codigo: str,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    return comissoes.resumo_representante(
        store.filter(Entity.PEDIDO, {"representante_codigo": codigo})
    )


# SyncJobs

@router.post("/despachar_sincronizacao", response_model=DispatchResponse, status_code=202)
def despachar_sincronizacao(
    background_tasks: BackgroundTasks,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_admin),
):
    settings = get_settings()
    inline = settings.run_jobs_inline or not uses_shared_queue(settings)
    try:
        job = sync_jobs.despachar_sincronizacao(
            store, user, queue=None if inline else get_queue_client()
        )
    except sync_jobs.SyncEmAndamento as exc:
        return JSONResponse(
            status_code=409,
            content={
                "status": "already_running",
                "message": "Já existe uma sincronização em andamento.",
                "job_id": exc.job_id,
            },
        )

    if inline:
        background_tasks.add_task(_executar_em_segundo_plano, store, job["id"])
    return DispatchResponse(
        status="accepted",
        message="Sincronização enviada para processamento em segundo plano.",
        job_id=job["id"],
    )


def _executar_em_segundo_plano(store: EntityStore, job_id: str) -> None:
    try:
        sync_jobs.executar_sync_worker(store, job_id)
    except Exception:
        # Nobody awaits a background task; the job record carries the error.
        logger.error("[%s] Background sync failed", job_id)


@router.post("/executar_sync_worker")
def executar_sync_worker(
    payload: SyncWorkerRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_admin),
):
    return sync_jobs.executar_sync_worker(store, payload.job_id)


@router.get("/sync_jobs/{job_id}", response_model=SyncJobResponse)
def sync_job_status(
    job_id: str,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    job = store.get(Entity.SYNC_JOB, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


# Relatórios

@router.post("/gerar_relatorio_comissoes")
def gerar_relatorio_comissoes(
    payload: RelatorioRequest,
    store: EntityStore = Depends(get_store),
    user: dict = Depends(require_user),
):
    if payload.tipo not in relatorios.TIPOS:
        raise HTTPException(status_code=400, detail="Tipo de relatório inválido")

    representantes = payload.representantes
    representante = payload.representante
    if payload.tipo == "geral" and representantes is None:
        representantes = comissoes.fechamentos_do_mes(store, payload.mes_ano)
    if payload.tipo == "analitico" and representante is None and payload.representante_codigo:
        representante = comissoes.fechamento_representante(
            store,
            payload.representante_codigo,
            payload.mes_ano,
            vales=payload.vales,
            outros_descontos=payload.outros_descontos,
            descricao_descontos=payload.descricao_descontos,
            observacoes=payload.observacoes,
        )

    pdf = relatorios.gerar_relatorio_comissoes(
        payload.tipo, payload.mes_ano, representantes=representantes, representante=representante
    )
    filename = relatorios.nome_arquivo(payload.tipo, payload.mes_ano)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# Permissões

@router.get("/permissoes/modulos", response_model=PermissoesResponse)
def permissoes_modulos(user: dict = Depends(require_user)):
    return {
        "modulos": [asdict(m) for m in MODULOS_CONFIG],
        "descricoes": PERMISSOES_DESCRICOES,
        "default": criar_permissoes_default(),
    }
