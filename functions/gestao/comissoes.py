"""
Commission entries and the competência (accounting month) rule.

Every paid order yields one ``CommissionEntry`` accounted to a calendar month.
A month is closed once it has entries and all of them are ``fechado``. A
payment that lands in a closed month is pulled forward into the current month
and the move is recorded in the entry's ``movimentacoes``.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from gestao.config import get_settings
from gestao.db import EntityStore, RecordNotFound
from gestao.errors import ConflitoError, RegraNegocioError
from gestao.formatters import (
    mes_ano,
    primeiro_dia,
    somar_meses,
    to_float,
    ultimo_dia,
)
from gestao.types import ComissaoStatus, Entity, PedidoStatus

logger = logging.getLogger(__name__)

USUARIO_SISTEMA = "sistema"
SALDO_TOLERANCIA = 0.01

FECHADO = ComissaoStatus.FECHADO.value
ABERTO = ComissaoStatus.ABERTO.value


def calcular_comissao(valor_base: float, percentual: float) -> float:
    return round(valor_base * percentual / 100, 2)


def percentual_do_pedido(pedido: Mapping[str, Any]) -> float:
    return to_float(pedido.get("porcentagem_comissao")) or get_settings().percentual_comissao_padrao


def mes_fechado(entries: Iterable[Mapping[str, Any]], mes: str) -> bool:
    do_mes = [e for e in entries if e.get("mes_competencia") == mes]
    return bool(do_mes) and all(e.get("status") == FECHADO for e in do_mes)


def mes_padrao_portal(hoje: date, dia_limite: Optional[int] = None) -> str:
    """Month the representative portal opens on: the previous one while closing is underway."""
    dia_limite = dia_limite if dia_limite is not None else get_settings().dia_limite_fechamento
    mes = mes_ano(hoje)
    return somar_meses(mes, -1) if hoje.day <= dia_limite else mes


def movimentacao(
    mes_origem: str, mes_destino: str, usuario: str, motivo: str, agora: Optional[datetime] = None
) -> dict:
    return {
        "data": (agora or datetime.now(timezone.utc)).isoformat(),
        "mes_origem": mes_origem,
        "mes_destino": mes_destino,
        "usuario": usuario,
        "motivo": motivo,
    }


@dataclass(frozen=True)
class Competencia:
    data_competencia: str
    mes_competencia: str
    movimentado: bool
    mes_origem: str


class ResolvedorCompetencia:
    """Assigns payments to months, caching which months are closed."""

    def __init__(
        self,
        entries: Sequence[Mapping[str, Any]],
        hoje: date,
        *,
        inicio_do_mes: bool = True,
    ):
        self.entries = entries
        self.hoje = hoje
        self.inicio_do_mes = inicio_do_mes
        self._fechados: dict[str, bool] = {}

    def fechado(self, mes: str) -> bool:
        if mes not in self._fechados:
            self._fechados[mes] = mes_fechado(self.entries, mes)
        return self._fechados[mes]

    def resolver(self, data_pagamento: str) -> Competencia:
        data_pagamento = str(data_pagamento).split("T")[0]
        mes_origem = data_pagamento[:7]
        if self.fechado(mes_origem):
            hoje_iso = self.hoje.isoformat()
            return Competencia(hoje_iso, hoje_iso[:7], True, mes_origem)
        data = primeiro_dia(mes_origem).isoformat() if self.inicio_do_mes else data_pagamento
        return Competencia(data, mes_origem, False, mes_origem)


def _data_pagamento(pedido: Mapping[str, Any], hoje: date) -> str:
    return str(pedido.get("data_pagamento") or hoje.isoformat()).split("T")[0]


def _nova_entry(
    pedido: Mapping[str, Any],
    competencia: Competencia,
    *,
    data_pagamento: str,
    observacao: str,
    motivo: str,
    agora: datetime,
) -> dict:
    valor_base = to_float(pedido.get("total_pago"))
    percentual = percentual_do_pedido(pedido)
    return {
        "pedido_id": str(pedido["id"]),
        "pedido_numero": pedido.get("numero_pedido"),
        "representante_id": pedido.get("representante_codigo"),
        "representante_codigo": pedido.get("representante_codigo"),
        "representante_nome": pedido.get("representante_nome"),
        "cliente_nome": pedido.get("cliente_nome"),
        "valor_base": valor_base,
        "percentual": percentual,
        "valor_comissao": calcular_comissao(valor_base, percentual),
        "data_pagamento_real": data_pagamento,
        "data_competencia": competencia.data_competencia,
        "mes_competencia": competencia.mes_competencia,
        "status": ABERTO,
        "observacao": (
            f"{observacao}. Mês original ({competencia.mes_origem}) fechado."
            if competencia.movimentado
            else observacao
        ),
        "movimentacoes": (
            [
                movimentacao(
                    competencia.mes_origem,
                    competencia.mes_competencia,
                    USUARIO_SISTEMA,
                    motivo,
                    agora,
                )
            ]
            if competencia.movimentado
            else []
        ),
    }


def gerar_comissao_automatica(
    store: EntityStore, pedido_id: Optional[str], hoje: Optional[date] = None
) -> dict:
    """Create the commission entry for a freshly paid order."""
    if not pedido_id:
        raise RegraNegocioError("pedido_id é obrigatório")
    hoje = hoje or date.today()
    agora = datetime.now(timezone.utc)

    pedido = store.get(Entity.PEDIDO, pedido_id)
    if not pedido:
        raise RecordNotFound(Entity.PEDIDO.value, pedido_id)

    if pedido.get("status") != PedidoStatus.PAGO.value:
        return {
            "message": "Pedido ainda não está pago. Comissão não gerada.",
            "status": "skipped",
        }

    entries = store.list(Entity.COMMISSION_ENTRY)
    if any(str(e.get("pedido_id")) == str(pedido_id) for e in entries):
        return {"message": "Comissão já existe para este pedido", "status": "already_exists"}

    data_pagamento = _data_pagamento(pedido, hoje)
    competencia = ResolvedorCompetencia(entries, hoje, inicio_do_mes=False).resolver(data_pagamento)
    if competencia.movimentado:
        logger.info(
            "Mês %s já fechado. Comissão do pedido %s vai para %s",
            competencia.mes_origem,
            pedido.get("numero_pedido"),
            competencia.mes_competencia,
        )

    entry = store.create(
        Entity.COMMISSION_ENTRY,
        _nova_entry(
            pedido,
            competencia,
            data_pagamento=data_pagamento,
            observacao="Gerado automaticamente",
            motivo="Mês de pagamento já estava fechado",
            agora=agora,
        ),
    )
    store.update(Entity.PEDIDO, pedido["id"], {"comissao_entry_id": entry["id"]})

    if competencia.movimentado:
        message = (
            f"Comissão gerada para o mês {competencia.mes_competencia} "
            f"(original {competencia.mes_origem} estava fechado)"
        )
    else:
        message = f"Comissão gerada para o mês {competencia.mes_competencia}"
    return {"success": True, "message": message, "comissao": entry}


@dataclass
class ResultadoSync:
    criados: int = 0
    atualizados: int = 0
    ignorados: int = 0
    erros: list[dict] = field(default_factory=list)

    def contadores(self, total: int) -> dict:
        return {
            "criados": self.criados,
            "atualizados": self.atualizados,
            "ignorados": self.ignorados,
            "erros": len(self.erros),
            "total": total,
        }


def indexar_por_pedido(entries: Iterable[Mapping[str, Any]]) -> dict[str, dict]:
    return {str(e.get("pedido_id")): dict(e) for e in entries}


def candidatos_sync(
    pedidos_pagos: Iterable[Mapping[str, Any]], entry_por_pedido: Mapping[str, Mapping[str, Any]]
) -> list[dict]:
    """Paid, fully settled orders whose commission is not closed yet."""
    candidatos = []
    for pedido in pedidos_pagos:
        entry = entry_por_pedido.get(str(pedido.get("id")))
        if entry and entry.get("status") == FECHADO:
            continue
        if to_float(pedido.get("saldo_restante")) > SALDO_TOLERANCIA:
            continue
        if to_float(pedido.get("total_pago")) <= 0:
            continue
        candidatos.append(dict(pedido))
    return candidatos


def processar_pedido(
    store: EntityStore,
    pedido: Mapping[str, Any],
    entry_por_pedido: Mapping[str, Mapping[str, Any]],
    resolvedor: ResolvedorCompetencia,
    resultado: ResultadoSync,
    *,
    observacao: str = "Sincronização automática",
    marcar_sync: bool = False,
    agora: Optional[datetime] = None,
) -> None:
    """Create or refresh one order's entry; failures are recorded, not raised."""
    agora = agora or datetime.now(timezone.utc)
    agora_iso = agora.isoformat()
    # Stamping the order with the same instant as its updated_date keeps the
    # delta filter from picking it up again.
    carimbo = {"comissao_last_sync": agora_iso, "updated_date": agora_iso} if marcar_sync else {}

    try:
        valor_base = to_float(pedido.get("total_pago"))
        percentual = percentual_do_pedido(pedido)
        data_pagamento = _data_pagamento(pedido, resolvedor.hoje)
        competencia = resolvedor.resolver(data_pagamento)
        existente = entry_por_pedido.get(str(pedido["id"]))

        if not existente:
            nova = store.create(
                Entity.COMMISSION_ENTRY,
                _nova_entry(
                    pedido,
                    competencia,
                    data_pagamento=data_pagamento,
                    observacao=observacao,
                    motivo="Mês de pagamento fechado na sincronização",
                    agora=agora,
                ),
            )
            store.update(Entity.PEDIDO, pedido["id"], {"comissao_entry_id": nova["id"], **carimbo})
            resultado.criados += 1

        elif existente.get("status") == ABERTO:
            # A competência moved by hand is kept.
            movida = existente.get("mes_competencia") != competencia.mes_origem
            changes: dict[str, Any] = {
                "valor_base": valor_base,
                "percentual": percentual,
                "valor_comissao": calcular_comissao(valor_base, percentual),
            }
            if not movida:
                changes["data_competencia"] = competencia.data_competencia
                changes["mes_competencia"] = competencia.mes_competencia
            if not marcar_sync:
                changes["observacao"] = (existente.get("observacao") or "") + " | Recalculado na sincronização."
            store.update(Entity.COMMISSION_ENTRY, existente["id"], changes)
            if carimbo:
                store.update(Entity.PEDIDO, pedido["id"], carimbo)
            resultado.atualizados += 1

        else:
            if carimbo:
                store.update(Entity.PEDIDO, pedido["id"], carimbo)
            resultado.ignorados += 1

    except Exception as exc:
        logger.error("Pedido %s: %s", pedido.get("numero_pedido"), exc)
        resultado.erros.append(
            {"pedido_id": pedido.get("id"), "numero": pedido.get("numero_pedido"), "erro": str(exc)}
        )


def processar_em_lotes(
    itens: Sequence[Any],
    processar: Callable[[Any], None],
    *,
    batch_size: int,
    delay_item: float = 0.0,
    delay_batch: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Process items in fixed-size batches with a pause between writes."""
    batch_size = max(1, batch_size)
    for offset in range(0, len(itens), batch_size):
        lote = itens[offset : offset + batch_size]
        logger.info(
            "Lote %d: itens %d-%d", offset // batch_size + 1, offset + 1, offset + len(lote)
        )
        for item in lote:
            processar(item)
            if delay_item:
                sleep(delay_item)
        if delay_batch and offset + batch_size < len(itens):
            sleep(delay_batch)


def sincronizar_comissoes(
    store: EntityStore,
    hoje: Optional[date] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """Bring every settled order's commission entry up to date, inline."""
    settings = get_settings()
    hoje = hoje or date.today()

    pedidos_pagos = store.filter(Entity.PEDIDO, {"status": PedidoStatus.PAGO.value})
    entries = store.list(Entity.COMMISSION_ENTRY)
    entry_por_pedido = indexar_por_pedido(entries)
    candidatos = candidatos_sync(pedidos_pagos, entry_por_pedido)

    resultado = ResultadoSync()
    logger.info("Candidatos: %d (de %d pagos)", len(candidatos), len(pedidos_pagos))
    if not candidatos:
        return {
            "success": True,
            "message": "Nada a sincronizar.",
            "processados": 0,
            "criados": 0,
            "atualizados": 0,
            "ignorados": 0,
            "erros": [],
        }

    resolvedor = ResolvedorCompetencia(entries, hoje)
    processar_em_lotes(
        candidatos,
        lambda pedido: processar_pedido(store, pedido, entry_por_pedido, resolvedor, resultado),
        batch_size=settings.sync_batch_size,
        delay_item=settings.sync_delay_item_seconds,
        delay_batch=settings.sync_delay_batch_seconds,
        sleep=sleep,
    )

    logger.info(
        "Sincronização concluída: %d criados, %d atualizados, %d ignorados, %d erros",
        resultado.criados,
        resultado.atualizados,
        resultado.ignorados,
        len(resultado.erros),
    )
    return {
        "success": True,
        "processados": len(candidatos),
        "criados": resultado.criados,
        "atualizados": resultado.atualizados,
        "ignorados": resultado.ignorados,
        "erros": resultado.erros,
    }


def _entry_aberta(store: EntityStore, entry_id: str, acao: str) -> dict:
    entry = store.get(Entity.COMMISSION_ENTRY, entry_id)
    if not entry:
        raise RecordNotFound(Entity.COMMISSION_ENTRY.value, entry_id)
    if entry.get("status") == FECHADO:
        raise ConflitoError(f"Não é possível {acao} uma comissão já fechada")
    return entry


def atualizar_base(
    store: EntityStore,
    entry_id: Optional[str],
    valor_base: Any = None,
    percentual: Any = None,
) -> dict:
    if not entry_id:
        raise RegraNegocioError("entry_id é obrigatório")
    entry = _entry_aberta(store, entry_id, "alterar")

    try:
        nova_base = float(valor_base if valor_base is not None else entry.get("valor_base"))
        novo_pct = float(percentual if percentual is not None else entry.get("percentual"))
    except (TypeError, ValueError):
        raise RegraNegocioError("valor_base e percentual devem ser números válidos") from None
    if not (math.isfinite(nova_base) and math.isfinite(novo_pct)):
        raise RegraNegocioError("valor_base e percentual devem ser números válidos")

    nova_comissao = calcular_comissao(nova_base, novo_pct)
    atualizado = store.update(
        Entity.COMMISSION_ENTRY,
        entry_id,
        {"valor_base": nova_base, "percentual": novo_pct, "valor_comissao": nova_comissao},
    )
    return {
        "ok": True,
        "entry": atualizado,
        "recalculo": {
            "valor_base": nova_base,
            "percentual": novo_pct,
            "valor_comissao": nova_comissao,
        },
    }


def transferir(
    store: EntityStore,
    novo_representante_codigo: Any,
    entry_id: Optional[str] = None,
    pedido_id: Optional[str] = None,
) -> dict:
    """Move an entry and/or its order to another representative."""
    if not novo_representante_codigo:
        raise RegraNegocioError("novo_representante_codigo é obrigatório")
    if not entry_id and not pedido_id:
        raise RegraNegocioError("entry_id ou pedido_id é obrigatório")

    destino = next(
        (
            r
            for r in store.list(Entity.REPRESENTANTE)
            if str(r.get("codigo")) == str(novo_representante_codigo)
        ),
        None,
    )
    if not destino:
        raise RecordNotFound(Entity.REPRESENTANTE.value, str(novo_representante_codigo))
    if destino.get("bloqueado"):
        raise ConflitoError("Representante destino está bloqueado")

    resultados: dict[str, Optional[dict]] = {"entry": None, "pedido": None}

    if entry_id:
        _entry_aberta(store, entry_id, "transferir")
        resultados["entry"] = store.update(
            Entity.COMMISSION_ENTRY,
            entry_id,
            {
                "representante_id": destino.get("id") or destino.get("codigo"),
                "representante_codigo": destino.get("codigo"),
                "representante_nome": destino.get("nome"),
            },
        )

    pedido_alvo = pedido_id or (resultados["entry"] or {}).get("pedido_id")
    if pedido_alvo:
        resultados["pedido"] = store.update(
            Entity.PEDIDO,
            pedido_alvo,
            {
                "representante_codigo": destino.get("codigo"),
                "representante_nome": destino.get("nome"),
                "comissao_fechamento_id": None,
                "comissao_paga": False,
                "comissao_mes_ano_pago": None,
            },
        )

    return {
        "ok": True,
        "representante_destino": {"codigo": destino.get("codigo"), "nome": destino.get("nome")},
        "resultados": resultados,
    }


def postergar(
    store: EntityStore, entry_id: str, usuario: str, agora: Optional[datetime] = None
) -> dict:
    entry = _entry_aberta(store, entry_id, "postergar")
    mes_atual = entry.get("mes_competencia")
    proximo = somar_meses(mes_atual, 1)
    movimentacoes = list(entry.get("movimentacoes") or [])
    movimentacoes.append(movimentacao(mes_atual, proximo, usuario, "Postergado manualmente", agora))
    return store.update(
        Entity.COMMISSION_ENTRY,
        entry_id,
        {
            "data_competencia": primeiro_dia(proximo).isoformat(),
            "mes_competencia": proximo,
            "movimentacoes": movimentacoes,
        },
    )


def antecipar(
    store: EntityStore,
    entry_ids: Sequence[str],
    mes_competencia: str,
    usuario: str,
    agora: Optional[datetime] = None,
) -> dict:
    if not entry_ids:
        raise RegraNegocioError("Selecione ao menos uma comissão")
    if mes_fechado(store.list(Entity.COMMISSION_ENTRY), mes_competencia):
        raise ConflitoError(f"Mês {mes_competencia} já está fechado")

    fim_do_mes = ultimo_dia(mes_competencia).isoformat()
    atualizadas = []
    for entry_id in entry_ids:
        entry = _entry_aberta(store, entry_id, "antecipar")
        movimentacoes = list(entry.get("movimentacoes") or [])
        movimentacoes.append(
            movimentacao(
                entry.get("mes_competencia"), mes_competencia, usuario, "Antecipado manualmente", agora
            )
        )
        atualizadas.append(
            store.update(
                Entity.COMMISSION_ENTRY,
                entry_id,
                {
                    "data_competencia": fim_do_mes,
                    "mes_competencia": mes_competencia,
                    "movimentacoes": movimentacoes,
                },
            )
        )
    return {"ok": True, "total": len(atualizadas), "entries": atualizadas}


def fechar_mes(store: EntityStore, mes_competencia: str, agora: Optional[datetime] = None) -> dict:
    abertas = store.filter(
        Entity.COMMISSION_ENTRY, {"mes_competencia": mes_competencia, "status": ABERTO}
    )
    if not abertas:
        raise RegraNegocioError("Nenhuma comissão aberta para fechar")

    data_fechamento = (agora or datetime.now(timezone.utc)).isoformat()
    for entry in abertas:
        store.update(
            Entity.COMMISSION_ENTRY,
            entry["id"],
            {"status": FECHADO, "data_fechamento": data_fechamento},
        )
    logger.info("Mês %s fechado com %d comissões", mes_competencia, len(abertas))
    return {"total": len(abertas), "data": data_fechamento}


def _comissao_pedido(pedido: Mapping[str, Any]) -> float:
    return to_float(pedido.get("valor_pedido")) * percentual_do_pedido(pedido) / 100


def resumo_representante(pedidos: Iterable[Mapping[str, Any]], hoje: Optional[date] = None) -> dict:
    """Portal summary: this month's paid orders plus unpaid ones from other months."""
    mes_atual = mes_ano(hoje or date.today())
    pagos_sem_comissao = [
        p
        for p in pedidos
        if p.get("status") == PedidoStatus.PAGO.value and not p.get("comissao_paga")
    ]
    do_mes = [p for p in pagos_sem_comissao if p.get("mes_pagamento") == mes_atual]
    pendentes = [p for p in pagos_sem_comissao if p.get("mes_pagamento") != mes_atual]

    def _linha(p: Mapping[str, Any]) -> dict:
        return {
            "id": p.get("id"),
            "numero_pedido": p.get("numero_pedido"),
            "cliente_nome": p.get("cliente_nome"),
            "data_pagamento": p.get("data_pagamento"),
            "mes_pagamento": p.get("mes_pagamento"),
            "valor_pedido": to_float(p.get("valor_pedido")),
            "percentual": percentual_do_pedido(p),
            "comissao": round(_comissao_pedido(p), 2),
        }

    return {
        "mes": mes_atual,
        "pedidos": [_linha(p) for p in do_mes],
        "totalVendas": round(sum(to_float(p.get("valor_pedido")) for p in do_mes), 2),
        "totalComissao": round(sum(_comissao_pedido(p) for p in do_mes), 2),
        "qtdPedidos": len(do_mes),
        "pendentes": [_linha(p) for p in pendentes],
    }


def fechamento_representante(
    store: EntityStore,
    codigo: Any,
    mes: str,
    *,
    vales: float = 0.0,
    outros_descontos: float = 0.0,
    descricao_descontos: Optional[str] = None,
    observacoes: Optional[str] = None,
) -> dict:
    """Closing statement for one representative and competência month."""
    representante = next(
        (r for r in store.list(Entity.REPRESENTANTE) if str(r.get("codigo")) == str(codigo)),
        None,
    )
    if not representante:
        raise RecordNotFound(Entity.REPRESENTANTE.value, str(codigo))

    entries = store.filter(
        Entity.COMMISSION_ENTRY, {"representante_codigo": codigo, "mes_competencia": mes}
    )
    pedidos = [
        {
            "data_pagamento": e.get("data_pagamento_real"),
            "numero_pedido": e.get("pedido_numero"),
            "cliente_nome": e.get("cliente_nome") or "",
            "valor_pedido": to_float(e.get("valor_base")),
            "percentualComissao": to_float(e.get("percentual")),
            "valorComissao": to_float(e.get("valor_comissao")),
        }
        for e in entries
    ]
    total_comissoes = round(sum(p["valorComissao"] for p in pedidos), 2)
    fechado = bool(entries) and all(e.get("status") == FECHADO for e in entries)
    return {
        "codigo": representante.get("codigo"),
        "nome": representante.get("nome") or "",
        "chave_pix": representante.get("chave_pix"),
        "status": FECHADO if fechado else ABERTO,
        "pedidos": pedidos,
        "totalVendas": round(sum(p["valor_pedido"] for p in pedidos), 2),
        "totalComissoes": total_comissoes,
        "vales": to_float(vales),
        "outrosDescontos": to_float(outros_descontos),
        "descricaoDescontos": descricao_descontos,
        "saldoAPagar": round(total_comissoes - to_float(vales) - to_float(outros_descontos), 2),
        "observacoes": observacoes,
    }


def fechamentos_do_mes(store: EntityStore, mes: str) -> list[dict]:
    """Closing statements for every representative with entries in ``mes``."""
    codigos = []
    for entry in store.filter(Entity.COMMISSION_ENTRY, {"mes_competencia": mes}):
        codigo = entry.get("representante_codigo")
        if codigo is not None and codigo not in codigos:
            codigos.append(codigo)
    conhecidos = {str(r.get("codigo")) for r in store.list(Entity.REPRESENTANTE)}
    return [
        fechamento_representante(store, codigo, mes)
        for codigo in codigos
        if str(codigo) in conhecidos
    ]
