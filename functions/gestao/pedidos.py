"""
Order maintenance routines: payments, residue clean-up and late-delivery alerts.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from gestao.auth import list_admins
from gestao.config import get_settings
from gestao.db import EntityStore, RecordNotFound
from gestao.errors import ConflitoError, RegraNegocioError
from gestao.formatters import formatar_moeda, mes_ano, parse_datetime, to_float
from gestao.notificacoes import ja_notificado, montar_notificacao
from gestao.types import Entity, PedidoStatus, Prioridade

logger = logging.getLogger(__name__)

STATUS_EM_ABERTO = (PedidoStatus.ABERTO.value, PedidoStatus.PARCIAL.value)
STATUS_ENCERRADOS = (PedidoStatus.PAGO.value, PedidoStatus.CANCELADO.value)
JANELA_DEDUPE = timedelta(hours=24)


def saldo(pedido: Mapping[str, Any]) -> float:
    """Outstanding balance; ``saldo_restante`` wins when it is set and non-zero."""
    restante = to_float(pedido.get("saldo_restante"))
    if restante:
        return restante
    return to_float(pedido.get("valor_pedido")) - to_float(pedido.get("total_pago"))


def registrar_pagamento(
    store: EntityStore, pedido_id: str, valor: float, hoje: Optional[date] = None
) -> dict:
    hoje = hoje or date.today()
    pedido = store.get(Entity.PEDIDO, pedido_id)
    if not pedido:
        raise RecordNotFound(Entity.PEDIDO.value, pedido_id)
    valor = to_float(valor, default=math.nan)
    if not math.isfinite(valor) or valor <= 0:
        raise RegraNegocioError("Valor do pagamento deve ser positivo")
    if pedido.get("status") in STATUS_ENCERRADOS:
        raise ConflitoError(f"Pedido já está {pedido.get('status')}")

    novo_total = round(to_float(pedido.get("total_pago")) + valor, 2)
    novo_saldo = round(to_float(pedido.get("valor_pedido")) - novo_total, 2)
    quitado = novo_saldo <= 0

    changes = {
        "total_pago": novo_total,
        "saldo_restante": novo_saldo,
        "status": PedidoStatus.PAGO.value if quitado else PedidoStatus.PARCIAL.value,
        "data_pagamento": hoje.isoformat() if quitado else pedido.get("data_pagamento"),
        "mes_pagamento": mes_ano(hoje) if quitado else pedido.get("mes_pagamento"),
    }
    return store.update(Entity.PEDIDO, pedido_id, changes)


def limpar_residuos(store: EntityStore, hoje: Optional[date] = None) -> dict:
    """Settle open orders whose leftover balance is only rounding residue."""
    hoje = hoje or date.today()
    limite = get_settings().limite_residuo

    pedidos = store.filter(Entity.PEDIDO, {"status": {"$in": list(STATUS_EM_ABERTO)}})
    residuos = [p for p in pedidos if 0 < saldo(p) <= limite]
    if not residuos:
        return {"success": True, "pedidos_limpos": 0, "ids_processados": []}

    hoje_iso = hoje.isoformat()
    data_log = hoje.strftime("%d/%m/%Y")
    for pedido in residuos:
        residuo = saldo(pedido)
        historico = (pedido.get("outras_informacoes") or "") + (
            f"\n[{data_log}] Baixa automática de resíduo: {formatar_moeda(residuo)}"
        )
        store.update(
            Entity.PEDIDO,
            pedido["id"],
            {
                "status": PedidoStatus.PAGO.value,
                "saldo_restante": 0,
                "total_pago": round(to_float(pedido.get("total_pago")) + residuo, 2),
                "data_pagamento": hoje_iso,
                "data_referencia_comissao": pedido.get("data_referencia_comissao") or hoje_iso,
                "outras_informacoes": historico,
            },
        )

    logger.info("Baixa de resíduo em %d pedidos", len(residuos))
    return {
        "success": True,
        "pedidos_limpos": len(residuos),
        "ids_processados": [p["id"] for p in residuos],
    }


def dias_de_atraso(pedido: Mapping[str, Any], agora: datetime) -> Optional[int]:
    entrega = parse_datetime(pedido.get("data_entrega"))
    if not entrega:
        return None
    return (agora - entrega).days


def monitorar_pedidos_atrasados(store: EntityStore, agora: Optional[datetime] = None) -> dict:
    settings = get_settings()
    agora = agora or datetime.now(timezone.utc)

    atrasados = []
    for pedido in store.list(Entity.PEDIDO):
        if pedido.get("status") in STATUS_ENCERRADOS:
            continue
        dias = dias_de_atraso(pedido, agora)
        if dias is not None and dias >= settings.dias_limite_atraso:
            atrasados.append((pedido, dias))

    admins = list_admins(store)
    # Loaded once; the dedupe check is an in-memory scan.
    existentes = store.list(Entity.NOTIFICACAO)
    limite_24h = agora - JANELA_DEDUPE
    criadas = 0

    for pedido, dias in atrasados:
        for admin in admins:
            if ja_notificado(
                existentes,
                entidade_id=pedido["id"],
                destinatario_email=admin.get("email"),
                tipo="pedido_atrasado",
                desde=limite_24h,
            ):
                continue
            store.create(
                Entity.NOTIFICACAO,
                montar_notificacao(
                    tipo="pedido_atrasado",
                    titulo=f"Pedido Atrasado #{pedido.get('numero_pedido')}",
                    mensagem=(
                        f"Cliente {pedido.get('cliente_nome')} com {dias} dias de atraso. "
                        f"Saldo: {formatar_moeda(pedido.get('saldo_restante'))}"
                    ),
                    destinatario_email=admin.get("email"),
                    entidade_referencia=Entity.PEDIDO.value,
                    entidade_id=pedido["id"],
                    link=f"/Pedidos?busca={pedido.get('numero_pedido')}",
                    prioridade=(
                        Prioridade.ALTA.value
                        if dias >= settings.dias_atraso_prioridade_alta
                        else Prioridade.MEDIA.value
                    ),
                ),
            )
            criadas += 1

    return {
        "success": True,
        "pedidosAtrasados": len(atrasados),
        "notificacoesCriadas": criadas,
    }
