"""
PORT (cash deposit / advance payment) lifecycle.

A PORT is registered against manually typed order numbers. Reconciliation
links those items to real ``Pedido`` records; status advancement then follows
the linked orders through production and settlement.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from gestao.db import EntityStore
from gestao.errors import RegraNegocioError
from gestao.formatters import to_float
from gestao.types import Entity, PedidoStatus, PortStatus

logger = logging.getLogger(__name__)

PRIMEIRO_NUMERO_PORT = 1001

STATUS_ATIVOS = (
    PortStatus.AGUARDANDO_SEPARACAO.value,
    PortStatus.EM_SEPARACAO.value,
    PortStatus.AGUARDANDO_LIQUIDACAO.value,
)

STATUS_PEDIDO_LIBERADO = (
    PedidoStatus.ABERTO.value,
    PedidoStatus.PARCIAL.value,
    PedidoStatus.PAGO.value,
)


def proximo_numero_port(ports: Iterable[Mapping[str, Any]]) -> int:
    numeros = [int(to_float(p.get("numero_port"))) for p in ports]
    return max(numeros) + 1 if numeros else PRIMEIRO_NUMERO_PORT


def criar_port(store: EntityStore, data: Mapping[str, Any]) -> dict:
    itens = [
        item
        for item in data.get("itens_port") or []
        if item.get("numero_pedido_manual") and to_float(item.get("valor_alocado")) > 0
    ]
    if not itens:
        raise RegraNegocioError("Adicione ao menos um pedido com valor")

    valor_total = round(sum(to_float(i["valor_alocado"]) for i in itens), 2)
    payload = dict(data)
    payload.update(
        {
            "numero_port": proximo_numero_port(store.list(Entity.PORT)),
            "itens_port": [
                {
                    "numero_pedido_manual": str(item["numero_pedido_manual"]),
                    "valor_alocado": to_float(item["valor_alocado"]),
                    "pedido_real_id": None,
                    "vinculado": False,
                }
                for item in itens
            ],
            "pedidos_ids": [],
            "valor_total_sinal": valor_total,
            "saldo_disponivel": valor_total,
            "status": PortStatus.AGUARDANDO_VINCULO.value,
        }
    )
    port = store.create(Entity.PORT, payload)
    logger.info("PORT %s criado com %d itens", port["numero_port"], len(itens))
    return port


def pedidos_vinculados_ids(port: Mapping[str, Any]) -> list[str]:
    """Order ids a PORT points at: explicit ``pedidos_ids`` or linked items."""
    ids = [str(i) for i in port.get("pedidos_ids") or [] if i]
    if ids:
        return ids
    return [
        str(item["pedido_real_id"])
        for item in port.get("itens_port") or []
        if item.get("vinculado") and item.get("pedido_real_id")
    ]


def proximo_status(status: str, pedidos: list[Mapping[str, Any]]) -> str:
    """Advance a PORT at most one step based on its orders."""
    if not pedidos:
        return status
    tem_aguardando = any(p.get("status") == PedidoStatus.AGUARDANDO.value for p in pedidos)
    todos_liberados = all(p.get("status") in STATUS_PEDIDO_LIBERADO for p in pedidos)

    if status == PortStatus.AGUARDANDO_SEPARACAO.value and tem_aguardando:
        return PortStatus.EM_SEPARACAO.value
    if status == PortStatus.EM_SEPARACAO.value and todos_liberados:
        return PortStatus.AGUARDANDO_LIQUIDACAO.value
    return status


def atualizar_status_ports(store: EntityStore) -> dict:
    ports = store.filter(Entity.PORT, {"status": {"$in": list(STATUS_ATIVOS)}})
    atualizados = 0

    for port in ports:
        ids = pedidos_vinculados_ids(port)
        if not ids:
            continue
        pedidos = store.filter(Entity.PEDIDO, {"id": {"$in": ids}})
        if not pedidos:
            continue

        novo_status = proximo_status(port.get("status"), pedidos)
        if novo_status != port.get("status"):
            store.update(Entity.PORT, port["id"], {"status": novo_status})
            logger.info(
                "PORT %s: %s -> %s", port.get("numero_port"), port.get("status"), novo_status
            )
            atualizados += 1

    return {
        "success": True,
        "ports_verificados": len(ports),
        "ports_atualizados": atualizados,
    }


def _tem_pendencia(port: Mapping[str, Any]) -> bool:
    return any(not item.get("vinculado") for item in port.get("itens_port") or [])


def reconciliar_ports(store: EntityStore) -> dict:
    ports_com_pendencias = [p for p in store.list(Entity.PORT) if _tem_pendencia(p)]
    vinculacoes = 0
    ports_atualizados = 0

    for port in ports_com_pendencias:
        modificado = False
        novos_itens = []

        for item in port["itens_port"]:
            if item.get("vinculado"):
                novos_itens.append(item)
                continue

            pedidos_reais = store.filter(
                Entity.PEDIDO,
                {
                    "numero_pedido": item.get("numero_pedido_manual"),
                    "cliente_codigo": port.get("cliente_codigo"),
                },
            )
            if pedidos_reais:
                novos_itens.append(
                    {**item, "pedido_real_id": pedidos_reais[0]["id"], "vinculado": True}
                )
                vinculacoes += 1
                modificado = True
            else:
                novos_itens.append(item)

        if not modificado:
            continue

        todos_vinculados = all(i.get("vinculado") for i in novos_itens)
        status = port.get("status")
        if todos_vinculados and status == PortStatus.AGUARDANDO_VINCULO.value:
            status = PortStatus.EM_SEPARACAO.value

        pedidos_ids = [
            str(i["pedido_real_id"]) for i in novos_itens if i.get("vinculado") and i.get("pedido_real_id")
        ]
        store.update(
            Entity.PORT,
            port["id"],
            {
                "itens_port": novos_itens,
                "pedidos_ids": list(dict.fromkeys(pedidos_ids)),
                "status": status,
            },
        )
        ports_atualizados += 1

    if vinculacoes:
        logger.info("Reconciliação: %d vínculos em %d PORTs", vinculacoes, ports_atualizados)

    return {
        "success": True,
        "ports_verificados": len(ports_com_pendencias),
        "ports_atualizados": ports_atualizados,
        "vinculacoes_realizadas": vinculacoes,
    }
