"""
In-app notifications addressed to users by e-mail.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from gestao.auth import list_admins
from gestao.db import EntityStore, RecordNotFound
from gestao.errors import RegraNegocioError
from gestao.formatters import formatar_moeda, parse_datetime
from gestao.types import ROLE_ADMIN, Entity, Prioridade

logger = logging.getLogger(__name__)

CAMPOS_OBRIGATORIOS = ("tipo", "titulo", "mensagem", "destinatario_email")


def montar_notificacao(
    *,
    tipo: str,
    titulo: str,
    mensagem: str,
    destinatario_email: str,
    destinatario_role: Optional[str] = None,
    entidade_referencia: Optional[str] = None,
    entidade_id: Optional[str] = None,
    link: Optional[str] = None,
    prioridade: Optional[str] = None,
) -> dict:
    return {
        "tipo": tipo,
        "titulo": titulo,
        "mensagem": mensagem,
        "destinatario_email": destinatario_email,
        "destinatario_role": destinatario_role or ROLE_ADMIN,
        "entidade_referencia": entidade_referencia or None,
        "entidade_id": entidade_id or None,
        "link": link or None,
        "prioridade": prioridade or Prioridade.MEDIA.value,
        "lida": False,
    }


def criar_notificacao(store: EntityStore, payload: Mapping[str, Any]) -> dict:
    if any(not payload.get(campo) for campo in CAMPOS_OBRIGATORIOS):
        raise RegraNegocioError("Campos obrigatórios faltando")
    campos = {k: payload.get(k) for k in (
        "tipo", "titulo", "mensagem", "destinatario_email", "destinatario_role",
        "entidade_referencia", "entidade_id", "link", "prioridade",
    )}
    return store.create(Entity.NOTIFICACAO, montar_notificacao(**campos))


def criar_notificacao_evento(
    store: EntityStore,
    *,
    tipo: str,
    titulo: str,
    mensagem: str,
    entidade_referencia: Optional[str] = None,
    entidade_id: Optional[str] = None,
    link: Optional[str] = None,
    prioridade: str = Prioridade.MEDIA.value,
    apenas_admins: bool = True,
    destinatario_email: Optional[str] = None,
) -> dict:
    """Fan an event out to a single user, all admins, or every user."""
    if not tipo or not titulo or not mensagem:
        raise RegraNegocioError("tipo, titulo e mensagem são obrigatórios")

    usuarios = store.list(Entity.USER)
    if destinatario_email:
        destinatarios = [u for u in usuarios if u.get("email") == destinatario_email]
    elif apenas_admins:
        destinatarios = [u for u in usuarios if u.get("role") == ROLE_ADMIN]
    else:
        destinatarios = usuarios

    for usuario in destinatarios:
        store.create(
            Entity.NOTIFICACAO,
            montar_notificacao(
                tipo=tipo,
                titulo=titulo,
                mensagem=mensagem,
                destinatario_email=usuario.get("email"),
                destinatario_role=usuario.get("role"),
                entidade_referencia=entidade_referencia,
                entidade_id=entidade_id,
                link=link,
                prioridade=prioridade,
            ),
        )
    return {"success": True, "count": len(destinatarios)}


def notificar_liquidacao_pendente(store: EntityStore, liquidacao_id: Optional[str]) -> dict:
    if not liquidacao_id:
        raise RegraNegocioError("liquidacao_id obrigatório")
    liquidacao = store.get(Entity.LIQUIDACAO_PENDENTE, liquidacao_id)
    if not liquidacao:
        raise RecordNotFound(Entity.LIQUIDACAO_PENDENTE.value, liquidacao_id)

    qtd = len(liquidacao.get("pedidos_ids") or [])
    valor = formatar_moeda(liquidacao.get("valor_final_proposto"))
    for admin in list_admins(store):
        store.create(
            Entity.NOTIFICACAO,
            montar_notificacao(
                tipo="liquidacao_pendente",
                titulo="Nova Liquidação Pendente",
                mensagem=(
                    f"{liquidacao.get('cliente_nome')} solicitou liquidação de "
                    f"{qtd} pedido(s). Valor: {valor}"
                ),
                destinatario_email=admin.get("email"),
                entidade_referencia=Entity.LIQUIDACAO_PENDENTE.value,
                entidade_id=liquidacao["id"],
                link="/Pedidos",
                prioridade=Prioridade.ALTA.value,
            ),
        )
    return {"success": True}


def ja_notificado(
    notificacoes: Iterable[Mapping[str, Any]],
    *,
    entidade_id: str,
    destinatario_email: str,
    tipo: str,
    desde: datetime,
) -> bool:
    """True when a matching notification was created after ``desde``."""
    for n in notificacoes:
        if (
            n.get("entidade_id") == entidade_id
            and n.get("destinatario_email") == destinatario_email
            and n.get("tipo") == tipo
        ):
            criada = parse_datetime(n.get("created_date"))
            if criada and criada > desde:
                return True
    return False


def listar(store: EntityStore, user: Mapping[str, Any], apenas_nao_lidas: bool = False) -> list[dict]:
    criteria: dict[str, Any] = {"destinatario_email": user.get("email")}
    if apenas_nao_lidas:
        criteria["lida"] = False
    notificacoes = store.filter(Entity.NOTIFICACAO, criteria)
    return sorted(notificacoes, key=lambda n: n.get("created_date") or "", reverse=True)


def marcar_lida(store: EntityStore, notificacao_id: str, user: Mapping[str, Any]) -> dict:
    notificacao = store.get(Entity.NOTIFICACAO, notificacao_id)
    # Other users' notifications are reported as missing.
    if not notificacao or notificacao.get("destinatario_email") != user.get("email"):
        raise RecordNotFound(Entity.NOTIFICACAO.value, notificacao_id)
    return store.update(Entity.NOTIFICACAO, notificacao_id, {"lida": True})
