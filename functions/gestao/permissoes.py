"""
Static module/permission matrix for non-admin users.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from fastapi import Depends, HTTPException

from gestao.auth import is_admin, require_user


@dataclass(frozen=True)
class Modulo:
    nome: str
    label: str
    grupo: str
    permissoes: tuple[str, ...]


CRUD = ("visualizar", "adicionar", "editar", "excluir")

MODULOS_CONFIG: tuple[Modulo, ...] = (
    Modulo("Dashboard", "Dashboard", "Principal", ("visualizar",)),
    Modulo("Pedidos", "Pedidos", "Vendas", CRUD + ("liquidar", "exportar")),
    Modulo("Orcamentos", "Orçamentos", "Vendas", CRUD + ("aprovar", "exportar")),
    Modulo("EntradaCaucao", "Entrada/Caução (PORT)", "Vendas", CRUD + ("exportar",)),
    Modulo("Clientes", "Clientes", "Cadastros", CRUD + ("exportar",)),
    Modulo("Representantes", "Representantes", "Cadastros", CRUD + ("exportar",)),
    Modulo("Fornecedores", "Fornecedores", "Cadastros", CRUD),
    Modulo("Produtos", "Produtos", "Cadastros", CRUD + ("exportar",)),
    Modulo("FormasPagamento", "Formas de Pagamento", "Cadastros", CRUD),
    Modulo("Cheques", "Cheques", "Financeiro", CRUD + ("exportar",)),
    Modulo("Creditos", "Créditos", "Financeiro", CRUD + ("exportar",)),
    Modulo("Pagamentos", "Contas a Pagar", "Financeiro", CRUD + ("liquidar", "exportar")),
    Modulo("CaixaDiario", "Caixa Diário", "Financeiro", ("visualizar", "adicionar", "editar", "exportar")),
    Modulo("Comissoes", "Comissões", "Financeiro", ("visualizar", "editar", "fechar", "exportar")),
    Modulo("Relatorios", "Relatórios", "Analytics", ("visualizar", "exportar")),
    Modulo("Balanco", "Balanço", "Analytics", ("visualizar", "exportar")),
    Modulo("Usuarios", "Usuários", "Admin", CRUD),
)

PERMISSOES_DESCRICOES = {
    "visualizar": "Ver",
    "adicionar": "Criar",
    "editar": "Editar",
    "excluir": "Excluir",
    "liquidar": "Liquidar",
    "fechar": "Fechar",
    "aprovar": "Aprovar",
    "juntar": "Juntar",
    "exportar": "Exportar",
}


def criar_permissoes_default() -> dict[str, dict[str, bool]]:
    return {m.nome: {perm: False for perm in m.permissoes} for m in MODULOS_CONFIG}


def tem_permissao(user: Optional[Mapping[str, Any]], modulo: str, acao: str) -> bool:
    if not user:
        return False
    if is_admin(dict(user)):
        return True
    permissoes = user.get("permissoes") or {}
    return bool((permissoes.get(modulo) or {}).get(acao))


def exigir_permissao(modulo: str, acao: str) -> Callable[..., dict]:
    """Dependency factory: the caller must be admin or hold ``modulo.acao``."""

    def _dependency(user: dict = Depends(require_user)) -> dict:
        if not tem_permissao(user, modulo, acao):
            raise HTTPException(status_code=403, detail=f"Sem permissão: {modulo}.{acao}")
        return user

    return _dependency
