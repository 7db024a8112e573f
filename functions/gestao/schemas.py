"""
Pydantic schemas for the FastAPI backend.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class RoutineResponse(BaseModel):
    success: bool
    ports_verificados: Optional[int] = None
    ports_atualizados: Optional[int] = None
    vinculacoes_realizadas: Optional[int] = None


class PortItemPayload(BaseModel):
    numero_pedido_manual: Optional[Union[str, int]] = None
    valor_alocado: Optional[float] = None


class PortCreateRequest(BaseModel):
    cliente_codigo: Optional[Union[str, int]] = None
    cliente_nome: Optional[str] = None
    observacao: Optional[str] = None
    itens_port: list[PortItemPayload] = Field(default_factory=list)


class PagamentoRequest(BaseModel):
    valor: float = Field(..., gt=0, allow_inf_nan=False)


class NotificacaoRequest(BaseModel):
    tipo: Optional[str] = None
    titulo: Optional[str] = None
    mensagem: Optional[str] = None
    destinatario_email: Optional[str] = None
    destinatario_role: Optional[str] = None
    entidade_referencia: Optional[str] = None
    entidade_id: Optional[str] = None
    link: Optional[str] = None
    prioridade: Optional[str] = None


class NotificacaoEventoRequest(BaseModel):
    tipo: Optional[str] = None
    titulo: Optional[str] = None
    mensagem: Optional[str] = None
    entidade_referencia: Optional[str] = None
    entidade_id: Optional[str] = None
    link: Optional[str] = None
    prioridade: Literal["baixa", "media", "alta"] = "media"
    apenas_admins: bool = True
    destinatario_email: Optional[str] = None


class NotificacaoEventoResponse(BaseModel):
    success: bool
    count: int


class LiquidacaoPendenteRequest(BaseModel):
    liquidacao_id: Optional[str] = None


class HeartbeatRequest(BaseModel):
    plataforma: Optional[str] = None


class PresencaResponse(BaseModel):
    ok: bool
    status: str
    timestamp: Optional[str] = None


class GerarComissaoRequest(BaseModel):
    pedido_id: Optional[str] = None


class AtualizarComissaoRequest(BaseModel):
    action: Optional[str] = None
    entry_id: Optional[str] = None
    pedido_id: Optional[str] = None
    # Left loose so non-numeric input reaches the 400 check.
    valor_base: Optional[Any] = None
    percentual: Optional[Any] = None
    novo_representante_codigo: Optional[Union[str, int]] = None


class PostergarRequest(BaseModel):
    entry_id: str


class AnteciparRequest(BaseModel):
    entry_ids: list[str]
    mes_competencia: str = Field(..., pattern=r"^\d{4}-\d{2}$")


class FecharMesRequest(BaseModel):
    mes_competencia: str = Field(..., pattern=r"^\d{4}-\d{2}$")


class FecharMesResponse(BaseModel):
    total: int
    data: str


class DispatchResponse(BaseModel):
    status: Literal["accepted", "already_running"]
    message: str
    job_id: str


class SyncWorkerRequest(BaseModel):
    job_id: Optional[str] = None


class SyncJobResponse(BaseModel):
    id: str
    tipo: str
    status: str
    solicitado_por: Optional[str] = None
    iniciado_em: Optional[str] = None
    concluido_em: Optional[str] = None
    resultado: Optional[dict] = None
    erro_mensagem: Optional[str] = None


class RelatorioRequest(BaseModel):
    tipo: str
    mes_ano: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    representantes: Optional[list[dict]] = None
    representante: Optional[dict] = None
    # When the statement is not supplied it is built from stored entries.
    representante_codigo: Optional[Union[str, int]] = None
    vales: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    outros_descontos: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    descricao_descontos: Optional[str] = None
    observacoes: Optional[str] = None


class ModuloResponse(BaseModel):
    nome: str
    label: str
    grupo: str
    permissoes: list[str]


class PermissoesResponse(BaseModel):
    modulos: list[ModuloResponse]
    descricoes: dict[str, str]
    default: dict[str, dict[str, bool]]
