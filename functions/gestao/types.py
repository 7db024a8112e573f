"""
Status vocabularies and entity names shared across the backend.
"""

from enum import Enum


class Entity(str, Enum):
    PEDIDO = "Pedido"
    PORT = "Port"
    NOTIFICACAO = "Notificacao"
    USER = "User"
    PRESENCA = "Presenca"
    SYNC_JOB = "SyncJob"
    COMMISSION_ENTRY = "CommissionEntry"
    REPRESENTANTE = "Representante"
    LIQUIDACAO_PENDENTE = "LiquidacaoPendente"


class PedidoStatus(str, Enum):
    AGUARDANDO = "aguardando"
    ABERTO = "aberto"
    PARCIAL = "parcial"
    PAGO = "pago"
    CANCELADO = "cancelado"


class PortStatus(str, Enum):
    AGUARDANDO_VINCULO = "aguardando_vinculo"
    AGUARDANDO_SEPARACAO = "aguardando_separacao"
    EM_SEPARACAO = "em_separacao"
    AGUARDANDO_LIQUIDACAO = "aguardando_liquidacao"
    FINALIZADO = "finalizado"
    CANCELADO = "cancelado"


class ComissaoStatus(str, Enum):
    ABERTO = "aberto"
    FECHADO = "fechado"


class SyncJobStatus(str, Enum):
    PENDENTE = "pendente"
    PROCESSANDO = "processando"
    CONCLUIDO = "concluido"
    ERRO = "erro"


class Prioridade(str, Enum):
    BAIXA = "baixa"
    MEDIA = "media"
    ALTA = "alta"


SYNC_COMISSOES = "sincronizar_comissoes"
ROLE_ADMIN = "admin"
