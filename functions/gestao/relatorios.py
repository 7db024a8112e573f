"""
Commission PDF reports rendered with reportlab.

``geral`` lists the net amount owed to each representative (used for PIX
transfers); ``analitico`` is the statement handed to a single representative.
"""

from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Any, Mapping, Optional, Sequence

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from gestao.config import get_settings
from gestao.errors import RegraNegocioError
from gestao.formatters import formatar_data_br, formatar_moeda, to_float
from gestao.types import ComissaoStatus

TIPOS = ("geral", "analitico")

MARGEM = 20 * mm
FECHADO = ComissaoStatus.FECHADO.value


def _marca_dagua(c: canvas.Canvas, texto: str, tamanho: int, cinza: float) -> None:
    width, height = A4
    c.saveState()
    c.setFillColorRGB(cinza, cinza, cinza)
    c.setFont("Helvetica-Bold", tamanho)
    c.translate(width / 2, height / 2)
    c.rotate(45)
    c.drawCentredString(0, 0, texto)
    c.restoreState()


def _geral(c: canvas.Canvas, mes_ano: str, representantes: Sequence[Mapping[str, Any]], agora: datetime) -> None:
    width, height = A4
    empresa = get_settings().empresa_nome

    def cabecalho() -> float:
        y = height - MARGEM
        c.setFont("Helvetica-Bold", 16)
        c.drawString(MARGEM, y, f"{empresa} - Relatório de Pagamentos")
        c.setFont("Helvetica", 10)
        c.drawString(MARGEM, y - 8 * mm, f"Referência: {mes_ano}")
        c.drawString(MARGEM, y - 13 * mm, f"Gerado em: {agora.strftime('%d/%m/%Y')}")
        if any(r.get("status") != FECHADO for r in representantes):
            _marca_dagua(c, "PRÉVIA", 40, 0.78)

        y -= 26 * mm
        c.setFont("Helvetica-Bold", 10)
        c.drawString(MARGEM, y, "Representante")
        c.drawString(100 * mm, y, "Chave PIX")
        c.drawRightString(width - MARGEM, y, "Valor a Pagar")
        c.setLineWidth(0.5)
        c.line(MARGEM, y - 2 * mm, width - MARGEM, y - 2 * mm)
        return y - 8 * mm

    y = cabecalho()
    for rep in representantes:
        if y < 25 * mm:
            c.showPage()
            y = cabecalho()
        c.setFont("Helvetica", 10)
        c.drawString(MARGEM, y, str(rep.get("nome") or "")[:30])
        c.drawString(100 * mm, y, str(rep.get("chave_pix") or "Não cadastrado")[:32])
        c.setFont("Courier", 10)
        c.drawRightString(width - MARGEM, y, formatar_moeda(rep.get("saldoAPagar")))
        y -= 7 * mm

    y -= 3 * mm
    c.setLineWidth(0.5)
    c.line(MARGEM, y, width - MARGEM, y)
    y -= 7 * mm
    total = sum(to_float(r.get("saldoAPagar")) for r in representantes)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(100 * mm, y, "TOTAL A PAGAR:")
    c.setFont("Courier-Bold", 12)
    c.drawRightString(width - MARGEM, y, formatar_moeda(total))


def _analitico(c: canvas.Canvas, mes_ano: str, rep: Mapping[str, Any], agora: datetime) -> None:
    width, height = A4
    direita = width - MARGEM

    def cabecalho() -> float:
        y = height - MARGEM
        c.setFont("Helvetica-Bold", 16)
        c.drawString(MARGEM, y, get_settings().empresa_nome)
        c.setFont("Helvetica", 10)
        c.drawString(MARGEM, y - 7 * mm, "Controle de Comissões")
        if rep.get("status") != FECHADO:
            _marca_dagua(c, "PRÉVIA DE FECHAMENTO", 44, 0.86)
        return y - 20 * mm

    def cabecalho_tabela(y: float) -> float:
        c.setFont("Helvetica-Bold", 9)
        c.drawString(MARGEM, y, "Data")
        c.drawString(45 * mm, y, "Nº Pedido")
        c.drawString(75 * mm, y, "Cliente")
        c.drawRightString(135 * mm, y, "Valor Venda")
        c.drawRightString(155 * mm, y, "%")
        c.drawRightString(direita, y, "Comissão")
        c.setLineWidth(0.5)
        c.line(MARGEM, y - 2 * mm, direita, y - 2 * mm)
        c.setFont("Helvetica", 9)
        return y - 8 * mm

    y = cabecalho()
    c.setFont("Helvetica-Bold", 12)
    c.drawString(MARGEM, y, f"Representante: {rep.get('nome') or ''}")
    c.setFont("Helvetica", 10)
    y -= 6 * mm
    c.drawString(MARGEM, y, f"Código: {rep.get('codigo')}")
    if rep.get("chave_pix"):
        y -= 6 * mm
        c.drawString(MARGEM, y, f"Chave PIX: {rep.get('chave_pix')}")
    y -= 6 * mm
    c.drawString(MARGEM, y, f"Período: {mes_ano}")

    y = cabecalho_tabela(y - 12 * mm)
    for pedido in rep.get("pedidos") or []:
        if y < 25 * mm:
            c.showPage()
            y = cabecalho_tabela(cabecalho())
        c.drawString(MARGEM, y, formatar_data_br(pedido.get("data_pagamento")) or "-")
        c.drawString(45 * mm, y, f"#{pedido.get('numero_pedido')}")
        c.drawString(75 * mm, y, str(pedido.get("cliente_nome") or "")[:20])
        c.drawRightString(135 * mm, y, formatar_moeda(pedido.get("valor_pedido")))
        c.drawRightString(155 * mm, y, f"{to_float(pedido.get('percentualComissao')):g}%")
        c.drawRightString(direita, y, formatar_moeda(pedido.get("valorComissao")))
        y -= 6 * mm

    if y < 70 * mm:
        c.showPage()
        y = cabecalho()

    y -= 6 * mm
    c.setLineWidth(0.5)
    c.line(MARGEM, y, direita, y)
    y -= 8 * mm
    c.setFont("Helvetica-Bold", 10)
    c.drawString(MARGEM, y, "RESUMO FINANCEIRO:")
    y -= 8 * mm

    linhas = [
        ("Total Vendas:", rep.get("totalVendas")),
        ("Comissão Bruta:", rep.get("totalComissoes")),
    ]
    if to_float(rep.get("vales")) > 0:
        linhas.append(("(-) Vales/Adiantamentos:", rep.get("vales")))
    if to_float(rep.get("outrosDescontos")) > 0:
        descricao = rep.get("descricaoDescontos")
        rotulo = f"(-) Outros Descontos ({descricao}):" if descricao else "(-) Outros Descontos:"
        linhas.append((rotulo, rep.get("outrosDescontos")))

    c.setFont("Helvetica", 10)
    for rotulo, valor in linhas:
        c.drawString(MARGEM, y, rotulo)
        c.drawRightString(direita, y, formatar_moeda(valor))
        y -= 6 * mm

    y -= 1 * mm
    c.setLineWidth(0.8)
    c.line(MARGEM, y, direita, y)
    y -= 7 * mm
    c.setFont("Helvetica-Bold", 12)
    c.drawString(MARGEM, y, "VALOR LÍQUIDO A RECEBER:")
    c.drawRightString(direita, y, formatar_moeda(rep.get("saldoAPagar")))

    if rep.get("observacoes"):
        y -= 12 * mm
        c.setFont("Helvetica-Bold", 10)
        c.drawString(MARGEM, y, "Observações:")
        c.setFont("Helvetica", 10)
        for linha in simpleSplit(str(rep["observacoes"]), "Helvetica", 10, direita - MARGEM):
            y -= 5 * mm
            c.drawString(MARGEM, y, linha)

    c.setFont("Helvetica", 8)
    c.drawCentredString(
        width / 2,
        12 * mm,
        f"Documento gerado automaticamente em {agora.strftime('%d/%m/%Y %H:%M:%S')}",
    )


def gerar_relatorio_comissoes(
    tipo: str,
    mes_ano: str,
    representantes: Optional[Sequence[Mapping[str, Any]]] = None,
    representante: Optional[Mapping[str, Any]] = None,
    agora: Optional[datetime] = None,
) -> bytes:
    """Render the report and return the PDF bytes."""
    if tipo not in TIPOS:
        raise RegraNegocioError("Tipo de relatório inválido")
    if tipo == "analitico" and not representante:
        raise RegraNegocioError("representante é obrigatório para o relatório analítico")

    agora = agora or datetime.now()
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"Comissões {tipo} {mes_ano}")

    if tipo == "geral":
        _geral(c, mes_ano, representantes or [], agora)
    else:
        _analitico(c, mes_ano, representante, agora)

    c.showPage()
    c.save()
    return buf.getvalue()


def nome_arquivo(tipo: str, mes_ano: str) -> str:
    return f"comissoes-{tipo}-{mes_ano}.pdf"
