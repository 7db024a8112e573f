"""
Date and currency helpers used by the routines and reports.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Any, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO strings (date-only or full timestamps) into aware datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value: Any) -> Optional[date]:
    dt = parse_datetime(value)
    return dt.date() if dt else None


def mes_ano(value: date) -> str:
    return value.strftime("%Y-%m")


def primeiro_dia(mes: str) -> date:
    year, month = (int(part) for part in mes.split("-")[:2])
    return date(year, month, 1)


def ultimo_dia(mes: str) -> date:
    inicio = primeiro_dia(mes)
    _, last = calendar.monthrange(inicio.year, inicio.month)
    return inicio.replace(day=last)


def somar_meses(mes: str, delta: int) -> str:
    inicio = primeiro_dia(mes)
    index = inicio.year * 12 + (inicio.month - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def to_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None or value == "":
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def formatar_moeda(valor: Any) -> str:
    """Format as Brazilian currency, e.g. ``R$ 1.234,56``."""
    texto = f"{to_float(valor):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {texto}"


def formatar_data_br(value: Any) -> str:
    dia = parse_date(value)
    return dia.strftime("%d/%m/%Y") if dia else "-"
