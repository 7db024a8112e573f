"""
User presence (online/offline) tracking driven by client heartbeats.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from gestao.db import EntityStore
from gestao.formatters import parse_datetime
from gestao.types import Entity

ONLINE = "online"
OFFLINE = "offline"
JANELA_ONLINE = timedelta(minutes=2)


def heartbeat(
    store: EntityStore,
    user: Mapping[str, Any],
    plataforma: Optional[str] = None,
    agora: Optional[datetime] = None,
) -> dict:
    agora_iso = (agora or datetime.now(timezone.utc)).isoformat()
    plataforma = plataforma or "web"
    email = user.get("email")

    existentes = store.filter(Entity.PRESENCA, {"email": email})
    if existentes:
        store.update(
            Entity.PRESENCA,
            existentes[0]["id"],
            {"status": ONLINE, "ultimo_ping": agora_iso, "plataforma": plataforma},
        )
    else:
        store.create(
            Entity.PRESENCA,
            {
                "email": email,
                "nome": user.get("full_name") or (email or "").split("@")[0],
                "foto_url": user.get("avatar_url") or "",
                "status": ONLINE,
                "ultimo_ping": agora_iso,
                "plataforma": plataforma,
            },
        )
    return {"ok": True, "status": ONLINE, "timestamp": agora_iso}


def offline(store: EntityStore, user: Mapping[str, Any], agora: Optional[datetime] = None) -> dict:
    existentes = store.filter(Entity.PRESENCA, {"email": user.get("email")})
    if existentes:
        store.update(
            Entity.PRESENCA,
            existentes[0]["id"],
            {
                "status": OFFLINE,
                "ultimo_ping": (agora or datetime.now(timezone.utc)).isoformat(),
            },
        )
    return {"ok": True, "status": OFFLINE}


def listar_online(
    store: EntityStore,
    agora: Optional[datetime] = None,
    janela: timedelta = JANELA_ONLINE,
) -> list[dict]:
    """Presences still pinging; stale ``online`` records count as offline."""
    limite = (agora or datetime.now(timezone.utc)) - janela
    online = []
    for presenca in store.filter(Entity.PRESENCA, {"status": ONLINE}):
        ping = parse_datetime(presenca.get("ultimo_ping"))
        if ping and ping >= limite:
            online.append(presenca)
    return online
