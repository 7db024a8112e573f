"""
Caller identity and role gates.

Callers authenticate with ``Authorization: Bearer <token>``; the token is
matched against ``User.api_token``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

from gestao.db import EntityStore
from gestao.dependencies import get_store
from gestao.types import ROLE_ADMIN, Entity


def _extract_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def find_user_by_token(store: EntityStore, token: str) -> Optional[dict]:
    users = store.filter(Entity.USER, {"api_token": token})
    return users[0] if users else None


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == ROLE_ADMIN


def require_user(
    authorization: Optional[str] = Header(None),
    store: EntityStore = Depends(get_store),
) -> dict:
    token = _extract_token(authorization)
    user = find_user_by_token(store, token) if token else None
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user: dict = Depends(require_user)) -> dict:
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Unauthorized - Admin only")
    return user


def list_admins(store: EntityStore) -> list[dict]:
    return [u for u in store.list(Entity.USER) if u.get("role") == ROLE_ADMIN]
