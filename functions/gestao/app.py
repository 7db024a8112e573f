"""
FastAPI application entry point.
"""

from __future__ import annotations

from fastapi import FastAPI

from gestao.config import get_settings
from gestao.errors import register_exception_handlers
from gestao.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="J&C Gestão Backend (FastAPI)", version="0.1.0")
    register_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
