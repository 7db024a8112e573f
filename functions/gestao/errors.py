"""
Domain exceptions and their HTTP translation.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gestao.db import RecordNotFound

logger = logging.getLogger(__name__)


class RegraNegocioError(ValueError):
    """Invalid input or a business rule refusing the operation (HTTP 400)."""


class ConflitoError(ValueError):
    """Operation conflicts with the current record state (HTTP 409)."""


def _json_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _invalid_payload(request: Request, exc: RequestValidationError):
        # The rejected input may be NaN or Infinity, which JSON cannot carry.
        erros = [
            {key: value for key, value in erro.items() if key not in ("input", "ctx")}
            for erro in exc.errors()
        ]
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(erros)})

    @app.exception_handler(RecordNotFound)
    async def _not_found(request: Request, exc: RecordNotFound):
        return _json_error(404, str(exc))

    @app.exception_handler(ConflitoError)
    async def _conflict(request: Request, exc: ConflitoError):
        return _json_error(409, str(exc))

    @app.exception_handler(RegraNegocioError)
    async def _bad_request(request: Request, exc: RegraNegocioError):
        return _json_error(400, str(exc))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s: %s", request.url.path, exc)
        return _json_error(500, str(exc))
