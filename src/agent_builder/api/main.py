"""Entry point for the Agent Builder HTTP API."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import ErrorKind, ServiceError, as_service_error, error_body, log_error
from .routes import router

LOGGER = logging.getLogger("agent_builder.api")


def create_app() -> FastAPI:
    app = FastAPI(title="Agent Builder API", version=__version__)
    app.include_router(router, prefix="/api")

    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError) -> JSONResponse:
        log_error(LOGGER, exc, f"{request.method} {request.url.path}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
            for error in exc.errors()
        ]
        error = ServiceError(ErrorKind.VALIDATION, "Invalid request", {"errors": jsonable_encoder(errors)})
        log_error(LOGGER, error, f"{request.method} {request.url.path}")
        return JSONResponse(status_code=error.status_code, content=error_body(error))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        error = as_service_error(exc)
        log_error(LOGGER, error, f"{request.method} {request.url.path}")
        return JSONResponse(status_code=error.status_code, content=error_body(error))

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"service": "agent-builder-api"}

    return app


app = create_app()
