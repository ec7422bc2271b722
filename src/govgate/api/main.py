from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from govgate.api.routes import actions, approvals, audit, budgets, config, health
from govgate.config import get_settings
from govgate.core.errors import (
    ApprovalError,
    ApprovalNotFoundError,
    AuditIntegrityError,
    ConfigurationError,
    GovGateError,
    InvalidSignatureError,
    NotSubmitterError,
    UnauthorizedApproverError,
    ValidationError,
)
from govgate.gateway import GovernanceGateway, build_gateway
from govgate.logging import configure_logging

logger = structlog.get_logger()

_STATUS_BY_ERROR: list[tuple[type[GovGateError], int]] = [
    (ApprovalNotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedApproverError, status.HTTP_403_FORBIDDEN),
    (InvalidSignatureError, status.HTTP_403_FORBIDDEN),
    (NotSubmitterError, status.HTTP_403_FORBIDDEN),
    (ApprovalError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (AuditIntegrityError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: GovGateError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def gateway_error_handler(request: Request, exc: GovGateError) -> JSONResponse:
    code = status_for(exc)
    logger.warning(
        "api_request_refused",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=code,
    )
    body = {"detail": exc.message, "error": type(exc).__name__, "details": exc.details}
    if isinstance(exc, ApprovalError):
        body["reason_code"] = exc.reason_code
    return JSONResponse(status_code=code, content=body)


def create_app(gateway: GovernanceGateway | None = None) -> FastAPI:
    """
    Build the API application.

    When no gateway is given one is built from settings at startup and
    closed at shutdown.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.gateway is None
        if owned:
            configure_logging(settings.log_level)
            app.state.gateway = build_gateway(settings)
        yield
        if owned:
            app.state.gateway.close()
            app.state.gateway = None

    app = FastAPI(
        title="GovGate API",
        version="0.1.0",
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    app.add_exception_handler(GovGateError, gateway_error_handler)

    app.include_router(actions.router, prefix=settings.api_prefix, tags=["actions"])
    app.include_router(approvals.router, prefix=settings.api_prefix, tags=["approvals"])
    app.include_router(budgets.router, prefix=settings.api_prefix, tags=["budgets"])
    app.include_router(audit.router, prefix=settings.api_prefix, tags=["audit"])
    app.include_router(config.router, prefix=settings.api_prefix, tags=["config"])
    app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
    return app


app = create_app()
