"""BizFlow Backend - Main FastAPI Application

Multi-tenant ERP/CRM platform

This module creates and configures the FastAPI application, including:
- All API routers (auth, tenancy, CRM, ERP, HR, website, automation)
- Middleware (request ID correlation, tenant context, CORS)
- Exception handlers producing the shared JSON error envelope
- Health and observability endpoints
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from exceptions import DomainError, error_body, error_code_for_status, group_validation_errors

# Observability
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.request_id import current_request_id
from observability.router import router as observability_router

# Authentication & Authorization
from auth.router import router as auth_router
from users.router import router as users_router
from roles.router import router as roles_router

# Tenancy
from tenancy.middleware import TenantContextMiddleware
from tenancy.router import current_router as current_tenant_router
from tenancy.router import router as tenancy_router

# CRM
from leads.router import router as leads_router
from contacts.router import router as contacts_router
from deals.router import router as deals_router

# ERP
from catalog.router import router as products_router
from invoices.router import router as invoices_router
from payments.router import router as payments_router

# HR
from attendance.router import router as attendance_router

# Website builder
from website.router import public_router as public_website_router
from website.router import router as website_router

# Automation, integrations and notifications
from workflows.router import router as workflows_router
from webhooks.router import router as webhooks_router
from notifications.router import router as notifications_router

# Audit
from audit.router import router as audit_router

# Binds shared tasks to the configured broker
from workers.celery_app import celery_app  # noqa: F401

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"{settings.APP_NAME} API starting up (env={settings.ENV})")
    yield
    logger.info(f"{settings.APP_NAME} API shutting down")


def _request_id(request: Request) -> Any:
    return getattr(request.state, "request_id", None) or current_request_id()


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Business rule violations raised by services."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, exc.errors, _request_id(request)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    errors = exc.detail if not isinstance(exc.detail, str) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, error_code_for_status(exc.status_code), errors, _request_id(request)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Pydantic validation errors, grouped by field."""
    logger.warning(f"Validation error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            "The given data was invalid.",
            "VALIDATION_ERROR",
            group_validation_errors(exc.errors()),
            _request_id(request),
        ),
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Logs the full error but returns a generic message."""
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "A database error occurred. Please try again later.", "SERVER_ERROR", request_id=_request_id(request)
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "An unexpected error occurred. Please try again later.", "SERVER_ERROR", request_id=_request_id(request)
        ),
    )


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app() -> FastAPI:
    """Build the configured FastAPI application."""
    docs_enabled = not settings.is_production
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Multi-tenant ERP/CRM platform",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    # Starlette runs the last added middleware first
    app.add_middleware(TenantContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Observability (health, metrics, ready)
    app.include_router(observability_router)

    for router in (
        auth_router,
        users_router,
        roles_router,
        tenancy_router,
        current_tenant_router,
        leads_router,
        contacts_router,
        deals_router,
        products_router,
        invoices_router,
        payments_router,
        attendance_router,
        website_router,
        public_website_router,
        workflows_router,
        webhooks_router,
        notifications_router,
        audit_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "name": f"{settings.APP_NAME} API",
            "version": "0.1.0",
            "status": "running",
            "docs": "/docs" if docs_enabled else None,
        }

    return app


configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENV == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
