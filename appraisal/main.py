"""
FastAPI application entry point.

Configures logging, middleware, routes, and exception handlers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from appraisal.core.config import settings
from appraisal.core.errors import ErrorCode, StoreUnavailableError
from appraisal.core.permissions import get_permission_table

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    table = get_permission_table()
    logger.info(
        "Starting appraisal API in %s mode with %d permission rules",
        settings.ENVIRONMENT,
        sum(1 for _ in table.items()),
    )
    yield
    logger.info("Shutting down appraisal API")


app = FastAPI(
    title="Appraisal Core API",
    description="Organization access control and invitations",
    version="1.0.0",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": {
                "code": ErrorCode.INVALID_DATA.value,
                "message": "Invalid data provided.",
                "errors": [
                    {"loc": list(error["loc"]), "msg": error["msg"]}
                    for error in exc.errors()
                ],
            }
        },
    )


@app.exception_handler(StoreUnavailableError)
async def store_exception_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": {
                "code": ErrorCode.DATABASE_FAILURE.value,
                "message": "The database is currently unavailable. Please try again later.",
            }
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.DEBUG:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": {
                    "code": ErrorCode.INTERNAL_SERVER_ERROR.value,
                    "message": str(exc),
                    "type": type(exc).__name__,
                }
            },
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "code": ErrorCode.INTERNAL_SERVER_ERROR.value,
                "message": "An unexpected error occurred",
            }
        },
    )


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
    }


from appraisal.routers import invitations, invite_page, organizations  # noqa: E402

app.include_router(organizations.router, prefix="/api/v1/organizations", tags=["Organizations"])
app.include_router(invitations.router, prefix="/api/v1/organizations", tags=["Invitations"])
app.include_router(invite_page.router, tags=["Invite Page"])
