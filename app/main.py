import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.db import base as _models  # noqa: F401  registers every model on Base.metadata
from app.api.v1.admin.router import router as admin_router
from app.api.v1.auth.router import router as auth_router
from app.api.v1.pumps.router import router as pumps_router
from app.api.v1.pumps.router import station_pumps_router
from app.api.v1.stations.router import router as stations_router
from app.api.v1.verifications.router import pump_verifications_router
from app.api.v1.verifications.router import router as verifications_router
from app.core.config import settings
from app.core.exceptions import STATUS_CODE_TO_ERROR_CODE, ServiceError
from app.core.rate_limit import RateLimiter, enforce_rate_limit
from app.core.schemas import ErrorInfo, ErrorResponse, HealthStatus
from app.core.time_utils import utcnow
from app.db.session import Database

API_TITLE = "Gas Station RFID API"
API_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def _error_body(code: str, message: str, details=None) -> dict:
    return ErrorResponse(error=ErrorInfo(code=code, message=message, details=details)).model_dump(mode="json")


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, exc.details),
        headers=exc.headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=_error_body("VALIDATION_ERROR", "Invalid input data", details))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    fallback = "INTERNAL_ERROR" if exc.status_code >= 500 else "HTTP_ERROR"
    code = STATUS_CODE_TO_ERROR_CODE.get(exc.status_code, fallback)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"))


def create_app(database: Optional[Database] = None) -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())

    db = database or Database(settings.database_url, echo=settings.sql_echo)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Connecting to database...")
        await db.connect()
        yield
        logger.info("Closing database connections...")
        await db.disconnect()

    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        lifespan=lifespan,
        dependencies=[Depends(enforce_rate_limit)],
    )
    app.state.database = db
    app.state.rate_limiter = RateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/health", tags=["health"], response_model=HealthStatus)
    async def health_check() -> HealthStatus:
        return HealthStatus(
            status="ok",
            version=API_VERSION,
            database="connected" if await db.ping() else "unavailable",
            timestamp=utcnow(),
        )

    @app.get("/", tags=["health"])
    async def root():
        return {
            "message": API_TITLE,
            "version": API_VERSION,
            "documentation": "/docs",
            "health": "/health",
            "api": "/api/v1",
        }

    @app.get("/api/v1", tags=["health"])
    async def api_index():
        return {
            "message": f"{API_TITLE} v1",
            "endpoints": {
                "auth": {
                    "login": "POST /api/v1/auth/login",
                    "logout": "POST /api/v1/auth/logout",
                    "me": "GET /api/v1/auth/me",
                },
                "stations": {
                    "list": "GET /api/v1/stations",
                    "get": "GET /api/v1/stations/{station_id}",
                    "create": "POST /api/v1/stations",
                    "update": "PUT /api/v1/stations/{station_id}",
                    "delete": "DELETE /api/v1/stations/{station_id}",
                    "pumps": "GET|POST /api/v1/stations/{station_id}/pumps",
                },
                "pumps": {
                    "list": "GET /api/v1/pumps",
                    "get": "GET /api/v1/pumps/{pump_id}",
                    "update": "PUT /api/v1/pumps/{pump_id}",
                    "delete": "DELETE /api/v1/pumps/{pump_id}",
                    "tags": "POST /api/v1/pumps/{pump_id}/tags",
                    "verify": "POST /api/v1/pumps/{pump_id}/verify",
                    "verifications": "GET /api/v1/pumps/{pump_id}/verifications",
                },
                "verifications": {
                    "get": "GET /api/v1/verifications/{session_id}",
                },
                "admin": {
                    "analytics": "GET /api/v1/admin/analytics",
                    "audit_logs": "GET /api/v1/admin/audit-logs",
                    "verifications": "GET /api/v1/admin/verifications/all",
                    "station_logs": "GET /api/v1/admin/stations/{station_id}/logs",
                },
            },
        }

    # Routers
    app.include_router(auth_router)
    app.include_router(stations_router)
    app.include_router(station_pumps_router)
    app.include_router(pumps_router)
    app.include_router(pump_verifications_router)
    app.include_router(verifications_router)
    app.include_router(admin_router)

    return app


app = create_app()
