import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from config import settings
from middleware import AccessLogger, AccessLogMiddleware, memory_usage_mb, run_log_rotation, setup_logging
from routers import (
    auth, users, donors, recipients, hospitals, inventory, requests,
    campaigns, notifications, webhooks, reports, dashboard
)
from services import SMSConfigurationError, EmailConfigurationError

setup_logging()
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

access_logger = None
if settings.ACCESS_LOG_ENABLED:
    access_logger = AccessLogger(settings.LOG_DIR)
    access_logger.all_channels()
    if settings.is_development:
        access_logger.development()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await database.create_indexes()
    except PyMongoError as exc:
        logger.error("Could not create database indexes: %s", exc)

    rotation = None
    if access_logger is not None and settings.LOG_ROTATION_ENABLED:
        rotation = asyncio.create_task(
            run_log_rotation(access_logger, settings.LOG_MAX_BYTES, settings.LOG_RETENTION_DAYS)
        )
    logger.info("Blood Bank API %s started (%s)", settings.APP_VERSION, settings.ENVIRONMENT)

    yield

    if rotation is not None:
        rotation.cancel()
    if access_logger is not None:
        access_logger.close()
    database.close()


app = FastAPI(title="Blood Bank Management System API", version=settings.APP_VERSION, lifespan=lifespan)

api_router = APIRouter(prefix="/api")
for module in (
    auth, users, donors, recipients, hospitals, inventory, requests,
    campaigns, notifications, webhooks, reports, dashboard
):
    api_router.include_router(module.router)
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
if access_logger is not None:
    app.add_middleware(AccessLogMiddleware, access_logger=access_logger)


@app.get("/health", tags=["Health"])
async def health():
    body = {
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 2),
        "memory_usage_mb": memory_usage_mb(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }
    try:
        body["database"] = await database.health_check()
    except PyMongoError as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"success": False, "status": "unhealthy", "database": {"status": "disconnected"}, **body},
        )
    return {"success": True, "status": "healthy", **body}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        content = {"success": False, "message": f"Route {request.url.path} not found"}
    elif isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation failed", "errors": errors})


@app.exception_handler(SMSConfigurationError)
@app.exception_handler(EmailConfigurationError)
async def configuration_exception_handler(request: Request, exc):
    return JSONResponse(status_code=503, content={"success": False, "message": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Internal server error"}
    if settings.is_development:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)
