import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine.url import make_url
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.auth.router import legacy_router as legacy_auth_router
from app.auth.router import router as auth_router
from app.core.config import settings
from app.core.errors import (
    GatewayError,
    gateway_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.db.init_db import init_db
from app.functions.router import router as functions_router
from app.rest.router import router as rest_router
from app.rpc.router import router as rpc_router
from app.storage.router import router as storage_router
from app.system.router import router as system_router

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="FlowPulse Gateway",
    version=settings.APP_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Prefer", "apikey", "x-client-info"],
    expose_headers=["Content-Range"],
)

app.add_exception_handler(GatewayError, gateway_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.on_event("startup")
def on_startup() -> None:
    db_url = make_url(settings.DATABASE_URL)
    logger.info(
        "Config sanity: env=%s db_host=%s cors_origins=%s token_ttl_s=%s upstream_session_ttl_s=%s",
        settings.ENV,
        db_url.host or "local",
        len(settings.CORS_ORIGINS),
        settings.JWT_EXPIRY_SECONDS,
        settings.ZABBIX_SESSION_TTL_SECONDS,
    )
    init_db()


# --- Routers ---
app.include_router(auth_router, prefix="/auth/v1", tags=["auth"])
app.include_router(legacy_auth_router, tags=["auth"])
# rpc before the relation catch-all
app.include_router(rpc_router, prefix="/rest/v1/rpc", tags=["rpc"])
app.include_router(rest_router, prefix="/rest/v1", tags=["rest"])
app.include_router(functions_router, prefix="/functions/v1", tags=["functions"])
app.include_router(storage_router, prefix="/storage/v1", tags=["storage"])
app.include_router(system_router, tags=["system"])
