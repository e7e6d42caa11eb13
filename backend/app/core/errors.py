import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    status_code = 500
    code = "server_error"

    def __init__(self, message: str | None = None, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class NotAuthenticated(GatewayError):
    status_code = 401
    code = "not_authenticated"


class InvalidGrant(GatewayError):
    status_code = 400
    code = "invalid_grant"


class Forbidden(GatewayError):
    status_code = 403
    code = "forbidden"


class RelationNotFound(GatewayError):
    status_code = 404
    code = "relation_not_found"


class FunctionNotFound(GatewayError):
    status_code = 404
    code = "not_found"


class ValidationFailed(GatewayError):
    status_code = 400
    code = "validation"


class Conflict(GatewayError):
    status_code = 409
    code = "conflict"


class TooManyAttempts(GatewayError):
    status_code = 429
    code = "too_many_attempts"


class UpstreamUnreachable(GatewayError):
    status_code = 502
    code = "upstream_unreachable"


class UpstreamError(GatewayError):
    status_code = 502
    code = "upstream_error"


def error_body(code: str, message: str) -> dict:
    return {"error": code, "message": message}


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(content=error_body(exc.code, exc.message), status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = {401: "not_authenticated", 403: "forbidden", 404: "not_found"}.get(exc.status_code, "http_error")
    return JSONResponse(
        content=error_body(code, str(exc.detail)),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    message = "Invalid request: " + ", ".join(f for f in fields if f) if fields else "Invalid request"
    return JSONResponse(content=error_body("validation", message), status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never echo internals; the traceback stays in the server log.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(content=error_body("server_error", "Internal server error"), status_code=500)
