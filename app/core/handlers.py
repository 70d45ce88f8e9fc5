"""
Exception handlers mapping errors to JSON responses.

Every access control failure is rendered as {"error": <code>, "detail": <message>}.
Body and query validation failures keep the flat {<field>: <message>} shape.
"""
from fastapi import FastAPI, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.errors import AccessControlError, InconsistentStateError
from app.utils import get_logger


log = get_logger(__name__)


async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> Response:
    errors = {}
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1] if error["loc"] else "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=jsonable_encoder(errors))


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    log.info("%s %s rate limited (%s)", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": "RATE_LIMITED", "detail": f"Rate limit exceeded: {exc.detail}"},
    )


async def access_control_exception_handler(request: Request, exc: AccessControlError) -> Response:
    if isinstance(exc, InconsistentStateError):
        # Operators must reconcile stored state by hand
        log.critical("%s %s: %s", request.method, request.url.path, exc.message)
    else:
        log.info("%s %s rejected: %s %s", request.method, request.url.path, exc.error_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "detail": exc.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(AccessControlError, access_control_exception_handler)
