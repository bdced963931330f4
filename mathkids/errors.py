import enum
import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mathkids.db import StoreUnavailableError

logger = logging.getLogger(__name__)


class ErrorCode(enum.Enum):
    invalid_input = "invalid_input"
    invalid_credentials = "invalid_credentials"
    store_unavailable = "store_unavailable"
    invalid_or_expired_token = "invalid_or_expired_token"
    duplicate_resource = "duplicate_resource"
    admin_reset_forbidden = "admin_reset_forbidden"
    internal = "internal_error"


_DEFAULT_STATUS = {
    ErrorCode.invalid_input: 400,
    ErrorCode.invalid_credentials: 401,
    ErrorCode.store_unavailable: 503,
    ErrorCode.invalid_or_expired_token: 400,
    ErrorCode.duplicate_resource: 409,
    ErrorCode.admin_reset_forbidden: 403,
    ErrorCode.internal: 500,
}

STORE_UNAVAILABLE_MESSAGE = (
    "Database temporarily unavailable. Only the administrator account can sign in."
)


def service_error(
    code: ErrorCode,
    message: str,
    status_code: int | None = None,
    details=None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code or _DEFAULT_STATUS[code],
        detail={"code": code.value, "message": message, "details": details},
    )


def _error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        if exc.status_code >= 500:
            logger.warning(
                "%s %s failed with %s: %s", request.method, request.url.path, code, message
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(code, message, details),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        # exc.errors() ctx may contain raw Exception objects (not JSON-serialisable).
        errors = [
            {k: str(v) if k == "ctx" else v for k, v in err.items()}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_payload(
                ErrorCode.invalid_input.value, "Invalid or missing fields", errors
            ),
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.warning("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content=_error_payload(
                ErrorCode.store_unavailable.value, STORE_UNAVAILABLE_MESSAGE, None
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_payload(
                ErrorCode.internal.value, "Internal server error", None
            ),
        )
