"""Exception handlers translating error kinds to HTTP responses"""

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, OperationalError

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.schemas.oauth import TokenErrorResponse

OAUTH2_PREFIX = "/oauth2"

# RFC 6749 / RFC 6750 error code and status per kind
OAUTH2_ERRORS: dict[ErrorKind, tuple[str, int]] = {
    ErrorKind.INVALID_CLIENT: ("invalid_client", 401),
    ErrorKind.INVALID_GRANT: ("invalid_grant", 400),
    ErrorKind.REDIRECT_MISMATCH: ("invalid_grant", 400),
    ErrorKind.UNSUPPORTED_GRANT_TYPE: ("unsupported_grant_type", 400),
    ErrorKind.INVALID_SCOPE: ("invalid_scope", 400),
    ErrorKind.INVALID_REDIRECT: ("invalid_request", 400),
    ErrorKind.INVALID_GRANT_TYPE: ("invalid_request", 400),
    ErrorKind.INVALID_TOKEN: ("invalid_token", 401),
    ErrorKind.EXPIRED: ("invalid_token", 401),
    ErrorKind.REVOKED: ("invalid_token", 401),
    ErrorKind.NOT_FOUND: ("invalid_request", 404),
    ErrorKind.UNAVAILABLE: ("temporarily_unavailable", 503),
}


def oauth2_error_response(error: AuthError) -> JSONResponse:
    """OAuth2 shaped error body for an AuthError"""
    code, status_code = OAUTH2_ERRORS.get(error.kind, ("invalid_request", 400))
    headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}
    if status_code == 401:
        headers["WWW-Authenticate"] = "Bearer" if code == "invalid_token" else "Basic"
    return JSONResponse(
        status_code=status_code,
        content=TokenErrorResponse(error=code, error_description=error.message).model_dump(exclude_none=True),
        headers=headers,
    )


def error_response(request: Request, error: AuthError) -> JSONResponse:
    if request.url.path.startswith(OAUTH2_PREFIX):
        return oauth2_error_response(error)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for error kinds and store failures"""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            f"Request failed: {exc.kind.value}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_kind": exc.kind.value,
            },
        )
        return error_response(request, exc)

    @app.exception_handler(OperationalError)
    @app.exception_handler(DBAPIError)
    @app.exception_handler(TimeoutError)
    async def handle_store_unavailable(request: Request, exc: Exception):
        logger.error(
            f"Store unavailable: {type(exc).__name__}: {exc}",
            extra={"path": request.url.path, "method": request.method},
        )
        error = AuthError(ErrorKind.UNAVAILABLE, "Service temporarily unavailable, retry later")
        response = error_response(request, error)
        response.headers["Retry-After"] = "1"
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        if request.url.path.startswith(OAUTH2_PREFIX):
            return JSONResponse(
                status_code=400,
                content=TokenErrorResponse(
                    error="invalid_request",
                    error_description="Missing or malformed parameters",
                ).model_dump(exclude_none=True),
            )
        return await request_validation_exception_handler(request, exc)
