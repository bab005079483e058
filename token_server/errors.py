"""
Error taxonomy for the token server and the handler that renders it.
Bodies follow the OAuth error shape: {"detail": {"error": ..., "error_description": ...}}.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TokenServerError(Exception):
    """Base class; carries the HTTP status and OAuth error code it maps to."""

    status_code = 500
    error = "server_error"

    def __init__(self, description: str = "", *, status_code: int | None = None, error: str | None = None):
        super().__init__(description)
        self.description = description
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error


class ValidationError(TokenServerError):
    """Malformed input: form fields, scope format, secret format, names."""

    status_code = 422
    error = "invalid_request"


class AuthenticationError(TokenServerError):
    """Signature rejected upstream, or verified identity differs from the claimed client."""

    status_code = 401
    error = "invalid_client"


class NotFoundError(TokenServerError):
    """A referenced resource, scope or role does not exist."""

    status_code = 404
    error = "not_found"


class ServiceUnavailableError(TokenServerError):
    """Identity service or store outage."""

    status_code = 503
    error = "temporarily_unavailable"


async def _handle_token_server_error(request: Request, exc: TokenServerError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.description)
    detail = {"error": exc.error}
    if exc.description:
        detail["error_description"] = exc.description
    return JSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TokenServerError, _handle_token_server_error)
