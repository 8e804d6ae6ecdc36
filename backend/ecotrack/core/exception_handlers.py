from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ecotrack.api.dto.response_format import ErrorResponse
from ecotrack.core.errors import EcoTrackError
from ecotrack.core.logging_config import get_loggers, log_context


def _error(status_code: int, code: str, message: Any, headers: Optional[Mapping[str, str]] = None, **extra: Any) -> JSONResponse:
    body = ErrorResponse.from_detail({"code": code, "message": message, **extra})
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI):
    """Enregistre les gestionnaires globaux : toute erreur sort au format `ErrorResponse`.

    - `EcoTrackError` -> statut porté par l'exception (400/403/404/409/503)
    - `HTTPException` -> `HTTP_<status>` (ex. 401 sans jeton)
    - erreurs de validation FastAPI -> 422
    - le reste -> 500, journalisé, sans détail interne
    """

    @app.exception_handler(EcoTrackError)
    async def domain_exception_handler(request: Request, exc: EcoTrackError):
        return JSONResponse(status_code=exc.status_code, content=ErrorResponse.from_exception(exc).model_dump())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, f"HTTP_{exc.status_code}", exc.detail, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return _error(422, "VALIDATION_ERROR", "Validation failed", details=details)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        _, logger_errors = get_loggers()
        logger_errors.error(
            f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}",
            extra=log_context("http", path=request.url.path),
        )
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred")
