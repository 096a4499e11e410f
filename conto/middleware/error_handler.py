"""
Error handling middleware for FastAPI.
Every error leaves the API as {"error", "message", "details"?}.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from pymongo.errors import ConnectionFailure, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from conto.exceptions import AppError

logger = logging.getLogger(__name__)


def _request_extra(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


def add_exception_handlers(app: FastAPI) -> None:
    """
    Register the conto exception handlers.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{exc.__class__.__name__}: {exc.message}",
            extra={"status_code": exc.status_code, **_request_extra(request)}
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": jsonable_encoder(exc.details)
            }
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Query, path and body validation (account, baseAmount, page...)."""
        logger.warning(f"Validation error: {exc.errors()}", extra=_request_extra(request))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "ValidationError",
                "message": "Parametri della richiesta non validi",
                "details": jsonable_encoder(exc.errors())
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}", extra=_request_extra(request))
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "HTTPException", "message": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(PyMongoError)
    async def database_exception_handler(request: Request, exc: PyMongoError):
        """Mongo failures outside the per-row bulk insert handling."""
        unavailable = isinstance(exc, ConnectionFailure)
        logger.error(f"MongoDB error: {exc}", exc_info=True, extra=_request_extra(request))
        return JSONResponse(
            status_code=(
                status.HTTP_503_SERVICE_UNAVAILABLE if unavailable
                else status.HTTP_500_INTERNAL_SERVER_ERROR
            ),
            content={
                "error": "DatabaseError",
                "message": "Database non disponibile" if unavailable else "Operazione database fallita"
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True, extra=_request_extra(request))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "InternalServerError", "message": "Errore imprevisto"}
        )
