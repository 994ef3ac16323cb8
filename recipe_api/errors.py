import logging
from typing import List, Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base for errors that map onto a client-facing status code."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None, status_code: Optional[int] = None):
        self.message = message
        self.errors = list(errors or [])
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404

class InvalidInputError(AppError):
    status_code = 400

class UnauthorizedError(AppError):
    status_code = 403

class LimitExceededError(AppError):
    status_code = 400

class InternalError(AppError):
    status_code = 500

class StorageError(InternalError):
    pass


def register_error_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
            body = {"detail": "Internal server error"}
        else:
            body = {"detail": exc.message}
            if exc.errors:
                body["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
