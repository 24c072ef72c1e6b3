"""Exception types raised by route handlers and the handlers that turn every
failure into the ``{success, message, errors?}`` envelope."""
import logging
import re
from contextlib import contextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskmanager import config
from taskmanager.utils.auth import ConfigurationError
from taskmanager.utils.responses import failure

logger = logging.getLogger(__name__)

_UNIQUE_COLUMN = re.compile(r"(?:UNIQUE constraint failed: \w+\.(\w+)|Key \((\w+)\)=)")


class ServerError(Exception):
    """A fault inside a handler, reported as a 500 with a public message."""

    def __init__(self, message: str, cause: BaseException = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


@contextmanager
def persistence_guard(db, message: str):
    """Roll back and downgrade database faults to a ServerError.

    HTTP errors raised inside the block pass through untouched.
    """
    try:
        yield
    except IntegrityError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(message)
        raise ServerError(message, e) from e


def _debug_fields(exc: BaseException) -> dict:
    if exc is None or not config.is_development():
        return {}
    return {"error": str(exc)}


def _validation_errors(exc: RequestValidationError) -> list:
    out = []
    for err in exc.errors():
        loc = list(err.get("loc", ()))
        location = str(loc[0]) if loc else "body"
        field = ".".join(str(p) for p in loc[1:])
        out.append({"field": field, "message": err.get("msg", "Invalid value"), "location": location})
    return out


def duplicate_field(exc: IntegrityError) -> str:
    match = _UNIQUE_COLUMN.search(str(exc.orig))
    if match:
        return match.group(1) or match.group(2)
    return "value"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=failure("Validation failed", errors=_validation_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        # starlette's own 404 for paths no route matches
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            message = "Route not found"
        return JSONResponse(
            status_code=exc.status_code,
            content=failure(str(message)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        field = duplicate_field(exc)
        logger.warning("integrity error on %s %s: %s", request.method, request.url.path, field)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=failure(f"{field} already exists"),
        )

    @app.exception_handler(ServerError)
    async def server_error_handler(request: Request, exc: ServerError):
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure(exc.message, **_debug_fields(exc.cause)),
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.critical("configuration error: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure("Server configuration error", **_debug_fields(exc)),
        )

    # Generic error handler to return JSON errors for unexpected exceptions
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure("Internal server error", **_debug_fields(exc)),
        )
