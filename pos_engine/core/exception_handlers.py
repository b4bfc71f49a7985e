import logging
from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError

from pos_engine.core.errors import (
    InvalidOrderError,
    InvalidStateError,
    InvalidStockUpdateError,
    NotFoundError,
    OrderEngineError,
    TransactionAbortedError,
)
from pos_engine.schemas.response import ErrorDetail, ErrorResponse

log = logging.getLogger("api")

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    InvalidOrderError: status.HTTP_400_BAD_REQUEST,
    InvalidStockUpdateError: status.HTTP_400_BAD_REQUEST,
    TransactionAbortedError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error(status_code: int, code: str, message, details=None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


# ----------- Exception Handlers (called by FastAPI) -----------

def order_engine_exception_handler(request: Request, exc: OrderEngineError):
    """Handles domain errors raised by the order engine and inventory ledger."""
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        log.error(f"{exc.code} on path {request.url.path}: {exc.message}")
    else:
        log.warning(f"{exc.code} on path {request.url.path}: {exc.message}")
    return _error(status_code, exc.code, exc.message)


def http_exception_handler(request: Request, exc: HTTPException):
    """Handles exceptions raised by HTTPException (e.g., 404, 400)."""
    return _error(exc.status_code, "http_error", exc.detail)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handles Pydantic validation errors (422 Unprocessable Entity)."""
    return _error(422, "validation_error", "Invalid input data", details=jsonable_encoder(exc.errors()))


def generic_exception_handler(request: Request, exc: Exception):
    """Handles all unhandled exceptions (500 Internal Server Error)."""
    # Log the full traceback for debugging purposes
    log.exception(f"Unhandled exception on path: {request.url.path}", exc_info=exc)
    return _error(500, "server_error", "Internal Server Error")


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(OrderEngineError, order_engine_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
