"""FastAPI middleware utilities for request tracing, logging and error mapping"""
import uuid
from typing import Callable
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import time

from .exceptions import AgriSmartError
from .logging import get_correlation_id, set_correlation_id, set_current_user, get_logger

logger = get_logger(__name__)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation ID to requests for tracing"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID")
        if not correlation_id:
            correlation_id = str(uuid.uuid4())

        set_correlation_id(correlation_id)
        set_current_user(None)
        request.state.correlation_id = correlation_id

        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            f"{request.method} {request.url.path} completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time": round(process_time, 4),
                "client_ip": request.client.host if request.client else None,
            }
        )

        return response


async def agrismart_error_handler(request: Request, exc: AgriSmartError) -> JSONResponse:
    """Render domain errors as ``{"detail": ...}`` with the error's status"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(
            f"{request.method} {request.url.path} rejected: {exc.detail}",
            extra={"status_code": exc.status_code}
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and answer with a generic 500"""
    logger.exception(
        f"{request.method} {request.url.path} raised an unexpected error: {exc}",
        extra={"correlation_id": get_correlation_id()}
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def add_middleware(app: FastAPI) -> None:
    """Add standard middleware and error handlers to a FastAPI app"""
    app.add_middleware(CorrelationMiddleware)
    app.add_exception_handler(AgriSmartError, agrismart_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
