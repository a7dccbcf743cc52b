"""
Middleware and exception handlers for the FastAPI application.
"""

import time
from typing import Callable, Dict, Type

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

from market_ingress.core.config import Settings
from market_ingress.core.exceptions import (
    DatabaseError,
    IndexerError,
    MarketIngressException,
    NotFoundError,
    QueueError,
    ValidationError,
)
from market_ingress.core.logging import get_logger

from .schemas import create_error_response

logger = get_logger(__name__)

STATUS_BY_ERROR: Dict[Type[MarketIngressException], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    IndexerError: status.HTTP_502_BAD_GATEWAY,
    QueueError: status.HTTP_503_SERVICE_UNAVAILABLE,
    DatabaseError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        response = await call_next(request)
        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            "Request completed",
            method=request.method,
            url=str(request.url),
            status_code=response.status_code,
            process_time=process_time,
        )
        return response


def status_for(error: MarketIngressException) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_service_error(request: Request, exc: MarketIngressException) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Request failed", url=str(request.url), error_code=exc.code, error=exc.message)
    body = create_error_response(exc.message, exc.code, exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def add_middleware(app: FastAPI, config: Settings) -> None:
    """Add middleware and exception handlers to the FastAPI app."""
    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(MarketIngressException, handle_service_error)
