"""Exception handlers mapping portfolio errors to HTTP responses"""
import logging
from typing import Dict, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from portfolio_app.core.exceptions import (
    NoActivePortfolioError,
    NotFoundError,
    PortfolioError,
    ReadOnlyModeError,
    UpstreamStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: Dict[Type[PortfolioError], int] = {
    ValidationError: 400,
    ReadOnlyModeError: 403,
    NotFoundError: 404,
    NoActivePortfolioError: 409,
    UpstreamStoreError: 502,
}


def status_code_for(exc: PortfolioError) -> int:
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


async def portfolio_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    """Malformed request bodies and parameters answer like ValidationError"""
    assert isinstance(exc, RequestValidationError)

    problems = []
    for error in exc.errors():
        field = ".".join(str(p) for p in error.get("loc", []) if p != "body") or "request"
        problems.append(f"{field}: {error.get('msg', 'invalid value')}")

    return JSONResponse(
        status_code=_STATUS_CODES[ValidationError],
        content={"detail": "; ".join(problems), "error": ValidationError.__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortfolioError, portfolio_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
