from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Tuple, Type

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from py_missingwatch.errors import (
    ComparisonError,
    ConfigError,
    DetectorUnavailableError,
    MissingWatchError,
    VideoDecodeError,
)

LOGGER = logging.getLogger(__name__)

# Most specific first; the first isinstance hit wins.
_DOMAIN_ERRORS: Tuple[Tuple[Type[MissingWatchError], int, str], ...] = (
    (VideoDecodeError, status.HTTP_422_UNPROCESSABLE_ENTITY, "VIDEO_DECODE_ERROR"),
    (DetectorUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, "DETECTOR_UNAVAILABLE"),
    (ComparisonError, status.HTTP_502_BAD_GATEWAY, "COMPARISON_ERROR"),
    (ConfigError, status.HTTP_500_INTERNAL_SERVER_ERROR, "CONFIG_ERROR"),
)


def _as_envelope(code: str, message: str, details: Any | None = None) -> Mapping[str, Any]:
    """Standardize error payloads for the API and UI."""
    payload: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        payload["details"] = details
    return payload


def _domain_status(exc: MissingWatchError) -> Tuple[int, str]:
    for exc_type, status_code, code in _DOMAIN_ERRORS:
        if isinstance(exc, exc_type):
            return status_code, code
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "PIPELINE_ERROR"


def install_error_handlers(app: FastAPI) -> None:
    """Attach consistent error handlers producing {code, message, details} envelopes."""

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
        headers = exc.headers or {}
        code = headers.get("x-error-code") or f"HTTP_{exc.status_code}"
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        details = None if isinstance(exc.detail, str) else exc.detail
        return JSONResponse(status_code=exc.status_code, content=_as_envelope(code, message, details))

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_as_envelope("VALIDATION_ERROR", "Validation error", exc.errors()),
        )

    @app.exception_handler(MissingWatchError)
    async def _domain_exception_handler(request: Request, exc: MissingWatchError) -> JSONResponse:
        status_code, code = _domain_status(exc)
        LOGGER.warning("%s on %s: %s", code, request.url.path, exc)
        return JSONResponse(status_code=status_code, content=_as_envelope(code, str(exc)))

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - safety net
        LOGGER.exception("Unhandled error on %s", request.url.path)
        # Avoid leaking stack traces to clients; keep minimal detail.
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_as_envelope("INTERNAL_ERROR", "Internal server error", {"error": str(exc)}),
        )
