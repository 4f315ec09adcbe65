"""
Global exception handlers: anything that escapes a route becomes
HTTP 500 `{"error": "<message>"}`.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from .responses import error_response

logger = logging.getLogger(__name__)


def describe_validation_error(exc: RequestValidationError) -> str:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg") or "invalid value")
        details.append(f"{location}: {message}" if location else message)
    return "Malformed request: " + ("; ".join(details) or "invalid body")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = describe_validation_error(exc)
        logger.warning("request_rejected path=%s reason=%s", request.url.path, message)
        return error_response(message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("request_crashed path=%s", request.url.path, exc_info=exc)
        return error_response(str(exc) or exc.__class__.__name__)
