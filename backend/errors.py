import traceback
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from log_setup import logger


class PipelineError(Exception):
    """Base class for every error that ends a request with a given status."""

    status_code = 500
    default_message = "internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(PipelineError):
    status_code = 400
    default_message = "invalid request body"


class MethodNotAllowed(PipelineError):
    status_code = 405
    default_message = "method not allowed"


class ValidationFailed(PipelineError):
    status_code = 422
    default_message = "invalid zipcode"


class NotFound(PipelineError):
    status_code = 404
    default_message = "can not find zipcode"


class UpstreamUnavailable(PipelineError):
    """Transport-level failure talking to a collaborator."""

    status_code = 500
    default_message = "upstream service unavailable"


class InternalError(PipelineError):
    status_code = 500


class CoordinatesNotFound(InternalError):
    def __init__(self, city: str):
        self.city = city
        super().__init__(f"coordinates not found for city {city}")


def error_response(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code, headers=headers)


async def pipeline_exception_handler(request: Request, exc: PipelineError) -> PlainTextResponse:
    logger.warning(f"{type(exc).__name__}: {exc.message} | Path: {request.url.path}")
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    messages = {404: "not found", 405: MethodNotAllowed.default_message}
    return error_response(
        exc.status_code,
        messages.get(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> PlainTextResponse:
    logger.info(f"request validation error: {exc.errors()} | Path: {request.url.path}")
    return error_response(BadRequest.status_code, BadRequest.default_message)


async def general_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    logger.error(f"Unhandled Exception: {type(exc).__name__}: {exc} | Traceback: {traceback.format_exc()}")
    return error_response(500, InternalError.default_message)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, pipeline_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
