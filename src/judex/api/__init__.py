"""FastAPI routes and API modules for judex.

Errors leave the API as an ``ErrorResponse`` body with camelCase keys and
an ``X-Error-Code`` header, whatever raised them.
"""

from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..logging import get_logger

logger = get_logger(__name__)

INVALID_INPUT = "INVALID_INPUT"


# =========================
# Error bodies
# =========================


class ErrorDetail(BaseModel):
    """One problem with the request, e.g. a missing field."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str
    message: str
    field: str | None = None


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = False
    error: str
    error_code: str
    details: list[ErrorDetail] | None = None


def error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: list[ErrorDetail] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=message, error_code=error_code, details=details)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers={"X-Error-Code": error_code},
    )


# =========================
# Exceptions
# =========================


class APIError(HTTPException):
    """HTTPException carrying a machine-readable error code."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: list[ErrorDetail] | None = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.error_code = error_code
        self.message = message
        self.details = details


class BadRequestError(APIError):
    """The request body cannot be extracted from."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(400, INVALID_INPUT, message, details)


# =========================
# Handlers
# =========================


def _validation_details(errors: list[dict[str, Any]]) -> list[ErrorDetail]:
    details = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append(
            ErrorDetail(
                code=str(error.get("type", "invalid")),
                message=str(error.get("msg", "")),
                field=".".join(location) or None,
            )
        )
    return details


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed or mistyped bodies are client errors (400), not 422."""
    return error_response(
        400, INVALID_INPUT, "Invalid request body", _validation_details(exc.errors())
    )


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(exc.status_code, "HTTP_ERROR", str(exc.detail))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def register_exception_handlers(app) -> None:
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)
