"""Domain exceptions and the global exception-to-HTTP mapping.

Services and repositories raise the HTTP-agnostic exceptions defined
here. `register_exception_handlers` installs handlers on the FastAPI app
that translate them (plus framework validation errors and any uncaught
fault) into a uniform JSON envelope:

    {"message": str, "success": false, "errors": {field: message}}

`errors` is only present for validation failures.
"""

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("shoply.errors")


class ResourceNotFoundException(Exception):
    """Raised when a looked-up resource does not exist (HTTP 404)."""

    def __init__(self, resource_name: str, field: str, field_value):
        self.resource_name = resource_name
        self.field = field
        self.field_value = field_value
        super().__init__(f"{resource_name} not found with {field}: {field_value}")

    @property
    def message(self) -> str:
        return str(self)


class APIException(Exception):
    """Raised when a business rule is violated (HTTP 400)."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def error_body(message: str, errors: Optional[Dict[str, str]] = None) -> dict:
    """Build the uniform error envelope."""
    body = {"message": message, "success": False}
    if errors is not None:
        body["errors"] = errors
    return body


def _field_errors(errors) -> Dict[str, str]:
    """Collapse pydantic error entries into a `{field: message}` map.

    The field is the last string segment of the error location, so
    `("body", "address", "city")` becomes `city`.
    """
    out: Dict[str, str] = {}
    for err in errors:
        names = [str(part) for part in err.get("loc", ()) if isinstance(part, str)]
        field = names[-1] if names else "request"
        out[field] = err.get("msg", "invalid value")
    return out


def register_exception_handlers(app: FastAPI):
    """Install the global exception handlers on `app`."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = _field_errors(exc.errors())
        logger.warning("validation failed on %s %s: %s", request.method, request.url.path, errors)
        return JSONResponse(status_code=400, content=error_body("Validation Failed", errors))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        errors = _field_errors(exc.errors())
        logger.warning("model validation failed on %s %s: %s", request.method, request.url.path, errors)
        return JSONResponse(status_code=400, content=error_body("Validation Failed", errors))

    @app.exception_handler(ResourceNotFoundException)
    async def not_found_handler(request: Request, exc: ResourceNotFoundException):
        logger.warning("%s %s -> 404 %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=404, content=error_body(exc.message))

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        logger.warning("%s %s -> 400 %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=400, content=error_body(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content=error_body("An unexpected error occurred"))
