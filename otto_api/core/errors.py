"""Domain exceptions and the JSON error envelope.

Every error response the API produces has the shape ``{"error": <message>}``
so the frontend and webhook senders see a single format regardless of
which layer rejected the request.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class OttoError(Exception):
    """Base class for errors raised by Otto service code."""


class ProjectNotFoundError(OttoError):
    def __init__(self, project_id) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


class InstallationNotFoundError(OttoError):
    def __init__(self, installation_id) -> None:
        super().__init__(f"GitHub installation {installation_id} not found")
        self.installation_id = installation_id


class DuplicateProjectError(OttoError):
    """The user already has a project with this name."""


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # An unmatched method on a known path is reported like an unknown path.
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return error_response("Not Found", status.HTTP_404_NOT_FOUND)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation failed",
            "details": jsonable_errors(exc),
        },
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(str(exc) or "Internal Server Error", 500)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-serialisable context (e.g. exception instances) from pydantic errors."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
