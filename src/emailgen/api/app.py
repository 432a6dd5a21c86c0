from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from emailgen.api.deps import Services, build_services
from emailgen.api.routes import router
from emailgen.config import Settings
from emailgen.errors import (
    EmailGenError,
    InvalidSuggestionError,
    MissingParameterError,
    ModificationStateError,
    NotFoundError,
    UnsupportedCommandError,
    UnsupportedFileTypeError,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    MissingParameterError: 400,
    UnsupportedFileTypeError: 400,
    UnsupportedCommandError: 400,
    NotFoundError: 404,
    ModificationStateError: 409,
    InvalidSuggestionError: 422,
}


def status_for(exc: EmailGenError) -> int:
    for error_type, status in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status
    return 500


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    app = FastAPI(title="EmailGen Studio")
    app.state.settings = settings
    app.state.services = services or build_services(settings)
    app.include_router(router)

    @app.exception_handler(EmailGenError)
    async def emailgen_error(request: Request, exc: EmailGenError):
        status = status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed", error=str(exc))
        else:
            logger.info(f"{request.method} {request.url.path} rejected", status=status, error=str(exc))
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in e["loc"]) for e in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"error": "Missing or invalid parameters", "fields": fields},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return app
