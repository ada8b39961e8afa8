from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging
import traceback

from kure_gate.errors import ConfigurationError, ParseError

logger = logging.getLogger(__name__)


def configure_exception_handlers(app):
    """Configure global exception handlers"""

    @app.exception_handler(ParseError)
    async def parse_error_handler(request: Request, exc: ParseError):
        logger.warning(f"Rejected unparseable payload in {request.method} {request.url}: {exc}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid document",
                "message": str(exc),
                "path": exc.path,
            }
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.warning(f"Rejected configuration in {request.method} {request.url}: {exc}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid configuration",
                "message": str(exc),
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for better error logging and responses"""
        error_id = id(exc)
        error_traceback = traceback.format_exc()

        logger.error(f"Unhandled exception [ID:{error_id}] in {request.method} {request.url}: {exc}")
        logger.error(f"Traceback [ID:{error_id}]:\n{error_traceback}")

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred while processing your request",
                "error_type": type(exc).__name__,
                "error_id": error_id,
                "details": str(exc)
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(f"HTTP {exc.status_code} error in {request.method} {request.url}: {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": f"HTTP {exc.status_code} Error",
                "message": exc.detail,
                "path": str(request.url)
            }
        )
