from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
import traceback
import logging
from typing import Dict, Any, List, Optional

from app import config
from services.error_types import (
    DocumentGenerationError,
    HVACQualificationError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
    log_error_with_context,
)

logger = logging.getLogger(__name__)


def create_error_response(error_type: str, message: str, errors: Optional[List[str]] = None) -> Dict[str, Any]:
    """Create structured error response"""
    body: Dict[str, Any] = {
        "error": {
            "type": error_type,
            "message": message
        }
    }
    if errors:
        body["error"]["errors"] = errors
    return body


def add_cors_headers(request: Request, response: Response) -> Response:
    origin = request.headers.get("origin")
    if origin in config.ALLOWED_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


async def qualification_exception_handler(request: Request, exc: HVACQualificationError):
    """Map domain errors to HTTP status codes"""
    errors = None
    if isinstance(exc, RecordNotFoundError):
        status_code, message = 404, exc.message
    elif isinstance(exc, ValidationError):
        status_code, message, errors = 422, exc.message, exc.errors
    elif isinstance(exc, PersistenceError):
        status_code, message = 503, exc.user_message
    elif isinstance(exc, DocumentGenerationError):
        status_code, message = 503, exc.message
    else:
        status_code, message = 500, exc.message

    log_error_with_context(exc, {'path': request.url.path, 'method': request.method})
    response = JSONResponse(
        status_code=status_code,
        content=create_error_response(type(exc).__name__, message, errors)
    )
    return add_cors_headers(request, response)


async def traceback_exception_handler(request: Request, exc: Exception):
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(tb)

    if config.DEBUG:
        content = create_error_response("InternalServerError", tb)
    else:
        content = create_error_response("InternalServerError", "Internal server error")

    response = JSONResponse(status_code=500, content=content)
    return add_cors_headers(request, response)


class CORSErrorMiddleware(BaseHTTPMiddleware):
    """Middleware to ensure CORS headers on all responses, including errors"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await traceback_exception_handler(request, exc)
        return add_cors_headers(request, response)
