"""
Global error handling middleware.
"""
import logging
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable, Optional

from app.config import settings
from app.domain.errors import ConfigurationError, DataUnavailableError, ValidationError
from app.infrastructure.raster_service import RemoteServiceError


logger = logging.getLogger(__name__)


def error_body(error: str, detail: Optional[object] = None, **extra) -> dict:
    """
    Build the JSON error body.

    `detail` carries the raw error and is omitted in production.
    """
    body = {"error": error, **extra}
    if detail is not None and settings.expose_error_details:
        body["detail"] = detail
    return body


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches unhandled exceptions and returns consistent error responses.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Process the request and handle any exceptions.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response object
        """
        try:
            response = await call_next(request)
            return response

        except DataUnavailableError as e:
            logger.warning(
                f"Data unavailable: {e.message}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    e.message,
                    detail=str(e),
                    targetDate=e.target_date.isoformat() if e.target_date else None,
                    searchedWeeks=e.bound_weeks,
                )
            )

        except ConfigurationError as e:
            logger.error(
                f"Configuration error: {e.message}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    "Analytics service is not configured",
                    detail=e.message,
                )
            )

        except RemoteServiceError as e:
            logger.error(
                f"Remote analytics error: {e.message}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "operation": e.operation,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    "Remote analytics service error",
                    detail=e.message,
                )
            )

        except ValidationError as e:
            # Log validation errors
            logger.warning(
                f"Validation error: {str(e)}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_body(
                    f"Invalid request: {str(e)}",
                    detail=str(e),
                )
            )

        except Exception as e:
            # Log unexpected errors
            logger.exception(
                f"Unhandled exception: {str(e)}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    "Internal server error",
                    detail=f"{type(e).__name__}: {e}",
                )
            )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return 400 for request bodies that fail validation, naming missing fields.
    """
    missing = []
    problems = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(location) or "body"
        if error.get("type") == "missing":
            missing.append(field)
        else:
            problems.append(f"{field}: {error.get('msg')}")

    if missing:
        message = f"Missing required parameters: {', '.join(missing)}"
    else:
        message = f"Invalid request parameters: {'; '.join(problems)}"

    logger.warning(
        f"Request validation failed: {message}",
        extra={
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(message, detail=problems or None),
    )
